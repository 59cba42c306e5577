# exam_generator.py
# -----------------------------------------------------------------------------
# Final-exam generation for a (student, course).
# - Gate: the student's checkpoint must reach the course's session count
# - Question bank per course is filled once by the LLM, then reused
# - Canonical flow is async: claim 'generating', hand off to a job, poll /status
# - Legacy flow is synchronous and returns the instance in the same request
# -----------------------------------------------------------------------------

import os
import random
import threading
import traceback
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple

import requests

from errors import BadData, BadRequest, Forbidden, InternalServerError, NotFound
from generation_status import DONE, FAILED, GENERATING
from question_bank import (
    ParseError, build_generation_prompt, parse_questions, public_questions,
    select_questions,
)

REQUIRED_CHECKPOINT_DEFAULT = int(os.getenv("FINAL_EXAM_REQUIRED_CHECKPOINT") or 16)
GENERATE_JOB = "final_exam.generate"


class ExamFlow(NamedTuple):
    name: str
    bank_size: int  # minimum pool size before the bank is reused
    pick: int       # questions per student


CANONICAL = ExamFlow(
    "canonical",
    int(os.getenv("FINAL_EXAM_BANK_SIZE") or 30),
    int(os.getenv("FINAL_EXAM_QUESTION_COUNT") or 20),
)
LEGACY = ExamFlow(
    "legacy",
    int(os.getenv("FINAL_EXAM_LEGACY_BANK_SIZE") or 50),
    int(os.getenv("FINAL_EXAM_LEGACY_QUESTION_COUNT") or 10),
)

# One lock per course so two jobs in this process never both call the LLM for
# the same empty bank. Across processes the conditional upsert decides.
_bank_locks: Dict[str, threading.Lock] = {}
_bank_locks_guard = threading.Lock()


def _bank_lock(course_id: str) -> threading.Lock:
    with _bank_locks_guard:
        lock = _bank_locks.get(course_id)
        if lock is None:
            lock = _bank_locks[course_id] = threading.Lock()
        return lock


def instance_payload(instance: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "questions": public_questions(instance.get("questions") or []),
        "created_at": instance.get("created_at"),
    }


class ExamGenerator:
    def __init__(self, courses, bank, status, instances, llm, jobs,
                 rng: Optional[random.Random] = None):
        self.courses = courses
        self.bank = bank
        self.status = status
        self.instances = instances
        self.llm = llm
        self.jobs = jobs
        self.rng = rng
        jobs.register(GENERATE_JOB, self.run)

    @classmethod
    def from_deps(cls, deps: Dict[str, Any]) -> "ExamGenerator":
        return cls(deps["courses"], deps["question_bank"], deps["generation_status"],
                   deps["exam_instances"], deps["llm"], deps["jobs"], rng=deps.get("rng"))

    # ------------------------------ gating -----------------------------------
    def required_checkpoint(self, course_id: str) -> int:
        return self.courses.total_sessions(course_id) or REQUIRED_CHECKPOINT_DEFAULT

    def is_eligible(self, progress: Optional[Dict[str, Any]], course_id: str) -> bool:
        if not progress:
            return False
        return int(progress.get("checkpoint") or 0) >= self.required_checkpoint(course_id)

    def require_eligible(self, student_id: str, course_id: str) -> Dict[str, Any]:
        progress = self.courses.progress(student_id, course_id)
        if not self.is_eligible(progress, course_id):
            raise Forbidden("Complete all sessions before taking the final exam")
        return progress

    # ------------------------------ reads ------------------------------------
    def get_exam(self, student_id: str, course_id: str) -> Dict[str, Any]:
        self.require_eligible(student_id, course_id)
        instance = self.instances.get(student_id, course_id)
        if not instance:
            raise NotFound("Final exam is not available yet")
        return instance_payload(instance)

    # --------------------------- canonical (async) ---------------------------
    def start(self, student_id: str, course_id: str) -> Tuple[Dict[str, Any], int]:
        """
        Kick off generation. Returns (body, http_status):
          200 when an exam already exists, 202 when a job was submitted.
        """
        self.require_eligible(student_id, course_id)

        current = self.status.get_status(student_id, course_id)
        if current["status"] == GENERATING:
            raise BadRequest("Final exam generation is already in progress. Please wait.")

        instance = self.instances.get(student_id, course_id)
        if instance:
            return {
                "message": "Final exam already generated",
                "status": DONE,
                "data": instance_payload(instance),
            }, 200

        if not self.status.claim(student_id, course_id):
            raise BadRequest("Final exam generation is already in progress. Please wait.")

        self.jobs.submit(GENERATE_JOB, student_id, course_id)
        print(f"[final-exam] generation queued student={student_id} course={course_id}", flush=True)
        return {"message": "Final exam generation started.", "status": GENERATING}, 202

    def run(self, student_id: str, course_id: str):
        """Job body. Leaves status 'done' or 'failed'; never raises."""
        flow = CANONICAL
        try:
            pool = self.resolve_bank(
                course_id, flow,
                heartbeat=lambda: self.status.heartbeat(student_id, course_id),
            )
            self.status.heartbeat(student_id, course_id)
            picked = select_questions(pool, flow.pick, self.rng)
            self.instances.create(student_id, course_id, picked)
            self.status.finish(student_id, course_id, DONE)
            print(f"[final-exam] generated {len(picked)} questions "
                  f"student={student_id} course={course_id}", flush=True)
        except Exception as e:
            print(f"[final-exam] generation failed student={student_id} course={course_id}: {e}", flush=True)
            traceback.print_exc()
            try:
                self.status.finish(student_id, course_id, FAILED)
            except Exception as e2:
                print(f"[final-exam] could not record failure: {e2}", flush=True)

    # --------------------------- legacy (sync) -------------------------------
    def generate_now(self, student_id: str, course_id: str) -> Tuple[Dict[str, Any], bool]:
        """Returns (instance, created)."""
        progress = self.courses.progress(student_id, course_id)
        if not progress:
            raise NotFound("Student course not found")
        if not self.is_eligible(progress, course_id):
            raise Forbidden("Final exam cannot be generated before completing all sessions")

        instance = self.instances.get(student_id, course_id)
        if instance:
            return instance, False

        pool = self.resolve_bank(course_id, LEGACY)
        picked = select_questions(pool, LEGACY.pick, self.rng)
        return self.instances.create(student_id, course_id, picked)

    # ------------------------------- bank ------------------------------------
    def resolve_bank(self, course_id: str, flow: ExamFlow,
                     heartbeat: Optional[Callable[[], None]] = None):
        pool = self.bank.get_or_create(course_id, flow.bank_size)
        if pool is not None:
            return pool

        with _bank_lock(course_id):
            pool = self.bank.get_or_create(course_id, flow.bank_size)
            if pool is not None:
                return pool

            sessions = self.courses.sessions(course_id)
            if not sessions:
                raise NotFound("Course sessions not found")

            prompt = build_generation_prompt(sessions, flow.bank_size)
            if heartbeat:
                heartbeat()
            try:
                text = self.llm.generate(prompt)
            except (requests.RequestException, RuntimeError) as e:
                print(f"[final-exam] LLM call failed course={course_id}: {e}", flush=True)
                raise InternalServerError("Failed to generate final exam questions")

            parsed = parse_questions(text, flow.bank_size)
            if isinstance(parsed, ParseError):
                print(f"[final-exam] unusable LLM output course={course_id}: {parsed.reason}", flush=True)
                raise BadData(f"Generated questions could not be used: {parsed.reason}")

            stored = self.bank.upsert(course_id, parsed.questions, replace_below=flow.bank_size)
            print(f"[final-exam] question bank ready course={course_id} size={len(stored)}", flush=True)
            return stored

import json
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from flask import Flask, g

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from errors import register_error_handlers
from generation_status import GENERATING, effective_status, is_stale
from jobs import InlineJobRunner

NOW = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_questions(n, prefix="Question"):
    return [
        {
            "question": f"{prefix} {i}?",
            "options": [f"Right {i}", f"Wrong {i}a", f"Wrong {i}b", f"Wrong {i}c"],
            "answer": "A",
        }
        for i in range(1, n + 1)
    ]


def llm_reply(questions):
    return "Here is your exam:\n```json\n" + json.dumps(questions) + "\n```\nGood luck!"


# ------------------------------------------------------------------ fakes ----
class FakeCourses:
    def __init__(self):
        self.progress_rows = {}
        self.sessions_by_course = {}
        self.profiles = {}  # student_id -> (full_name, class_id)
        self.completed = []
        self.fail_mark_completed = False

    def set_progress(self, student_id, course_id, checkpoint, is_completed=False):
        self.progress_rows[(student_id, course_id)] = {
            "checkpoint": checkpoint, "is_completed": is_completed,
        }

    def set_sessions(self, course_id, n):
        self.sessions_by_course[course_id] = [
            {"session_number": i, "title": f"Session {i}", "content": f"<p>Material {i}</p>"}
            for i in range(1, n + 1)
        ]

    def progress(self, student_id, course_id):
        row = self.progress_rows.get((student_id, course_id))
        return dict(row) if row else None

    def total_sessions(self, course_id):
        return len(self.sessions_by_course.get(course_id, []))

    def sessions(self, course_id):
        return list(self.sessions_by_course.get(course_id, []))

    def mark_completed(self, student_id, course_id):
        if self.fail_mark_completed:
            raise RuntimeError("db down")
        self.completed.append((student_id, course_id))
        row = self.progress_rows.get((student_id, course_id))
        if row:
            row["is_completed"] = True

    def class_members(self, student_ids, class_id):
        ids = {str(s) for s in student_ids}
        return {
            sid: name for sid, (name, cls) in self.profiles.items()
            if sid in ids and cls == class_id
        }


class FakeBank:
    def __init__(self):
        self.rows = {}
        self.upserts = 0

    def get(self, course_id):
        return self.rows.get(course_id)

    def get_or_create(self, course_id, minimum):
        pool = (self.rows.get(course_id) or {}).get("questions") or []
        return pool if len(pool) >= minimum else None

    def upsert(self, course_id, questions, replace_below=None):
        self.upserts += 1
        current = self.rows.get(course_id)
        if current is None or replace_below is None or len(current["questions"]) < replace_below:
            self.rows[course_id] = {"course_id": course_id, "questions": list(questions), "created_at": NOW}
        return self.rows[course_id]["questions"]


class FakeStatus:
    def __init__(self, ttl_sec=600):
        self.rows = {}
        self.ttl_sec = ttl_sec
        self.heartbeats = 0

    def set(self, student_id, course_id, status, age_sec=0):
        self.rows[(student_id, course_id)] = {
            "status": status,
            "updated_at": datetime.now(timezone.utc) - timedelta(seconds=age_sec),
        }

    def read(self, student_id, course_id):
        return self.rows.get((student_id, course_id))

    def get_status(self, student_id, course_id):
        return effective_status(self.read(student_id, course_id), self.ttl_sec)

    def claim(self, student_id, course_id):
        row = self.read(student_id, course_id)
        if row and row["status"] == GENERATING and not is_stale(row, self.ttl_sec):
            return False
        self.set(student_id, course_id, GENERATING)
        return True

    def heartbeat(self, student_id, course_id):
        row = self.read(student_id, course_id)
        if row and row["status"] == GENERATING:
            self.heartbeats += 1
            row["updated_at"] = datetime.now(timezone.utc)

    def finish(self, student_id, course_id, status):
        row = self.read(student_id, course_id)
        if row and row["status"] == GENERATING:
            self.set(student_id, course_id, status)


class FakeInstances:
    def __init__(self):
        self.rows = {}

    def get(self, student_id, course_id):
        return self.rows.get((student_id, course_id))

    def create(self, student_id, course_id, questions):
        key = (student_id, course_id)
        if key in self.rows:
            return self.rows[key], False
        self.rows[key] = {
            "id": len(self.rows) + 1, "student_id": student_id, "course_id": course_id,
            "questions": list(questions), "created_at": NOW,
        }
        return self.rows[key], True


class FakeResults:
    def __init__(self):
        self.rows = {}
        self.lose_race = False

    def get(self, student_id, course_id):
        return self.rows.get((student_id, course_id))

    def create(self, student_id, course_id, correct, total, score):
        key = (student_id, course_id)
        if key in self.rows or self.lose_race:
            return None
        self.rows[key] = {
            "id": len(self.rows) + 1, "student_id": student_id, "course_id": course_id,
            "correct": correct, "total": total, "score": score,
            "submitted_at": NOW + timedelta(minutes=len(self.rows)),
        }
        return self.rows[key]

    def add(self, student_id, course_id, score, submitted_at):
        self.rows[(student_id, course_id)] = {
            "student_id": student_id, "course_id": course_id,
            "correct": 0, "total": 20, "score": score, "submitted_at": submitted_at,
        }

    def for_course(self, course_id):
        rows = [r for r in self.rows.values() if r["course_id"] == course_id]
        return sorted(rows, key=lambda r: (-r["score"], r["submitted_at"], r["student_id"]))


class FakeLLM:
    def __init__(self, reply="", error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


class RecordingDB:
    """Captures SQL + params; execute_returning pops queued results."""

    def __init__(self, one=None, rows=None):
        self.one = one
        self.rows = rows or []
        self.returning = []
        self.calls = []

    def fetch_one(self, sql, params=()):
        self.calls.append(("fetch_one", sql, params))
        return self.one

    def fetch_all(self, sql, params=()):
        self.calls.append(("fetch_all", sql, params))
        return list(self.rows)

    def execute(self, sql, params=()):
        self.calls.append(("execute", sql, params))

    def execute_returning(self, sql, params=()):
        self.calls.append(("execute_returning", sql, params))
        return self.returning.pop(0) if self.returning else []


# --------------------------------------------------------------- fixtures ----
@pytest.fixture
def exam_deps():
    return {
        "courses": FakeCourses(),
        "question_bank": FakeBank(),
        "generation_status": FakeStatus(),
        "exam_instances": FakeInstances(),
        "exam_results": FakeResults(),
        "llm": FakeLLM(llm_reply(make_questions(30))),
        "jobs": InlineJobRunner(),
    }


@pytest.fixture
def make_app():
    def _make(register, user_id="stu-1", role="student"):
        app = Flask(__name__)
        app.testing = True
        register_error_handlers(app)

        @app.before_request
        def _set_user():
            g.user_id = user_id
            g.user_role = role

        register(app)
        return app
    return _make

# generation_status.py — per (student, course) marker for final-exam generation
#
#   not_started (no row) -> generating -> done | failed
#
# A row stuck in 'generating' longer than the lease TTL (worker crash, restart)
# is reported as failed and may be claimed again.

import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

NOT_STARTED = "not_started"
GENERATING = "generating"
DONE = "done"
FAILED = "failed"
FINAL_STATES = (DONE, FAILED)

GENERATION_TTL_SEC = int(os.getenv("FINAL_EXAM_GENERATION_TTL") or 600)


def as_utc(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def is_stale(row: Optional[Dict[str, Any]], ttl_sec: int = GENERATION_TTL_SEC,
             now: Optional[datetime] = None) -> bool:
    if not row or row.get("status") != GENERATING:
        return False
    updated = as_utc(row.get("updated_at"))
    if updated is None:
        return True
    now = now or datetime.now(timezone.utc)
    return (now - updated).total_seconds() > ttl_sec


def effective_status(row: Optional[Dict[str, Any]], ttl_sec: int = GENERATION_TTL_SEC,
                     now: Optional[datetime] = None) -> Dict[str, Any]:
    if not row:
        return {"status": NOT_STARTED, "updated_at": None, "stale": False}
    stale = is_stale(row, ttl_sec, now)
    return {
        "status": FAILED if stale else row.get("status"),
        "updated_at": row.get("updated_at"),
        "stale": stale,
    }


class GenerationStatusTracker:
    def __init__(self, fetch_one: Callable, execute: Callable, execute_returning: Callable,
                 ttl_sec: int = GENERATION_TTL_SEC):
        self._fetch_one = fetch_one
        self._execute = execute
        self._execute_returning = execute_returning
        self.ttl_sec = ttl_sec

    def read(self, student_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("""
            SELECT status, updated_at
              FROM public.student_finalexam_status
             WHERE student_id = %s AND course_id = %s;
        """, (student_id, course_id))

    def get_status(self, student_id: str, course_id: str) -> Dict[str, Any]:
        """Pure read."""
        return effective_status(self.read(student_id, course_id), self.ttl_sec)

    def claim(self, student_id: str, course_id: str) -> bool:
        """
        Move into 'generating' in one statement. False when another live
        generation already holds the row.
        """
        rows = self._execute_returning("""
            INSERT INTO public.student_finalexam_status AS s (student_id, course_id, status, updated_at)
            VALUES (%s, %s, 'generating', now())
            ON CONFLICT (student_id, course_id) DO UPDATE
               SET status = 'generating', updated_at = now()
             WHERE s.status <> 'generating'
                OR s.updated_at < now() - make_interval(secs => %s)
            RETURNING status;
        """, (student_id, course_id, self.ttl_sec))
        return bool(rows)

    def heartbeat(self, student_id: str, course_id: str):
        self._execute("""
            UPDATE public.student_finalexam_status
               SET updated_at = now()
             WHERE student_id = %s AND course_id = %s AND status = 'generating';
        """, (student_id, course_id))

    def finish(self, student_id: str, course_id: str, status: str):
        if status not in FINAL_STATES:
            raise ValueError(f"invalid final status '{status}'")
        self._execute("""
            UPDATE public.student_finalexam_status
               SET status = %s, updated_at = now()
             WHERE student_id = %s AND course_id = %s AND status = 'generating';
        """, (status, student_id, course_id))

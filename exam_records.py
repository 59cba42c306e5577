# exam_records.py — per-student exam rows
#   public.student_finalexams         assigned question subset (created once)
#   public.student_finalexam_results  graded result (write-once)

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from psycopg.types.json import Jsonb


def _decode_questions(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if row and isinstance(row.get("questions"), str):
        row["questions"] = json.loads(row["questions"])
    return row


class ExamInstanceStore:
    def __init__(self, fetch_one: Callable, execute_returning: Callable):
        self._fetch_one = fetch_one
        self._execute_returning = execute_returning

    def get(self, student_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        return _decode_questions(self._fetch_one("""
            SELECT id, student_id, course_id, questions, created_at
              FROM public.student_finalexams
             WHERE student_id = %s AND course_id = %s;
        """, (student_id, course_id)))

    def create(self, student_id: str, course_id: str,
               questions: List[Dict[str, Any]]) -> Tuple[Dict[str, Any], bool]:
        """Insert-if-absent. Returns (row, created); an existing row is never replaced."""
        rows = self._execute_returning("""
            INSERT INTO public.student_finalexams (student_id, course_id, questions, created_at)
            VALUES (%s, %s, %s, now())
            ON CONFLICT (student_id, course_id) DO NOTHING
            RETURNING id, student_id, course_id, questions, created_at;
        """, (student_id, course_id, Jsonb(questions)))
        if rows:
            return _decode_questions(rows[0]), True
        return self.get(student_id, course_id), False


class ExamResultStore:
    def __init__(self, fetch_one: Callable, fetch_all: Callable, execute_returning: Callable):
        self._fetch_one = fetch_one
        self._fetch_all = fetch_all
        self._execute_returning = execute_returning

    def get(self, student_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("""
            SELECT id, student_id, course_id, correct, total, score, submitted_at
              FROM public.student_finalexam_results
             WHERE student_id = %s AND course_id = %s;
        """, (student_id, course_id))

    def create(self, student_id: str, course_id: str,
               correct: int, total: int, score: int) -> Optional[Dict[str, Any]]:
        """Single insert; None when a result already exists for (student, course)."""
        rows = self._execute_returning("""
            INSERT INTO public.student_finalexam_results
                (student_id, course_id, correct, total, score, submitted_at)
            VALUES (%s, %s, %s, %s, %s, now())
            ON CONFLICT (student_id, course_id) DO NOTHING
            RETURNING id, student_id, course_id, correct, total, score, submitted_at;
        """, (student_id, course_id, correct, total, score))
        return rows[0] if rows else None

    def for_course(self, course_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all("""
            SELECT student_id, score, submitted_at
              FROM public.student_finalexam_results
             WHERE course_id = %s
             ORDER BY score DESC, submitted_at ASC, student_id ASC;
        """, (course_id,)) or []

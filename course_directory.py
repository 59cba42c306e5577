# course_directory.py — read access to tables owned by other LMS services
#   student_courses   progress (checkpoint, is_completed); only is_completed is written here
#   course_sessions   ordered session titles + content
#   student_profiles  display name + class membership

from typing import Any, Callable, Dict, Iterable, List, Optional


class CourseDirectory:
    def __init__(self, fetch_one: Callable, fetch_all: Callable, execute: Callable):
        self._fetch_one = fetch_one
        self._fetch_all = fetch_all
        self._execute = execute

    def progress(self, student_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        return self._fetch_one("""
            SELECT checkpoint, is_completed
              FROM public.student_courses
             WHERE student_id = %s AND course_id = %s
             LIMIT 1;
        """, (student_id, course_id))

    def total_sessions(self, course_id: str) -> int:
        row = self._fetch_one("""
            SELECT COUNT(*) AS n
              FROM public.course_sessions
             WHERE course_id = %s;
        """, (course_id,))
        return int((row or {}).get("n") or 0)

    def sessions(self, course_id: str) -> List[Dict[str, Any]]:
        return self._fetch_all("""
            SELECT session_number, title, content
              FROM public.course_sessions
             WHERE course_id = %s
             ORDER BY session_number ASC;
        """, (course_id,)) or []

    def mark_completed(self, student_id: str, course_id: str):
        self._execute("""
            UPDATE public.student_courses
               SET is_completed = true, updated_at = now()
             WHERE student_id = %s AND course_id = %s;
        """, (student_id, course_id))

    def class_members(self, student_ids: Iterable[str], class_id: str) -> Dict[str, str]:
        """{user_id: full_name} for the given students who belong to class_id."""
        ids = [str(s) for s in student_ids]
        if not ids:
            return {}
        rows = self._fetch_all("""
            SELECT user_id::text AS user_id, full_name
              FROM public.student_profiles
             WHERE user_id::text = ANY(%s)
               AND class_id::text = %s;
        """, (ids, str(class_id))) or []
        return {r["user_id"]: r.get("full_name") for r in rows}

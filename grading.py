# grading.py — score a submitted final exam against the student's assigned questions

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from errors import BadRequest, NotFound
from question_bank import OPTION_LETTERS


def round_half_up(value) -> int:
    """0.5 always rounds up (Python's round() would give 2 for 2.5)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent(part: int, whole: int) -> int:
    if not whole:
        return 0
    return round_half_up(Decimal(part) * 100 / Decimal(whole))


def is_correct(question: Dict[str, Any], selected: Any) -> bool:
    """Accepts the option letter or the option text (both case-insensitive)."""
    if selected is None:
        return False
    given = str(selected).strip()
    if not given:
        return False
    letter = str(question.get("answer") or "").strip().upper()
    if given.upper() == letter:
        return True
    options = question.get("options") or []
    if letter in OPTION_LETTERS:
        idx = OPTION_LETTERS.index(letter)
        if idx < len(options):
            return given.lower() == str(options[idx]).strip().lower()
    return False


def grade(questions: List[Dict[str, Any]], answers: Iterable[Dict[str, Any]],
          key: str = "answer") -> Tuple[int, int, int]:
    """(correct, total, score). total is the number of assigned questions."""
    submitted: Dict[str, Any] = {}
    for a in answers:
        text = str((a or {}).get("question") or "").strip()
        if text and text not in submitted:
            submitted[text] = a.get(key)

    correct = 0
    for q in questions:
        text = str(q.get("question") or "").strip()
        if text in submitted and is_correct(q, submitted[text]):
            correct += 1
    total = len(questions)
    return correct, total, percent(correct, total)


class SubmissionEngine:
    def __init__(self, instances, results, courses):
        self.instances = instances
        self.results = results
        self.courses = courses

    @classmethod
    def from_deps(cls, deps: Dict[str, Any]) -> "SubmissionEngine":
        return cls(deps["exam_instances"], deps["exam_results"], deps["courses"])

    def submit(self, student_id: str, course_id: str, answers: List[Dict[str, Any]],
               key: str = "answer", duplicate_exc=BadRequest) -> Dict[str, Any]:
        if self.results.get(student_id, course_id):
            raise duplicate_exc("Final exam has already been submitted")

        instance = self.instances.get(student_id, course_id)
        if not instance or not isinstance(instance.get("questions"), list):
            raise NotFound("Final exam is not available yet")

        correct, total, score = grade(instance["questions"], answers, key=key)

        if self.results.create(student_id, course_id, correct, total, score) is None:
            # Concurrent submit won the insert
            raise duplicate_exc("Final exam has already been submitted")

        try:
            self.courses.mark_completed(student_id, course_id)
        except Exception as e:
            print(f"[final-exam] could not mark course completed "
                  f"student={student_id} course={course_id}: {e}", flush=True)

        print(f"[final-exam] submitted student={student_id} course={course_id} "
              f"score={score} ({correct}/{total})", flush=True)
        return {"total_questions": total, "correct": correct, "score": score}

    def result(self, student_id: str, course_id: str) -> Optional[Dict[str, Any]]:
        return self.results.get(student_id, course_id)

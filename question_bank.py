# question_bank.py
# -----------------------------------------------------------------------------
# Per-course pool of final-exam questions.
# - One row per course in public.course_finalexams, shared by every student
# - Filled once from an LLM answer, reused while it holds enough questions
# - Parsing is a tagged result (Parsed | ParseError); it never raises
# -----------------------------------------------------------------------------

import html
import json
import os
import random
import re
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Union

import bleach
from psycopg.types.json import Jsonb

OPTION_LETTERS = ("A", "B", "C", "D")
SESSION_CONTENT_CAP = int(os.getenv("FINAL_EXAM_SESSION_CHARS") or 6000)  # per session, in the prompt

_LETTER_RE = re.compile(r"^\s*\(?([A-Da-d])\s*[\.\):]?\s*$")


class Parsed(NamedTuple):
    questions: List[Dict[str, Any]]


class ParseError(NamedTuple):
    reason: str


ParseResult = Union[Parsed, ParseError]


# ------------------------------- normalization --------------------------------
def answer_letter(answer: Any) -> Optional[str]:
    """'b', 'B.', '(C)' -> letter; anything else -> None."""
    m = _LETTER_RE.match(str(answer or ""))
    return m.group(1).upper() if m else None


def normalize_question(item: Any) -> Optional[Dict[str, Any]]:
    """Return a clean {question, options?, answer} dict, or None if unusable."""
    if not isinstance(item, dict):
        return None
    question = str(item.get("question") or "").strip()
    answer = str(item.get("answer") or "").strip()
    if not question or not answer:
        return None

    raw_options = item.get("options")
    if raw_options is None:
        raw_options = item.get("choices")
    if raw_options is None:
        return {"question": question, "answer": answer}

    if not isinstance(raw_options, list) or len(raw_options) != len(OPTION_LETTERS):
        return None
    options = [str(o).strip() for o in raw_options]
    if not all(options):
        return None

    letter = answer_letter(answer)
    if letter is None:
        # Answer given as option text -> store the letter
        lowered = [o.lower() for o in options]
        if answer.lower() in lowered:
            letter = OPTION_LETTERS[lowered.index(answer.lower())]
    if letter is None:
        # Answer key points at no option; nobody could score it
        return None
    return {"question": question, "options": options, "answer": letter}


def normalize_pool(items: Iterable[Any]) -> List[Dict[str, Any]]:
    """Normalize and drop unusable items and repeated question texts."""
    out: List[Dict[str, Any]] = []
    seen = set()
    for item in items:
        q = normalize_question(item)
        if not q:
            continue
        key = q["question"].lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(q)
    return out


# ---------------------------------- parsing -----------------------------------
def extract_json_array(text: str) -> Optional[List[Any]]:
    """First well-formed JSON array of objects found anywhere in text."""
    decoder = json.JSONDecoder()
    for m in re.finditer(r"\[", text or ""):
        try:
            value, _end = decoder.raw_decode(text, m.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, list) and any(isinstance(v, dict) for v in value):
            return value
    return None


def parse_questions(text: str, minimum: int) -> ParseResult:
    if not (text or "").strip():
        return ParseError("empty response")
    raw = extract_json_array(text)
    if raw is None:
        return ParseError("no JSON array of questions found in response")
    questions = normalize_pool(raw)
    if len(questions) < minimum:
        return ParseError(f"not enough valid questions ({len(questions)} < {minimum})")
    return Parsed(questions)


# ---------------------------------- prompt ------------------------------------
def plain_text(content: Any) -> str:
    """Session content may be stored as HTML; the prompt wants text only."""
    cleaned = bleach.clean(str(content or ""), tags=[], attributes={}, strip=True)
    return re.sub(r"\n{3,}", "\n\n", html.unescape(cleaned)).strip()


def build_generation_prompt(sessions: List[Dict[str, Any]], count: int,
                            course_title: Optional[str] = None) -> str:
    material = "\n\n".join(
        f"Session {s.get('session_number') or i}: {str(s.get('title') or '').strip()}\n"
        f"{plain_text(s.get('content'))[:SESSION_CONTENT_CAP]}"
        for i, s in enumerate(sessions, start=1)
    )
    heading = f"COURSE: {course_title}\n\n" if course_title else ""
    return f"""You are a course instructor writing a final exam.
{heading}Write exactly {count} multiple-choice questions that together cover ALL of the material below.

Return ONLY a JSON array, no prose, in this format:
[
  {{
    "question": "What is ...?",
    "options": ["option text", "option text", "option text", "option text"],
    "answer": "A"
  }}
]

Rules:
- Exactly 4 options per question.
- "answer" is the letter (A, B, C or D) of the single correct option.
- Every question text must be unique.

MATERIAL:
---
{material}
---
"""


# --------------------------------- selection ----------------------------------
def select_questions(pool: List[Dict[str, Any]], count: int,
                     rng: Optional[random.Random] = None) -> List[Dict[str, Any]]:
    """Random subset without replacement (whole pool, shuffled, if smaller)."""
    rng = rng or random.SystemRandom()
    k = min(max(int(count), 0), len(pool))
    return [dict(q) for q in rng.sample(list(pool), k)]


def public_questions(questions: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Questions as served to students (answer key removed)."""
    return [{k: v for k, v in q.items() if k != "answer"} for q in questions]


# ----------------------------------- store ------------------------------------
class QuestionBankStore:
    """SQL-backed pool per course. deps: fetch_one, execute_returning."""

    def __init__(self, fetch_one: Callable, execute_returning: Callable):
        self._fetch_one = fetch_one
        self._execute_returning = execute_returning

    def get(self, course_id: str) -> Optional[Dict[str, Any]]:
        row = self._fetch_one("""
            SELECT course_id, questions, created_at
              FROM public.course_finalexams
             WHERE course_id = %s;
        """, (course_id,))
        if row and isinstance(row.get("questions"), str):
            row["questions"] = json.loads(row["questions"])
        return row

    def get_or_create(self, course_id: str, minimum: int) -> Optional[List[Dict[str, Any]]]:
        """Existing pool if it holds >= minimum questions, else None (regenerate)."""
        row = self.get(course_id)
        pool = (row or {}).get("questions") or []
        return pool if len(pool) >= minimum else None

    def upsert(self, course_id: str, questions: List[Dict[str, Any]],
               replace_below: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        Store a pool for course_id and return the pool now on record.
        With replace_below, an existing pool is only overwritten while it still
        has fewer than replace_below questions; otherwise the stored pool wins.
        """
        if replace_below is None:
            rows = self._execute_returning("""
                INSERT INTO public.course_finalexams AS b (course_id, questions, created_at)
                VALUES (%s, %s, now())
                ON CONFLICT (course_id) DO UPDATE
                   SET questions = EXCLUDED.questions, created_at = now()
                RETURNING questions;
            """, (course_id, Jsonb(questions)))
        else:
            rows = self._execute_returning("""
                INSERT INTO public.course_finalexams AS b (course_id, questions, created_at)
                VALUES (%s, %s, now())
                ON CONFLICT (course_id) DO UPDATE
                   SET questions = EXCLUDED.questions, created_at = now()
                 WHERE jsonb_array_length(b.questions) < %s
                RETURNING questions;
            """, (course_id, Jsonb(questions), int(replace_below)))
        if rows:
            return rows[0].get("questions") or questions
        current = self.get(course_id)
        return (current or {}).get("questions") or questions

# legacy_final_exam.py — deprecated synchronous final exam (10 of 50 questions)
#
# Kept for older clients. Writes the same instance/result tables as
# /student/final-exam, so a student still gets one exam and one result per course.

import uuid
from typing import Any, Dict, List

from flask import Blueprint, g, jsonify, request

from auth import student_required
from errors import BadRequest, Forbidden
from exam_generator import LEGACY, ExamGenerator
from grading import SubmissionEngine
from question_bank import OPTION_LETTERS, public_questions


def _payload() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def _course_uuid(data: Dict[str, Any]) -> str:
    raw = data.get("course_id")
    try:
        return str(uuid.UUID(str(raw)))
    except (TypeError, ValueError):
        raise BadRequest("'course_id' must be a valid UUID")


def _validate_selected(raw: Any) -> List[Dict[str, str]]:
    if not isinstance(raw, list) or len(raw) != LEGACY.pick:
        raise BadRequest(f"'answers' must contain exactly {LEGACY.pick} items")
    answers = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise BadRequest(f"answers[{i}] must be an object")
        question, selected = item.get("question"), item.get("selected")
        if not isinstance(question, str) or not question.strip():
            raise BadRequest(f"answers[{i}].question is required")
        if selected not in OPTION_LETTERS:
            raise BadRequest(f"answers[{i}].selected must be one of {', '.join(OPTION_LETTERS)}")
        answers.append({"question": question, "selected": selected})
    return answers


def create_legacy_final_exam_blueprint(base_path: str, deps: Dict[str, Any],
                                       name: str = "legacy_final_exam") -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=f"{base_path or ''}/final-exam")

    generator: ExamGenerator = deps.get("generator") or ExamGenerator.from_deps(deps)
    grading: SubmissionEngine = deps.get("grading") or SubmissionEngine.from_deps(deps)
    successor = f"{base_path or ''}/student/final-exam"

    @bp.after_request
    def _mark_deprecated(resp):
        resp.headers["Deprecation"] = "true"
        resp.headers["Link"] = f'<{successor}>; rel="successor-version"'
        return resp

    @bp.post("/generate")
    @student_required
    def generate():
        course_id = _course_uuid(_payload())
        instance, created = generator.generate_now(g.user_id, course_id)
        exam = dict(instance)
        exam["questions"] = public_questions(exam.get("questions") or [])
        if created:
            return jsonify({"message": "Final exam generated successfully", "exam": exam}), 201
        return jsonify({"message": "Final exam already generated for this student", "exam": exam}), 200

    @bp.post("/submit")
    @student_required
    def submit():
        data = _payload()
        course_id = _course_uuid(data)
        answers = _validate_selected(data.get("answers"))
        outcome = grading.submit(g.user_id, course_id, answers,
                                 key="selected", duplicate_exc=Forbidden)
        return jsonify({"message": "Final exam submitted", "score": outcome["score"]})

    return bp

# final_exam.py
# -----------------------------------------------------------------------------
# Student final-exam API (JSON), mounted at <base_path>/student/final-exam
#   GET  ""            assigned questions (answer key removed)
#   GET  /status       generation status, poll after /generate
#   POST /generate     start async generation (202) or return existing exam (200)
#   PUT  /submit       grade once; a second submit is rejected
#   GET  /result       stored result
#   GET  /leaderboard  class ranking for the course
# -----------------------------------------------------------------------------

from typing import Any, Dict, List

from flask import Blueprint, g, jsonify, request

from auth import student_required
from errors import BadRequest, NotFound
from exam_generator import ExamGenerator
from generation_status import NOT_STARTED
from grading import SubmissionEngine
from leaderboard import leaderboard


def _required_arg(name: str) -> str:
    value = (request.args.get(name) or "").strip()
    if not value:
        raise BadRequest(f"'{name}' is required")
    return value


def _json_payload() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def _required_field(data: Dict[str, Any], name: str) -> str:
    value = data.get(name)
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f"'{name}' is required")
    return value.strip()


def _validate_answers(raw: Any) -> List[Dict[str, str]]:
    if not isinstance(raw, list) or not raw:
        raise BadRequest("'answers' must be a non-empty list")
    answers = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise BadRequest(f"answers[{i}] must be an object")
        question, answer = item.get("question"), item.get("answer")
        if not isinstance(question, str) or not question.strip():
            raise BadRequest(f"answers[{i}].question is required")
        if not isinstance(answer, str) or not answer.strip():
            raise BadRequest(f"answers[{i}].answer is required")
        answers.append({"question": question, "answer": answer})
    return answers


def create_final_exam_blueprint(base_path: str, deps: Dict[str, Any],
                                name: str = "final_exam") -> Blueprint:
    """
    Required deps: courses, question_bank, generation_status, exam_instances,
                   exam_results, llm, jobs
    Optional deps: generator, grading (prebuilt engines), rng
    """
    bp = Blueprint(name, __name__, url_prefix=f"{base_path or ''}/student/final-exam")

    generator: ExamGenerator = deps.get("generator") or ExamGenerator.from_deps(deps)
    grading: SubmissionEngine = deps.get("grading") or SubmissionEngine.from_deps(deps)
    status_tracker = deps["generation_status"]
    results = deps["exam_results"]
    courses = deps["courses"]

    @bp.get("")
    @student_required
    def get_exam():
        course_id = _required_arg("course_id")
        data = generator.get_exam(g.user_id, course_id)
        return jsonify({"message": "Final exam found", "data": data})

    @bp.get("/status")
    @student_required
    def generation_status():
        course_id = _required_arg("course_id")
        current = status_tracker.get_status(g.user_id, course_id)
        if current["status"] == NOT_STARTED:
            return jsonify({
                "status": NOT_STARTED,
                "message": "Final exam generation has not been started.",
            })
        body = {"status": current["status"], "updated_at": current["updated_at"]}
        if current["stale"]:
            body["stale"] = True
            body["message"] = "Previous generation did not finish. You can start it again."
        return jsonify(body)

    @bp.post("/generate")
    @student_required
    def generate():
        course_id = _required_field(_json_payload(), "course_id")
        body, code = generator.start(g.user_id, course_id)
        return jsonify(body), code

    @bp.put("/submit")
    @student_required
    def submit():
        data = _json_payload()
        course_id = _required_field(data, "course_id")
        answers = _validate_answers(data.get("answers"))
        outcome = grading.submit(g.user_id, course_id, answers)
        return jsonify({"message": "Final exam submitted successfully", **outcome})

    @bp.get("/result")
    @student_required
    def result():
        course_id = _required_arg("course_id")
        row = results.get(g.user_id, course_id)
        if not row:
            raise NotFound("No final exam result yet")
        return jsonify({"message": "Final exam result found", "result": row})

    @bp.get("/leaderboard")
    @student_required
    def class_leaderboard():
        course_id = _required_arg("course_id")
        class_id = _required_arg("class_id")
        board = leaderboard(results, courses, course_id, class_id, g.user_id)
        return jsonify({"message": "Leaderboard retrieved", **board})

    return bp

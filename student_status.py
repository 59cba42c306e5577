# student_status.py — GET <base_path>/student/courses/<course_id>/status
# Progress percentage plus whether the final exam is open / already generated.

from typing import Any, Dict

from flask import Blueprint, g, jsonify

from auth import student_required
from errors import NotFound
from exam_generator import ExamGenerator
from grading import percent


def course_status(generator: ExamGenerator, student_id: str, course_id: str) -> Dict[str, Any]:
    courses = generator.courses
    progress = courses.progress(student_id, course_id)
    if not progress:
        raise NotFound("Student progress not found")

    checkpoint = int(progress.get("checkpoint") or 0)
    total = courses.total_sessions(course_id)
    exam = generator.instances.get(student_id, course_id)
    return {
        "checkpoint": checkpoint,
        "is_completed": bool(progress.get("is_completed")),
        "total_sessions": total,
        "percentage": percent(checkpoint, total),
        "final_exam": {
            "available": generator.is_eligible(progress, course_id),
            "generated": bool(exam),
            "created_at": (exam or {}).get("created_at"),
        },
    }


def create_student_status_blueprint(base_path: str, deps: Dict[str, Any],
                                    name: str = "student_status") -> Blueprint:
    bp = Blueprint(name, __name__, url_prefix=f"{base_path or ''}/student/courses")
    generator: ExamGenerator = deps.get("generator") or ExamGenerator.from_deps(deps)

    @bp.get("/<course_id>/status")
    @student_required
    def status(course_id: str):
        return jsonify(course_status(generator, g.user_id, course_id))

    return bp

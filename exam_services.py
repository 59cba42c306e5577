# exam_services.py — final-exam engines over the shared DB pool
# Used by main.py (web) and worker.py (RQ); importing this builds nothing.

from typing import Any, Dict, Optional

import db
from course_directory import CourseDirectory
from exam_generator import ExamGenerator
from exam_records import ExamInstanceStore, ExamResultStore
from generation_status import GenerationStatusTracker
from grading import SubmissionEngine
from jobs import JobRunner, create_job_runner
from llm import create_text_generator
from question_bank import QuestionBankStore


def build_exam_deps(jobs: Optional[JobRunner] = None, llm=None) -> Dict[str, Any]:
    deps: Dict[str, Any] = {
        "courses": CourseDirectory(db.fetch_one, db.fetch_all, db.execute),
        "question_bank": QuestionBankStore(db.fetch_one, db.execute_returning),
        "generation_status": GenerationStatusTracker(db.fetch_one, db.execute, db.execute_returning),
        "exam_instances": ExamInstanceStore(db.fetch_one, db.execute_returning),
        "exam_results": ExamResultStore(db.fetch_one, db.fetch_all, db.execute_returning),
        "llm": llm or create_text_generator(),
        "jobs": jobs or create_job_runner(),
    }
    deps["generator"] = ExamGenerator.from_deps(deps)
    deps["grading"] = SubmissionEngine.from_deps(deps)
    return deps

# worker.py — RQ worker for final-exam jobs (FINAL_EXAM_JOB_BACKEND=rq)
#   python worker.py
# The web process enqueues "worker.run_job" with a job name + plain ids.

from typing import Optional

from redis import Redis
from rq import Worker

import db
from exam_services import build_exam_deps
from jobs import REDIS_URL, RQ_QUEUE, InlineJobRunner, JobRunner

_runner: Optional[JobRunner] = None


def _job_runner() -> JobRunner:
    global _runner
    if _runner is None:
        runner = InlineJobRunner()
        build_exam_deps(jobs=runner)
        _runner = runner
    return _runner


def run_job(name: str, *args):
    db.ensure_schema()
    print(f"[worker] running {name}{args}", flush=True)
    return _job_runner().run(name, *args)


if __name__ == "__main__":
    redis = Redis.from_url(REDIS_URL)
    w = Worker([RQ_QUEUE], connection=redis)
    w.work(with_scheduler=True)

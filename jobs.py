# jobs.py — background work for the web app
#
# Handlers are registered by name so the same job can run in-process (thread
# pool, the default), inline (tests, scripts) or on an RQ queue served by
# worker.py. Jobs carry only plain arguments (ids), never live objects.

import os
import traceback
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Optional

from redis import Redis
from rq import Queue

JOB_BACKEND      = (os.getenv("FINAL_EXAM_JOB_BACKEND") or "thread").strip().lower()
JOB_MAX_WORKERS  = int(os.getenv("FINAL_EXAM_JOB_WORKERS") or 4)
REDIS_URL        = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RQ_QUEUE         = os.getenv("RQ_QUEUE", "final-exam")
RQ_JOB_TIMEOUT   = int(os.getenv("RQ_JOB_TIMEOUT") or 900)

RQ_ENTRYPOINT = "worker.run_job"


class JobRunner:
    def __init__(self):
        self._handlers: Dict[str, Callable] = {}

    def register(self, name: str, handler: Callable):
        self._handlers[name] = handler

    def run(self, name: str, *args: Any):
        handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f"no job handler registered for '{name}'")
        return handler(*args)

    def _run_logged(self, name: str, *args: Any):
        try:
            self.run(name, *args)
        except Exception as e:
            print(f"[jobs] {name}{args} crashed: {e}", flush=True)
            traceback.print_exc()

    def submit(self, name: str, *args: Any):
        raise NotImplementedError

    def shutdown(self):
        pass


class InlineJobRunner(JobRunner):
    """Runs the job before submit() returns."""

    def submit(self, name: str, *args: Any):
        self._run_logged(name, *args)


class ThreadJobRunner(JobRunner):
    """Fire-and-forget on a thread pool inside the web process."""

    def __init__(self, max_workers: int = JOB_MAX_WORKERS):
        super().__init__()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="final-exam-job")

    def submit(self, name: str, *args: Any):
        self._pool.submit(self._run_logged, name, *args)

    def shutdown(self):
        self._pool.shutdown(wait=True)


class RQJobRunner(JobRunner):
    """Durable jobs on Redis; executed by `python worker.py`."""

    def __init__(self, queue: Optional[Queue] = None):
        super().__init__()
        if queue is None:
            queue = Queue(RQ_QUEUE, connection=Redis.from_url(REDIS_URL))
        self.queue = queue

    def submit(self, name: str, *args: Any):
        job = self.queue.enqueue(RQ_ENTRYPOINT, name, *args, job_timeout=RQ_JOB_TIMEOUT)
        print(f"[jobs] enqueued {name}{args} as {job.id}", flush=True)


def create_job_runner(backend: str = JOB_BACKEND) -> JobRunner:
    if backend == "rq":
        return RQJobRunner()
    if backend == "inline":
        return InlineJobRunner()
    if backend != "thread":
        print(f"[jobs] unknown backend '{backend}', using thread", flush=True)
    return ThreadJobRunner()

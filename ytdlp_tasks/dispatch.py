import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .config import Settings
from .runner import TaskRunner

logger = logging.getLogger(__name__)

EXECUTOR_THREADS = "threads"
EXECUTOR_CELERY = "celery"


class TaskDispatcher:
    """
    Fire-and-forget submission of tasks to a runner.

    The thread backend runs at most `max_workers` yt-dlp processes at once;
    further tasks wait in the pool's queue (still in `waiting` status).
    The celery backend hands the task id to a worker process instead.
    """

    def __init__(self, runner: TaskRunner, settings: Settings):
        self.runner = runner
        self.backend = settings.task_executor
        self._pool: Optional[ThreadPoolExecutor] = None

        if self.backend == EXECUTOR_THREADS:
            self._pool = ThreadPoolExecutor(
                max_workers=max(1, settings.max_workers),
                thread_name_prefix="ytdlp-worker",
            )
        elif self.backend != EXECUTOR_CELERY:
            raise ValueError(f"Unknown TASK_EXECUTOR: {self.backend}")

    def submit(self, task_id: str) -> None:
        if self.backend == EXECUTOR_CELERY:
            from .tasks import process_download_task

            process_download_task.delay(task_id)
            logger.info("Queued task %s on celery", task_id)
            return

        future = self._pool.submit(self.runner.run, task_id)
        future.add_done_callback(lambda f: _log_crash(task_id, f))
        logger.info("Queued task %s", task_id)

    def shutdown(self, wait: bool = False) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=wait)


def _log_crash(task_id: str, future: Future) -> None:
    # The runner records its own failures; anything here escaped that write.
    exc = future.exception()
    if exc is not None:
        logger.error("Runner for task %s crashed: %r", task_id, exc, exc_info=exc)

import logging
import time
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from .config import Settings
from .database import TaskStore
from .errors import InvalidTransitionError
from .executor import run_ytdlp
from .jobs import get_job_kind
from .log import bind_task_id
from .models import TaskStatus
from .utils import utc_now

logger = logging.getLogger(__name__)


def file_reference(task_id: str, filename: str) -> str:
    return f"/files/{task_id}/{filename}"


class TaskRunner:
    """
    Drives one task from waiting to a terminal state.

    The runner holds no per-task state, so one instance is shared by every
    worker thread.
    """

    def __init__(self, store: TaskStore, settings: Settings):
        self.store = store
        self.settings = settings

    def task_dir(self, task_id: str) -> Path:
        return Path(self.settings.downloads_dir) / task_id

    def run(self, task_id: str) -> None:
        with bind_task_id(task_id):
            self._run(task_id)

    def _run(self, task_id: str) -> None:
        task = self.store.get(task_id)
        if task is None:
            logger.warning("Task %s not found, nothing to run", task_id)
            return
        if task.status != TaskStatus.WAITING.value:
            # e.g. a redelivered celery message for a task that already ran
            logger.warning("Task %s is %s, not running it again", task_id, task.status)
            return

        start = time.monotonic()
        logger.info("Task start type=%s url=%s", task.task_type, task.url)
        try:
            kind = get_job_kind(task.task_type)
            task_dir = self.task_dir(task_id)
            task_dir.mkdir(parents=True, exist_ok=True)

            args = kind.build_args(task, task_dir)
            self.store.transition(task_id, TaskStatus.PROCESSING)

            result = run_ytdlp(self.settings.ytdlp_command, args, cwd=task_dir, task_id=task_id)
            filename = kind.collect_output(task_dir, result)

            self.store.transition(
                task_id,
                TaskStatus.COMPLETED,
                file=file_reference(task_id, filename),
                error=None,
                completed_time=utc_now(),
            )
            logger.info(
                "Task completed file=%s elapsed_ms=%d",
                filename,
                int((time.monotonic() - start) * 1000),
            )
        except Exception as exc:
            logger.exception("Task %s failed", task_id)
            self._fail(task_id, exc)

    def _fail(self, task_id: str, exc: Exception) -> None:
        try:
            self.store.transition(
                task_id,
                TaskStatus.FAILED,
                error=str(exc) or exc.__class__.__name__,
                file=None,
                completed_time=utc_now(),
            )
        except InvalidTransitionError as e:
            # someone else already finished the task
            logger.warning("Not recording failure: %s", e)
        except SQLAlchemyError:
            logger.exception("Could not record failure of task %s", task_id)

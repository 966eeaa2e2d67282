"""Logging setup with per-task correlation."""

import contextvars
import logging
import sys
from contextlib import contextmanager

_task_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("task_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s task_id=%(task_id)s %(message)s"


class TaskIdFilter(logging.Filter):
    """Attach the task being processed to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "task_id"):
            record.task_id = _task_id_ctx.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(TaskIdFilter())
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=[handler], force=True)


@contextmanager
def bind_task_id(task_id: str):
    """Tag log records emitted in this context with `task_id`."""
    token = _task_id_ctx.set(task_id)
    try:
        yield
    finally:
        _task_id_ctx.reset(token)

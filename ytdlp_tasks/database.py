import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker

from .errors import InvalidTransitionError, TaskNotFoundError
from .models import Base, Task, TaskStatus
from .utils import utc_now

logger = logging.getLogger(__name__)

RESTART_ERROR = "Interrupted by server restart"


def _create_engine(database_url: str):
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)

    if url.get_backend_name() == "sqlite":
        @event.listens_for(engine, "connect")
        def set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA journal_mode=WAL;")
            cursor.execute("PRAGMA busy_timeout=5000;")
            cursor.close()

    return engine


class TaskStore:
    """
    Durable table of task records keyed by task_id.

    Writes always replace the whole record. Callers that change only a few
    fields go through `transition`, which reads, merges and writes back.
    Writes from different threads are serialized by an internal lock.
    """

    def __init__(self, database_url: str):
        self.database_url = database_url
        self.engine = _create_engine(database_url)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self.engine,
            expire_on_commit=False,
        )
        self._write_lock = threading.Lock()

    def init_schema(self) -> None:
        """Create the tasks table if it does not exist."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database initialized url=%s", self.engine.url.render_as_string(hide_password=True))

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def session(self):
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def upsert(self, task: Task) -> Task:
        """Insert the record, or fully replace the one with the same task_id."""
        values = task.to_dict()
        if values.get("force_keyframes") is None:
            values["force_keyframes"] = False
        with self._write_lock, self.session() as db:
            try:
                stored = db.merge(Task(**values))
                db.commit()
            except Exception:
                db.rollback()
                raise
            db.expunge(stored)
            return stored

    def get(self, task_id: str) -> Optional[Task]:
        with self.session() as db:
            task = db.get(Task, task_id)
            if task is not None:
                db.expunge(task)
            return task

    def transition(self, task_id: str, status: TaskStatus, **changes) -> Task:
        """
        Move a task to `status`, overwriting the given fields.

        Raises TaskNotFoundError for unknown ids and InvalidTransitionError
        when the move would go backwards or leave a terminal state.
        """
        status = TaskStatus(status)
        with self._write_lock:
            current = self.get(task_id)
            if current is None:
                raise TaskNotFoundError(task_id)

            current_status = TaskStatus(current.status)
            if not current_status.can_move_to(status):
                raise InvalidTransitionError(task_id, current_status.value, status.value)

            values = current.to_dict()
            values.update(changes)
            values["status"] = status.value

            with self.session() as db:
                try:
                    stored = db.merge(Task(**values))
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
                db.expunge(stored)

        logger.debug("Task %s moved %s -> %s", task_id, current_status.value, status.value)
        return stored

    def list_unfinished(self) -> List[Task]:
        open_statuses = [TaskStatus.WAITING.value, TaskStatus.PROCESSING.value]
        with self.session() as db:
            tasks = db.query(Task).filter(Task.status.in_(open_statuses)).all()
            db.expunge_all()
            return tasks

    def recover_interrupted(self) -> int:
        """
        Fail tasks a previous process left in waiting or processing.

        Their runner died with that process, so nothing would ever finish them.
        """
        tasks = self.list_unfinished()
        for task in tasks:
            self.transition(
                task.task_id,
                TaskStatus.FAILED,
                error=RESTART_ERROR,
                file=None,
                completed_time=utc_now(),
            )
        if tasks:
            logger.warning("Marked %d interrupted task(s) as failed", len(tasks))
        return len(tasks)

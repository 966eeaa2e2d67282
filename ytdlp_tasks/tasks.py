from functools import lru_cache

from .config import Settings
from .database import TaskStore
from .runner import TaskRunner
from .worker.celery import celery_app


@lru_cache(maxsize=1)
def get_worker_runner() -> TaskRunner:
    """Runner used inside the celery worker, built from the environment."""
    settings = Settings.from_env()
    store = TaskStore(settings.database_url)
    store.init_schema()
    return TaskRunner(store, settings)


@celery_app.task(name="ytdlp_tasks.process_download_task")
def process_download_task(task_id: str) -> str:
    """
    Celery task running one download job. The task record was persisted by
    the API before this was queued; the runner does all status bookkeeping.
    """
    get_worker_runner().run(task_id)
    return task_id

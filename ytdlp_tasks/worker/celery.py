# ytdlp_tasks/worker/celery.py
#
#   celery -A ytdlp_tasks.worker.celery worker --loglevel=INFO

from celery import Celery
from celery.signals import setup_logging

from ytdlp_tasks.config import Settings
from ytdlp_tasks.log import configure_logging

settings = Settings.from_env()

celery_app = Celery(
    "ytdlp_tasks",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    timezone="UTC",
    # yt-dlp jobs are long; don't let one worker hoard queued ones
    worker_prefetch_multiplier=1,
)


@setup_logging.connect
def configure_worker_logging(**kwargs):
    configure_logging(settings.log_level)


# Automatic discovery of tasks in the 'ytdlp_tasks.tasks' module
celery_app.autodiscover_tasks(["ytdlp_tasks"])

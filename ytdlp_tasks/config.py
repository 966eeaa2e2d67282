import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v and v.strip() else default


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000

    # Shared secret expected in the X-API-Key header. Unset means job
    # endpoints answer 500 until it is configured.
    api_key: Optional[str] = None
    api_key_name: str = "user_key"

    downloads_dir: Path = Path("./downloads")
    database_url: str = "sqlite:///./data/tasks.db"
    ytdlp_command: str = "yt-dlp"

    # "threads" runs jobs in-process, "celery" hands them to a worker
    task_executor: str = "threads"
    max_workers: int = 4
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        broker = _env("CELERY_BROKER_URL", cls.celery_broker_url)
        return cls(
            host=_env("HOST", cls.host),
            port=int(_env("PORT", str(cls.port))),
            api_key=_env("API_KEY"),
            api_key_name=_env("API_KEY_NAME", cls.api_key_name),
            downloads_dir=Path(_env("DOWNLOADS_DIR", str(cls.downloads_dir))),
            database_url=_env("DATABASE_URL", cls.database_url),
            ytdlp_command=_env("YTDLP_COMMAND", cls.ytdlp_command),
            task_executor=_env("TASK_EXECUTOR", cls.task_executor).lower(),
            max_workers=int(_env("MAX_WORKERS", str(cls.max_workers))),
            celery_broker_url=broker,
            celery_result_backend=_env("CELERY_RESULT_BACKEND", broker),
            log_level=_env("LOG_LEVEL", cls.log_level).upper(),
        )

import shlex
import sys
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from ytdlp_tasks.config import Settings
from ytdlp_tasks.database import TaskStore
from ytdlp_tasks.main import create_app
from ytdlp_tasks.models import Task, TaskStatus, TaskType
from ytdlp_tasks.utils import new_task_id, utc_now

FAKE_YTDLP = Path(__file__).with_name("fake_ytdlp.py")
API_KEY = "test-secret"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        api_key=API_KEY,
        downloads_dir=tmp_path / "downloads",
        database_url=f"sqlite:///{tmp_path / 'data' / 'tasks.db'}",
        ytdlp_command=shlex.join([sys.executable, str(FAKE_YTDLP)]),
        max_workers=2,
    )


@pytest.fixture()
def store(settings):
    s = TaskStore(settings.database_url)
    s.init_schema()
    yield s
    s.dispose()


@pytest.fixture()
def client(settings):
    app = create_app(settings)
    with TestClient(app) as c:
        c.headers["X-API-Key"] = API_KEY
        yield c


def make_task(task_type=TaskType.GET_VIDEO, **fields) -> Task:
    values = {
        "task_id": new_task_id(),
        "key_name": "user_key",
        "task_type": task_type.value,
        "status": TaskStatus.WAITING.value,
        "url": "https://example.com/watch?v=1",
        "created_at": utc_now(),
    }
    values.update(fields)
    return Task(**values)


def wait_for_terminal(fetch, timeout: float = 15.0) -> dict:
    """Poll `fetch()` until it returns a record in a terminal status."""
    deadline = time.monotonic() + timeout
    while True:
        record = fetch()
        if record["status"] in ("completed", "failed"):
            return record
        if time.monotonic() > deadline:
            raise AssertionError(f"task did not finish: {record}")
        time.sleep(0.05)

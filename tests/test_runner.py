import json
from dataclasses import replace

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_task
from ytdlp_tasks.database import RESTART_ERROR
from ytdlp_tasks.executor import ProcessResult
from ytdlp_tasks.models import TaskStatus, TaskType
from ytdlp_tasks.runner import TaskRunner
from ytdlp_tasks.utils import utc_now


@pytest.fixture()
def runner(store, settings):
    return TaskRunner(store, settings)


def assert_terminal_exclusive(task):
    assert task.status in ("completed", "failed")
    assert task.completed_time is not None
    assert (task.file is None) != (task.error is None)


def test_audio_task_completes(runner, store, settings):
    task = make_task(TaskType.GET_AUDIO, audio_format="best", output_format="mp3")
    store.upsert(task)

    runner.run(task.task_id)

    done = store.get(task.task_id)
    assert done.status == "completed"
    assert done.file == f"/files/{task.task_id}/audio.mp3"
    assert_terminal_exclusive(done)
    assert (settings.downloads_dir / task.task_id / "audio.mp3").is_file()


@pytest.mark.parametrize(
    "task_type, filename",
    [
        (TaskType.GET_VIDEO, "video.mp4"),
        (TaskType.GET_LIVE_VIDEO, "live_video.mp4"),
        (TaskType.GET_LIVE_AUDIO, "live_audio.mp3"),
    ],
)
def test_media_tasks_find_their_prefix(runner, store, task_type, filename):
    task = make_task(task_type, duration="10")
    store.upsert(task)

    runner.run(task.task_id)

    assert store.get(task.task_id).file == f"/files/{task.task_id}/{filename}"


def test_info_task_stores_stdout(runner, store, settings):
    task = make_task(TaskType.GET_INFO)
    store.upsert(task)

    runner.run(task.task_id)

    done = store.get(task.task_id)
    assert done.file == f"/files/{task.task_id}/info.json"
    info = json.loads((settings.downloads_dir / task.task_id / "info.json").read_text())
    assert info["title"] == "Fake video"


def test_nonzero_exit_fails_task(runner, store, monkeypatch):
    monkeypatch.setenv("FAKE_YTDLP_FAIL", "1")
    task = make_task(TaskType.GET_AUDIO)
    store.upsert(task)

    runner.run(task.task_id)

    failed = store.get(task.task_id)
    assert failed.status == "failed"
    assert "yt-dlp exited with code 1" in failed.error
    assert_terminal_exclusive(failed)


def test_missing_output_fails_task(runner, store, monkeypatch):
    monkeypatch.setenv("FAKE_YTDLP_NO_OUTPUT", "1")
    task = make_task(TaskType.GET_VIDEO)
    store.upsert(task)

    runner.run(task.task_id)

    failed = store.get(task.task_id)
    assert failed.status == "failed"
    assert "No output file starting with 'video.'" in failed.error
    assert_terminal_exclusive(failed)


def test_missing_binary_fails_task(store, settings, tmp_path):
    runner = TaskRunner(store, replace(settings, ytdlp_command=str(tmp_path / "no-such-yt-dlp")))
    task = make_task(TaskType.GET_INFO)
    store.upsert(task)

    runner.run(task.task_id)

    failed = store.get(task.task_id)
    assert failed.status == "failed"
    assert failed.error
    assert_terminal_exclusive(failed)


def test_unknown_task_is_ignored(runner):
    runner.run("does-not-exist")


def test_finished_task_is_not_rerun(runner, store):
    task = make_task(TaskType.GET_AUDIO)
    store.upsert(task)
    runner.run(task.task_id)
    first = store.get(task.task_id)

    runner.run(task.task_id)

    assert store.get(task.task_id).to_dict() == first.to_dict()


def test_processing_is_written_before_the_subprocess_runs(runner, store, monkeypatch):
    seen = []

    def fake_run(command, args, cwd, task_id):
        seen.append(store.get(task_id).status)
        raise OSError("boom")

    monkeypatch.setattr("ytdlp_tasks.runner.run_ytdlp", fake_run)
    task = make_task(TaskType.GET_AUDIO)
    store.upsert(task)

    runner.run(task.task_id)

    assert seen == [TaskStatus.PROCESSING.value]
    assert store.get(task.task_id).error == "boom"


def test_failed_completion_write_fails_task(runner, store, monkeypatch):
    real_transition = store.transition

    def flaky_transition(task_id, status, **changes):
        if status == TaskStatus.COMPLETED:
            raise OperationalError("UPDATE tasks", {}, Exception("database is locked"))
        return real_transition(task_id, status, **changes)

    monkeypatch.setattr(store, "transition", flaky_transition)
    task = make_task(TaskType.GET_AUDIO)
    store.upsert(task)

    runner.run(task.task_id)

    failed = store.get(task.task_id)
    assert failed.status == "failed"
    assert "database is locked" in failed.error
    assert_terminal_exclusive(failed)


def test_task_finished_elsewhere_keeps_its_state(runner, store, monkeypatch):
    def finish_meanwhile(command, args, cwd, task_id):
        (cwd / "audio.mp3").write_bytes(b"x")
        store.transition(task_id, TaskStatus.FAILED, error=RESTART_ERROR, completed_time=utc_now())
        return ProcessResult(stdout="", stderr="")

    monkeypatch.setattr("ytdlp_tasks.runner.run_ytdlp", finish_meanwhile)
    task = make_task(TaskType.GET_AUDIO)
    store.upsert(task)

    runner.run(task.task_id)

    record = store.get(task.task_id)
    assert record.status == "failed"
    assert record.error == RESTART_ERROR
    assert record.file is None

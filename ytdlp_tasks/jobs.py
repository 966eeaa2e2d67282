"""
Job kinds.

Each kind knows the defaults it fills in at submission, how to turn a task
record into yt-dlp arguments, the filename prefix of what it produces and
how to collect that output once yt-dlp has exited.
"""

from pathlib import Path
from typing import Dict, List

from .errors import OutputNotFoundError
from .executor import ProcessResult
from .models import Task, TaskType
from .utils import format_seconds, parse_time

# yt-dlp leftovers that are never the finished artifact
PARTIAL_SUFFIXES = (".part", ".ytdl")

NO_AUDIO = "none"


def find_output(task_dir: Path, prefix: str) -> str:
    """
    Name of the file in `task_dir` produced for `prefix`.

    When several files match, the lexicographically first one wins.
    """
    matches = sorted(
        p.name
        for p in Path(task_dir).iterdir()
        if p.is_file() and p.name.startswith(prefix) and not p.name.endswith(PARTIAL_SUFFIXES)
    )
    if not matches:
        raise OutputNotFoundError(task_dir, prefix)
    return matches[0]


def _format_selector(task: Task) -> List[str]:
    video = task.video_format or "bestvideo"
    if task.audio_format == NO_AUDIO:
        return ["-f", video]
    return ["-f", f"{video}+{task.audio_format or 'bestaudio'}"]


def _audio_format(task: Task) -> List[str]:
    fmt = task.output_format or task.audio_format
    return ["--audio-format", fmt] if fmt else []


def _live_section(task: Task) -> List[str]:
    duration = parse_time(task.duration)
    if duration is None:
        return []
    return ["--live-from-start", "--download-sections", f"*0-{format_seconds(duration)}"]


class JobKind:
    task_type: TaskType
    prefix: str
    defaults: Dict[str, str] = {}

    def output_template(self, task_dir: Path) -> str:
        return str(Path(task_dir) / f"{self.prefix}%(ext)s")

    def build_args(self, task: Task, task_dir: Path) -> List[str]:
        raise NotImplementedError

    def collect_output(self, task_dir: Path, result: ProcessResult) -> str:
        """Return the filename of the artifact inside `task_dir`."""
        return find_output(task_dir, self.prefix)


class VideoJob(JobKind):
    task_type = TaskType.GET_VIDEO
    prefix = "video."
    defaults = {"video_format": "bestvideo", "audio_format": "bestaudio", "output_format": "mp4"}

    def build_args(self, task, task_dir):
        args = [task.url, *_format_selector(task)]

        if task.output_format:
            args += ["--merge-output-format", task.output_format]

        if task.start_time or task.end_time:
            start = parse_time(task.start_time) or 0
            end = parse_time(task.end_time)
            end_spec = format_seconds(end) if end else "inf"
            args += ["--download-sections", f"*{format_seconds(start)}-{end_spec}"]
            # cut on keyframes instead of re-encoding around the boundaries
            if task.force_keyframes:
                args.append("--force-keyframes-at-cuts")

        args += ["-o", self.output_template(task_dir)]
        return args


class AudioJob(JobKind):
    task_type = TaskType.GET_AUDIO
    prefix = "audio."
    defaults = {"audio_format": "best", "output_format": "mp3"}

    def build_args(self, task, task_dir):
        return [task.url, "-x", *_audio_format(task), "-o", self.output_template(task_dir)]


class LiveVideoJob(JobKind):
    task_type = TaskType.GET_LIVE_VIDEO
    prefix = "live_video."
    defaults = VideoJob.defaults

    def build_args(self, task, task_dir):
        args = [task.url, *_format_selector(task), *_live_section(task)]
        if task.output_format:
            args += ["--merge-output-format", task.output_format]
        args += ["-o", self.output_template(task_dir)]
        return args


class LiveAudioJob(JobKind):
    task_type = TaskType.GET_LIVE_AUDIO
    prefix = "live_audio."
    defaults = AudioJob.defaults

    def build_args(self, task, task_dir):
        return [
            task.url,
            "-x",
            *_live_section(task),
            *_audio_format(task),
            "-o",
            self.output_template(task_dir),
        ]


class InfoJob(JobKind):
    task_type = TaskType.GET_INFO
    prefix = "info."
    filename = "info.json"

    def build_args(self, task, task_dir):
        return [task.url, "--dump-json", "--no-download"]

    def collect_output(self, task_dir, result):
        # yt-dlp prints the metadata document on stdout; keep it verbatim
        (Path(task_dir) / self.filename).write_text(result.stdout, encoding="utf-8")
        return self.filename


JOB_KINDS: Dict[TaskType, JobKind] = {
    kind.task_type: kind
    for kind in (VideoJob(), AudioJob(), LiveVideoJob(), LiveAudioJob(), InfoJob())
}


def get_job_kind(task_type) -> JobKind:
    try:
        return JOB_KINDS[TaskType(task_type)]
    except (KeyError, ValueError):
        raise ValueError(f"Unknown task_type: {task_type}")

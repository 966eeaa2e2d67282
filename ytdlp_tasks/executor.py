import logging
import shlex
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

from .errors import YtDlpError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    stdout: str
    stderr: str


def _pump(stream, chunks: List[str], task_id: str, level: int) -> None:
    for raw in iter(stream.readline, b""):
        line = raw.decode("utf-8", errors="replace")
        chunks.append(line)
        logger.log(level, "[%s] %s", task_id, line.rstrip(), extra={"task_id": task_id})
    stream.close()


def run_ytdlp(
    command: Union[str, Sequence[str]],
    args: Sequence[str],
    cwd: Union[str, Path],
    task_id: str,
) -> ProcessResult:
    """
    Run yt-dlp with `args` inside `cwd` and collect its output.

    `command` is the executable, either as an argv list or a shell-style
    string ("yt-dlp", "python -m yt_dlp"). Every output line is logged
    tagged with the task id. Raises YtDlpError on a nonzero exit; errors
    starting the process (missing binary, permissions) propagate as OSError.
    """
    argv = shlex.split(command) if isinstance(command, str) else list(command)
    argv.extend(args)

    logger.info("Running %s", shlex.join(argv))
    process = subprocess.Popen(
        argv,
        cwd=str(cwd),
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
    )

    stdout_chunks: List[str] = []
    stderr_chunks: List[str] = []
    stderr_reader = threading.Thread(
        target=_pump,
        args=(process.stderr, stderr_chunks, task_id, logging.WARNING),
        name=f"ytdlp-stderr-{task_id}",
        daemon=True,
    )
    stderr_reader.start()
    _pump(process.stdout, stdout_chunks, task_id, logging.INFO)
    stderr_reader.join()
    exit_code = process.wait()

    stdout = "".join(stdout_chunks)
    stderr = "".join(stderr_chunks)
    if exit_code != 0:
        raise YtDlpError(exit_code, stderr.strip())
    return ProcessResult(stdout=stdout, stderr=stderr)

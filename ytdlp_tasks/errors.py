class YtdlpTasksError(Exception):
    """Base class for errors raised by ytdlp_tasks."""


class TaskNotFoundError(YtdlpTasksError):
    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class InvalidTransitionError(YtdlpTasksError):
    def __init__(self, task_id: str, current: str, target: str):
        super().__init__(f"Task {task_id} cannot move from {current} to {target}")
        self.task_id = task_id
        self.current = current
        self.target = target


class YtDlpError(YtdlpTasksError):
    """yt-dlp exited with a nonzero status."""

    def __init__(self, exit_code: int, stderr: str):
        super().__init__(f"yt-dlp exited with code {exit_code}: {stderr}")
        self.exit_code = exit_code
        self.stderr = stderr


class OutputNotFoundError(YtdlpTasksError):
    def __init__(self, task_dir, prefix: str):
        super().__init__(f"No output file starting with '{prefix}' found in {task_dir}")
        self.task_dir = task_dir
        self.prefix = prefix


class ArtifactNotFoundError(YtdlpTasksError):
    pass


class MetadataError(YtdlpTasksError):
    """The stored info.json could not be parsed."""

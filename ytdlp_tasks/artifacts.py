import json
from pathlib import Path
from typing import Any, Dict, Iterable

from .errors import ArtifactNotFoundError, MetadataError

METADATA_FILENAME = "info.json"

VIDEO_FIELDS = ("height", "width", "fps", "vcodec", "format_note", "dynamic_range", "filesize")
AUDIO_FIELDS = ("abr", "acodec", "audio_channels", "filesize")


def resolve_artifact(downloads_dir, task_id: str, filename: str) -> Path:
    """
    Path of `filename` inside the working directory of `task_id`.

    Raises ArtifactNotFoundError if the file does not exist or the name
    points outside the downloads directory.
    """
    root = Path(downloads_dir).resolve()
    try:
        path = (root / task_id / filename).resolve()
        found = path.is_relative_to(root) and path.is_file()
    except (OSError, ValueError) as e:
        # e.g. an embedded NUL byte or a name too long for the filesystem
        raise ArtifactNotFoundError(f"{task_id}/{filename!r}") from e
    if not found:
        raise ArtifactNotFoundError(f"{task_id}/{filename}")
    return path


def load_metadata(path: Path) -> Dict[str, Any]:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MetadataError(f"Could not parse {path.name}: {e}") from e
    if not isinstance(document, dict):
        raise MetadataError(f"{path.name} is not a JSON object")
    return document


def _has_codec(value) -> bool:
    return bool(value) and value != "none"


def summarize_qualities(info: Dict[str, Any]) -> Dict[str, Any]:
    """
    Bucket the document's formats into video and audio variants keyed by format_id.

    A format with a real video codec is a video variant even when it also
    carries audio; only audio-only formats land in the audio bucket.
    """
    qualities = {"audio": {}, "video": {}}
    for fmt in info.get("formats") or []:
        if not isinstance(fmt, dict):
            continue
        if _has_codec(fmt.get("vcodec")):
            qualities["video"][fmt.get("format_id")] = {k: fmt.get(k) for k in VIDEO_FIELDS}
        elif _has_codec(fmt.get("acodec")):
            qualities["audio"][fmt.get("format_id")] = {k: fmt.get(k) for k in AUDIO_FIELDS}
    return {"qualities": qualities}


def filter_fields(info: Dict[str, Any], names: Iterable[str]) -> Dict[str, Any]:
    """Top-level fields of `info` named in `names`; unknown names are dropped."""
    return {name: info[name] for name in names if name in info}

import math
import uuid
from datetime import datetime, timezone
from typing import Optional, Union

Seconds = Union[int, float]


def new_task_id() -> str:
    """16 hex characters taken from a random UUID."""
    return uuid.uuid4().hex[:16]


def utc_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision, e.g. 2024-01-01T12:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_time(value) -> Optional[Seconds]:
    """
    Convert an offset or duration to seconds.

    Non-negative numbers are returned unchanged. Strings are split on ':'
    and read right-to-left as seconds, minutes and hours ("1:30" -> 90,
    "1:02:03" -> 3723). Negative or malformed values yield None, meaning
    "no bound".
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) and value >= 0 else None
    if not isinstance(value, str) or not value.strip():
        return None

    parts = value.strip().split(":")
    if len(parts) > 3:
        return None
    try:
        numbers = [float(p) for p in parts]
    except ValueError:
        return None

    if not all(math.isfinite(n) and n >= 0 for n in numbers):
        return None

    total = 0.0
    for multiplier, number in zip((1, 60, 3600), reversed(numbers)):
        total += number * multiplier
    return int(total) if total.is_integer() else total


def format_seconds(value: Seconds) -> str:
    """Render seconds the way yt-dlp section specs expect them (90, 12.5)."""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)

import re

import pytest

from ytdlp_tasks.utils import format_seconds, new_task_id, parse_time, utc_now


@pytest.mark.parametrize(
    "value, expected",
    [
        ("90", 90),
        ("1:30", 90),
        ("1:02:03", 3723),
        ("00:00:10", 10),
        ("1.5", 1.5),
        (45, 45),
        (12.5, 12.5),
    ],
)
def test_parse_time(value, expected):
    assert parse_time(value) == expected


@pytest.mark.parametrize(
    "value",
    [None, "", "   ", "abc", "1:xx", "1:2:3:4", "nan", True, [], {}, "-5", "1:-30", -5, float("inf")],
)
def test_parse_time_no_bound(value):
    assert parse_time(value) is None


def test_format_seconds():
    assert format_seconds(90) == "90"
    assert format_seconds(90.0) == "90"
    assert format_seconds(12.5) == "12.5"


def test_new_task_id_is_unique_hex():
    ids = {new_task_id() for _ in range(1000)}
    assert len(ids) == 1000
    assert all(re.fullmatch(r"[0-9a-f]{16}", i) for i in ids)


def test_utc_now_format():
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z", utc_now())

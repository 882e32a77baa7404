"""
Tests for time-of-day parsing and interval overlap.
"""

from datetime import time
from itertools import product

import pytest

from roombook.core.timeutils import format_hhmm, overlaps, parse_hhmm, to_minutes


@pytest.mark.parametrize("value, expected", [
    ("00:00", 0),
    ("07:00", 420),
    ("9:30", 570),
    ("22:00", 1320),
    ("23:59", 1439),
    ("10:15:00", 615),
    (time(13, 45), 825),
])
def test_to_minutes_parses(value, expected):
    assert to_minutes(value) == expected


@pytest.mark.parametrize("value", [None, "", "noon", "24:00", "10:60", "10", "10:5", "-1:00", 930])
def test_to_minutes_returns_none_for_malformed(value):
    """Malformed input signals 'cannot evaluate' instead of raising."""
    assert to_minutes(value) is None


def test_touching_is_not_overlap():
    assert overlaps("09:00", "10:00", "10:00", "11:00") is False
    assert overlaps("10:00", "11:00", "09:00", "10:00") is False


def test_overlap_detected():
    assert overlaps("09:00", "11:00", "10:00", "12:00") is True


def test_containment_is_overlap():
    assert overlaps("08:00", "12:00", "09:00", "10:00") is True
    assert overlaps("09:00", "10:00", "09:00", "10:00") is True


def test_overlap_is_symmetric():
    slots = ["07:00", "08:30", "09:00", "10:00", "11:15", "12:00"]
    for a, b, c, d in product(slots, repeat=4):
        if a >= b or c >= d:
            continue
        assert overlaps(a, b, c, d) == overlaps(c, d, a, b), (a, b, c, d)


def test_unparseable_bound_fails_open():
    assert overlaps("09:00", "garbage", "09:00", "10:00") is False
    assert overlaps(None, "10:00", "09:00", "10:00") is False


def test_unparseable_bound_can_fail_closed():
    assert overlaps("09:00", "garbage", "09:00", "10:00", fail_closed=True) is True


def test_overlaps_accepts_time_objects():
    assert overlaps("09:30", "10:30", time(9, 0), time(10, 0)) is True
    assert overlaps("10:00", "10:30", time(9, 0), time(10, 0)) is False


def test_format_and_parse_hhmm():
    assert format_hhmm(time(9, 5)) == "09:05"
    assert format_hhmm("9:05:00") == "09:05"
    assert format_hhmm("bad") is None
    assert parse_hhmm("13:30") == time(13, 30)
    assert parse_hhmm("bad") is None

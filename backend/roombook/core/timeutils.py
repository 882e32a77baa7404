"""
Time-of-day helpers shared by the validator, the store and the sync client.

Times travel as "HH:MM" strings on the wire. Anything that cannot be parsed
comes back as None instead of raising, so callers can treat it as
"cannot evaluate".
"""

import re
from datetime import time
from typing import Optional, Union

TimeLike = Union[str, time, None]

_HHMM = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def to_minutes(value: TimeLike) -> Optional[int]:
    """Minutes since midnight for "HH:MM" (or a time object), else None."""
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    if not isinstance(value, str):
        return None

    match = _HHMM.match(value)
    if not match:
        return None

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return hours * 60 + minutes


def overlaps(
    start_a: TimeLike,
    end_a: TimeLike,
    start_b: TimeLike,
    end_b: TimeLike,
    fail_closed: bool = False,
) -> bool:
    """
    Half-open interval intersection: [start_a, end_a) vs [start_b, end_b).

    Back-to-back ranges (one ends when the other starts) do not overlap.
    If any bound is unparseable the answer is False, or True when
    fail_closed is set.
    """
    bounds = [to_minutes(v) for v in (start_a, end_a, start_b, end_b)]
    if any(b is None for b in bounds):
        return fail_closed

    s1, e1, s2, e2 = bounds
    return s1 < e2 and s2 < e1


def format_hhmm(value: TimeLike) -> Optional[str]:
    """Normalize a time or time string to "HH:MM"."""
    minutes = to_minutes(value)
    if minutes is None:
        return None
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def parse_hhmm(value: TimeLike) -> Optional[time]:
    minutes = to_minutes(value)
    if minutes is None:
        return None
    return time(minutes // 60, minutes % 60)

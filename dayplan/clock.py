# dayplan/clock.py
from datetime import date, timedelta
from typing import Tuple

MIDNIGHT = 24 * 60


def time_to_minutes(t: str) -> int:
    """'09:30' -> 570. '24:00' is accepted as the end of the day."""
    parts = t.strip().split(":")
    if len(parts) != 2 or not parts[0].isdigit() or not parts[1].isdigit():
        raise ValueError(f"not a HH:MM time: {t!r}")
    h, m = int(parts[0]), int(parts[1])
    if m >= 60 or h * 60 + m > MIDNIGHT:
        raise ValueError(f"time out of range: {t!r}")
    return h * 60 + m


def minutes_to_time(m: int) -> str:
    return f"{m // 60:02d}:{m % 60:02d}"


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    return a_start < b_end and b_start < a_end


def week_bounds(day: date) -> Tuple[date, int]:
    """Monday of the week containing `day` and the number of days elapsed before it."""
    elapsed = day.weekday()
    return day - timedelta(days=elapsed), elapsed

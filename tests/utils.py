"""Builders shared by the planner tests."""
from __future__ import annotations

from typing import Iterable, List, Optional

from dayplan.clock import minutes_to_time, time_to_minutes
from dayplan.models import CONFIRMED, FreeSlot, RoutinePoolItem, TimeSlot


def slot(start: str, end: str, label: str = "x", source: Optional[str] = "events",
         kind: str = CONFIRMED) -> TimeSlot:
    return TimeSlot(
        start=time_to_minutes(start),
        end=time_to_minutes(end),
        label=label,
        kind=kind,
        source_id=source,
    )


def free(start: str, end: str) -> FreeSlot:
    return FreeSlot(time_to_minutes(start), time_to_minutes(end))


def routine(label: str, priority: int = 1, order: int = 0, **kwargs) -> RoutinePoolItem:
    return RoutinePoolItem(label=label, priority=priority, order=order, **kwargs)


def spans(slots: Iterable) -> List[tuple]:
    """(HH:MM, HH:MM) pairs, for readable assertions."""
    return [(minutes_to_time(s.start), minutes_to_time(s.end)) for s in slots]


def assert_disjoint(slots: Iterable[TimeSlot]) -> None:
    ordered = sorted(slots, key=lambda s: s.start)
    for a, b in zip(ordered, ordered[1:]):
        assert a.end <= b.start, f"{a.label} {a.start}-{a.end} overlaps {b.label} {b.start}-{b.end}"

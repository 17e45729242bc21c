# dayplan/allocator.py
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .models import EDGE_END, ROUTINE, FreeSlot, RoutinePoolItem, TimeSlot

logger = logging.getLogger(__name__)

MIN_GAP_MINUTES = 30


def compute_free_slots(confirmed: Sequence[TimeSlot],
                       day_start: int,
                       day_end: int,
                       min_gap: int = MIN_GAP_MINUTES) -> List[FreeSlot]:
    """Gaps of at least `min_gap` minutes between confirmed slots inside active hours."""
    free: List[FreeSlot] = []
    cursor = day_start

    for slot in sorted(confirmed, key=lambda s: (s.start, s.end)):
        start = max(slot.start, day_start)
        end = min(slot.end, day_end)
        if start >= end:
            continue
        if start - cursor >= min_gap:
            free.append(FreeSlot(cursor, start))
        cursor = max(cursor, end)

    if day_end - cursor >= min_gap:
        free.append(FreeSlot(cursor, day_end))
    return free


class SegmentArena:
    """
    Free intervals as parallel start/end arrays, consumed in place by index.

    Taking time from the middle of a segment (after an earliest-start clamp)
    leaves the part before the clamp at the same index and appends the rest
    as a new segment.
    """

    def __init__(self, free_slots: Sequence[FreeSlot]):
        self.starts = np.array([f.start for f in free_slots], dtype=int)
        self.ends = np.array([f.end for f in free_slots], dtype=int)

    def order(self, reverse: bool = False) -> List[int]:
        idx = [int(i) for i in np.argsort(self.starts, kind="stable") if self.ends[i] > self.starts[i]]
        return idx[::-1] if reverse else idx

    def window(self, i: int, floor: Optional[int] = None) -> Tuple[int, int]:
        """Searchable part of segment i; empty (lo == hi) when it ends by `floor`."""
        lo, hi = int(self.starts[i]), int(self.ends[i])
        if floor is not None:
            lo = min(max(lo, floor), hi)
        return lo, hi

    def available(self, i: int, floor: Optional[int] = None) -> int:
        lo, hi = self.window(i, floor)
        return hi - lo

    def take(self, i: int, minutes: int, floor: Optional[int] = None,
             from_end: bool = False) -> Tuple[int, int]:
        lo, hi = self.window(i, floor)
        if minutes > hi - lo:
            raise ValueError(f"segment {i} has {hi - lo} min, asked for {minutes}")
        if from_end:
            taken = (hi - minutes, hi)
            self.ends[i] = taken[0]
            return taken
        taken = (lo, lo + minutes)
        if lo == self.starts[i]:
            self.starts[i] = taken[1]
        else:
            rest_end = int(self.ends[i])
            self.ends[i] = lo
            if taken[1] < rest_end:
                self.starts = np.append(self.starts, taken[1])
                self.ends = np.append(self.ends, rest_end)
        return taken

    def total(self) -> int:
        return int(np.clip(self.ends - self.starts, 0, None).sum())

    def free_slots(self) -> List[FreeSlot]:
        return [FreeSlot(int(self.starts[i]), int(self.ends[i])) for i in self.order()]


def _place(item: RoutinePoolItem, minutes: int, arena: SegmentArena) -> List[Tuple[int, int]]:
    from_end = item.preferred_edge == EDGE_END
    floor = item.earliest_start
    placed: List[Tuple[int, int]] = []

    if not item.splittable:
        for i in arena.order(reverse=from_end):
            if arena.available(i, floor) >= minutes:
                placed.append(arena.take(i, minutes, floor, from_end))
                break
        return placed

    remaining = minutes
    for i in arena.order(reverse=from_end):
        if remaining <= 0:
            break
        available = arena.available(i, floor)
        if available < item.min_block:
            continue
        alloc = min(remaining, available)
        if alloc < item.min_block:
            continue
        placed.append(arena.take(i, alloc, floor, from_end))
        remaining -= alloc
    return placed


def allocate_routines(free_slots: Sequence[FreeSlot],
                      routines: Sequence[RoutinePoolItem],
                      ) -> Tuple[List[TimeSlot], List[FreeSlot]]:
    """
    Carve routine slots out of the free intervals, best priority first.

    Every item must carry its minutes for today (ratio items resolved
    beforehand). Returns (routine slots, free intervals left over).
    """
    arena = SegmentArena(free_slots)
    result: List[TimeSlot] = []

    for item in sorted(routines, key=lambda r: (r.priority, r.order)):
        minutes = int(item.minutes or 0)
        if minutes <= 0:
            continue
        placed = _place(item, minutes, arena)
        if not placed:
            logger.debug("no room for %r (%d min) today", item.label, minutes)
        for start, end in placed:
            result.append(TimeSlot(start=start, end=end, label=item.label, kind=ROUTINE))

    result.sort(key=lambda s: s.start)
    return result, arena.free_slots()

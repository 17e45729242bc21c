# dayplan/balancer.py
import logging
import math
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .clock import week_bounds
from .models import CalendarEntry, RatioReport, RoutinePoolItem, RunLog
from .normalize import to_local

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = ("Done", "完了")
DAYS_IN_WEEK = 7
RATIO_FLOOR = 0.05
MAX_CORRECTION = 2.0


def _match_label(title: str, labels: Sequence[str]) -> Optional[str]:
    for label in labels:
        if title.startswith(label):
            return label
    for label in labels:
        if label in title:
            return label
    return None


def build_week_history(entries: Iterable[CalendarEntry],
                       labels: Sequence[str],
                       day: date,
                       tz: str = "Asia/Tokyo",
                       run_log: Optional[RunLog] = None) -> Dict[str, int]:
    """
    Completed minutes per routine label from Monday up to (not including) `day`.

    Titles are grouped by prefix match first, then substring match, against
    `labels` in declaration order. Labels with no history map to 0.
    """
    run_log = run_log if run_log is not None else RunLog()
    history = {label: 0 for label in labels}
    monday, _ = week_bounds(day)

    rows = []
    for e in entries:
        if e.status not in COMPLETED_STATUSES or not e.start or not e.end:
            continue
        try:
            start, end = to_local(str(e.start), tz), to_local(str(e.end), tz)
        except (ValueError, TypeError) as exc:
            run_log.dropped(f"history entry {e.title!r}: bad timestamp ({exc})")
            continue
        rows.append({"title": e.title, "start": start, "end": end})
    if not rows:
        return history

    df = pd.DataFrame(rows)
    df["day"] = df["start"].map(lambda ts: ts.date())
    df = df[(df["day"] >= monday) & (df["day"] < day)].copy()
    df["minutes"] = (df["end"] - df["start"]).dt.total_seconds() / 60
    df = df[df["minutes"] > 0].copy()
    df["label"] = df["title"].map(lambda t: _match_label(t, labels))
    df = df.dropna(subset=["label"])
    if df.empty:
        return history

    for label, minutes in df.groupby("label")["minutes"].sum().items():
        history[label] = int(minutes)
    return history


def _normalize_with_floor(weights: np.ndarray, floor: float) -> np.ndarray:
    """Scale to sum 1.0 while keeping every share >= floor."""
    n = len(weights)
    if n == 0:
        return weights
    if n * floor >= 1.0:
        return np.full(n, 1.0 / n)
    pinned = np.zeros(n, dtype=bool)
    shares = weights / weights.sum()
    for _ in range(n):
        low = (shares < floor) & ~pinned
        if not low.any():
            break
        pinned |= low
        free_mass = 1.0 - floor * pinned.sum()
        shares = np.where(pinned, floor, weights / weights[~pinned].sum() * free_mass)
    return shares


def balance_ratios(items: Sequence[RoutinePoolItem],
                   history: Dict[str, int],
                   days_elapsed: int,
                   pool_minutes: int,
                   days_in_week: int = DAYS_IN_WEEK) -> List[RatioReport]:
    """
    Today's share and minutes for each ratio routine.

    With history, a label behind its target gets more than its declared
    ratio, weighted by min(days elapsed / days remaining, 2.0); shares are
    floored at 5% and normalized to 1.0. Without history the declared
    ratios are used as-is.
    """
    ratio_items = [i for i in items if i.is_ratio]
    if not ratio_items:
        return []
    pool = max(pool_minutes, 0)
    targets = np.array([i.ratio for i in ratio_items], dtype=float)
    done = np.array([history.get(i.label, 0) for i in ratio_items], dtype=float)
    tracked = done.sum()

    if days_elapsed <= 0 or tracked <= 0:
        adjusted = targets
        actual = [None] * len(ratio_items)
    else:
        actual_arr = done / tracked
        remaining = max(days_in_week - days_elapsed, 1)
        weight = min(days_elapsed / remaining, MAX_CORRECTION)
        raw = np.maximum(targets + (targets - actual_arr) * weight, RATIO_FLOOR)
        adjusted = _normalize_with_floor(raw, RATIO_FLOOR)
        actual = [float(a) for a in actual_arr]
        logger.debug("correction weight %.2f over %d tracked minutes", weight, tracked)

    return [
        RatioReport(
            label=item.label,
            target_ratio=float(item.ratio),
            actual_ratio=actual[k],
            adjusted_ratio=float(adjusted[k]),
            minutes=max(item.min_block, math.floor(pool * adjusted[k])),
        )
        for k, item in enumerate(ratio_items)
    ]


def resolve_routine_pool(routines: Sequence[RoutinePoolItem],
                         free_minutes: int,
                         history: Dict[str, int],
                         days_elapsed: int,
                         ) -> Tuple[List[RoutinePoolItem], List[RatioReport]]:
    """Replace ratio items with fixed-minute copies for today."""
    fixed_total = sum(r.minutes for r in routines if not r.is_ratio)
    report = balance_ratios(routines, history, days_elapsed, free_minutes - fixed_total)
    minutes_by_label = {r.label: r.minutes for r in report}
    resolved = [
        replace(r, minutes=minutes_by_label[r.label], ratio=None) if r.is_ratio else r
        for r in routines
    ]
    return resolved, report

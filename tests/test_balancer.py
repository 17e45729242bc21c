from __future__ import annotations

from datetime import date

import pytest

from dayplan.balancer import (
    RATIO_FLOOR,
    balance_ratios,
    build_week_history,
    resolve_routine_pool,
)
from dayplan.models import CalendarEntry
from tests.utils import routine

THURSDAY = date(2026, 2, 19)  # Monday is 2026-02-16


def done(title: str, day: str, start: str, end: str, status: str = "Done") -> CalendarEntry:
    return CalendarEntry(
        title,
        f"{day}T{start}:00+09:00",
        f"{day}T{end}:00+09:00",
        source_id="routine",
        status=status,
    )


def test_first_day_uses_declared_ratio() -> None:
    pool = [routine("reading", ratio=0.2, min_block=30)]

    report = balance_ratios(pool, history={}, days_elapsed=0, pool_minutes=300)

    assert report[0].minutes == 60
    assert report[0].adjusted_ratio == pytest.approx(0.2)
    assert report[0].actual_ratio is None


def test_no_tracked_minutes_behaves_like_first_day() -> None:
    pool = [routine("reading", ratio=0.2), routine("guitar", ratio=0.5, order=1)]

    report = balance_ratios(pool, history={"reading": 0, "guitar": 0}, days_elapsed=4, pool_minutes=300)

    assert [r.minutes for r in report] == [60, 150]


def test_min_block_is_a_floor_on_minutes() -> None:
    pool = [routine("reading", ratio=0.1, min_block=45)]

    report = balance_ratios(pool, history={}, days_elapsed=0, pool_minutes=200)

    assert report[0].minutes == 45


def test_label_behind_target_gets_more_today() -> None:
    pool = [
        routine("exercise", ratio=0.3, order=0),
        routine("reading", ratio=0.7, order=1),
    ]
    history = {"exercise": 30, "reading": 270}

    report = balance_ratios(pool, history, days_elapsed=3, pool_minutes=400)
    by_label = {r.label: r for r in report}

    assert by_label["exercise"].actual_ratio == pytest.approx(0.1)
    assert by_label["exercise"].adjusted_ratio > 0.3
    assert by_label["reading"].adjusted_ratio < 0.7
    assert sum(r.adjusted_ratio for r in report) == pytest.approx(1.0)
    # weight 3/4: 0.3 + 0.2 * 0.75
    assert by_label["exercise"].adjusted_ratio == pytest.approx(0.45)


def test_adjusted_ratios_keep_five_percent_floor_after_normalizing() -> None:
    pool = [
        routine("a", ratio=0.9, order=0),
        routine("b", ratio=0.05, order=1),
        routine("c", ratio=0.05, order=2),
    ]
    history = {"a": 0, "b": 500, "c": 500}

    report = balance_ratios(pool, history, days_elapsed=6, pool_minutes=600)

    assert sum(r.adjusted_ratio for r in report) == pytest.approx(1.0)
    assert all(r.adjusted_ratio >= RATIO_FLOOR - 1e-9 for r in report)
    assert report[0].adjusted_ratio == pytest.approx(0.9)


def test_correction_weight_is_capped() -> None:
    pool = [routine("a", ratio=0.5, order=0), routine("b", ratio=0.5, order=1)]
    history = {"a": 100, "b": 300}

    late = balance_ratios(pool, history, days_elapsed=6, pool_minutes=100)

    # weight min(6/1, 2.0) = 2: a -> 0.5 + 0.25 * 2 = 1.0, b -> 0.05 floor
    assert late[0].adjusted_ratio == pytest.approx(0.95)
    assert late[1].adjusted_ratio == pytest.approx(0.05)


def test_fixed_routines_are_not_rebalanced() -> None:
    pool = [routine("gym", minutes=90), routine("reading", ratio=0.5, order=1)]

    assert [r.label for r in balance_ratios(pool, {}, 0, 300)] == ["reading"]


def test_week_history_counts_completed_minutes_from_monday_to_yesterday() -> None:
    entries = [
        done("Guitar scales", "2026-02-16", "20:00", "21:00"),
        done("Practice Guitar", "2026-02-18", "19:00", "19:30"),
        done("Reading: novel", "2026-02-17", "21:00", "21:45", status="完了"),
        done("Reading: skipped", "2026-02-17", "22:00", "23:00", status="Not started"),
        done("Guitar today", "2026-02-19", "08:00", "09:00"),
        done("Guitar last week", "2026-02-15", "08:00", "09:00"),
        done("Cooking", "2026-02-17", "18:00", "19:00"),
    ]

    history = build_week_history(entries, ["Reading", "Guitar"], THURSDAY)

    assert history == {"Reading": 45, "Guitar": 90}


def test_week_history_is_empty_on_monday() -> None:
    entries = [done("Guitar", "2026-02-15", "20:00", "21:00")]

    assert build_week_history(entries, ["Guitar"], date(2026, 2, 16)) == {"Guitar": 0}


def test_resolve_routine_pool_subtracts_fixed_minutes_from_the_pool() -> None:
    pool = [
        routine("dev", priority=1, order=0, minutes=200),
        routine("reading", priority=2, order=1, ratio=0.5, min_block=30),
    ]

    resolved, report = resolve_routine_pool(pool, free_minutes=500, history={}, days_elapsed=0)

    assert resolved[0] is pool[0]
    assert resolved[1].minutes == 150 and resolved[1].ratio is None
    assert report[0].minutes == 150

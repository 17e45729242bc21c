# dayplan/scheduler.py
import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence

from .allocator import allocate_routines, compute_free_slots
from .balancer import build_week_history, resolve_routine_pool
from .clock import week_bounds
from .config import PlanConfig
from .conflicts import resolve_conflicts
from .dedupe import TitleMatcher, collapse_duplicates
from .models import CalendarEntry, LocalEvent, PlanResult, RunLog, TimeSlot
from .normalize import normalize_entries
from .sources import (
    ConfirmedEntrySource,
    EventLogSource,
    HistorySource,
    gather_inputs,
)

logger = logging.getLogger(__name__)


def merge_timeline(confirmed: Sequence[TimeSlot], routines: Sequence[TimeSlot]) -> List[TimeSlot]:
    return sorted([*confirmed, *routines], key=lambda s: (s.start, s.end))


def generate_plan(day: date,
                  config: PlanConfig,
                  calendar_entries: Iterable[CalendarEntry] = (),
                  local_events: Iterable[LocalEvent] = (),
                  history_entries: Iterable[CalendarEntry] = (),
                  matcher: Optional[TitleMatcher] = None,
                  run_log: Optional[RunLog] = None) -> PlanResult:
    """
    Build the day's timeline.

    1) normalize entries into confirmed slots
    2) drop local duplicates of calendar entries
    3) resolve cross-source overlaps
    4) compute free slots inside active hours
    5) turn ratio routines into today's minutes from the week so far
    6) allocate routines into the free slots
    7) merge into one sorted timeline

    Raises ConfigError if the routine pool is malformed; every other
    problem is recorded in the result's run log.
    """
    config.validate()
    run_log = run_log if run_log is not None else RunLog()

    slots, all_day = normalize_entries(
        day, calendar_entries, local_events, tz=config.timezone, run_log=run_log,
    )
    slots, _ = collapse_duplicates(slots, matcher=matcher, run_log=run_log)
    confirmed, resolutions = resolve_conflicts(
        slots, config.rules, config.day_start, config.day_end, run_log=run_log,
    )

    free = compute_free_slots(confirmed, config.day_start, config.day_end, config.min_gap_minutes)
    free_minutes = sum(f.minutes for f in free)

    ratio_labels = [r.label for r in config.routines if r.is_ratio]
    history = build_week_history(
        history_entries, ratio_labels, day, tz=config.timezone, run_log=run_log,
    ) if ratio_labels else {}
    _, days_elapsed = week_bounds(day)
    routines, ratio_report = resolve_routine_pool(
        config.routines, free_minutes, history, days_elapsed=days_elapsed,
    )

    routine_slots, remaining = allocate_routines(free, routines)
    timeline = merge_timeline(confirmed, routine_slots)
    logger.info("%s: %d confirmed, %d routine slots, %d free min left",
                day.isoformat(), len(confirmed), len(routine_slots),
                sum(f.minutes for f in remaining))

    return PlanResult(
        day=day,
        timeline=timeline,
        all_day=all_day,
        free_slots=free,
        remaining_free=remaining,
        ratio_report=ratio_report,
        resolutions=resolutions,
        run_log=run_log,
    )


def plan_from_sources(day: date,
                      config: PlanConfig,
                      calendar_sources: Sequence[Optional[ConfirmedEntrySource]] = (),
                      event_log: Optional[EventLogSource] = None,
                      history: Optional[HistorySource] = None,
                      matcher: Optional[TitleMatcher] = None) -> PlanResult:
    """Gather inputs from the configured sources, then plan."""
    run_log = RunLog()
    inputs = gather_inputs(day, calendar_sources, event_log, history, run_log=run_log)
    return generate_plan(
        day,
        config,
        calendar_entries=inputs.calendar,
        local_events=inputs.local,
        history_entries=inputs.history,
        matcher=matcher,
        run_log=run_log,
    )

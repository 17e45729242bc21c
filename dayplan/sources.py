# dayplan/sources.py
"""
Collaborators that feed the planner.

Each source is read-only for the run. Sources that are not configured are
passed as None and contribute nothing. `gather_inputs` reads them
concurrently, since they are independent, before any planning starts.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, timedelta
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .clock import week_bounds
from .models import CalendarEntry, LocalEvent, RunLog
from .normalize import parse_event_lines

logger = logging.getLogger(__name__)


class ConfirmedEntrySource(Protocol):
    def fetch(self, day: date) -> List[CalendarEntry]:
        ...


class EventLogSource(Protocol):
    def fetch(self, day: date, run_log: Optional[RunLog] = None) -> List[LocalEvent]:
        """Unparseable lines go to `run_log`."""
        ...


class HistorySource(Protocol):
    def fetch_range(self, first: date, last: date) -> List[CalendarEntry]:
        """Entries dated first..last inclusive."""
        ...


@dataclass
class StaticEntrySource:
    """In-memory calendar entries, keyed by the local date of their start."""

    entries: List[CalendarEntry] = field(default_factory=list)

    def _day_of(self, entry: CalendarEntry) -> Optional[date]:
        try:
            return date.fromisoformat(str(entry.start)[:10])
        except ValueError:
            return None

    def fetch(self, day: date) -> List[CalendarEntry]:
        return [e for e in self.entries if self._day_of(e) == day]

    def fetch_range(self, first: date, last: date) -> List[CalendarEntry]:
        out = []
        for e in self.entries:
            d = self._day_of(e)
            if d is not None and first <= d <= last:
                out.append(e)
        return out


class EventLogDirectory:
    """
    Event-log files under a workspace root:

        planning/events/<date>.md        aspect "planning"
        aspects/<aspect>/events/<date>.md
    """

    def __init__(self, root):
        self.root = Path(root)

    def files_for(self, day: date) -> List[tuple]:
        name = f"{day.isoformat()}.md"
        found = []
        planning = self.root / "planning" / "events" / name
        if planning.exists():
            found.append(("planning", planning))
        aspects_dir = self.root / "aspects"
        if aspects_dir.is_dir():
            for aspect in sorted(p for p in aspects_dir.iterdir() if p.is_dir()):
                path = aspect / "events" / name
                if path.exists():
                    found.append((aspect.name, path))
        return found

    def fetch(self, day: date, run_log: Optional[RunLog] = None) -> List[LocalEvent]:
        events: List[LocalEvent] = []
        for aspect, path in self.files_for(day):
            content = path.read_text(encoding="utf-8")
            events.extend(parse_event_lines(
                content, aspect, ref_prefix=f"{path}#", run_log=run_log,
            ))
        return events


@dataclass
class PlanInputs:
    calendar: List[CalendarEntry]
    local: List[LocalEvent]
    history: List[CalendarEntry]


def gather_inputs(day: date,
                  calendar_sources: Sequence[Optional[ConfirmedEntrySource]] = (),
                  event_log: Optional[EventLogSource] = None,
                  history: Optional[HistorySource] = None,
                  run_log: Optional[RunLog] = None,
                  max_workers: int = 4) -> PlanInputs:
    """Fetch today's entries, local events and week-to-date history in parallel."""
    monday, _ = week_bounds(day)
    active = [s for s in calendar_sources if s is not None]

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        calendar_futures = [pool.submit(s.fetch, day) for s in active]
        local_future = pool.submit(event_log.fetch, day, run_log) if event_log is not None else None
        history_future = None
        if history is not None and day > monday:
            history_future = pool.submit(history.fetch_range, monday, day - timedelta(days=1))

        calendar: List[CalendarEntry] = []
        for f in calendar_futures:
            calendar.extend(f.result())
        local = local_future.result() if local_future is not None else []
        past = history_future.result() if history_future is not None else []

    calendar.sort(key=lambda e: str(e.start or ""))
    logger.info("gathered %d calendar entries, %d local events, %d history entries",
                len(calendar), len(local), len(past))
    return PlanInputs(calendar=calendar, local=local, history=past)

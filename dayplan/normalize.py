# dayplan/normalize.py
import re
from datetime import date
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from .clock import MIDNIGHT, minutes_to_time, time_to_minutes
from .models import AllDayItem, CalendarEntry, LocalEvent, RunLog, TimeSlot

LOCAL_SOURCE = "local"
ALL_DAY_MARKER = "終日"

EVENT_LINE = re.compile(
    r"^- \[([ xX])\]\s+"
    r"(?:(\d{1,2}:\d{2})\s*[-–〜~]\s*(\d{1,2}:\d{2})\s+|" + ALL_DAY_MARKER + r"\s+)?"
    r"(.+)$"
)
CONTINUATION = re.compile(r"^\s{2,}-\s+(.*)$")


def parse_event_lines(content: str,
                      aspect: str,
                      ref_prefix: str = "",
                      run_log: Optional[RunLog] = None) -> List[LocalEvent]:
    """
    Parse checklist lines of an event-log file.

        - [ ] 14:00-16:30 Title
        - [x] 終日 Title
          - description line

    Lines that look like checklist items but do not parse are dropped and
    recorded in `run_log`.
    """
    run_log = run_log if run_log is not None else RunLog()
    events: List[LocalEvent] = []
    lines = content.splitlines()

    for i, line in enumerate(lines):
        if not line.startswith("- ["):
            continue
        m = EVENT_LINE.match(line)
        if not m:
            run_log.dropped(f"{aspect}:{i + 1}: unrecognized line {line!r}")
            continue

        desc = []
        j = i + 1
        while j < len(lines):
            cont = CONTINUATION.match(lines[j])
            if not cont:
                break
            desc.append(cont.group(1).strip())
            j += 1

        done = m.group(1) in ("x", "X")
        start, end = m.group(2), m.group(3)
        if start:
            try:
                start = minutes_to_time(time_to_minutes(start))
                end = minutes_to_time(time_to_minutes(end))
            except ValueError as exc:
                run_log.dropped(f"{aspect}:{i + 1}: {exc}")
                continue

        events.append(LocalEvent(
            aspect=aspect,
            title=m.group(4).strip(),
            start=start or "",
            end=end or "",
            all_day=not start,
            description=" / ".join(desc),
            done=done,
            ref=f"{ref_prefix}{aspect}:{i + 1}",
        ))
    return events


def _day_minutes(ts: pd.Timestamp, day: date) -> int:
    """Minutes from `day`'s midnight, clamped to the day."""
    delta = (ts.tz_localize(None) - pd.Timestamp(day)).total_seconds() // 60
    return int(min(max(delta, 0), MIDNIGHT))


def to_local(value: str, tz: str) -> pd.Timestamp:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        return ts.tz_localize(tz)
    return ts.tz_convert(tz)


def _is_date_only(value: str) -> bool:
    return "T" not in value and ":" not in value


def normalize_entries(day: date,
                      calendar_entries: Iterable[CalendarEntry],
                      local_events: Iterable[LocalEvent],
                      tz: str = "Asia/Tokyo",
                      run_log: Optional[RunLog] = None,
                      ) -> Tuple[List[TimeSlot], List[AllDayItem]]:
    """
    Turn calendar-service entries and local events into confirmed slots.

    Returns (slots sorted by start, all-day items). Entries without an end
    time become all-day items; malformed entries are dropped into `run_log`.
    """
    run_log = run_log if run_log is not None else RunLog()
    slots: List[TimeSlot] = []
    all_day: List[AllDayItem] = []

    for i, entry in enumerate(calendar_entries):
        if not entry.title or not entry.start:
            run_log.dropped(f"calendar entry #{i} ({entry.source_id}): missing title or start")
            continue
        if entry.all_day or _is_date_only(str(entry.start)):
            all_day.append(AllDayItem(entry.title, source_id=entry.source_id, origin_ref=entry.ref))
            continue
        try:
            start_ts = to_local(str(entry.start), tz)
            end_ts = to_local(str(entry.end), tz) if entry.end else None
        except (ValueError, TypeError) as exc:
            run_log.dropped(f"calendar entry {entry.title!r}: bad timestamp ({exc})")
            continue

        start = _day_minutes(start_ts, day)
        if end_ts is None:
            all_day.append(AllDayItem(
                f"{minutes_to_time(start)}~ {entry.title}",
                source_id=entry.source_id,
                origin_ref=entry.ref,
            ))
            continue
        end = _day_minutes(end_ts, day)
        if end <= start:
            run_log.dropped(
                f"calendar entry {entry.title!r}: empty or inverted range on {day.isoformat()}"
            )
            continue
        slots.append(TimeSlot(
            start=start,
            end=end,
            label=entry.title,
            source_id=entry.source_id,
            origin_ref=entry.ref,
        ))

    for ev in local_events:
        if ev.all_day:
            all_day.append(AllDayItem(
                ev.title, source_id=LOCAL_SOURCE, origin_ref=ev.ref, detail=ev.description,
            ))
            continue
        try:
            start, end = time_to_minutes(ev.start), time_to_minutes(ev.end)
        except ValueError as exc:
            run_log.dropped(f"local event {ev.title!r}: {exc}")
            continue
        if end <= start:
            run_log.dropped(f"local event {ev.title!r}: end {ev.end} not after start {ev.start}")
            continue
        slots.append(TimeSlot(
            start=start,
            end=end,
            label=f"[{ev.aspect}] {ev.title}",
            source_id=LOCAL_SOURCE,
            origin_ref=ev.ref,
            detail=ev.description,
        ))

    slots.sort(key=lambda s: (s.start, s.end))
    return slots, all_day

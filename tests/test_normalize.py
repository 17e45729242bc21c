from __future__ import annotations

from datetime import date

from dayplan.models import CalendarEntry, LocalEvent, RunLog, TimeSlot
from dayplan.normalize import LOCAL_SOURCE, normalize_entries, parse_event_lines
from tests.utils import spans

DAY = date(2026, 2, 19)

EVENT_FILE = """\
# 2026-02-19

- [ ] 9:00-10:30 Dentist
  - bring insurance card
  - 2F
- [x] 14:00〜15:00 Call with landlord
- [ ] 終日 Recycling day
- [ ] 午後 Pick up parcel
- [?] 10:00-11:00 Broken checkbox
- [ ] 25:00-26:00 Impossible hours
not a checklist line
"""


def test_parse_event_lines_reads_checklist_grammar() -> None:
    log = RunLog()
    events = parse_event_lines(EVENT_FILE, "planning", run_log=log)

    assert [e.title for e in events] == [
        "Dentist",
        "Call with landlord",
        "Recycling day",
        "午後 Pick up parcel",
    ]
    dentist, call, recycling, parcel = events
    assert (dentist.start, dentist.end) == ("09:00", "10:30")
    assert dentist.description == "bring insurance card / 2F"
    assert not dentist.done
    assert call.done and (call.start, call.end) == ("14:00", "15:00")
    assert recycling.all_day and recycling.start == ""
    assert parcel.all_day
    assert dentist.ref == "planning:3"


def test_parse_event_lines_logs_dropped_lines() -> None:
    log = RunLog()
    parse_event_lines(EVENT_FILE, "planning", run_log=log)

    dropped = [r.message for r in log.records if r.category == "dropped"]
    assert len(dropped) == 2
    assert any("Broken checkbox" in m for m in dropped)
    assert any("25:00" in m for m in dropped)


def test_calendar_timestamps_are_converted_to_local_day_minutes() -> None:
    entries = [
        CalendarEntry("Standup", "2026-02-19T00:30:00Z", "2026-02-19T01:00:00Z"),
        CalendarEntry("Review", "2026-02-19T13:00:00+09:00", "2026-02-19T14:15:00+09:00", source_id="todo"),
    ]
    slots, all_day = normalize_entries(DAY, entries, [], tz="Asia/Tokyo")

    assert spans(slots) == [("09:30", "10:00"), ("13:00", "14:15")]
    assert [s.source_id for s in slots] == ["events", "todo"]
    assert all_day == []


def test_entries_without_end_or_time_become_all_day() -> None:
    entries = [
        CalendarEntry("Open-ended", "2026-02-19T18:00:00+09:00", None),
        CalendarEntry("Holiday", "2026-02-19"),
        CalendarEntry("Flagged", "2026-02-19T10:00:00+09:00", "2026-02-19T11:00:00+09:00", all_day=True),
    ]
    slots, all_day = normalize_entries(DAY, entries, [])

    assert slots == []
    assert [a.label for a in all_day] == ["18:00~ Open-ended", "Holiday", "Flagged"]


def test_malformed_entries_are_dropped_not_fatal() -> None:
    log = RunLog()
    entries = [
        CalendarEntry("Inverted", "2026-02-19T11:00:00+09:00", "2026-02-19T10:00:00+09:00"),
        CalendarEntry("Garbage", "not-a-timeT", "2026-02-19T10:00:00+09:00"),
        CalendarEntry("", "2026-02-19T10:00:00+09:00", "2026-02-19T11:00:00+09:00"),
        CalendarEntry("Fine", "2026-02-19T10:00:00+09:00", "2026-02-19T11:00:00+09:00"),
    ]
    local = [LocalEvent("planning", "Backwards", start="12:00", end="11:00")]
    slots, _ = normalize_entries(DAY, entries, local, run_log=log)

    assert [s.label for s in slots] == ["Fine"]
    assert len([r for r in log.records if r.category == "dropped"]) == 4


def test_local_events_are_tagged_with_local_source_and_aspect() -> None:
    local = [
        LocalEvent("guitar", "Lesson", start="19:00", end="20:00", description="bring capo"),
        LocalEvent("planning", "Festival", all_day=True),
    ]
    slots, all_day = normalize_entries(DAY, [], local)

    assert len(slots) == 1
    assert slots[0].label == "[guitar] Lesson"
    assert slots[0].source_id == LOCAL_SOURCE
    assert slots[0].detail == "bring capo"
    assert [a.label for a in all_day] == ["Festival"]


def test_entry_running_past_midnight_is_clamped_to_the_day() -> None:
    entries = [CalendarEntry("Late show", "2026-02-19T23:00:00+09:00", "2026-02-20T01:00:00+09:00")]
    slots, _ = normalize_entries(DAY, entries, [])

    assert spans(slots) == [("23:00", "24:00")]


def test_normalized_slots_are_plain_values() -> None:
    entries = [CalendarEntry("Standup", "2026-02-19T09:30:00+09:00", "2026-02-19T10:00:00+09:00", ref="cal-1")]
    local = [LocalEvent("guitar", "Lesson", start="19:00", end="20:00", ref="guitar:3")]

    slots, _ = normalize_entries(DAY, entries, local)

    assert slots == [
        TimeSlot(570, 600, "Standup", source_id="events", origin_ref="cal-1"),
        TimeSlot(1140, 1200, "[guitar] Lesson", source_id=LOCAL_SOURCE, origin_ref="guitar:3"),
    ]

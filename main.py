# demo.py
import json
import logging
import sys
from datetime import date

import matplotlib.pyplot as plt

from dayplan.config import PlanConfig, config_from_dict
from dayplan.models import CalendarEntry
from dayplan.normalize import parse_event_lines
from dayplan.scheduler import generate_plan

EVENT_LOG = """\
- [ ] 09:30-10:30 Standup（Zoom）
- [ ] 12:00-13:00 Lunch with Aki
  - near the station
- [x] 終日 Recycling day
"""


def demo_config() -> PlanConfig:
    return config_from_dict({
        "timezone": "Asia/Tokyo",
        "activeHours": {"start": "08:00", "end": "22:00"},
        "routines": [
            {"label": "Deep Work", "minutes": 180, "priority": 1, "splittable": True, "minBlock": 60},
            {"label": "Gym", "minutes": 90, "priority": 2, "earliestStart": "17:00"},
            {"label": "Reading", "ratio": 0.4, "priority": 3, "splittable": True, "preferredEdge": "end"},
            {"label": "Guitar", "ratio": 0.6, "priority": 4, "minBlock": 30},
        ],
        "conflictRules": {
            "sourcePriority": ["events", "todo", "local"],
            "defaultAction": {"todo": "shift", "local": "delete"},
        },
    })


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    day = date(2026, 2, 19)  # a Thursday

    calendar = [
        CalendarEntry("Standup", "2026-02-19T09:30:00+09:00", "2026-02-19T10:00:00+09:00", source_id="events"),
        CalendarEntry("Write report", "2026-02-19T09:45:00+09:00", "2026-02-19T10:45:00+09:00", source_id="todo"),
        CalendarEntry("Dentist", "2026-02-19T15:00:00+09:00", "2026-02-19T16:00:00+09:00", source_id="events"),
    ]
    history = [
        CalendarEntry("Reading: novel", "2026-02-16T21:00:00+09:00", "2026-02-16T21:30:00+09:00", status="Done"),
        CalendarEntry("Guitar scales", "2026-02-17T20:00:00+09:00", "2026-02-17T22:00:00+09:00", status="Done"),
        CalendarEntry("Guitar songs", "2026-02-18T20:00:00+09:00", "2026-02-18T21:30:00+09:00", status="完了"),
    ]

    result = generate_plan(
        day,
        demo_config(),
        calendar_entries=calendar,
        local_events=parse_event_lines(EVENT_LOG, "planning"),
        history_entries=history,
    )

    if "--json" in sys.argv:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
        return

    print("=== Timeline ===")
    print(result.timeline_frame())
    for r in result.resolutions:
        print(f"[{r.action}] {r.loser.label} (lost to {r.winner.label})")

    # Day chart
    frame = result.timeline_frame()
    colors = {"confirmed": "#7f7f7f", "routine": "#1f77b4"}
    plt.figure(figsize=(10, 3))
    for _, row in frame.iterrows():
        start_h = row["start"].hour + row["start"].minute / 60
        width_h = (row["end"] - row["start"]).total_seconds() / 3600
        plt.barh(row["kind"], width_h, left=start_h, color=colors[row["kind"]])
        plt.text(start_h, row["kind"], row["label"], fontsize=7, va="center")
    plt.title(f"Plan for {day.isoformat()}")
    plt.xlabel("Hour")
    plt.tight_layout()
    plt.show()


if __name__ == "__main__":
    main()

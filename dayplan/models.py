# dayplan/models.py
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .clock import minutes_to_time

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
ROUTINE = "routine"

KEEP = "keep"
DELETE = "delete"
SHIFT = "shift"
SHRINK = "shrink"
ACTIONS = (KEEP, DELETE, SHIFT, SHRINK)

EDGE_START = "start"
EDGE_END = "end"


class ConfigError(ValueError):
    """Raised when the plan configuration cannot be used as given."""


@dataclass
class CalendarEntry:
    """An entry from the calendar/task service, as fetched."""

    title: str
    start: Optional[str]             # ISO timestamp, or a bare date for all-day
    end: Optional[str] = None
    all_day: bool = False
    source_id: str = "events"
    status: Optional[str] = None     # completion status, e.g. "Done"
    ref: Optional[str] = None


@dataclass
class LocalEvent:
    """One checklist line of a local event-log file."""

    aspect: str
    title: str
    start: str = ""                  # "HH:MM", empty when all-day
    end: str = ""
    all_day: bool = False
    description: str = ""
    done: bool = False
    ref: Optional[str] = None


@dataclass
class TimeSlot:
    start: int                       # minutes from midnight
    end: int                         # minutes from midnight, 1440 = 24:00
    label: str
    kind: str = CONFIRMED
    source_id: Optional[str] = None  # None for routine slots
    origin_ref: Optional[str] = None # opaque, for write-back only
    detail: str = ""

    @property
    def minutes(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        out = {
            "start": minutes_to_time(self.start),
            "end": minutes_to_time(self.end),
            "label": self.label,
            "kind": self.kind,
        }
        if self.source_id is not None:
            out["sourceId"] = self.source_id
        if self.origin_ref is not None:
            out["originRef"] = self.origin_ref
        if self.detail:
            out["detail"] = self.detail
        return out


@dataclass
class AllDayItem:
    label: str
    source_id: Optional[str] = None
    origin_ref: Optional[str] = None
    detail: str = ""

    def to_dict(self) -> dict:
        return {k: v for k, v in {
            "label": self.label,
            "sourceId": self.source_id,
            "originRef": self.origin_ref,
            "detail": self.detail,
        }.items() if v}


@dataclass
class FreeSlot:
    start: int
    end: int

    @property
    def minutes(self) -> int:
        return self.end - self.start

    def to_dict(self) -> dict:
        return {
            "start": minutes_to_time(self.start),
            "end": minutes_to_time(self.end),
            "minutes": self.minutes,
        }


@dataclass
class RoutinePoolItem:
    label: str
    priority: int
    minutes: Optional[int] = None          # fixed daily duration
    ratio: Optional[float] = None          # share of the ratio pool
    splittable: bool = False
    min_block: int = 30
    preferred_edge: Optional[str] = None   # "start" | "end"
    earliest_start: Optional[int] = None   # minutes from midnight
    order: int = 0                         # declaration order, tie-breaker

    @property
    def is_ratio(self) -> bool:
        return self.ratio is not None

    def validate(self) -> None:
        has_minutes = self.minutes is not None
        has_ratio = self.ratio is not None
        if has_minutes == has_ratio:
            raise ConfigError(
                f"routine {self.label!r} must define exactly one of minutes or ratio"
            )
        if has_minutes and self.minutes <= 0:
            raise ConfigError(f"routine {self.label!r}: minutes must be > 0")
        if has_ratio and not (0.0 < self.ratio <= 1.0):
            raise ConfigError(f"routine {self.label!r}: ratio must be in (0, 1]")
        if self.min_block <= 0:
            raise ConfigError(f"routine {self.label!r}: minBlock must be > 0")
        if self.preferred_edge not in (None, EDGE_START, EDGE_END):
            raise ConfigError(
                f"routine {self.label!r}: preferredEdge must be 'start' or 'end'"
            )


@dataclass
class ShiftParams:
    max_shift_minutes: int = 120
    step_minutes: int = 5
    allow_exceed_active_hours: bool = False


@dataclass
class ShrinkParams:
    min_minutes: int = 15


@dataclass
class ConflictRule:
    action: str
    label_contains: Optional[str] = None
    source_id: Optional[str] = None
    shift: Optional[ShiftParams] = None
    shrink: Optional[ShrinkParams] = None

    def matches(self, slot: TimeSlot) -> bool:
        if self.label_contains is None and self.source_id is None:
            return False
        if self.source_id is not None and slot.source_id != self.source_id:
            return False
        if self.label_contains is not None and self.label_contains not in slot.label:
            return False
        return True


@dataclass
class ConflictRuleTable:
    source_priority: List[str] = field(default_factory=list)
    default_actions: Dict[str, str] = field(default_factory=dict)
    overrides: List[ConflictRule] = field(default_factory=list)

    def rank(self, source_id: Optional[str]) -> Optional[int]:
        if source_id is None or source_id not in self.source_priority:
            return None
        return self.source_priority.index(source_id)

    def rule_for(self, slot: TimeSlot) -> Tuple[str, Optional[ConflictRule]]:
        """First matching override wins, then the source default, then delete."""
        for rule in self.overrides:
            if rule.matches(slot):
                return rule.action, rule
        return self.default_actions.get(slot.source_id or "", DELETE), None


@dataclass(frozen=True)
class Resolution:
    loser: TimeSlot
    winner: TimeSlot
    action: str                              # action actually applied
    requested: str                           # action the rules asked for
    before: Tuple[int, int]
    after: Optional[Tuple[int, int]] = None  # None when the loser was removed
    warning: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "loser": self.loser.label,
            "loserSource": self.loser.source_id,
            "winner": self.winner.label,
            "winnerSource": self.winner.source_id,
            "action": self.action,
            "requested": self.requested,
            "before": [minutes_to_time(m) for m in self.before],
            "after": [minutes_to_time(m) for m in self.after] if self.after else None,
            "warning": self.warning,
        }


@dataclass
class RatioReport:
    label: str
    target_ratio: float
    actual_ratio: Optional[float]   # None when there was no history to compare
    adjusted_ratio: float
    minutes: int

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "targetRatio": self.target_ratio,
            "actualRatio": self.actual_ratio,
            "adjustedRatio": round(self.adjusted_ratio, 4),
            "minutes": self.minutes,
        }


@dataclass
class LogRecord:
    level: str
    category: str
    message: str


@dataclass
class RunLog:
    """Diagnostics collected during one run, returned to the caller as data."""

    records: List[LogRecord] = field(default_factory=list)

    def dropped(self, message: str) -> None:
        logger.info("dropped entry: %s", message)
        self.records.append(LogRecord("info", "dropped", message))

    def warn(self, category: str, message: str) -> None:
        logger.warning("%s: %s", category, message)
        self.records.append(LogRecord("warning", category, message))

    def warnings(self, category: Optional[str] = None) -> List[LogRecord]:
        return [
            r for r in self.records
            if r.level == "warning" and (category is None or r.category == category)
        ]

    def to_list(self) -> List[dict]:
        return [vars(r).copy() for r in self.records]


@dataclass
class PlanResult:
    day: date
    timeline: List[TimeSlot]
    all_day: List[AllDayItem]
    free_slots: List[FreeSlot]
    remaining_free: List[FreeSlot]
    ratio_report: List[RatioReport]
    resolutions: List[Resolution]
    run_log: RunLog

    def to_dict(self) -> dict:
        return {
            "date": self.day.isoformat(),
            "timeline": [s.to_dict() for s in self.timeline],
            "allDay": [a.to_dict() for a in self.all_day],
            "freeSlots": [f.to_dict() for f in self.free_slots],
            "remainingFree": [f.to_dict() for f in self.remaining_free],
            "ratios": [r.to_dict() for r in self.ratio_report],
            "resolutions": [r.to_dict() for r in self.resolutions],
            "log": self.run_log.to_list(),
        }

    def timeline_frame(self) -> pd.DataFrame:
        """Timeline as a dataframe with columns label, start, end, kind, source."""
        day = pd.Timestamp(self.day)
        rows = [{
            "label": s.label,
            "start": day + pd.Timedelta(minutes=s.start),
            "end": day + pd.Timedelta(minutes=s.end),
            "kind": s.kind,
            "source": s.source_id,
        } for s in self.timeline]
        return pd.DataFrame(rows, columns=["label", "start", "end", "kind", "source"])

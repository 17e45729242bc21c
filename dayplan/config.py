# dayplan/config.py
"""
Plan configuration: active hours, the routine pool and the conflict rules.

Loaded once per run from a JSON file shaped like::

    {
      "timezone": "Asia/Tokyo",
      "activeHours": {"start": "08:00", "end": "22:00"},
      "routines": [
        {"label": "dev", "minutes": 300, "priority": 1, "splittable": true, "minBlock": 60},
        {"label": "reading", "ratio": 0.2, "priority": 4, "preferredEdge": "end"}
      ],
      "conflictRules": {
        "sourcePriority": ["events", "routine", "local"],
        "defaultAction": {"routine": "shift", "local": "delete"},
        "overrides": [
          {"match": {"label": "gym"}, "action": "shrink", "shrinkParams": {"minMinutes": 30}}
        ]
      }
    }

Environment variables (both optional):
- DAYPLAN_CONFIG  path of the JSON file
- DAYPLAN_TZ      overrides "timezone"
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .clock import time_to_minutes
from .models import (
    ACTIONS,
    ConfigError,
    ConflictRule,
    ConflictRuleTable,
    RoutinePoolItem,
    ShiftParams,
    ShrinkParams,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("aspects") / "routine" / "schedule.json"


def default_routines() -> List[RoutinePoolItem]:
    return [
        RoutinePoolItem(label="開発", minutes=300, priority=1, splittable=True, min_block=60, order=0),
        RoutinePoolItem(label="ジム", minutes=90, priority=2, min_block=90, order=1),
        RoutinePoolItem(label="ギター練習", minutes=60, priority=3, min_block=60, order=2),
        RoutinePoolItem(label="読書", minutes=90, priority=4, splittable=True, min_block=30, order=3),
    ]


@dataclass
class PlanConfig:
    timezone: str = "Asia/Tokyo"
    day_start: int = 8 * 60
    day_end: int = 22 * 60
    min_gap_minutes: int = 30          # free gaps shorter than this are dropped
    routines: List[RoutinePoolItem] = field(default_factory=default_routines)
    rules: ConflictRuleTable = field(default_factory=ConflictRuleTable)

    def validate(self) -> None:
        if not (0 <= self.day_start < self.day_end <= 24 * 60):
            raise ConfigError("activeHours.start must be before activeHours.end")
        seen = set()
        for item in self.routines:
            item.validate()
            if item.label in seen:
                raise ConfigError(f"duplicate routine label {item.label!r}")
            seen.add(item.label)


def _parse_time(value, where: str) -> int:
    try:
        return time_to_minutes(str(value))
    except ValueError as exc:
        raise ConfigError(f"{where}: {exc}") from exc


def _routine_from_dict(raw: dict, order: int) -> RoutinePoolItem:
    if "label" not in raw or "priority" not in raw:
        raise ConfigError(f"routine #{order} needs a label and a priority")
    earliest = raw.get("earliestStart")
    return RoutinePoolItem(
        label=str(raw["label"]),
        priority=int(raw["priority"]),
        minutes=int(raw["minutes"]) if raw.get("minutes") is not None else None,
        ratio=float(raw["ratio"]) if raw.get("ratio") is not None else None,
        splittable=bool(raw.get("splittable", False)),
        min_block=int(raw.get("minBlock", 30)),
        preferred_edge=raw.get("preferredEdge"),
        earliest_start=_parse_time(earliest, f"routine {raw['label']!r} earliestStart")
        if earliest is not None else None,
        order=order,
    )


def _rule_from_dict(raw: dict) -> ConflictRule:
    action = raw.get("action")
    if action not in ACTIONS:
        raise ConfigError(f"override action must be one of {ACTIONS}, got {action!r}")
    match = raw.get("match") or {}
    shift_raw = raw.get("shiftParams")
    shrink_raw = raw.get("shrinkParams")
    return ConflictRule(
        action=action,
        label_contains=match.get("label"),
        source_id=match.get("sourceId"),
        shift=ShiftParams(
            max_shift_minutes=int(shift_raw.get("maxShiftMinutes", 120)),
            step_minutes=int(shift_raw.get("stepMinutes", 5)),
            allow_exceed_active_hours=bool(shift_raw.get("allowExceedActiveHours", False)),
        ) if shift_raw else None,
        shrink=ShrinkParams(
            min_minutes=int(shrink_raw.get("minMinutes", 15)),
        ) if shrink_raw else None,
    )


def rules_from_dict(raw: Optional[dict]) -> ConflictRuleTable:
    if not raw:
        return ConflictRuleTable()
    defaults = dict(raw.get("defaultAction") or {})
    for source, action in defaults.items():
        if action not in ACTIONS:
            raise ConfigError(f"defaultAction for {source!r} must be one of {ACTIONS}")
    return ConflictRuleTable(
        source_priority=list(raw.get("sourcePriority") or []),
        default_actions=defaults,
        overrides=[_rule_from_dict(r) for r in raw.get("overrides") or []],
    )


def config_from_dict(raw: dict) -> PlanConfig:
    """Build and validate a PlanConfig. Raises ConfigError on any schema problem."""
    cfg = PlanConfig()
    if "timezone" in raw:
        cfg.timezone = str(raw["timezone"])
    hours = raw.get("activeHours")
    if hours:
        cfg.day_start = _parse_time(hours.get("start", "08:00"), "activeHours.start")
        cfg.day_end = _parse_time(hours.get("end", "22:00"), "activeHours.end")
    if "minGapMinutes" in raw:
        cfg.min_gap_minutes = int(raw["minGapMinutes"])
    if "routines" in raw:
        if not isinstance(raw["routines"], list):
            raise ConfigError("routines must be a list")
        try:
            cfg.routines = [_routine_from_dict(r, i) for i, r in enumerate(raw["routines"])]
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ConfigError):
                raise
            raise ConfigError(f"routines: {exc}") from exc
    cfg.rules = rules_from_dict(raw.get("conflictRules"))
    cfg.validate()
    return cfg


def load_config(path: Optional[str] = None) -> PlanConfig:
    """
    Load the plan config from `path`, $DAYPLAN_CONFIG or the default location.

    A missing file yields the built-in routine pool; an unreadable or invalid
    file is a ConfigError.
    """
    config_path = Path(path or os.getenv("DAYPLAN_CONFIG") or DEFAULT_CONFIG_PATH)
    if config_path.exists():
        try:
            raw = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{config_path}: invalid JSON ({exc})") from exc
        cfg = config_from_dict(raw)
    else:
        logger.info("no config at %s, using built-in routine pool", config_path)
        cfg = PlanConfig()
    tz = os.getenv("DAYPLAN_TZ")
    if tz:
        cfg.timezone = tz
    return cfg

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dayplan.config import config_from_dict, load_config
from dayplan.models import DELETE, SHIFT, ConfigError


def sample() -> dict:
    return {
        "timezone": "Europe/Berlin",
        "activeHours": {"start": "07:30", "end": "21:00"},
        "routines": [
            {"label": "dev", "minutes": 240, "priority": 1, "splittable": True, "minBlock": 60},
            {"label": "reading", "ratio": 0.3, "priority": 2, "preferredEdge": "end",
             "earliestStart": "18:00"},
        ],
        "conflictRules": {
            "sourcePriority": ["events", "todo"],
            "defaultAction": {"todo": "shift"},
            "overrides": [
                {"match": {"label": "Gym", "sourceId": "todo"}, "action": "delete"},
                {"match": {"sourceId": "todo"}, "action": "shift",
                 "shiftParams": {"maxShiftMinutes": 60, "allowExceedActiveHours": True}},
            ],
        },
    }


def test_config_from_dict_reads_every_section() -> None:
    cfg = config_from_dict(sample())

    assert cfg.timezone == "Europe/Berlin"
    assert (cfg.day_start, cfg.day_end) == (450, 1260)
    dev, reading = cfg.routines
    assert dev.minutes == 240 and dev.splittable and dev.min_block == 60 and dev.order == 0
    assert reading.ratio == 0.3 and reading.min_block == 30
    assert reading.preferred_edge == "end" and reading.earliest_start == 18 * 60
    assert cfg.rules.rank("todo") == 1
    assert cfg.rules.default_actions == {"todo": SHIFT}
    assert cfg.rules.overrides[0].action == DELETE
    assert cfg.rules.overrides[1].shift.max_shift_minutes == 60
    assert cfg.rules.overrides[1].shift.allow_exceed_active_hours


@pytest.mark.parametrize("routine", [
    {"label": "both", "minutes": 30, "ratio": 0.2, "priority": 1},
    {"label": "neither", "priority": 1},
    {"label": "zero", "minutes": 0, "priority": 1},
    {"label": "too big", "ratio": 1.5, "priority": 1},
    {"label": "edge", "minutes": 30, "priority": 1, "preferredEdge": "middle"},
    {"label": "bad time", "minutes": 30, "priority": 1, "earliestStart": "7pm"},
    {"label": "not a number", "minutes": "lots", "priority": 1},
    {"minutes": 30, "priority": 1},
])
def test_malformed_routine_is_a_config_error(routine: dict) -> None:
    with pytest.raises(ConfigError):
        config_from_dict({"routines": [routine]})


def test_unknown_conflict_action_is_a_config_error() -> None:
    raw = sample()
    raw["conflictRules"]["defaultAction"] = {"todo": "postpone"}
    with pytest.raises(ConfigError):
        config_from_dict(raw)


def test_inverted_active_hours_is_a_config_error() -> None:
    with pytest.raises(ConfigError):
        config_from_dict({"activeHours": {"start": "22:00", "end": "08:00"}})


def test_missing_file_falls_back_to_builtin_pool(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("DAYPLAN_TZ", raising=False)
    cfg = load_config(str(tmp_path / "nope.json"))

    assert [r.label for r in cfg.routines] == ["開発", "ジム", "ギター練習", "読書"]
    assert (cfg.day_start, cfg.day_end) == (8 * 60, 22 * 60)


def test_load_config_from_env_path_and_tz_override(tmp_path: Path, monkeypatch) -> None:
    path = tmp_path / "schedule.json"
    path.write_text(json.dumps(sample()), encoding="utf-8")
    monkeypatch.setenv("DAYPLAN_CONFIG", str(path))
    monkeypatch.setenv("DAYPLAN_TZ", "UTC")

    cfg = load_config()

    assert [r.label for r in cfg.routines] == ["dev", "reading"]
    assert cfg.timezone == "UTC"


def test_invalid_json_is_a_config_error(tmp_path: Path) -> None:
    path = tmp_path / "schedule.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(str(path))

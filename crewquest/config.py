"""
crewquest.config — Game Configuration Snapshot
===============================================

**Why this file exists:**
Every rule in the engine is tunable (XP per hour, penalty rates, attendance
table, KPI rewards, leveling, item mechanics).  Those values live in the
``game_configs`` table (or a YAML file for local runs) as a nested
``SECTION → {KEY: value}`` map.  This module turns that raw map into an
immutable, typed :class:`GameConfig` snapshot that is passed explicitly
into every engine call.  Nothing here is module-level mutable state.

Usage::

    from crewquest.config import load_game_config

    cfg = load_game_config("game_config.yaml")
    print(cfg.leveling.base_xp_per_level)   # 1000
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def _frozen_map(data: Mapping) -> Mapping:
    return MappingProxyType(dict(data))


# ---------------------------------------------------------------------------
# Section types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GlobalMultipliers:
    xp_per_hour: int = 20
    coin_per_task: int = 10
    coin_bonus_early: int = 20
    xp_bonus_early: int = 50
    coin_duty: int = 5
    xp_duty_complete: int = 20
    xp_duty_assist: int = 30
    coin_duty_assist: int = 10
    xp_duty_late_submit: int = 5


@dataclass(frozen=True, slots=True)
class PenaltyRates:
    hp_penalty_late: int = 5
    hp_penalty_late_multiplier: float = 1.5
    coin_penalty_late_per_day: int = 5
    max_coin_penalty_late: int = 50
    hp_penalty_missed_duty: int = 10
    hp_penalty_duty_late_submit: int = 5
    hp_penalty_early_leave_rate: int = 2
    hp_penalty_early_leave_interval: int = 30
    negligence_penalty_hp: int = 20


@dataclass(frozen=True, slots=True)
class RewardRule:
    """One row of the attendance or KPI table."""

    xp: int = 0
    hp: int = 0
    coins: int = 0


@dataclass(frozen=True, slots=True)
class LevelingSystem:
    base_xp_per_level: int = 1000
    level_up_bonus_coins: int = 500
    max_hp: int = 100


@dataclass(frozen=True, slots=True)
class ItemMechanics:
    time_warp_refund_percent: int = 100
    time_warp_refund_cap_hp: int = 50
    shop_tax_rate: int = 0
    refundable_kinds: frozenset[str] = frozenset({
        "TASK_LATE",
        "DUTY_MISSED",
        "DUTY_LATE_SUBMIT",
        "ATTENDANCE_CHECK_IN",
        "ATTENDANCE_ABSENT",
        "ATTENDANCE_NO_SHOW",
        "ATTENDANCE_EARLY_LEAVE",
    })


DEFAULT_DIFFICULTY_XP: dict[str, int] = {"EASY": 50, "MEDIUM": 100, "HARD": 250}

DEFAULT_ATTENDANCE_RULES: dict[str, RewardRule] = {
    "ON_TIME": RewardRule(xp=10, hp=0, coins=5),
    "LATE": RewardRule(xp=0, hp=-5, coins=0),
    "ABSENT": RewardRule(xp=0, hp=-20, coins=0),
    "NO_SHOW": RewardRule(xp=0, hp=-30, coins=-10),
    "LEAVE": RewardRule(xp=0, hp=0, coins=0),
}

DEFAULT_KPI_REWARDS: dict[str, RewardRule] = {
    "A": RewardRule(xp=1000, coins=500),
    "B": RewardRule(xp=500, coins=200),
    "C": RewardRule(xp=200, coins=50),
    "D": RewardRule(xp=50, coins=0),
    "F": RewardRule(xp=0, coins=0),
}


# ---------------------------------------------------------------------------
# GameConfig — the immutable snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GameConfig:
    """Read-only snapshot of every tunable rule.

    Loaded once per operation and never mutated; build a new snapshot to
    change anything.
    """

    global_multipliers: GlobalMultipliers = field(default_factory=GlobalMultipliers)
    difficulty_xp: Mapping[str, int] = field(
        default_factory=lambda: _frozen_map(DEFAULT_DIFFICULTY_XP)
    )
    penalty_rates: PenaltyRates = field(default_factory=PenaltyRates)
    attendance_rules: Mapping[str, RewardRule] = field(
        default_factory=lambda: _frozen_map(DEFAULT_ATTENDANCE_RULES)
    )
    kpi_rewards: Mapping[str, RewardRule] = field(
        default_factory=lambda: _frozen_map(DEFAULT_KPI_REWARDS)
    )
    leveling: LevelingSystem = field(default_factory=LevelingSystem)
    item_mechanics: ItemMechanics = field(default_factory=ItemMechanics)
    version: str = "default"


# ---------------------------------------------------------------------------
# Raw map → GameConfig
# ---------------------------------------------------------------------------
def _build_section(cls: type, raw: Mapping[str, Any] | None):
    """Instantiate a flat section dataclass, matching keys case-insensitively.

    Unknown keys are ignored and missing keys keep their defaults.
    """
    if not raw:
        return cls()
    lowered = {str(k).lower(): v for k, v in raw.items()}
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in lowered or lowered[f.name] is None:
            continue
        value = lowered[f.name]
        if f.name == "refundable_kinds":
            kwargs[f.name] = frozenset(str(v).upper() for v in value)
        elif f.type in ("float", float):
            kwargs[f.name] = float(value)
        else:
            kwargs[f.name] = int(value)
    return cls(**kwargs)


def _build_rule_table(
    defaults: dict[str, RewardRule], raw: Mapping[str, Any] | None
) -> Mapping[str, RewardRule]:
    table = dict(defaults)
    for key, row in (raw or {}).items():
        if not isinstance(row, Mapping):
            logger.warning("Ignoring malformed reward rule %r: %r", key, row)
            continue
        table[str(key).upper()] = RewardRule(
            xp=int(row.get("xp", 0) or 0),
            hp=int(row.get("hp", 0) or 0),
            coins=int(row.get("coins", 0) or 0),
        )
    return _frozen_map(table)


def game_config_from_mapping(raw: Mapping[str, Any] | None) -> GameConfig:
    """Build a :class:`GameConfig` from a ``SECTION → values`` mapping.

    Recognised sections: ``GLOBAL_MULTIPLIERS``, ``DIFFICULTY_XP``,
    ``PENALTY_RATES``, ``AUTO_JUDGE_CONFIG``, ``ATTENDANCE_RULES``,
    ``KPI_REWARDS``, ``LEVELING_SYSTEM``, ``ITEM_MECHANICS``.
    Section names are matched case-insensitively; everything missing falls
    back to the defaults above.
    """
    raw = {str(k).upper(): v for k, v in (raw or {}).items()}

    difficulty = dict(DEFAULT_DIFFICULTY_XP)
    for key, value in (raw.get("DIFFICULTY_XP") or {}).items():
        difficulty[str(key).upper()] = int(value)

    # Negligence lives in its own section in the admin tuner.
    penalties = dict(raw.get("PENALTY_RATES") or {})
    auto_judge = raw.get("AUTO_JUDGE_CONFIG") or {}
    if "negligence_penalty_hp" in auto_judge:
        penalties["negligence_penalty_hp"] = auto_judge["negligence_penalty_hp"]

    return GameConfig(
        global_multipliers=_build_section(GlobalMultipliers, raw.get("GLOBAL_MULTIPLIERS")),
        difficulty_xp=_frozen_map(difficulty),
        penalty_rates=_build_section(PenaltyRates, penalties),
        attendance_rules=_build_rule_table(DEFAULT_ATTENDANCE_RULES, raw.get("ATTENDANCE_RULES")),
        kpi_rewards=_build_rule_table(DEFAULT_KPI_REWARDS, raw.get("KPI_REWARDS")),
        leveling=_build_section(LevelingSystem, raw.get("LEVELING_SYSTEM")),
        item_mechanics=_build_section(ItemMechanics, raw.get("ITEM_MECHANICS")),
        version=str(raw.get("VERSION", "default")),
    )


def _section_to_dict(section: Any) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for f in fields(section):
        value = getattr(section, f.name)
        out[f.name] = sorted(value) if isinstance(value, frozenset) else value
    return out


def _rule_table_to_dict(table: Mapping[str, RewardRule]) -> dict[str, dict[str, int]]:
    return {key: _section_to_dict(rule) for key, rule in table.items()}


def game_config_to_mapping(config: GameConfig) -> dict[str, Any]:
    """Inverse of :func:`game_config_from_mapping` (JSON-serializable).

    Negligence is emitted under ``AUTO_JUDGE_CONFIG`` like the admin tuner
    stores it.
    """
    penalties = _section_to_dict(config.penalty_rates)
    negligence = penalties.pop("negligence_penalty_hp")
    return {
        "GLOBAL_MULTIPLIERS": _section_to_dict(config.global_multipliers),
        "DIFFICULTY_XP": dict(config.difficulty_xp),
        "PENALTY_RATES": penalties,
        "AUTO_JUDGE_CONFIG": {"negligence_penalty_hp": negligence},
        "ATTENDANCE_RULES": _rule_table_to_dict(config.attendance_rules),
        "KPI_REWARDS": _rule_table_to_dict(config.kpi_rewards),
        "LEVELING_SYSTEM": _section_to_dict(config.leveling),
        "ITEM_MECHANICS": _section_to_dict(config.item_mechanics),
    }


CONFIG_SECTIONS: tuple[str, ...] = (
    "GLOBAL_MULTIPLIERS",
    "DIFFICULTY_XP",
    "PENALTY_RATES",
    "AUTO_JUDGE_CONFIG",
    "ATTENDANCE_RULES",
    "KPI_REWARDS",
    "LEVELING_SYSTEM",
    "ITEM_MECHANICS",
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_game_config(path: str | Path = "game_config.yaml") -> GameConfig:
    """Read *path* and return a :class:`GameConfig` snapshot.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Game config file not found: {config_path.resolve()}\n"
            "Hint: copy game_config.yaml.example → game_config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return game_config_from_mapping(raw)

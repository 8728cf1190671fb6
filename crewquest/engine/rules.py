"""
crewquest.engine.rules — Rule Evaluator
========================================

Pure calculation: ``(GameAction, GameConfig) → GameActionResult``.
No DB I/O, no clock reads, no module-level config.

Handler-registry implementation: each GameAction variant maps to one rule
function.  The registry is checked against the full variant list at import
time, so a new variant without a rule fails immediately instead of silently
evaluating to nothing.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import Any

from crewquest.config import GameConfig, RewardRule
from crewquest.engine.actions import (
    ACTION_TYPES,
    AttendanceAbsent,
    AttendanceCheckIn,
    AttendanceEarlyLeave,
    AttendanceLeave,
    AttendanceNoShow,
    AttendanceStatus,
    Difficulty,
    DutyAssist,
    DutyComplete,
    DutyLateSubmit,
    DutyMissed,
    GameAction,
    ItemUse,
    KpiGrade,
    KpiReward,
    ManualAdjust,
    ShopPurchase,
    TaskComplete,
    TaskLate,
    TimeWarpRefund,
)

logger = logging.getLogger(__name__)

__all__ = ["GameActionResult", "NOOP", "evaluate"]

EARLY_THRESHOLD = timedelta(days=1)


# ---------------------------------------------------------------------------
# GameActionResult — output of the evaluator
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class GameActionResult:
    """Delta produced by a rule, plus level-up info once applied.

    The evaluator only fills the deltas and texts; the orchestrator returns
    a copy with the *applied* deltas and the level-up fields set.
    """

    xp_delta: int = 0
    hp_delta: int = 0
    coin_delta: int = 0
    message: str = ""
    detail: str = ""
    leveled_up: bool = False
    new_level: int | None = None
    level_up_bonus: int = 0

    @property
    def is_noop(self) -> bool:
        """True when nothing changes and nothing is worth logging."""
        return (
            self.xp_delta == 0
            and self.hp_delta == 0
            and self.coin_delta == 0
            and not self.message
        )


NOOP = GameActionResult()


def _from_rule(rule: RewardRule, message: str) -> GameActionResult:
    return GameActionResult(
        xp_delta=rule.xp,
        hp_delta=rule.hp,
        coin_delta=rule.coins,
        message=message,
        detail=_detail(rule.xp, rule.hp, rule.coins),
    )


def _detail(xp: int, hp: int, coins: int) -> str:
    parts = []
    if xp:
        parts.append(f"{xp:+d} XP")
    if hp:
        parts.append(f"{hp:+d} HP")
    if coins:
        parts.append(f"{coins:+d} Coins")
    return ", ".join(parts)


def _as_utc(value: datetime | date | None) -> datetime | None:
    """Normalise to an aware UTC datetime; a bare date means midnight UTC."""
    if value is None:
        return None
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _safe_hours(value: Any) -> float:
    try:
        hours = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(hours) or hours < 0:
        return 0.0
    return hours


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
_RuleFn = Callable[[Any, GameConfig], GameActionResult]
_RULES: dict[type, _RuleFn] = {}


def _rule(action_type: type) -> Callable[[_RuleFn], _RuleFn]:
    def register(fn: _RuleFn) -> _RuleFn:
        _RULES[action_type] = fn
        return fn
    return register


# ---------------------------------------------------------------------------
# Task board
# ---------------------------------------------------------------------------
@_rule(TaskComplete)
def _task_complete(action: TaskComplete, config: GameConfig) -> GameActionResult:
    g = config.global_multipliers
    difficulty = str(action.difficulty).upper()
    base_xp = config.difficulty_xp.get(
        difficulty, config.difficulty_xp.get(Difficulty.MEDIUM.value, 0)
    )
    hourly_xp = math.floor(_safe_hours(action.estimated_hours) * g.xp_per_hour)

    xp = base_xp + hourly_xp
    coins = g.coin_per_task
    label = f": {action.title}" if action.title else ""

    # No deadline, no early bonus.
    due = _as_utc(action.due_date)
    completed = _as_utc(action.completed_at)
    is_early = (
        due is not None
        and completed is not None
        and due - completed >= EARLY_THRESHOLD
    )
    if is_early:
        xp += g.xp_bonus_early
        coins += g.coin_bonus_early
        message = f"Finished well ahead of the deadline{label}"
        detail = (
            f"+{base_xp + hourly_xp} XP (early bonus +{g.xp_bonus_early} XP, "
            f"+{g.coin_bonus_early} Coins)"
        )
    else:
        message = f"Task completed{label}"
        detail = f"+{xp} XP, +{coins} Coins"

    return GameActionResult(xp_delta=xp, coin_delta=coins, message=message, detail=detail)


@_rule(TaskLate)
def _task_late(action: TaskLate, config: GameConfig) -> GameActionResult:
    if action.days_late <= 0:
        return NOOP
    p = config.penalty_rates
    hp_loss = abs(action.custom_penalty) if action.custom_penalty is not None else p.hp_penalty_late
    coin_loss = min(p.max_coin_penalty_late, action.days_late * p.coin_penalty_late_per_day)
    label = f" ({action.title})" if action.title else ""
    return GameActionResult(
        hp_delta=-hp_loss,
        coin_delta=-coin_loss,
        message=f"Task delivered {action.days_late} day(s) late{label}",
        detail=_detail(0, -hp_loss, -coin_loss),
    )


# ---------------------------------------------------------------------------
# Duty roster
# ---------------------------------------------------------------------------
@_rule(DutyComplete)
def _duty_complete(action: DutyComplete, config: GameConfig) -> GameActionResult:
    g = config.global_multipliers
    return GameActionResult(
        xp_delta=g.xp_duty_complete,
        coin_delta=g.coin_duty,
        message="Duty done, thanks for keeping the studio clean",
        detail=_detail(g.xp_duty_complete, 0, g.coin_duty),
    )


@_rule(DutyAssist)
def _duty_assist(action: DutyAssist, config: GameConfig) -> GameActionResult:
    g = config.global_multipliers
    # Covering for someone never pays less than doing your own duty.
    xp = max(g.xp_duty_assist, g.xp_duty_complete)
    coins = max(g.coin_duty_assist, g.coin_duty)
    who = f" for {action.original_assignee}" if action.original_assignee else ""
    return GameActionResult(
        xp_delta=xp,
        coin_delta=coins,
        message=f"Hero bonus: covered a duty{who}",
        detail=_detail(xp, 0, coins),
    )


@_rule(DutyMissed)
def _duty_missed(action: DutyMissed, config: GameConfig) -> GameActionResult:
    if action.custom_penalty is not None:
        hp_loss = abs(action.custom_penalty)
    else:
        hp_loss = config.penalty_rates.hp_penalty_missed_duty
    return GameActionResult(
        hp_delta=-hp_loss,
        message=action.custom_message or "Missed duty",
        detail=_detail(0, -hp_loss, 0),
    )


@_rule(DutyLateSubmit)
def _duty_late_submit(action: DutyLateSubmit, config: GameConfig) -> GameActionResult:
    xp = config.global_multipliers.xp_duty_late_submit
    hp_loss = config.penalty_rates.hp_penalty_duty_late_submit
    return GameActionResult(
        xp_delta=xp,
        hp_delta=-hp_loss,
        message="Duty submitted retroactively (late penalty applied)",
        detail=_detail(xp, -hp_loss, 0),
    )


# ---------------------------------------------------------------------------
# Attendance (table-driven, except early leave)
# ---------------------------------------------------------------------------
@_rule(AttendanceCheckIn)
def _check_in(action: AttendanceCheckIn, config: GameConfig) -> GameActionResult:
    status = str(action.status).upper()
    if status not in AttendanceStatus.__members__:
        return NOOP
    rule = config.attendance_rules.get(status)
    if rule is None:
        return NOOP
    at = f" @ {action.time_label}" if action.time_label else ""
    if status == AttendanceStatus.LATE:
        message = f"Checked in late{at}"
    else:
        message = f"Checked in on time{at}"
    return _from_rule(rule, message)


@_rule(AttendanceAbsent)
def _absent(action: AttendanceAbsent, config: GameConfig) -> GameActionResult:
    rule = config.attendance_rules.get("ABSENT", RewardRule())
    on = f" on {action.date_label}" if action.date_label else ""
    return _from_rule(rule, f"Absent without notice{on}")


@_rule(AttendanceNoShow)
def _no_show(action: AttendanceNoShow, config: GameConfig) -> GameActionResult:
    rule = config.attendance_rules.get("NO_SHOW", RewardRule())
    on = f" on {action.date_label}" if action.date_label else ""
    return _from_rule(rule, f"No show{on}")


@_rule(AttendanceEarlyLeave)
def _early_leave(action: AttendanceEarlyLeave, config: GameConfig) -> GameActionResult:
    if action.missing_minutes <= 0:
        return NOOP
    p = config.penalty_rates
    interval = max(1, p.hp_penalty_early_leave_interval)
    hp_loss = math.ceil(action.missing_minutes / interval) * p.hp_penalty_early_leave_rate
    return GameActionResult(
        hp_delta=-hp_loss,
        message=f"Left {action.missing_minutes} min early",
        detail=_detail(0, -hp_loss, 0),
    )


@_rule(AttendanceLeave)
def _leave(action: AttendanceLeave, config: GameConfig) -> GameActionResult:
    rule = config.attendance_rules.get("LEAVE", RewardRule())
    return _from_rule(rule, f"On approved leave ({action.leave_type})")


# ---------------------------------------------------------------------------
# Shop & items — logging only; balances move in the shop service
# ---------------------------------------------------------------------------
@_rule(ShopPurchase)
def _shop_purchase(action: ShopPurchase, config: GameConfig) -> GameActionResult:
    return GameActionResult(
        coin_delta=-action.price,
        message=f"Purchased item: {action.item_name}",
        detail=_detail(0, 0, -action.price),
    )


@_rule(ItemUse)
def _item_use(action: ItemUse, config: GameConfig) -> GameActionResult:
    return GameActionResult(message=f"Used item: {action.item_name}")


@_rule(TimeWarpRefund)
def _time_warp(action: TimeWarpRefund, config: GameConfig) -> GameActionResult:
    return NOOP


# ---------------------------------------------------------------------------
# Admin & periodic
# ---------------------------------------------------------------------------
@_rule(ManualAdjust)
def _manual_adjust(action: ManualAdjust, config: GameConfig) -> GameActionResult:
    return GameActionResult(
        xp_delta=action.xp,
        hp_delta=action.hp,
        coin_delta=action.coins,
        message=action.reason,
        detail=_detail(action.xp, action.hp, action.coins),
    )


@_rule(KpiReward)
def _kpi_reward(action: KpiReward, config: GameConfig) -> GameActionResult:
    grade = str(action.grade).upper()
    if grade not in KpiGrade.__members__:
        grade = KpiGrade.F.value
    rule = config.kpi_rewards.get(grade) or config.kpi_rewards.get(KpiGrade.F.value, RewardRule())
    period = f" ({action.period_label})" if action.period_label else ""
    return GameActionResult(
        xp_delta=rule.xp,
        coin_delta=rule.coins,
        message=f"KPI grade {grade} reward{period}",
        detail=_detail(rule.xp, 0, rule.coins),
    )


_missing = [t.__name__ for t in ACTION_TYPES if t not in _RULES]
if _missing:
    raise RuntimeError(f"No evaluation rule registered for: {', '.join(_missing)}")


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def evaluate(action: GameAction, config: GameConfig) -> GameActionResult:
    """Compute the delta for *action* under *config*.

    Total and deterministic: anything without a rule evaluates to
    :data:`NOOP`.
    """
    handler = _RULES.get(type(action))
    if handler is None:
        logger.debug("No rule for %r; treating as no-op", action)
        return NOOP
    return handler(action, config)

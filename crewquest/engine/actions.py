"""
crewquest.engine.actions — GameAction Variants
===============================================

The closed set of real-world triggers the engine understands.  Each action
kind is its own frozen dataclass carrying exactly the context that kind
needs; :data:`GameAction` is the union of all of them.

Triggers (attendance, task board, duty cycle, shop, admin console) build
one of these and hand it to the orchestrator.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar, Union, get_args

from crewquest.database.models import GameActionKind

__all__ = [
    "GameAction",
    "ACTION_TYPES",
    "AttendanceAbsent",
    "AttendanceCheckIn",
    "AttendanceEarlyLeave",
    "AttendanceLeave",
    "AttendanceNoShow",
    "AttendanceStatus",
    "Difficulty",
    "DutyAssist",
    "DutyComplete",
    "DutyLateSubmit",
    "DutyMissed",
    "ItemUse",
    "KpiGrade",
    "KpiReward",
    "ManualAdjust",
    "ShopPurchase",
    "TaskComplete",
    "TaskLate",
    "TimeWarpRefund",
]


class Difficulty(enum.StrEnum):
    EASY = "EASY"
    MEDIUM = "MEDIUM"
    HARD = "HARD"


class AttendanceStatus(enum.StrEnum):
    ON_TIME = "ON_TIME"
    LATE = "LATE"


class KpiGrade(enum.StrEnum):
    """Ordered best → worst; ``F`` is the fallback for unknown grades."""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


# ---------------------------------------------------------------------------
# Task board
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TaskComplete:
    kind: ClassVar[GameActionKind] = GameActionKind.TASK_COMPLETE

    difficulty: Difficulty | str
    estimated_hours: float
    due_date: datetime | date | None
    completed_at: datetime
    task_id: str | None = None
    title: str | None = None


@dataclass(frozen=True, slots=True)
class TaskLate:
    kind: ClassVar[GameActionKind] = GameActionKind.TASK_LATE

    days_late: int = 1
    custom_penalty: int | None = None  # pre-escalated HP loss (positive)
    task_id: str | None = None
    title: str | None = None


# ---------------------------------------------------------------------------
# Duty roster
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class DutyComplete:
    kind: ClassVar[GameActionKind] = GameActionKind.DUTY_COMPLETE

    duty_id: str | None = None


@dataclass(frozen=True, slots=True)
class DutyAssist:
    kind: ClassVar[GameActionKind] = GameActionKind.DUTY_ASSIST

    duty_id: str | None = None
    original_assignee: str | None = None


@dataclass(frozen=True, slots=True)
class DutyMissed:
    kind: ClassVar[GameActionKind] = GameActionKind.DUTY_MISSED

    duty_id: str | None = None
    custom_penalty: int | None = None  # negligence override (positive HP loss)
    custom_message: str | None = None


@dataclass(frozen=True, slots=True)
class DutyLateSubmit:
    kind: ClassVar[GameActionKind] = GameActionKind.DUTY_LATE_SUBMIT

    duty_id: str | None = None


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class AttendanceCheckIn:
    kind: ClassVar[GameActionKind] = GameActionKind.ATTENDANCE_CHECK_IN

    status: AttendanceStatus | str
    time_label: str | None = None


@dataclass(frozen=True, slots=True)
class AttendanceAbsent:
    kind: ClassVar[GameActionKind] = GameActionKind.ATTENDANCE_ABSENT

    date_label: str | None = None


@dataclass(frozen=True, slots=True)
class AttendanceNoShow:
    kind: ClassVar[GameActionKind] = GameActionKind.ATTENDANCE_NO_SHOW

    date_label: str | None = None


@dataclass(frozen=True, slots=True)
class AttendanceEarlyLeave:
    kind: ClassVar[GameActionKind] = GameActionKind.ATTENDANCE_EARLY_LEAVE

    missing_minutes: int
    date_label: str | None = None


@dataclass(frozen=True, slots=True)
class AttendanceLeave:
    kind: ClassVar[GameActionKind] = GameActionKind.ATTENDANCE_LEAVE

    leave_type: str = "LEAVE"


# ---------------------------------------------------------------------------
# Shop & items (logging-only on the evaluator side)
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ShopPurchase:
    kind: ClassVar[GameActionKind] = GameActionKind.SHOP_PURCHASE

    item_name: str
    price: int


@dataclass(frozen=True, slots=True)
class ItemUse:
    kind: ClassVar[GameActionKind] = GameActionKind.ITEM_USE

    item_name: str


@dataclass(frozen=True, slots=True)
class TimeWarpRefund:
    kind: ClassVar[GameActionKind] = GameActionKind.TIME_WARP_REFUND

    penalty_log_id: int | None = None


# ---------------------------------------------------------------------------
# Admin & periodic
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ManualAdjust:
    kind: ClassVar[GameActionKind] = GameActionKind.MANUAL_ADJUST

    reason: str
    xp: int = 0
    hp: int = 0
    coins: int = 0


@dataclass(frozen=True, slots=True)
class KpiReward:
    kind: ClassVar[GameActionKind] = GameActionKind.KPI_REWARD

    grade: KpiGrade | str
    period_label: str | None = None


GameAction = Union[
    TaskComplete,
    TaskLate,
    DutyComplete,
    DutyAssist,
    DutyMissed,
    DutyLateSubmit,
    AttendanceCheckIn,
    AttendanceAbsent,
    AttendanceNoShow,
    AttendanceEarlyLeave,
    AttendanceLeave,
    ShopPurchase,
    ItemUse,
    ManualAdjust,
    TimeWarpRefund,
    KpiReward,
]

# Every variant, in declaration order (used for the evaluator's completeness check)
ACTION_TYPES: tuple[type, ...] = get_args(GameAction)

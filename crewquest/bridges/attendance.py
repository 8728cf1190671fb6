"""
crewquest.bridges.attendance — Attendance Trigger Bridge
=========================================================

Called by the attendance module when a crew member checks in, leaves early
or is judged absent.  Each helper builds the typed action and runs the
orchestrator on a worker thread so the caller's event loop never blocks.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crewquest.database.engine import run_db
from crewquest.engine.actions import (
    AttendanceAbsent,
    AttendanceCheckIn,
    AttendanceEarlyLeave,
    AttendanceLeave,
    AttendanceNoShow,
    AttendanceStatus,
)
from crewquest.services.profile_service import process_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from crewquest.config import GameConfig
    from crewquest.engine.rules import GameActionResult
    from crewquest.errors import Outcome

logger = logging.getLogger(__name__)


async def trigger_check_in(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    *,
    is_late: bool,
    time_label: str | None = None,
) -> Outcome[GameActionResult]:
    status = AttendanceStatus.LATE if is_late else AttendanceStatus.ON_TIME
    action = AttendanceCheckIn(status=status, time_label=time_label)
    return await run_db(process_action, engine, config, user_id, action)


async def trigger_absent(
    engine: Engine, config: GameConfig, user_id: str, *, date_label: str | None = None,
) -> Outcome[GameActionResult]:
    return await run_db(
        process_action, engine, config, user_id, AttendanceAbsent(date_label=date_label)
    )


async def trigger_no_show(
    engine: Engine, config: GameConfig, user_id: str, *, date_label: str | None = None,
) -> Outcome[GameActionResult]:
    return await run_db(
        process_action, engine, config, user_id, AttendanceNoShow(date_label=date_label)
    )


async def trigger_leave(
    engine: Engine, config: GameConfig, user_id: str, *, leave_type: str = "LEAVE",
) -> Outcome[GameActionResult]:
    """Approved leave.  Logged for the record; zero deltas by default."""
    return await run_db(
        process_action, engine, config, user_id, AttendanceLeave(leave_type=leave_type)
    )


async def trigger_early_leave(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    *,
    missing_minutes: int,
    date_label: str | None = None,
) -> Outcome[GameActionResult]:
    action = AttendanceEarlyLeave(missing_minutes=missing_minutes, date_label=date_label)
    outcome = await run_db(process_action, engine, config, user_id, action)
    if outcome.ok and outcome.value is not None:
        logger.info(
            "%s left %d min early (%+d HP)",
            user_id, missing_minutes, outcome.value.hp_delta,
        )
    return outcome

"""
crewquest.bridges.duty — Duty Cycle Trigger Bridge
===================================================

Cleaning-duty roster events.  :func:`process_missed_duty` is the one with
logic of its own: a member holding a Duty Shield (SKIP_DUTY item) spends
it instead of taking the HP loss, and abandoned duties use the harsher
negligence penalty.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crewquest.database.engine import run_db
from crewquest.engine.actions import DutyAssist, DutyComplete, DutyLateSubmit, DutyMissed
from crewquest.errors import Outcome
from crewquest.services.profile_service import process_action
from crewquest.services.shop_service import consume_passive_skip

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from crewquest.config import GameConfig
    from crewquest.engine.rules import GameActionResult

logger = logging.getLogger(__name__)

NEGLIGENCE_MESSAGE = "Abandoned duty (negligence penalty)"


async def complete_duty(
    engine: Engine, config: GameConfig, user_id: str, *, duty_id: str | None = None,
) -> Outcome[GameActionResult]:
    return await run_db(process_action, engine, config, user_id, DutyComplete(duty_id=duty_id))


async def assist_duty(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    *,
    duty_id: str | None = None,
    original_assignee: str | None = None,
) -> Outcome[GameActionResult]:
    action = DutyAssist(duty_id=duty_id, original_assignee=original_assignee)
    return await run_db(process_action, engine, config, user_id, action)


async def submit_duty_late(
    engine: Engine, config: GameConfig, user_id: str, *, duty_id: str | None = None,
) -> Outcome[GameActionResult]:
    return await run_db(process_action, engine, config, user_id, DutyLateSubmit(duty_id=duty_id))


async def process_missed_duty(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    *,
    duty_id: str | None = None,
    abandoned: bool = False,
) -> Outcome[GameActionResult]:
    """Penalize a missed duty unless the member owns a Duty Shield.

    Returns ``success(None)`` when a shield absorbed the penalty.
    """
    if await run_db(consume_passive_skip, engine, config, user_id):
        logger.info("Duty Shield absorbed missed duty %s for %s", duty_id, user_id)
        return Outcome.success(None)

    if abandoned:
        action = DutyMissed(
            duty_id=duty_id,
            custom_penalty=config.penalty_rates.negligence_penalty_hp,
            custom_message=NEGLIGENCE_MESSAGE,
        )
    else:
        action = DutyMissed(duty_id=duty_id)
    return await run_db(process_action, engine, config, user_id, action)

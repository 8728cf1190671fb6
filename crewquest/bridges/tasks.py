"""
crewquest.bridges.tasks — Task Board & KPI Trigger Bridge
==========================================================

* :func:`reward_task_completion` — a finished task pays every recipient.
  The reward is evaluated and applied separately for each one, so each
  recipient gets their own log row and their own level-up check.
* :func:`penalize_late_task` — overdue tasks cost HP, escalating with each
  extra day late, plus the capped per-day coin fine.
* :func:`grant_kpi_reward` — periodic KPI grade payout.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import date, datetime
from typing import TYPE_CHECKING

from crewquest.database.engine import run_db
from crewquest.engine.actions import Difficulty, KpiGrade, KpiReward, TaskComplete, TaskLate
from crewquest.errors import Outcome, PersistenceError
from crewquest.services.profile_service import process_action

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from crewquest.config import GameConfig
    from crewquest.engine.rules import GameActionResult

logger = logging.getLogger(__name__)


def progressive_late_penalty(days_late: int, config: GameConfig) -> int:
    """HP loss for a task *days_late* days overdue.

    ``round(hp_penalty_late × multiplier ** (days_late - 1))``; zero when
    the task is not late.
    """
    if days_late <= 0:
        return 0
    p = config.penalty_rates
    return round(p.hp_penalty_late * p.hp_penalty_late_multiplier ** (days_late - 1))


async def reward_task_completion(
    engine: Engine,
    config: GameConfig,
    recipients: Iterable[str],
    *,
    difficulty: Difficulty | str,
    estimated_hours: float,
    due_date: datetime | date | None,
    completed_at: datetime,
    task_id: str | None = None,
    title: str | None = None,
) -> dict[str, Outcome[GameActionResult]]:
    """Pay out a completed task to each recipient.

    Returns ``{user_id: outcome}`` in recipient order.  One recipient's
    failure does not stop the others: a store error for one user is
    logged and recorded as that user's failed outcome.
    """
    action = TaskComplete(
        difficulty=difficulty,
        estimated_hours=estimated_hours,
        due_date=due_date,
        completed_at=completed_at,
        task_id=task_id,
        title=title,
    )
    outcomes: dict[str, Outcome[GameActionResult]] = {}
    for user_id in dict.fromkeys(recipients):
        try:
            outcomes[user_id] = await run_db(process_action, engine, config, user_id, action)
        except PersistenceError as exc:
            logger.error("Task reward for %s not applied: %s", user_id, exc)
            outcomes[user_id] = Outcome.failure(exc)
    return outcomes


async def penalize_late_task(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    *,
    days_late: int = 1,
    task_id: str | None = None,
    title: str | None = None,
) -> Outcome[GameActionResult]:
    action = TaskLate(
        days_late=days_late,
        custom_penalty=progressive_late_penalty(days_late, config) or None,
        task_id=task_id,
        title=title,
    )
    return await run_db(process_action, engine, config, user_id, action)


async def grant_kpi_reward(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    *,
    grade: KpiGrade | str,
    period_label: str | None = None,
) -> Outcome[GameActionResult]:
    outcome = await run_db(
        process_action, engine, config, user_id,
        KpiReward(grade=grade, period_label=period_label),
    )
    if outcome.ok:
        logger.info("KPI reward (grade %s) processed for %s", grade, user_id)
    return outcome

"""
crewquest.services.profile_service — Profile Mutation Orchestrator
===================================================================

The transactional core.  Every balance change in the system goes through
:func:`apply_delta`:

  1. Clamp XP (≥ 0), HP ([0, max_hp]) and coins (≥ 0)
  2. Recompute the level; on level-up credit the bonus coins
  3. Append the action's log row with the *applied* deltas
  4. Append a separate LEVEL_UP row when the level went up

:func:`process_action` wraps that in the evaluator call, the per-user lock,
the optimistic-lock retry loop and a single commit.  A store failure rolls
everything back and surfaces as :class:`PersistenceError`.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crewquest.constants import level_for_xp
from crewquest.database.models import GameActionKind, GameLog, Profile
from crewquest.engine.actions import GameAction
from crewquest.engine.rules import GameActionResult, evaluate
from crewquest.errors import Outcome, PersistenceError, ValidationError
from crewquest.services.locking import run_with_conflict_retry

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from crewquest.config import GameConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Profile reads / setup
# ---------------------------------------------------------------------------
def get_profile(engine: Engine, user_id: str) -> Profile | None:
    """Fetch a detached snapshot of the user's profile."""
    with Session(engine) as session:
        profile = session.get(Profile, user_id)
        if profile is not None:
            session.expunge(profile)
        return profile


def create_profile(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    display_name: str,
) -> Profile:
    """Insert a fresh profile (full HP, level 1) or return the existing one."""
    with Session(engine, expire_on_commit=False) as session:
        profile = session.get(Profile, user_id)
        if profile is None:
            max_hp = config.leveling.max_hp
            profile = Profile(
                id=user_id,
                display_name=display_name,
                xp=0,
                hp=max_hp,
                max_hp=max_hp,
                coins=0,
                level=1,
            )
            session.add(profile)
            session.commit()
            logger.info("Created game profile for %s (%s)", user_id, display_name)
        session.expunge(profile)
        return profile


# ---------------------------------------------------------------------------
# Shared mutation primitive
# ---------------------------------------------------------------------------
def apply_delta(
    session: Session,
    config: GameConfig,
    profile: Profile,
    *,
    kind: GameActionKind,
    result: GameActionResult,
    related_id: str | None = None,
    metadata: dict | None = None,
) -> GameActionResult:
    """Apply *result* to *profile* inside the caller's transaction.

    Flushes but does not commit.  Returns a copy of *result* carrying the
    deltas that were actually applied after clamping plus level-up info.
    """
    max_hp = profile.max_hp or config.leveling.max_hp
    old_xp, old_hp, old_coins, old_level = (
        profile.xp, profile.hp, profile.coins, profile.level,
    )

    new_xp = max(0, old_xp + result.xp_delta)
    new_hp = min(max_hp, max(0, old_hp + result.hp_delta))
    new_coins = max(0, old_coins + result.coin_delta)
    new_level = level_for_xp(new_xp, config)

    leveled_up = new_level > old_level
    bonus = config.leveling.level_up_bonus_coins if leveled_up else 0

    profile.xp = new_xp
    profile.hp = new_hp
    profile.coins = new_coins + bonus
    profile.level = new_level

    applied = replace(
        result,
        xp_delta=new_xp - old_xp,
        hp_delta=new_hp - old_hp,
        coin_delta=new_coins - old_coins,
        leveled_up=leveled_up,
        new_level=new_level if leveled_up else None,
        level_up_bonus=bonus,
    )

    log_meta = dict(metadata or {})
    if result.detail:
        log_meta["detail"] = result.detail
    session.add(GameLog(
        user_id=profile.id,
        action_kind=kind.value,
        xp_delta=applied.xp_delta,
        hp_delta=applied.hp_delta,
        coin_delta=applied.coin_delta,
        description=result.message,
        related_id=related_id,
        metadata_=log_meta or None,
    ))

    if leveled_up:
        session.add(GameLog(
            user_id=profile.id,
            action_kind=GameActionKind.LEVEL_UP.value,
            xp_delta=0,
            hp_delta=0,
            coin_delta=bonus,
            description=f"Level up! Lv.{old_level} → Lv.{new_level}",
            metadata_={"old_level": old_level, "new_level": new_level},
        ))
        logger.info(
            "%s levelled up %d → %d (+%d coins)",
            profile.id, old_level, new_level, bonus,
        )

    session.flush()
    return applied


def run_profile_unit(unit: Callable[[], T], *, user_id: str, operation: str) -> T:
    """Run a read-apply-write *unit* serialized per user.

    Store errors are logged and re-raised as :class:`PersistenceError`;
    the unit's session has already rolled back by then.
    """
    try:
        return run_with_conflict_retry(unit, user_id=user_id)
    except SQLAlchemyError as exc:
        logger.exception("%s failed for %s", operation, user_id)
        raise PersistenceError(
            f"{operation} failed for {user_id}: {exc.__class__.__name__}",
            details={"user_id": user_id, "operation": operation},
        ) from exc


def _default_related_id(action: GameAction) -> str | None:
    for attr in ("task_id", "duty_id"):
        value = getattr(action, attr, None)
        if value:
            return str(value)
    return None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def process_action(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    action: GameAction,
    *,
    related_id: str | None = None,
) -> Outcome[GameActionResult]:
    """Evaluate *action* and apply it to *user_id*'s profile.

    Returns
    -------
    Outcome
        ``success(None)`` for a no-op (no I/O, no log row),
        ``success(applied_result)`` after a committed mutation, or
        ``failure(ValidationError)`` when the profile does not exist.

    Raises
    ------
    PersistenceError
        On any store failure; nothing is committed.
    """
    result = evaluate(action, config)
    if result.is_noop:
        return Outcome.success(None)

    related = related_id or _default_related_id(action)

    def unit() -> Outcome[GameActionResult]:
        with Session(engine) as session:
            profile = session.get(Profile, user_id)
            if profile is None:
                return Outcome.failure(ValidationError(
                    f"No game profile for user {user_id}",
                    details={"user_id": user_id},
                ))
            applied = apply_delta(
                session, config, profile,
                kind=action.kind,
                result=result,
                related_id=related,
            )
            session.commit()
            return Outcome.success(applied)

    outcome = run_profile_unit(unit, user_id=user_id, operation=f"process {action.kind}")
    if not outcome.ok:
        logger.warning("Rejected %s for %s: %s", action.kind, user_id, outcome.error)
    return outcome

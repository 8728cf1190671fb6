"""
crewquest.services.admin_service — Admin Adjustment Handler
============================================================

Privileged, reason-tagged balance override.  Skips the rule evaluator
but otherwise follows the same path as every other mutation:

  1. Take the user's lock, read the profile
  2. Snapshot "before"
  3. :func:`apply_delta` (clamp, level recompute, MANUAL_ADJUST log row)
  4. Write admin_log with before/after snapshots
  5. Commit
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from crewquest.database.models import AdminActionType, AdminLog, GameActionKind, Profile
from crewquest.engine.rules import GameActionResult
from crewquest.errors import Outcome, ValidationError
from crewquest.services.profile_service import apply_delta, run_profile_unit

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from crewquest.config import GameConfig

logger = logging.getLogger(__name__)

_SNAPSHOT_FIELDS = ("xp", "hp", "max_hp", "coins", "level")


def _profile_snapshot(profile: Profile) -> dict[str, Any]:
    snap: dict[str, Any] = {f: getattr(profile, f) for f in _SNAPSHOT_FIELDS}
    snap["id"] = profile.id
    return snap


def _describe(xp: int, hp: int, coins: int) -> str:
    parts = [f"{v:+d} {label}" for v, label in ((xp, "XP"), (hp, "HP"), (coins, "Coins")) if v]
    return ", ".join(parts)


def adjust(
    engine: Engine,
    config: GameConfig,
    *,
    target_user_id: str,
    reason: str,
    actor_id: str,
    hp: int = 0,
    xp: int = 0,
    coins: int = 0,
) -> Outcome[GameActionResult]:
    """Apply raw deltas to *target_user_id* on behalf of *actor_id*.

    *reason* is mandatory and stored verbatim in the log description.
    No bound on magnitude beyond the usual clamps.

    Failures: ``ValidationError`` for a blank reason or unknown user.
    """
    if not reason or not reason.strip():
        return Outcome.failure(ValidationError(
            "A reason is required for manual adjustments",
            details={"target_user_id": target_user_id},
        ))
    if not actor_id:
        return Outcome.failure(ValidationError("Missing actor for manual adjustment"))

    result = GameActionResult(
        xp_delta=int(xp),
        hp_delta=int(hp),
        coin_delta=int(coins),
        message=f"{reason} (by {actor_id})",
        detail=_describe(int(xp), int(hp), int(coins)),
    )

    def unit() -> Outcome[GameActionResult]:
        with Session(engine) as session:
            profile = session.get(Profile, target_user_id)
            if profile is None:
                return Outcome.failure(ValidationError(
                    f"No game profile for user {target_user_id}",
                    details={"user_id": target_user_id},
                ))
            before = _profile_snapshot(profile)
            applied = apply_delta(
                session, config, profile,
                kind=GameActionKind.MANUAL_ADJUST,
                result=result,
                metadata={"actor_id": actor_id, "reason": reason},
            )
            session.add(AdminLog(
                actor_id=actor_id,
                action_type=AdminActionType.MANUAL_ADJUST.value,
                target_table="profiles",
                target_id=target_user_id,
                before_snapshot=before,
                after_snapshot=_profile_snapshot(profile),
                reason=reason,
            ))
            session.commit()
            return Outcome.success(applied)

    outcome = run_profile_unit(unit, user_id=target_user_id, operation="adjust")
    if outcome.ok:
        logger.info(
            "Admin %s adjusted %s (xp=%+d hp=%+d coins=%+d): %s",
            actor_id, target_user_id, xp, hp, coins, reason,
        )
    else:
        logger.warning("Rejected adjustment of %s: %s", target_user_id, outcome.error)
    return outcome

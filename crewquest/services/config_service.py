"""
crewquest.services.config_service — Config Store Reads & Audited Writes
========================================================================

The ``game_configs`` table holds one JSON value per config section.
:func:`load_config_snapshot` merges whatever is stored over the built-in
defaults and returns an immutable :class:`GameConfig`; callers take one
snapshot per operation.  Writes are audited in ``admin_log``.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from crewquest.config import CONFIG_SECTIONS, GameConfig, game_config_from_mapping
from crewquest.database.models import AdminActionType, AdminLog, GameConfigEntry
from crewquest.errors import Outcome, ValidationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def get_raw_sections(engine) -> dict[str, Any]:
    """Every stored section, JSON-decoded.  Undecodable rows are skipped."""
    sections: dict[str, Any] = {}
    with Session(engine) as session:
        for row in session.scalars(select(GameConfigEntry).order_by(GameConfigEntry.key)):
            try:
                sections[row.key] = json.loads(row.value_json)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Config section %s holds invalid JSON; using defaults", row.key)
    return sections


def load_config_snapshot(engine) -> GameConfig:
    """Build a :class:`GameConfig` from the store (defaults fill the gaps)."""
    return game_config_from_mapping(get_raw_sections(engine))


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

def save_config_section(
    engine,
    *,
    key: str,
    value: dict[str, Any],
    actor_id: str,
) -> Outcome[GameConfig]:
    """Replace one config section and record the change in ``admin_log``.

    The new value is validated by building a full snapshot from it before
    anything is written.  Returns the resulting snapshot.
    """
    key = key.upper()
    if key not in CONFIG_SECTIONS:
        return Outcome.failure(ValidationError(
            f"Unknown config section {key}",
            details={"key": key, "allowed": list(CONFIG_SECTIONS)},
        ))
    if not isinstance(value, dict):
        return Outcome.failure(ValidationError(
            f"Config section {key} must be an object",
            details={"key": key},
        ))

    try:
        candidate = game_config_from_mapping({**get_raw_sections(engine), key: value})
    except (TypeError, ValueError) as exc:
        return Outcome.failure(ValidationError(
            f"Invalid value for {key}: {exc}",
            details={"key": key},
        ))

    with Session(engine) as session:
        row = session.get(GameConfigEntry, key)
        before = json.loads(row.value_json) if row is not None else None
        if row is None:
            session.add(GameConfigEntry(key=key, value_json=json.dumps(value)))
        else:
            row.value_json = json.dumps(value)
        session.add(AdminLog(
            actor_id=actor_id,
            action_type=AdminActionType.CONFIG_UPDATE.value,
            target_table="game_configs",
            target_id=key,
            before_snapshot=before,
            after_snapshot=value,
        ))
        session.commit()

    logger.info("Config section %s updated by %s", key, actor_id)
    return Outcome.success(candidate)

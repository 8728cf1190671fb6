"""
crewquest.database.seed — Default Config & Starter Catalog Seeder
==================================================================

Baseline rows inserted on first startup so the economy works out of the
box: one ``game_configs`` row per config section, plus a small shop.

Idempotent — only inserts sections / items that don't already exist.
Values edited later through the admin flow are never overwritten.
"""

from __future__ import annotations

import json
import logging

from sqlalchemy import Engine, func, select

from crewquest.config import GameConfig, game_config_to_mapping
from crewquest.database.engine import get_session
from crewquest.database.models import EffectType, GameConfigEntry, ShopItem

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Starter catalog
# ---------------------------------------------------------------------------
STARTER_ITEMS: list[dict] = [
    {
        "name": "Heal Potion",
        "description": "Restores 20 HP (never above max HP).",
        "icon": "🧪",
        "price": 100,
        "effect_type": EffectType.HEAL_HP.value,
        "effect_value": 20,
    },
    {
        "name": "Duty Shield",
        "description": "Spent automatically the next time a duty would be marked missed.",
        "icon": "🛡️",
        "price": 300,
        "effect_type": EffectType.SKIP_DUTY.value,
        "effect_value": 1,
    },
    {
        "name": "Time Warp",
        "description": "Reverses your most recent lateness or absence penalty.",
        "icon": "⏳",
        "price": 500,
        "effect_type": EffectType.REMOVE_LATE.value,
        "effect_value": 0,
    },
    {
        "name": "Snack Voucher",
        "description": "Redeem with the office manager for a real-world treat.",
        "icon": "🍪",
        "price": 150,
        "effect_type": EffectType.OTHER.value,
        "effect_value": 0,
    },
]


# ---------------------------------------------------------------------------
# Seeders
# ---------------------------------------------------------------------------
def seed_default_config(engine: Engine, config: GameConfig | None = None) -> None:
    """Insert a ``game_configs`` row for every section that is missing."""
    sections = game_config_to_mapping(config or GameConfig())
    inserted = 0
    with get_session(engine) as session:
        for key, value in sections.items():
            if session.get(GameConfigEntry, key) is None:
                session.add(GameConfigEntry(key=key, value_json=json.dumps(value)))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default config sections.", inserted)


def seed_shop_catalog(engine: Engine) -> None:
    """Insert the starter items when the catalog is empty."""
    with get_session(engine) as session:
        if session.scalar(select(func.count()).select_from(ShopItem)):
            return
        session.add_all(ShopItem(is_active=True, **row) for row in STARTER_ITEMS)
    logger.info("Seeded %d starter shop items.", len(STARTER_ITEMS))

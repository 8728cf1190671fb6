"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of crewquest.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from crewquest.config import GameConfig  # noqa: E402
from crewquest.database.models import Base, EffectType, Profile, ShopItem  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all CrewQuest tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` in the bridges and by the threaded
    purchase tests).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def game_config() -> GameConfig:
    """Built-in defaults (base 1000 XP/level, 500 bonus coins, max HP 100)."""
    return GameConfig()


@pytest.fixture
def make_profile(db_engine):
    """Factory: insert a profile with the given balances and return its id."""

    def _make(user_id: str = "u-1", *, xp: int = 0, hp: int = 100, coins: int = 0,
              level: int | None = None, max_hp: int = 100) -> str:
        with Session(db_engine) as session:
            session.add(Profile(
                id=user_id,
                display_name=f"Member {user_id}",
                xp=xp,
                hp=hp,
                max_hp=max_hp,
                coins=coins,
                level=level if level is not None else xp // 1000 + 1,
            ))
            session.commit()
        return user_id

    return _make


@pytest.fixture
def make_item(db_engine):
    """Factory: insert a shop item and return its id."""

    def _make(name: str = "Heal Potion", *, price: int = 100,
              effect_type: EffectType = EffectType.HEAL_HP, effect_value: int = 30,
              is_active: bool = True) -> int:
        with Session(db_engine) as session:
            item = ShopItem(
                name=name,
                price=price,
                effect_type=effect_type.value,
                effect_value=effect_value,
                is_active=is_active,
            )
            session.add(item)
            session.commit()
            return item.id

    return _make


@pytest.fixture
def fetch_profile(db_engine):
    """Re-read a profile straight from the store."""

    def _fetch(user_id: str = "u-1") -> Profile:
        with Session(db_engine) as session:
            profile = session.get(Profile, user_id)
            session.expunge(profile)
            return profile

    return _fetch

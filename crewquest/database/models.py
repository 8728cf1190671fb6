"""
crewquest.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- profiles        — One game profile per crew member (XP / HP / coins / level)
- shop_items      — Item catalog (managed by the catalog admin flow)
- user_inventory  — One row per purchase; consumed at most once
- game_logs       — Append-only economy journal
- game_configs    — Config store: one JSON value per config section
- admin_log       — Append-only audit trail for privileged mutations
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all CrewQuest ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class GameActionKind(enum.StrEnum):
    """Every kind of entry that can appear in the game log."""
    TASK_COMPLETE = "TASK_COMPLETE"
    TASK_LATE = "TASK_LATE"
    DUTY_COMPLETE = "DUTY_COMPLETE"
    DUTY_ASSIST = "DUTY_ASSIST"
    DUTY_MISSED = "DUTY_MISSED"
    DUTY_LATE_SUBMIT = "DUTY_LATE_SUBMIT"
    ATTENDANCE_CHECK_IN = "ATTENDANCE_CHECK_IN"
    ATTENDANCE_ABSENT = "ATTENDANCE_ABSENT"
    ATTENDANCE_NO_SHOW = "ATTENDANCE_NO_SHOW"
    ATTENDANCE_EARLY_LEAVE = "ATTENDANCE_EARLY_LEAVE"
    ATTENDANCE_LEAVE = "ATTENDANCE_LEAVE"
    SHOP_PURCHASE = "SHOP_PURCHASE"
    ITEM_USE = "ITEM_USE"
    MANUAL_ADJUST = "MANUAL_ADJUST"
    TIME_WARP_REFUND = "TIME_WARP_REFUND"
    KPI_REWARD = "KPI_REWARD"
    LEVEL_UP = "LEVEL_UP"  # log-only, written by the orchestrator


class EffectType(enum.StrEnum):
    """What a shop item does when consumed."""
    HEAL_HP = "HEAL_HP"
    SKIP_DUTY = "SKIP_DUTY"
    REMOVE_LATE = "REMOVE_LATE"
    OTHER = "OTHER"


class AdminActionType(enum.StrEnum):
    """Categories of privileged mutations recorded in admin_log."""
    MANUAL_ADJUST = "MANUAL_ADJUST"
    CONFIG_UPDATE = "CONFIG_UPDATE"


# ---------------------------------------------------------------------------
# Profiles — one row per crew member
# ---------------------------------------------------------------------------
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    xp: Mapped[int] = mapped_column(Integer, default=0)
    hp: Mapped[int] = mapped_column(Integer, default=100)
    max_hp: Mapped[int] = mapped_column(Integer, default=100)
    coins: Mapped[int] = mapped_column(Integer, default=0)
    level: Mapped[int] = mapped_column(Integer, default=1)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    inventory: Mapped[list[InventoryEntry]] = relationship(
        back_populates="profile", cascade="all, delete-orphan"
    )

    # Every UPDATE carries "WHERE version = :old" and bumps the counter.
    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_profiles_xp_desc", "xp"),
    )

    def __repr__(self) -> str:
        return (
            f"<Profile id={self.id!r} lvl={self.level} xp={self.xp} "
            f"hp={self.hp}/{self.max_hp} coins={self.coins}>"
        )


# ---------------------------------------------------------------------------
# ShopItem — catalog entity
# ---------------------------------------------------------------------------
class ShopItem(Base):
    __tablename__ = "shop_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    icon: Mapped[str | None] = mapped_column(String(50), default=None)
    price: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    effect_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EffectType.OTHER.value
    )
    effect_value: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<ShopItem id={self.id} name={self.name!r} effect={self.effect_type}>"


# ---------------------------------------------------------------------------
# InventoryEntry — one row per purchase
# ---------------------------------------------------------------------------
class InventoryEntry(Base):
    __tablename__ = "user_inventory"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shop_items.id", ondelete="RESTRICT"), nullable=False
    )
    is_used: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    profile: Mapped[Profile] = relationship(back_populates="inventory")
    item: Mapped[ShopItem] = relationship()

    __table_args__ = (
        Index("ix_user_inventory_user_unused", "user_id", "is_used"),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryEntry id={self.id} user={self.user_id!r} "
            f"item={self.item_id} used={self.is_used}>"
        )


# ---------------------------------------------------------------------------
# GameLog — append-only economy journal
# ---------------------------------------------------------------------------
class GameLog(Base):
    __tablename__ = "game_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False
    )
    action_kind: Mapped[str] = mapped_column(String(40), nullable=False)
    xp_delta: Mapped[int] = mapped_column(Integer, default=0)
    hp_delta: Mapped[int] = mapped_column(Integer, default=0)
    coin_delta: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    related_id: Mapped[str | None] = mapped_column(String(64), default=None)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_game_logs_user_time", "user_id", "created_at"),
        Index("ix_game_logs_kind_time", "action_kind", "created_at"),
        Index("ix_game_logs_related", "related_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<GameLog id={self.id} user={self.user_id!r} kind={self.action_kind} "
            f"xp={self.xp_delta} hp={self.hp_delta} coins={self.coin_delta}>"
        )


# ---------------------------------------------------------------------------
# GameConfigEntry — key/value config store (one row per section)
# ---------------------------------------------------------------------------
class GameConfigEntry(Base):
    __tablename__ = "game_configs"

    key: Mapped[str] = mapped_column(String(60), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<GameConfigEntry key={self.key!r}>"


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(30), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), default=None)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_target", "target_table", "target_id"),
        Index("ix_admin_log_time", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AdminLog id={self.id} actor={self.actor_id!r} "
            f"action={self.action_type} target={self.target_table}>"
        )

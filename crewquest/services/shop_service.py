"""
crewquest.services.shop_service — Shop & Inventory Manager
===========================================================

Built on the orchestrator's primitives.  Every mutating call runs as one
read-apply-write unit under the buyer's lock:

* :func:`buy_item` — balance check, deduction, inventory insert and the
  SHOP_PURCHASE log row commit together or not at all.
* :func:`use_item` — dispatches on the item's effect type.  The inventory
  row is flipped with ``UPDATE … WHERE is_used = false`` so an entry can
  never be consumed twice, even by concurrent callers.

Expected failures come back as ``Outcome.failure(...)`` with nothing written.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from crewquest.database.models import (
    EffectType,
    GameActionKind,
    GameLog,
    InventoryEntry,
    Profile,
    ShopItem,
)
from crewquest.engine.actions import ItemUse, ShopPurchase
from crewquest.engine.rules import GameActionResult, evaluate
from crewquest.errors import (
    AlreadyUsed,
    InsufficientFunds,
    NothingToRefund,
    NotFound,
    Outcome,
    PassiveItemError,
    UnsupportedEffect,
    ValidationError,
)
from crewquest.services.profile_service import apply_delta, run_profile_unit

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from crewquest.config import GameConfig

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Catalog & inventory reads
# ---------------------------------------------------------------------------
def list_active_items(engine: Engine) -> list[ShopItem]:
    """Active catalog items, cheapest first."""
    with Session(engine) as session:
        rows = session.scalars(
            select(ShopItem)
            .where(ShopItem.is_active.is_(True))
            .order_by(ShopItem.price, ShopItem.id)
        ).all()
        for r in rows:
            session.expunge(r)
        return list(rows)


def list_inventory(
    engine: Engine, user_id: str, *, include_used: bool = False
) -> list[InventoryEntry]:
    """The user's inventory entries (unused only by default), with items loaded."""
    with Session(engine) as session:
        query = select(InventoryEntry).where(InventoryEntry.user_id == user_id)
        if not include_used:
            query = query.where(InventoryEntry.is_used.is_(False))
        rows = session.scalars(query.order_by(InventoryEntry.id)).all()
        for r in rows:
            _ = r.item  # load before detaching
        session.expunge_all()
        return list(rows)


def purchase_price(item: ShopItem, config: GameConfig) -> int:
    """Catalog price plus shop tax (rounded up)."""
    tax_rate = max(0, config.item_mechanics.shop_tax_rate)
    return item.price + math.ceil(item.price * tax_rate / 100)


# ---------------------------------------------------------------------------
# Purchase
# ---------------------------------------------------------------------------
def buy_item(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    item_id: int,
) -> Outcome[InventoryEntry]:
    """Buy one *item_id* for *user_id*.

    Returns the new (detached) inventory entry, or a failure:
    ``ValidationError`` (no profile), ``NotFound`` (missing/inactive item),
    ``InsufficientFunds``.
    """

    def unit() -> Outcome[InventoryEntry]:
        with Session(engine, expire_on_commit=False) as session:
            profile = session.get(Profile, user_id)
            if profile is None:
                return Outcome.failure(ValidationError(
                    f"No game profile for user {user_id}",
                    details={"user_id": user_id},
                ))
            item = session.get(ShopItem, item_id)
            if item is None or not item.is_active:
                return Outcome.failure(NotFound(
                    f"Shop item {item_id} is not available",
                    details={"item_id": item_id},
                ))

            price = purchase_price(item, config)
            if profile.coins < price:
                return Outcome.failure(InsufficientFunds(
                    f"{item.name} costs {price} coins; balance is {profile.coins}",
                    details={"price": price, "balance": profile.coins},
                ))

            result = evaluate(ShopPurchase(item_name=item.name, price=price), config)
            entry = InventoryEntry(user_id=user_id, item_id=item.id, is_used=False)
            session.add(entry)
            session.flush()
            apply_delta(
                session, config, profile,
                kind=GameActionKind.SHOP_PURCHASE,
                result=result,
                related_id=str(entry.id),
                metadata={"item_id": item.id, "price": price},
            )
            session.commit()
            session.expunge(entry)
            logger.info("%s bought %s for %d coins", user_id, item.name, price)
            return Outcome.success(entry)

    return run_profile_unit(unit, user_id=user_id, operation="buy_item")


# ---------------------------------------------------------------------------
# Consumption
# ---------------------------------------------------------------------------
def _claim_entry(session: Session, entry: InventoryEntry) -> bool:
    """Flip ``is_used`` false → true; False if someone else got there first."""
    claimed = session.execute(
        update(InventoryEntry)
        .where(InventoryEntry.id == entry.id, InventoryEntry.is_used.is_(False))
        .values(is_used=True, used_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    return claimed.rowcount == 1


def _use_heal(
    session: Session, config: GameConfig, profile: Profile, entry: InventoryEntry,
) -> Outcome[GameActionResult]:
    item = entry.item
    base = evaluate(ItemUse(item_name=item.name), config)
    result = GameActionResult(
        hp_delta=item.effect_value,
        message=base.message,
        detail=f"+{item.effect_value} HP",
    )
    applied = apply_delta(
        session, config, profile,
        kind=GameActionKind.ITEM_USE,
        result=result,
        related_id=str(entry.id),
        metadata={"item_id": item.id, "effect": item.effect_type},
    )
    return Outcome.success(applied)


def _latest_refundable_penalty(
    session: Session, config: GameConfig, user_id: str,
) -> GameLog | None:
    """Newest penalty row of a refundable kind that was not reversed yet."""
    refunded = {
        related
        for related in session.scalars(
            select(GameLog.related_id).where(
                GameLog.user_id == user_id,
                GameLog.action_kind == GameActionKind.TIME_WARP_REFUND.value,
                GameLog.related_id.is_not(None),
            )
        )
    }
    candidates = session.scalars(
        select(GameLog)
        .where(
            GameLog.user_id == user_id,
            GameLog.hp_delta < 0,
            GameLog.action_kind.in_(sorted(config.item_mechanics.refundable_kinds)),
        )
        .order_by(GameLog.created_at.desc(), GameLog.id.desc())
    )
    for log in candidates:
        if str(log.id) not in refunded:
            return log
    return None


def _use_time_warp(
    session: Session, config: GameConfig, profile: Profile, entry: InventoryEntry,
) -> Outcome[GameActionResult]:
    penalty = _latest_refundable_penalty(session, config, profile.id)
    if penalty is None:
        return Outcome.failure(NothingToRefund(
            "No recent penalty to reverse",
            details={"user_id": profile.id},
        ))

    mech = config.item_mechanics
    refund_hp = min(
        math.floor(abs(penalty.hp_delta) * mech.time_warp_refund_percent / 100),
        mech.time_warp_refund_cap_hp,
    )
    refund_coins = abs(penalty.coin_delta) if penalty.coin_delta < 0 else 0
    result = GameActionResult(
        hp_delta=refund_hp,
        coin_delta=refund_coins,
        message=f"Time Warp: reversed '{penalty.description}'",
        detail=f"+{refund_hp} HP, +{refund_coins} Coins",
    )
    applied = apply_delta(
        session, config, profile,
        kind=GameActionKind.TIME_WARP_REFUND,
        result=result,
        related_id=str(penalty.id),
        metadata={"inventory_id": entry.id, "penalty_kind": penalty.action_kind},
    )
    return Outcome.success(applied)


_EffectHandler = Callable[
    [Session, "GameConfig", Profile, InventoryEntry], Outcome[GameActionResult]
]

_EFFECT_HANDLERS: dict[str, _EffectHandler] = {
    EffectType.HEAL_HP.value: _use_heal,
    EffectType.REMOVE_LATE.value: _use_time_warp,
}


def use_item(
    engine: Engine,
    config: GameConfig,
    user_id: str,
    inventory_id: int,
) -> Outcome[GameActionResult]:
    """Consume inventory entry *inventory_id* owned by *user_id*.

    Failures: ``NotFound`` (no such entry for this user), ``AlreadyUsed``,
    ``PassiveItemError`` (SKIP_DUTY), ``UnsupportedEffect``,
    ``NothingToRefund`` (REMOVE_LATE with no qualifying penalty).
    A failure leaves the entry unused and the profile untouched.
    """

    def unit() -> Outcome[GameActionResult]:
        with Session(engine) as session:
            entry = session.get(InventoryEntry, inventory_id)
            if entry is None or entry.user_id != user_id:
                return Outcome.failure(NotFound(
                    f"Inventory entry {inventory_id} not found",
                    details={"inventory_id": inventory_id},
                ))
            if entry.is_used:
                return Outcome.failure(AlreadyUsed(
                    f"{entry.item.name} has already been used",
                    details={"inventory_id": inventory_id},
                ))

            effect = entry.item.effect_type
            if effect == EffectType.SKIP_DUTY.value:
                return Outcome.failure(PassiveItemError(
                    f"{entry.item.name} works automatically: it is spent the "
                    "next time a duty would be marked as missed",
                    details={"inventory_id": inventory_id},
                ))
            handler = _EFFECT_HANDLERS.get(effect)
            if handler is None:
                return Outcome.failure(UnsupportedEffect(
                    f"Items with effect {effect} cannot be used yet",
                    details={"effect_type": effect},
                ))

            profile = session.get(Profile, user_id)
            if profile is None:
                return Outcome.failure(ValidationError(
                    f"No game profile for user {user_id}",
                    details={"user_id": user_id},
                ))

            outcome = handler(session, config, profile, entry)
            if not outcome.ok:
                session.rollback()
                return outcome
            if not _claim_entry(session, entry):
                session.rollback()
                return Outcome.failure(AlreadyUsed(
                    f"{entry.item.name} has already been used",
                    details={"inventory_id": inventory_id},
                ))
            session.commit()
            logger.info("%s used %s (entry %d)", user_id, effect, inventory_id)
            return outcome

    return run_profile_unit(unit, user_id=user_id, operation="use_item")


def consume_passive_skip(engine: Engine, config: GameConfig, user_id: str) -> bool:
    """Spend one unused SKIP_DUTY item, if the user owns one.

    Called by the duty cycle before a missed-duty penalty.  Returns True when
    an item was consumed (and an ITEM_USE row logged).
    """

    def unit() -> bool:
        with Session(engine) as session:
            entry = session.scalar(
                select(InventoryEntry)
                .join(ShopItem, InventoryEntry.item_id == ShopItem.id)
                .where(
                    InventoryEntry.user_id == user_id,
                    InventoryEntry.is_used.is_(False),
                    ShopItem.effect_type == EffectType.SKIP_DUTY.value,
                )
                .order_by(InventoryEntry.id)
                .limit(1)
            )
            if entry is None or not _claim_entry(session, entry):
                return False
            session.add(GameLog(
                user_id=user_id,
                action_kind=GameActionKind.ITEM_USE.value,
                description=evaluate(ItemUse(item_name=entry.item.name), config).message,
                related_id=str(entry.id),
                metadata_={"item_id": entry.item_id, "effect": EffectType.SKIP_DUTY.value},
            ))
            session.commit()
            logger.info("%s skipped a duty with item entry %d", user_id, entry.id)
            return True

    return run_profile_unit(unit, user_id=user_id, operation="consume_passive_skip")

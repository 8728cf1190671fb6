"""
crewquest.api.routes.game — Member endpoints (profile, shop, inventory, history)
=================================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from crewquest.api.deps import get_current_user, get_engine, get_game_config, unwrap
from crewquest.config import GameConfig
from crewquest.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, LogFilter, xp_for_level
from crewquest.database.models import GameLog, InventoryEntry, Profile, ShopItem
from crewquest.engine.rules import GameActionResult
from crewquest.services import history_service, profile_service, shop_service

router = APIRouter(tags=["game"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class PurchaseRequest(BaseModel):
    item_id: int


# ---------------------------------------------------------------------------
# Serializers
# ---------------------------------------------------------------------------
def _profile_dict(p: Profile, config: GameConfig) -> dict:
    return {
        "id": p.id,
        "display_name": p.display_name,
        "level": p.level,
        "xp": p.xp,
        "xp_for_next_level": xp_for_level(p.level + 1, config),
        "hp": p.hp,
        "max_hp": p.max_hp,
        "coins": p.coins,
    }


def _item_dict(item: ShopItem, config: GameConfig) -> dict:
    return {
        "id": item.id,
        "name": item.name,
        "description": item.description,
        "icon": item.icon,
        "price": shop_service.purchase_price(item, config),
        "effect_type": item.effect_type,
        "effect_value": item.effect_value,
    }


def _entry_dict(entry: InventoryEntry) -> dict:
    return {
        "id": entry.id,
        "item_id": entry.item_id,
        "item_name": entry.item.name if entry.item is not None else None,
        "effect_type": entry.item.effect_type if entry.item is not None else None,
        "is_used": entry.is_used,
        "used_at": entry.used_at.isoformat() if entry.used_at else None,
    }


def serialize_result(result: GameActionResult | None) -> dict:
    if result is None:
        return {"changed": False}
    return {
        "changed": True,
        "xp_delta": result.xp_delta,
        "hp_delta": result.hp_delta,
        "coin_delta": result.coin_delta,
        "message": result.message,
        "detail": result.detail,
        "leveled_up": result.leveled_up,
        "new_level": result.new_level,
        "level_up_bonus": result.level_up_bonus,
    }


def _log_dict(log: GameLog) -> dict:
    return {
        "id": log.id,
        "action_kind": log.action_kind,
        "xp_delta": log.xp_delta,
        "hp_delta": log.hp_delta,
        "coin_delta": log.coin_delta,
        "description": log.description,
        "related_id": log.related_id,
        "metadata": log.metadata_,
        "created_at": _iso(log.created_at),
    }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------
@router.get("/profiles/{user_id}")
def get_profile(
    user_id: str,
    engine: Engine = Depends(get_engine),
    config: GameConfig = Depends(get_game_config),
):
    profile = profile_service.get_profile(engine, user_id)
    if profile is None:
        raise HTTPException(404, "Profile not found")
    return _profile_dict(profile, config)


@router.get("/profiles/{user_id}/logs")
def get_logs(
    user_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    log_filter: str = Query(LogFilter.ALL.value, alias="filter"),
    engine: Engine = Depends(get_engine),
):
    result = unwrap(history_service.list_logs(
        engine, user_id, page=page, page_size=page_size, log_filter=log_filter,
    ))
    summary = history_service.summarize(result.entries)
    return {
        "entries": [_log_dict(e) for e in result.entries],
        "total": result.total,
        "page": result.page,
        "page_size": result.page_size,
        "has_more": result.has_more,
        "summary": {
            "income": summary.income,
            "expense": summary.expense,
            "trend": [
                {"day": t.day.isoformat(), "income": t.income, "xp": t.xp}
                for t in summary.trend
            ],
        },
    }


# ---------------------------------------------------------------------------
# Shop
# ---------------------------------------------------------------------------
@router.get("/shop/items")
def get_shop_items(
    engine: Engine = Depends(get_engine),
    config: GameConfig = Depends(get_game_config),
):
    return [_item_dict(i, config) for i in shop_service.list_active_items(engine)]


@router.post("/shop/purchase", status_code=201)
def purchase(
    body: PurchaseRequest,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    config: GameConfig = Depends(get_game_config),
):
    entry = unwrap(shop_service.buy_item(engine, config, str(user["sub"]), body.item_id))
    return {"inventory_id": entry.id, "item_id": entry.item_id}


# ---------------------------------------------------------------------------
# Inventory
# ---------------------------------------------------------------------------
@router.get("/inventory")
def get_inventory(
    include_used: bool = Query(False),
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    entries = shop_service.list_inventory(engine, str(user["sub"]), include_used=include_used)
    return [_entry_dict(e) for e in entries]


@router.post("/inventory/{inventory_id}/use")
def use_inventory_item(
    inventory_id: int,
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
    config: GameConfig = Depends(get_game_config),
):
    result = unwrap(shop_service.use_item(engine, config, str(user["sub"]), inventory_id))
    return serialize_result(result)

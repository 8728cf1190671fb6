"""
crewquest.api.routes.admin — Admin endpoints (JWT‑protected)
=============================================================
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from crewquest.api.deps import get_current_admin, get_engine, get_game_config, unwrap
from crewquest.api.routes.game import serialize_result
from crewquest.config import GameConfig, game_config_to_mapping
from crewquest.database.models import AdminLog
from crewquest.services import admin_service, config_service

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class AdjustRequest(BaseModel):
    target_user_id: str
    reason: str = Field(min_length=1)
    xp: int = 0
    hp: int = 0
    coins: int = 0


class ConfigSectionUpdate(BaseModel):
    value: dict[str, Any]


# ---------------------------------------------------------------------------
# Manual adjustments
# ---------------------------------------------------------------------------
@router.post("/adjust")
def adjust_profile(
    body: AdjustRequest,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    config: GameConfig = Depends(get_game_config),
):
    result = unwrap(admin_service.adjust(
        engine,
        config,
        target_user_id=body.target_user_id,
        reason=body.reason,
        actor_id=str(admin["sub"]),
        xp=body.xp,
        hp=body.hp,
        coins=body.coins,
    ))
    return serialize_result(result)


# ---------------------------------------------------------------------------
# Game config
# ---------------------------------------------------------------------------
@router.get("/config")
def get_config(
    admin: dict = Depends(get_current_admin),
    config: GameConfig = Depends(get_game_config),
):
    return game_config_to_mapping(config)


@router.put("/config/{section}")
def put_config_section(
    section: str,
    body: ConfigSectionUpdate,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    config = unwrap(config_service.save_config_section(
        engine, key=section, value=body.value, actor_id=str(admin["sub"]),
    ))
    return game_config_to_mapping(config)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
@router.get("/audit")
def get_audit_log(
    limit: int = Query(50, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    with Session(engine) as session:
        rows = session.scalars(
            select(AdminLog).order_by(AdminLog.id.desc()).limit(limit)
        ).all()
        return [
            {
                "id": r.id,
                "actor_id": r.actor_id,
                "action_type": r.action_type,
                "target_table": r.target_table,
                "target_id": r.target_id,
                "before": r.before_snapshot,
                "after": r.after_snapshot,
                "reason": r.reason,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ]

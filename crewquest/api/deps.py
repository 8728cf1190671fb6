"""
crewquest.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated, TypeVar

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from crewquest.config import GameConfig
from crewquest.database.engine import create_db_engine
from crewquest.errors import (
    AlreadyUsed,
    EngineError,
    InsufficientFunds,
    NothingToRefund,
    NotFound,
    Outcome,
    PassiveItemError,
    UnsupportedEffect,
    ValidationError,
)
from crewquest.services.config_service import load_config_snapshot

T = TypeVar("T")

_WEAK_SECRETS = frozenset({
    "crewquest-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


def get_game_config(engine: Annotated[Engine, Depends(get_engine)]) -> GameConfig:
    """Fresh config snapshot per request."""
    return load_config_snapshot(engine)


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return the member payload (``sub`` is the user id)."""
    return _decode_bearer(authorization)


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401/403 if invalid."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


# ---------------------------------------------------------------------------
# Outcome → HTTP
# ---------------------------------------------------------------------------
_STATUS_FOR_ERROR: dict[type[EngineError], int] = {
    NotFound: status.HTTP_404_NOT_FOUND,
    InsufficientFunds: status.HTTP_409_CONFLICT,
    AlreadyUsed: status.HTTP_409_CONFLICT,
    NothingToRefund: status.HTTP_409_CONFLICT,
    PassiveItemError: status.HTTP_409_CONFLICT,
    UnsupportedEffect: status.HTTP_409_CONFLICT,
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def unwrap(outcome: Outcome[T]) -> T | None:
    """Return the outcome's value or raise the matching HTTPException."""
    if outcome.ok:
        return outcome.value
    error = outcome.error
    code = _STATUS_FOR_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    raise HTTPException(code, detail=error.to_dict())

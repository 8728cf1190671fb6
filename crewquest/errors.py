"""
crewquest.errors — Engine Error Hierarchy & Outcome Type
=========================================================

Two families of failure:

* **Business outcomes** (insufficient funds, item already used, nothing to
  refund, ...) are expected.  Services never raise them; they return
  ``Outcome.failure(SomeError(...))`` and leave all state untouched.
* **Store failures** (:class:`PersistenceError`,
  :class:`ConflictRetryExhausted`) are unexpected.  They are raised after
  the transaction has been rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


# ============================================================================
# BASE EXCEPTION
# ============================================================================

class EngineError(Exception):
    """Base exception for all gamification engine errors.

    Carries a stable ``error_code`` and structured ``details`` so callers
    can render their own messages or serialize the error for an API.
    """

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a structured dictionary for logging/API responses."""
        return {
            "error": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# ============================================================================
# BUSINESS OUTCOMES (returned, never raised by services)
# ============================================================================

class ValidationError(EngineError):
    """Missing user, item or reason; malformed input."""

class InsufficientFunds(EngineError):
    """Coin balance is below the purchase price."""

class AlreadyUsed(EngineError):
    """The inventory entry has already been consumed."""

class NotFound(EngineError):
    """Inventory entry or shop item does not exist (or is not the caller's)."""

class PassiveItemError(EngineError):
    """The item works automatically and cannot be used on demand."""

class UnsupportedEffect(EngineError):
    """The item's effect type has no consumption handler."""

class NothingToRefund(EngineError):
    """Time Warp found no refundable penalty."""


# ============================================================================
# STORE FAILURES (raised)
# ============================================================================

class PersistenceError(EngineError):
    """The store rejected a read or write; nothing was committed."""

class ConflictRetryExhausted(PersistenceError):
    """Optimistic-lock conflicts persisted across every retry attempt."""


# ============================================================================
# Outcome — explicit success/failure result
# ============================================================================

@dataclass(frozen=True, slots=True)
class Outcome(Generic[T]):
    """Result of a service operation.

    ``ok`` is True on success and ``value`` holds the payload (may be
    ``None`` for a no-op).  On failure ``error`` holds the business error.
    """

    ok: bool
    value: T | None = None
    error: EngineError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> Outcome[T]:
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: EngineError) -> Outcome[T]:
        return cls(ok=False, error=error)

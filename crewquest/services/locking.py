"""
crewquest.services.locking — Per-User Serialization
====================================================

Two layers guard each user's balances:

1. :class:`UserLockRegistry` — an in-process ``threading.Lock`` per user,
   held for the whole read-apply-write unit.  Different users never block
   each other.
2. Optimistic concurrency on ``profiles.version`` (``version_id_col``) for
   writers in other processes.  A stale write raises ``StaleDataError``;
   :func:`run_with_conflict_retry` reruns the unit a bounded number of times.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy.orm.exc import StaleDataError

from crewquest.constants import MAX_CONFLICT_RETRIES
from crewquest.errors import ConflictRetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


class UserLockRegistry:
    """Thread-safe map of ``user_id → Lock``.

    Usage::

        with user_locks.hold("u-42"):
            ...  # read profile, apply, commit
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    @contextmanager
    def hold(self, user_id: str) -> Iterator[None]:
        lock = self._lock_for(user_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Process-wide registry shared by every service
user_locks = UserLockRegistry()


def run_with_conflict_retry(
    unit: Callable[[], T],
    *,
    user_id: str,
    attempts: int = MAX_CONFLICT_RETRIES,
) -> T:
    """Run *unit* under the user's lock, retrying on version conflicts.

    *unit* must open its own session so every attempt re-reads fresh state.

    Raises
    ------
    ConflictRetryExhausted
        If every attempt hit a stale version.
    """
    for attempt in range(1, attempts + 1):
        try:
            with user_locks.hold(user_id):
                return unit()
        except StaleDataError:
            logger.warning(
                "Profile %s changed concurrently (attempt %d/%d); retrying",
                user_id, attempt, attempts,
            )
    raise ConflictRetryExhausted(
        f"Could not update profile {user_id} after {attempts} attempts",
        details={"user_id": user_id, "attempts": attempts},
    )

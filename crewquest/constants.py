"""
crewquest.constants — Shared Constants & Helpers
=================================================

Single source of truth for the leveling formula and the history filters.
Import from here instead of duplicating in services, bridges and the API.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from crewquest.config import GameConfig


# ---------------------------------------------------------------------------
# Leveling formula — THE single canonical implementation
# ---------------------------------------------------------------------------
def level_for_xp(xp: int, config: GameConfig) -> int:
    """Level reached with *xp* total experience.

    Linear formula::

        level = floor(xp / base_xp_per_level) + 1

    ``xp = 0`` is level 1.  Negative input is treated as 0.
    """
    base = max(1, config.leveling.base_xp_per_level)
    return max(0, xp) // base + 1


def xp_for_level(level: int, config: GameConfig) -> int:
    """Total XP at which *level* is reached (inverse of :func:`level_for_xp`)."""
    return max(0, level - 1) * max(1, config.leveling.base_xp_per_level)


# ---------------------------------------------------------------------------
# History filters
# ---------------------------------------------------------------------------
class LogFilter(enum.StrEnum):
    """Views offered by the member history screen."""
    ALL = "ALL"
    EARNED = "EARNED"
    SPENT = "SPENT"
    PENALTY = "PENALTY"


DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200

# Days covered by the trend buckets in history summaries
TREND_DAYS = 7

# Bounded retry for optimistic-lock conflicts on profiles.version
MAX_CONFLICT_RETRIES = 3

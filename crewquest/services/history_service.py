"""
crewquest.services.history_service — History / Audit Query Service
===================================================================

Read-only views over ``game_logs`` for one user: paginated, newest first,
with the member-screen filters (ALL / EARNED / SPENT / PENALTY), plus a
small coin income/expense rollup and a 7-day trend computed over whatever
page(s) the caller has loaded.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from crewquest.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, TREND_DAYS, LogFilter
from crewquest.database.models import GameLog
from crewquest.errors import Outcome, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LogPage:
    entries: list[GameLog]
    total: int
    page: int
    page_size: int

    @property
    def has_more(self) -> bool:
        return self.page * self.page_size < self.total


@dataclass(frozen=True, slots=True)
class TrendPoint:
    day: date
    income: int = 0
    xp: int = 0


@dataclass(frozen=True, slots=True)
class HistorySummary:
    income: int = 0
    expense: int = 0
    trend: list[TrendPoint] = field(default_factory=list)


def _filter_clause(log_filter: LogFilter):
    if log_filter == LogFilter.EARNED:
        return or_(GameLog.xp_delta > 0, GameLog.coin_delta > 0)
    if log_filter == LogFilter.SPENT:
        return and_(GameLog.coin_delta < 0, GameLog.hp_delta >= 0)
    if log_filter == LogFilter.PENALTY:
        return GameLog.hp_delta < 0
    return None


def list_logs(
    engine,
    user_id: str,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
    log_filter: LogFilter | str = LogFilter.ALL,
) -> Outcome[LogPage]:
    """Page *page* (1-based) of *user_id*'s log, newest first.

    *page_size* is clamped to ``[1, MAX_PAGE_SIZE]``; an unknown filter
    comes back as a ``ValidationError`` failure.
    """
    try:
        log_filter = LogFilter(str(log_filter).upper())
    except ValueError:
        return Outcome.failure(ValidationError(
            f"Unknown log filter {log_filter!r}",
            details={"filter": str(log_filter), "allowed": [f.value for f in LogFilter]},
        ))
    page = max(1, page)
    page_size = min(MAX_PAGE_SIZE, max(1, page_size))

    conditions = [GameLog.user_id == user_id]
    clause = _filter_clause(log_filter)
    if clause is not None:
        conditions.append(clause)

    with Session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(GameLog).where(*conditions)
        ) or 0
        rows = session.scalars(
            select(GameLog)
            .where(*conditions)
            .order_by(GameLog.created_at.desc(), GameLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        for r in rows:
            session.expunge(r)

    return Outcome.success(
        LogPage(entries=list(rows), total=total, page=page, page_size=page_size)
    )


def _day_of(value: datetime) -> date:
    # SQLite hands back naive timestamps; treat them as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).date()


def summarize(
    entries: Iterable[GameLog],
    today: date | None = None,
    *,
    days: int = TREND_DAYS,
) -> HistorySummary:
    """Coin income/expense and a per-day trend ending at *today*.

    Only the entries passed in are considered (the loaded pages), not the
    user's whole history.
    """
    today = today or datetime.now(UTC).date()
    window = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    buckets = {d: [0, 0] for d in window}

    income = expense = 0
    for entry in entries:
        if entry.coin_delta > 0:
            income += entry.coin_delta
        elif entry.coin_delta < 0:
            expense += -entry.coin_delta
        if entry.created_at is None:
            continue
        bucket = buckets.get(_day_of(entry.created_at))
        if bucket is not None:
            bucket[0] += max(0, entry.coin_delta)
            bucket[1] += entry.xp_delta

    trend = [TrendPoint(day=d, income=buckets[d][0], xp=buckets[d][1]) for d in window]
    return HistorySummary(income=income, expense=expense, trend=trend)

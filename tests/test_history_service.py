"""
tests/test_history_service.py — History / Audit Query Tests
============================================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest
from sqlalchemy.orm import Session

from crewquest.constants import LogFilter
from crewquest.database.models import GameLog
from crewquest.errors import ValidationError
from crewquest.services.history_service import list_logs, summarize


@pytest.fixture
def seeded_logs(db_engine, make_profile):
    """Five log rows for u-1 (plus one for someone else), oldest first."""
    make_profile("u-1")
    make_profile("u-2")
    rows = [
        ("TASK_COMPLETE", 190, 0, 30, datetime(2026, 4, 1, 9, tzinfo=UTC)),
        ("ATTENDANCE_CHECK_IN", 0, -5, 0, datetime(2026, 4, 2, 9, tzinfo=UTC)),
        ("SHOP_PURCHASE", 0, 0, -100, datetime(2026, 4, 3, 9, tzinfo=UTC)),
        ("ATTENDANCE_NO_SHOW", 0, -30, -10, datetime(2026, 4, 4, 9, tzinfo=UTC)),
        ("KPI_REWARD", 500, 0, 200, datetime(2026, 4, 5, 9, tzinfo=UTC)),
    ]
    with Session(db_engine) as session:
        for kind, xp, hp, coins, at in rows:
            session.add(GameLog(
                user_id="u-1", action_kind=kind, xp_delta=xp, hp_delta=hp,
                coin_delta=coins, description=kind.lower(), created_at=at,
            ))
        session.add(GameLog(
            user_id="u-2", action_kind="KPI_REWARD", xp_delta=1, coin_delta=1,
            description="other", created_at=datetime(2026, 4, 5, tzinfo=UTC),
        ))
        session.commit()


class TestListLogs:
    def test_newest_first_scoped_to_user(self, db_engine, seeded_logs):
        page = list_logs(db_engine, "u-1").value
        assert [e.action_kind for e in page.entries] == [
            "KPI_REWARD",
            "ATTENDANCE_NO_SHOW",
            "SHOP_PURCHASE",
            "ATTENDANCE_CHECK_IN",
            "TASK_COMPLETE",
        ]
        assert page.total == 5
        assert not page.has_more

    def test_pagination(self, db_engine, seeded_logs):
        first = list_logs(db_engine, "u-1", page=1, page_size=2).value
        third = list_logs(db_engine, "u-1", page=3, page_size=2).value
        assert len(first.entries) == 2 and first.has_more
        assert [e.action_kind for e in third.entries] == ["TASK_COMPLETE"]
        assert not third.has_more

    @pytest.mark.parametrize(
        ("log_filter", "kinds"),
        [
            (LogFilter.EARNED, {"TASK_COMPLETE", "KPI_REWARD"}),
            (LogFilter.SPENT, {"SHOP_PURCHASE"}),
            (LogFilter.PENALTY, {"ATTENDANCE_CHECK_IN", "ATTENDANCE_NO_SHOW"}),
        ],
    )
    def test_filters(self, db_engine, seeded_logs, log_filter, kinds):
        page = list_logs(db_engine, "u-1", log_filter=log_filter).value
        assert {e.action_kind for e in page.entries} == kinds
        assert page.total == len(kinds)

    def test_filter_accepts_lowercase_string(self, db_engine, seeded_logs):
        assert list_logs(db_engine, "u-1", log_filter="penalty").value.total == 2

    def test_unknown_filter_is_a_validation_failure(self, db_engine, seeded_logs):
        outcome = list_logs(db_engine, "u-1", log_filter="LOTTERY")
        assert not outcome.ok
        assert isinstance(outcome.error, ValidationError)
        assert outcome.error.details["filter"] == "LOTTERY"

    def test_page_size_is_clamped(self, db_engine, seeded_logs):
        assert list_logs(db_engine, "u-1", page_size=10_000).value.page_size == 200
        assert list_logs(db_engine, "u-1", page_size=0).value.page_size == 1


class TestSummarize:
    def test_income_expense_and_trend(self, db_engine, seeded_logs):
        entries = list_logs(db_engine, "u-1").value.entries
        summary = summarize(entries, today=date(2026, 4, 5))

        assert summary.income == 230
        assert summary.expense == 110
        assert len(summary.trend) == 7
        assert summary.trend[-1].day == date(2026, 4, 5)
        assert summary.trend[0].day == date(2026, 3, 30)
        by_day = {t.day: t for t in summary.trend}
        assert (by_day[date(2026, 4, 5)].income, by_day[date(2026, 4, 5)].xp) == (200, 500)
        assert (by_day[date(2026, 4, 1)].income, by_day[date(2026, 4, 1)].xp) == (30, 190)
        assert by_day[date(2026, 4, 3)].income == 0

    def test_entries_outside_window_count_toward_totals_only(self, db_engine, seeded_logs):
        entries = list_logs(db_engine, "u-1").value.entries
        summary = summarize(entries, today=date(2026, 5, 30))
        assert summary.income == 230
        assert all(t.income == 0 and t.xp == 0 for t in summary.trend)

    def test_only_loaded_entries_are_considered(self, db_engine, seeded_logs):
        newest = list_logs(db_engine, "u-1", page_size=1).value.entries
        assert summarize(newest, today=date(2026, 4, 5)).income == 200

    def test_trend_xp_includes_negative_adjustments(self):
        day = datetime(2026, 4, 5, 9, tzinfo=UTC)
        entries = [
            GameLog(user_id="u-1", action_kind="TASK_COMPLETE", xp_delta=150,
                    hp_delta=0, coin_delta=10, created_at=day),
            GameLog(user_id="u-1", action_kind="MANUAL_ADJUST", xp_delta=-200,
                    hp_delta=0, coin_delta=0, created_at=day),
        ]
        summary = summarize(entries, today=date(2026, 4, 5))
        assert summary.trend[-1].xp == -50
        assert summary.trend[-1].income == 10

    def test_empty(self):
        summary = summarize([], today=date(2026, 1, 1))
        assert (summary.income, summary.expense) == (0, 0)
        assert len(summary.trend) == 7

"""
tests/test_profile_service.py — Orchestrator & Leveling Tests
==============================================================

Uses the in-memory SQLite engine from conftest.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import event, func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from crewquest.config import game_config_from_mapping
from crewquest.constants import level_for_xp, xp_for_level
from crewquest.database.models import GameActionKind, GameLog
from crewquest.engine.actions import (
    AttendanceCheckIn,
    AttendanceEarlyLeave,
    Difficulty,
    KpiReward,
    ManualAdjust,
    TaskComplete,
    TaskLate,
)
from crewquest.errors import PersistenceError, ValidationError
from crewquest.services.profile_service import create_profile, get_profile, process_action


def _logs(engine, user_id="u-1") -> list[GameLog]:
    with Session(engine) as session:
        rows = session.scalars(
            select(GameLog).where(GameLog.user_id == user_id).order_by(GameLog.id)
        ).all()
        session.expunge_all()
        return list(rows)


# ---------------------------------------------------------------------------
# Leveling calculator
# ---------------------------------------------------------------------------
class TestLeveling:
    def test_zero_xp_is_level_one(self, game_config):
        assert level_for_xp(0, game_config) == 1

    @pytest.mark.parametrize(("xp", "level"), [(999, 1), (1000, 2), (1999, 2), (5000, 6)])
    def test_linear_thresholds(self, game_config, xp, level):
        assert level_for_xp(xp, game_config) == level

    def test_monotonic_non_decreasing(self, game_config):
        levels = [level_for_xp(xp, game_config) for xp in range(0, 12_000, 37)]
        assert levels == sorted(levels)

    def test_inverse(self, game_config):
        for level in range(1, 10):
            assert level_for_xp(xp_for_level(level, game_config), game_config) == level

    def test_negative_xp_is_treated_as_zero(self, game_config):
        assert level_for_xp(-500, game_config) == 1


# ---------------------------------------------------------------------------
# Profile setup
# ---------------------------------------------------------------------------
class TestCreateProfile:
    def test_creates_with_full_hp(self, db_engine):
        cfg = game_config_from_mapping({"LEVELING_SYSTEM": {"max_hp": 120}})
        profile = create_profile(db_engine, cfg, "u-9", "Nok")
        assert (profile.hp, profile.max_hp, profile.level, profile.coins) == (120, 120, 1, 0)

    def test_is_idempotent(self, db_engine, game_config, make_profile):
        make_profile("u-1", coins=77)
        profile = create_profile(db_engine, game_config, "u-1", "Someone else")
        assert profile.coins == 77


# ---------------------------------------------------------------------------
# process_action
# ---------------------------------------------------------------------------
class TestProcessAction:
    def test_noop_writes_nothing(self, db_engine, game_config, make_profile):
        make_profile()
        outcome = process_action(db_engine, game_config, "u-1", TaskLate(days_late=0))
        assert outcome.ok and outcome.value is None
        assert _logs(db_engine) == []

    def test_noop_does_not_touch_the_store(self, db_engine, game_config):
        # No profile exists; a no-op must still succeed without reading
        outcome = process_action(
            db_engine, game_config, "ghost", AttendanceEarlyLeave(missing_minutes=0)
        )
        assert outcome.ok and outcome.value is None

    def test_missing_profile_is_validation_failure(self, db_engine, game_config):
        outcome = process_action(db_engine, game_config, "ghost", KpiReward(grade="A"))
        assert not outcome.ok
        assert isinstance(outcome.error, ValidationError)

    def test_task_complete_applies_and_logs(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile()
        now = datetime(2026, 5, 1, tzinfo=UTC)
        action = TaskComplete(
            difficulty=Difficulty.MEDIUM,
            estimated_hours=2,
            due_date=now + timedelta(days=2),
            completed_at=now,
            task_id="t-7",
        )
        outcome = process_action(db_engine, game_config, "u-1", action)
        assert outcome.ok
        assert (outcome.value.xp_delta, outcome.value.coin_delta) == (190, 30)

        profile = fetch_profile()
        assert (profile.xp, profile.coins, profile.level) == (190, 30, 1)

        (log,) = _logs(db_engine)
        assert log.action_kind == GameActionKind.TASK_COMPLETE.value
        assert (log.xp_delta, log.coin_delta) == (190, 30)
        assert log.related_id == "t-7"

    def test_late_check_in(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(hp=80, xp=10, coins=10)
        process_action(db_engine, game_config, "u-1", AttendanceCheckIn(status="LATE"))
        profile = fetch_profile()
        assert (profile.hp, profile.xp, profile.coins) == (75, 10, 10)

    def test_hp_and_coins_are_clamped_and_log_shows_applied(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(hp=3, coins=2)
        outcome = process_action(
            db_engine, game_config, "u-1", TaskLate(days_late=4, custom_penalty=10)
        )
        assert outcome.value.hp_delta == -3
        assert outcome.value.coin_delta == -2

        profile = fetch_profile()
        assert (profile.hp, profile.coins) == (0, 0)
        (log,) = _logs(db_engine)
        assert (log.hp_delta, log.coin_delta) == (-3, -2)

    def test_hp_never_exceeds_max(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(hp=95)
        process_action(db_engine, game_config, "u-1", ManualAdjust(reason="gift", hp=50))
        assert fetch_profile().hp == 100

    def test_xp_never_negative(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(xp=40)
        process_action(db_engine, game_config, "u-1", ManualAdjust(reason="oops", xp=-100))
        assert fetch_profile().xp == 0

    def test_version_increments_on_each_write(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile()
        start = fetch_profile().version
        process_action(db_engine, game_config, "u-1", KpiReward(grade="D"))
        process_action(db_engine, game_config, "u-1", KpiReward(grade="D"))
        assert fetch_profile().version == start + 2


class TestLevelUp:
    def test_crossing_threshold_credits_bonus_once(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(xp=950, coins=0, level=1)
        outcome = process_action(
            db_engine, game_config, "u-1", ManualAdjust(reason="boost", xp=100)
        )
        result = outcome.value
        assert result.leveled_up
        assert result.new_level == 2
        assert result.level_up_bonus == 500

        profile = fetch_profile()
        assert (profile.xp, profile.level, profile.coins) == (1050, 2, 500)

        logs = _logs(db_engine)
        assert [l.action_kind for l in logs] == [
            GameActionKind.MANUAL_ADJUST.value,
            GameActionKind.LEVEL_UP.value,
        ]
        trigger, level_up = logs
        assert trigger.coin_delta == 0
        assert (level_up.coin_delta, level_up.xp_delta, level_up.hp_delta) == (500, 0, 0)
        assert level_up.metadata_ == {"old_level": 1, "new_level": 2}

    def test_bonus_comes_from_config(self, db_engine, make_profile, fetch_profile):
        cfg = game_config_from_mapping({
            "LEVELING_SYSTEM": {"base_xp_per_level": 100, "level_up_bonus_coins": 7},
        })
        make_profile(xp=90, level=1)
        process_action(db_engine, cfg, "u-1", KpiReward(grade="D"))  # +50 xp
        profile = fetch_profile()
        assert (profile.level, profile.coins) == (2, 7)

    def test_no_bonus_without_level_change(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(xp=100)
        process_action(db_engine, game_config, "u-1", KpiReward(grade="D"))
        assert fetch_profile().coins == 0
        assert len(_logs(db_engine)) == 1


class TestAtomicity:
    def test_store_failure_rolls_back_everything(self, db_engine, game_config, make_profile, fetch_profile):
        make_profile(xp=10, hp=90, coins=10)

        def _fail_on_log(session, flush_context, instances):
            if any(isinstance(obj, GameLog) for obj in session.new):
                raise OperationalError("INSERT INTO game_logs", {}, Exception("disk full"))

        event.listen(Session, "before_flush", _fail_on_log)
        try:
            with pytest.raises(PersistenceError):
                process_action(db_engine, game_config, "u-1", KpiReward(grade="A"))
        finally:
            event.remove(Session, "before_flush", _fail_on_log)

        profile = fetch_profile()
        assert (profile.xp, profile.hp, profile.coins, profile.level) == (10, 90, 10, 1)
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(GameLog)) == 0

    def test_get_profile_returns_detached_snapshot(self, db_engine, make_profile):
        make_profile(coins=5)
        profile = get_profile(db_engine, "u-1")
        assert profile.coins == 5
        assert get_profile(db_engine, "nobody") is None

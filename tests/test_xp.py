"""Tests for XP grants, levels and the clock helpers."""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from prodmax import xp
from prodmax.clock import ManualClock, SystemClock
from prodmax.errors import PersistenceFailure, SubjectNotFoundError
from prodmax.formatting import format_minutes, format_remaining, progress_bar


class TestLevels:
    def test_linear_curve(self):
        assert xp.level_for(0) == 1
        assert xp.level_for(99) == 1
        assert xp.level_for(100) == 2
        assert xp.level_for(250) == 3

    def test_custom_step(self):
        assert xp.level_for(250, per_level=50) == 6


@pytest.fixture
def fresh_db(tmp_path, monkeypatch):
    import prodmax.db as db_module
    monkeypatch.setattr(db_module, "DB_PATH", tmp_path / "test.db")
    db_module.init_db()
    return db_module


class TestGrant:
    def test_grant_accumulates(self, fresh_db):
        uid = fresh_db.get_or_create_user(1001)["id"]
        first = xp.grant(uid, 60)
        assert (first.new_total, first.new_level, first.leveled_up) == (60, 1, False)
        second = xp.grant(uid, 60)
        assert (second.new_total, second.new_level, second.leveled_up) == (120, 2, True)
        assert fresh_db.get_user(uid)["level"] == 2

    def test_unknown_user(self, fresh_db):
        with pytest.raises(SubjectNotFoundError):
            xp.grant(4242, 10)

    def test_store_error(self):
        class BrokenStore:
            def add_user_xp(self, user_id, amount):
                raise sqlite3.OperationalError("database is locked")

        with pytest.raises(PersistenceFailure):
            xp.grant(1, 10, store=BrokenStore())


class TestManualClock:
    @pytest.mark.asyncio
    async def test_sleep_until_advanced(self):
        clock = ManualClock()
        woke = []

        async def sleeper():
            await clock.sleep(30)
            woke.append(clock.now())

        task = asyncio.create_task(sleeper())
        await asyncio.sleep(0)  # let the sleeper register its deadline at t0
        await clock.advance(10)
        assert woke == []
        assert clock.pending_sleepers == 1
        await clock.advance(20)
        assert woke == [clock.now()]
        await task

    @pytest.mark.asyncio
    async def test_cancelled_sleeper_is_dropped(self):
        clock = ManualClock()
        task = asyncio.create_task(clock.sleep(30))
        await clock.advance(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert clock.pending_sleepers == 0

    def test_today_follows_now(self):
        clock = ManualClock(datetime(2025, 6, 1, 23, 59, tzinfo=timezone.utc))
        assert clock.today().isoformat() == "2025-06-01"

    def test_system_clock_zone(self):
        tz = timezone(timedelta(hours=3))
        assert SystemClock(tz).now().utcoffset() == timedelta(hours=3)


class TestFormatting:
    def test_remaining(self):
        assert format_remaining(timedelta(minutes=24)) == "24:00"
        assert format_remaining(timedelta(seconds=65)) == "1:05"
        assert format_remaining(timedelta(seconds=-3)) == "0:00"

    def test_minutes(self):
        assert format_minutes(0) == "0 min"
        assert format_minutes(45) == "45 min"
        assert format_minutes(120) == "2 h"
        assert format_minutes(135) == "2 h 15 min"

    def test_progress_bar(self):
        assert progress_bar(0) == "░" * 10
        assert progress_bar(50) == "█" * 5 + "░" * 5
        assert progress_bar(150) == "█" * 10

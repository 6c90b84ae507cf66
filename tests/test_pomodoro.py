"""Tests for the pomodoro scheduler: start/stop/expiry and XP accounting."""

import asyncio
import logging
import sqlite3
from datetime import timedelta

import pytest

from prodmax.clock import ManualClock
from prodmax.errors import AlreadyRunningError, NotRunningError, PersistenceFailure
from prodmax.pomodoro import PomodoroScheduler, SessionEvent, COMPLETED, STARTED, STOPPED

XP = 15


class FakeStore:
    """In-memory stand-in for prodmax.db (only what the scheduler touches)."""

    def __init__(self):
        self.sessions = {}
        self.xp = {}
        self.levels = {}
        self.fail_complete = False

    def create_session(self, user_id, task_id, duration, started_at):
        sid = len(self.sessions) + 1
        self.sessions[sid] = {"user_id": user_id, "task_id": task_id, "duration": duration,
                              "started_at": started_at, "completed_at": None, "aborted_at": None}
        return sid

    def mark_session_aborted(self, session_id, aborted_at):
        row = self.sessions[session_id]
        if row["completed_at"] is None:
            row["aborted_at"] = aborted_at

    def mark_session_completed(self, session_id, completed_at):
        if self.fail_complete:
            raise sqlite3.OperationalError("database is locked")
        row = self.sessions[session_id]
        if row["completed_at"] is not None or row["aborted_at"] is not None:
            return False
        row["completed_at"] = completed_at
        return True

    def add_user_xp(self, user_id, amount):
        self.xp[user_id] = self.xp.get(user_id, 0) + amount
        return self.xp[user_id]

    def set_user_level(self, user_id, level):
        self.levels[user_id] = level


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def events():
    return []


@pytest.fixture
def scheduler(clock, store, events):
    async def notifier(event):
        events.append(event)

    return PomodoroScheduler(store=store, clock=clock, notifier=notifier, xp_award=XP)


class TestScenarios:
    @pytest.mark.asyncio
    async def test_start_peek_stop(self, scheduler, clock, store, events):
        t0 = clock.now()
        handle = await scheduler.start_session(42, duration=25)
        assert handle.started_at == t0

        await clock.advance(60)
        assert scheduler.status_session(42) == timedelta(minutes=24)

        stopped = await scheduler.stop_session(42)
        assert stopped.session_id == handle.session_id
        assert store.sessions[handle.session_id]["aborted_at"] == t0 + timedelta(seconds=60)
        assert store.xp.get(42, 0) == 0

        with pytest.raises(NotRunningError):
            scheduler.status_session(42)
        assert [e.kind for e in events] == [STARTED, STOPPED]

        await clock.advance(minutes=30)
        assert store.sessions[handle.session_id]["completed_at"] is None
        assert store.xp.get(42, 0) == 0

    @pytest.mark.asyncio
    async def test_natural_expiry_grants_xp_once(self, scheduler, clock, store, events):
        t0 = clock.now()
        handle = await scheduler.start_session(7)
        assert handle.duration_minutes == 25

        await clock.advance(minutes=25)
        row = store.sessions[handle.session_id]
        assert row["completed_at"] == t0 + timedelta(minutes=25)
        assert store.xp[7] == XP

        completed = [e for e in events if e.kind == COMPLETED]
        assert len(completed) == 1
        assert completed[0].xp.gained == XP

        await clock.advance(minutes=60)
        assert store.xp[7] == XP


class TestExclusivity:
    @pytest.mark.asyncio
    async def test_second_start_keeps_first(self, scheduler, clock, store):
        first = await scheduler.start_session(1, duration=25)
        await clock.advance(300)
        with pytest.raises(AlreadyRunningError) as exc:
            await scheduler.start_session(1, duration=5)
        assert exc.value.remaining == timedelta(minutes=20)
        assert len(store.sessions) == 1
        assert scheduler.registry.get(1).end_time == first.end_time
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_invalid_duration(self, scheduler, store):
        for bad in (0, -5, 10_000, True, "25"):
            with pytest.raises(ValueError):
                await scheduler.start_session(1, duration=bad)
        assert store.sessions == {}


class TestNoDoubleXp:
    @pytest.mark.asyncio
    async def test_repeated_expiry_call(self, scheduler, clock, store):
        handle = await scheduler.start_session(3)
        await clock.advance(minutes=25)
        again = await scheduler.on_natural_expiry(3, handle.session_id)
        assert again is None
        assert store.xp[3] == XP

    @pytest.mark.asyncio
    async def test_expiry_after_stop(self, scheduler, store):
        handle = await scheduler.start_session(3)
        await scheduler.stop_session(3)
        assert await scheduler.on_natural_expiry(3, handle.session_id) is None
        assert store.xp.get(3, 0) == 0

    @pytest.mark.asyncio
    async def test_direct_completion_ends_session(self, scheduler, clock, store, events):
        handle = await scheduler.start_session(7, duration=10)
        await clock.advance(60)

        grant = await scheduler.on_natural_expiry(7, handle.session_id)
        assert grant.gained == XP
        assert not scheduler.registry.is_running(7)
        with pytest.raises(NotRunningError):
            scheduler.status_session(7)
        with pytest.raises(NotRunningError):
            await scheduler.stop_session(7)
        assert store.sessions[handle.session_id]["aborted_at"] is None

        await clock.advance(minutes=30)
        assert store.xp[7] == XP
        completed = [e for e in events if e.kind == COMPLETED]
        assert len(completed) == 1
        assert completed[0].duration_minutes == 10

    @pytest.mark.asyncio
    async def test_completion_of_old_session_keeps_new_one(self, scheduler, clock, store):
        first = await scheduler.start_session(7)
        await scheduler.stop_session(7)
        second = await scheduler.start_session(7)
        assert await scheduler.on_natural_expiry(7, first.session_id) is None
        assert scheduler.registry.get(7) == second
        await scheduler.shutdown()

    def test_event_without_xp(self):
        assert SessionEvent(STARTED, 1, 1, 25).xp is None


class TestStopRace:
    @pytest.mark.asyncio
    async def test_stop_just_before_fire(self, scheduler, clock, store):
        handle = await scheduler.start_session(5)
        await clock.advance(minutes=24, seconds=59)
        await asyncio.gather(scheduler.stop_session(5), clock.advance(1))
        row = store.sessions[handle.session_id]
        assert row["aborted_at"] is not None
        assert row["completed_at"] is None
        assert store.xp.get(5, 0) == 0

    @pytest.mark.asyncio
    async def test_stop_after_fire(self, scheduler, clock, store):
        await scheduler.start_session(5)
        await clock.advance(minutes=25)
        with pytest.raises(NotRunningError):
            await scheduler.stop_session(5)
        assert store.xp[5] == XP

    @pytest.mark.asyncio
    async def test_stop_idle(self, scheduler):
        with pytest.raises(NotRunningError):
            await scheduler.stop_session(5)


class TestPersistenceFailures:
    @pytest.mark.asyncio
    async def test_create_failure(self, clock):
        class BrokenStore(FakeStore):
            def create_session(self, *args):
                raise sqlite3.OperationalError("disk I/O error")

        scheduler = PomodoroScheduler(store=BrokenStore(), clock=clock)
        with pytest.raises(PersistenceFailure):
            await scheduler.start_session(1)
        assert not scheduler.registry.is_running(1)

    @pytest.mark.asyncio
    async def test_completion_failure_removes_entry(self, scheduler, clock, store, caplog):
        store.fail_complete = True
        await scheduler.start_session(9)
        with caplog.at_level(logging.ERROR):
            await clock.advance(minutes=25)
        assert not scheduler.registry.is_running(9)
        assert store.xp.get(9, 0) == 0
        assert "Expiry handler failed" in caplog.text

        # the owner can start again right away
        await scheduler.start_session(9)
        assert scheduler.registry.is_running(9)
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_notifier_error_does_not_block(self, clock, store):
        async def bad_notifier(event):
            raise RuntimeError("telegram down")

        scheduler = PomodoroScheduler(store=store, clock=clock, notifier=bad_notifier, xp_award=XP)
        await scheduler.start_session(4)
        await clock.advance(minutes=25)
        assert store.xp[4] == XP


class TestLevels:
    @pytest.mark.asyncio
    async def test_level_up_on_completion(self, clock, store, events):
        store.xp[8] = 90

        async def notifier(event):
            events.append(event)

        scheduler = PomodoroScheduler(store=store, clock=clock, notifier=notifier, xp_award=XP)
        await scheduler.start_session(8)
        await clock.advance(minutes=25)
        grant = events[-1].xp
        assert grant.new_total == 105
        assert grant.new_level == 2
        assert grant.leveled_up
        assert store.levels[8] == 2


class TestWithDatabase:
    @pytest.mark.asyncio
    async def test_full_cycle(self, tmp_path, monkeypatch, clock):
        import prodmax.db as db_module
        monkeypatch.setattr(db_module, "DB_PATH", tmp_path / "test.db")
        db_module.init_db()
        uid = db_module.get_or_create_user(1001, "alice")["id"]

        scheduler = PomodoroScheduler(clock=clock, xp_award=XP)
        handle = await scheduler.start_session(uid, duration=10)
        await clock.advance(minutes=10)

        row = db_module.get_session(handle.session_id)
        assert row["completed"] == 1
        assert db_module.get_user(uid)["xp"] == XP
        assert db_module.get_pomodoro_stats(uid)["total_minutes"] == 10

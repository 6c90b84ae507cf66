"""Tests for command parsing, routing and the background notifications."""

from datetime import datetime

import pytest

from prodmax.clock import ManualClock, TZ
from prodmax.pomodoro import PomodoroScheduler, SessionEvent, COMPLETED, STOPPED
from prodmax.router import Services, parse_command, handle_message
from prodmax.streaks import StreakEngine
from prodmax.transport import IncomingMessage, Transport
from prodmax.xp import XpGrant
import prodmax.skills as skill_registry


@pytest.fixture(autouse=True)
def skills():
    skill_registry._skills.clear()
    skill_registry._command_map.clear()
    skill_registry._alias_map.clear()
    skill_registry.discover()


@pytest.fixture
def fresh_db(tmp_path, monkeypatch):
    import prodmax.db as db_module
    monkeypatch.setattr(db_module, "DB_PATH", tmp_path / "test.db")
    db_module.init_db()
    return db_module


@pytest.fixture
def clock():
    return ManualClock(datetime(2025, 3, 10, 9, 0, tzinfo=TZ))


@pytest.fixture
def services(fresh_db, clock):
    return Services(
        scheduler=PomodoroScheduler(clock=clock, xp_award=15),
        streaks=StreakEngine(clock=clock, xp_award=5),
        clock=clock,
    )


def msg(text, user_id=1001):
    return IncomingMessage(user_id=user_id, channel_id=user_id, text=text,
                           transport="telegram", username="alice")


class FakeTransport(Transport):
    def __init__(self):
        self.sent = []

    @property
    def name(self):
        return "fake"

    async def start(self):
        pass

    async def stop(self):
        pass

    async def send_message(self, user_id, text):
        self.sent.append((user_id, text))


class TestParseCommand:
    def test_plain_command(self):
        parsed = parse_command("/task Buy milk")
        assert parsed.name == "task"
        assert parsed.text == "Buy milk"
        assert parsed.argv == ["Buy", "milk"]

    def test_bot_suffix_and_case(self):
        parsed = parse_command("/Pomodoro@ProdMaxBot stop")
        assert parsed.name == "pomodoro"
        assert parsed.argv == ["stop"]

    def test_keyboard_alias(self):
        parsed = parse_command("📝 Tasks")
        assert parsed.name == "tasks"
        assert parsed.text == ""

    def test_not_a_command(self):
        assert parse_command("hello there") is None
        assert parse_command("/") is None
        assert parse_command("   ") is None


class TestHandleMessage:
    @pytest.mark.asyncio
    async def test_empty_message(self, services):
        assert await handle_message(msg("  "), services) == ""

    @pytest.mark.asyncio
    async def test_help_registers_user(self, fresh_db, services):
        reply = await handle_message(msg("/start"), services)
        assert "ProdMax" in reply
        assert "/pomodoro" in reply
        assert "Level: 1" in reply
        assert fresh_db.get_or_create_user(1001)["username"] == "alice"

    @pytest.mark.asyncio
    async def test_unknown_command(self, services):
        reply = await handle_message(msg("/fly"), services)
        assert "don't know" in reply

    @pytest.mark.asyncio
    async def test_free_text(self, services):
        reply = await handle_message(msg("what's up"), services)
        assert "/help" in reply

    @pytest.mark.asyncio
    async def test_task_flow(self, fresh_db, services):
        created = await handle_message(msg("/task Buy milk"), services)
        assert "Buy milk" in created
        listing = await handle_message(msg("📝 Tasks"), services)
        assert "Buy milk" in listing

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, services):
        await handle_message(msg("/task Mine", user_id=1), services)
        reply = await handle_message(msg("/tasks", user_id=2), services)
        assert "No tasks yet" in reply

    @pytest.mark.asyncio
    async def test_pomodoro_button(self, fresh_db, services, clock):
        reply = await handle_message(msg("🍅 Pomodoro"), services)
        assert "Pomodoro started" in reply
        await clock.advance(minutes=25)
        user = fresh_db.get_or_create_user(1001)
        assert user["xp"] == 15


class TestSessionNotifier:
    @pytest.mark.asyncio
    async def test_completion_message(self, fresh_db):
        from prodmax.main import make_session_notifier
        transport = FakeTransport()
        user = fresh_db.get_or_create_user(1001, "alice")
        notify = make_session_notifier(transport)

        grant = XpGrant(gained=15, new_total=105, new_level=2, leveled_up=True)
        await notify(SessionEvent(COMPLETED, user["id"], 1, 25, grant))
        assert len(transport.sent) == 1
        chat_id, text = transport.sent[0]
        assert chat_id == 1001
        assert "+15 XP" in text
        assert "level 2" in text

    @pytest.mark.asyncio
    async def test_other_events_are_silent(self, fresh_db):
        from prodmax.main import make_session_notifier
        transport = FakeTransport()
        user = fresh_db.get_or_create_user(1001)
        await make_session_notifier(transport)(SessionEvent(STOPPED, user["id"], 1, 25))
        assert transport.sent == []


class TestHabitReminders:
    @pytest.mark.asyncio
    async def test_sends_once_per_day(self, fresh_db, clock):
        from prodmax.main import check_habit_reminders
        transport = FakeTransport()
        uid = fresh_db.get_or_create_user(1001)["id"]
        fresh_db.create_habit(uid, "Read", reminder_time="09:30")

        assert await check_habit_reminders(transport, clock) == 0
        await clock.advance(minutes=30)
        assert await check_habit_reminders(transport, clock) == 1
        assert await check_habit_reminders(transport, clock) == 0
        assert transport.sent[0][0] == 1001
        assert "Read" in transport.sent[0][1]

"""ProdMax — main entry point.

Starts all subsystems:
1. Database initialization (+ closing sessions left open by a crash)
2. Skill discovery
3. Pomodoro scheduler and streak engine
4. Transport (Telegram by default)
5. Habit reminder loop
"""

import asyncio
import logging

from prodmax.clock import Clock, SystemClock
from prodmax.config import LOG_LEVEL, HABIT_REMINDER_CHECK_SECONDS
from prodmax.db import (
    init_db, abort_orphaned_sessions, get_user,
    get_due_habit_reminders, mark_habit_reminded,
)
from prodmax.formatting import level_up_line
from prodmax.pomodoro import PomodoroScheduler, SessionEvent, COMPLETED
from prodmax.router import Services, KEYBOARD, handle_message
from prodmax.streaks import StreakEngine
from prodmax.transport import IncomingMessage, Transport
from prodmax.transport.telegram import TelegramTransport, set_message_handler
import prodmax.skills as skill_registry

log = logging.getLogger("prodmax")


def make_session_notifier(transport: Transport):
    """Build the scheduler notifier: tells the user when a pomodoro finishes."""

    async def notify(event: SessionEvent) -> None:
        if event.kind != COMPLETED:
            return
        user = get_user(event.owner)
        if not user:
            log.warning("Session #%d finished for unknown user %d", event.session_id, event.owner)
            return
        gained = event.xp.gained if event.xp else 0
        text = (f"🍅 Pomodoro done! {event.duration_minutes} minutes of focus.\n"
                f"+{gained} XP" + level_up_line(event.xp) + "\n\nTake a short break ☕")
        await transport.send_message(user["external_id"], text)

    return notify


async def check_habit_reminders(transport: Transport, clock: Clock) -> int:
    """Send one reminder per due habit. Returns how many were sent."""
    now = clock.now()
    today = now.date()
    sent = 0
    for h in get_due_habit_reminders(now.strftime("%H:%M"), today):
        try:
            await transport.send_message(
                h["external_id"],
                f"⏰ Reminder: {h['name']}\n🔥 Streak: {h['streak']}\n\n/mark {h['id']}",
            )
            mark_habit_reminded(h["id"], today)
            sent += 1
            log.info("Habit reminder #%d sent", h["id"])
        except Exception as e:
            log.error("Failed to send habit reminder #%d: %s", h["id"], e)
    return sent


async def habit_reminder_checker(transport: Transport, clock: Clock):
    """Check for due habit reminders every HABIT_REMINDER_CHECK_SECONDS."""
    while True:
        try:
            await check_habit_reminders(transport, clock)
        except Exception as e:
            log.error("Habit reminder checker error: %s", e, exc_info=True)
        await asyncio.sleep(HABIT_REMINDER_CHECK_SECONDS)


async def main():
    """Boot sequence."""
    log.info("=" * 50)
    log.info("ProdMax starting up...")
    log.info("=" * 50)

    clock = SystemClock()

    # 1. Database
    init_db()
    orphaned = abort_orphaned_sessions(clock.now())
    if orphaned:
        log.warning("Closed %d pomodoro session(s) left open by the last run", orphaned)
    log.info("Database ready")

    # 2. Skills
    skills = skill_registry.discover()
    log.info("Skills loaded: %s", skills)

    # 3. Core services
    scheduler = PomodoroScheduler(clock=clock)
    services = Services(scheduler=scheduler, streaks=StreakEngine(clock=clock), clock=clock)

    # 4. Transport
    transport = TelegramTransport(keyboard=KEYBOARD)
    scheduler.set_notifier(make_session_notifier(transport))

    async def on_message(msg: IncomingMessage) -> str:
        return await handle_message(msg, services)

    set_message_handler(on_message)
    await transport.start()
    log.info("Transport started: %s", transport.name)

    # 5. Background tasks
    reminders = asyncio.create_task(habit_reminder_checker(transport, clock))
    log.info("Habit reminder checker started")

    log.info("=" * 50)
    log.info("ProdMax is alive! 🎯")
    log.info("=" * 50)

    # Keep running
    try:
        while True:
            await asyncio.sleep(3600)
    except (KeyboardInterrupt, SystemExit, asyncio.CancelledError):
        log.info("Shutting down...")
    finally:
        reminders.cancel()
        await scheduler.shutdown()
        await transport.stop()


def run():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)-5s %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()

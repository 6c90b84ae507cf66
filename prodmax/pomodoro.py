"""Pomodoro scheduler — bridges the session registry to the database and XP.

Lifecycle per user: start → (stop | natural expiry), never both.
  - start:  registry availability is checked before the row is inserted
  - stop:   row marked aborted, no XP
  - expiry: entry removed, row marked completed and XP granted exactly once

State changes are reported to an optional notifier as SessionEvent; the
scheduler itself never formats user-facing text.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from prodmax import db, xp
from prodmax.clock import Clock, SystemClock
from prodmax.config import POMODORO_DEFAULT_MINUTES, POMODORO_MAX_MINUTES, XP_POMODORO
from prodmax.errors import NotRunningError, PersistenceFailure
from prodmax.sessions import SessionHandle, SessionRegistry
from prodmax.xp import XpGrant

log = logging.getLogger(__name__)

STARTED = "started"
STOPPED = "stopped"
COMPLETED = "completed"


@dataclass
class SessionEvent:
    kind: str               # "started" | "stopped" | "completed"
    owner: int
    session_id: int
    duration_minutes: int
    xp: XpGrant | None = None


Notifier = Callable[[SessionEvent], Awaitable[None]]


class PomodoroScheduler:

    def __init__(self, registry: SessionRegistry | None = None, store=db,
                 clock: Clock | None = None, notifier: Notifier | None = None,
                 xp_award: int = XP_POMODORO):
        self._clock = clock or SystemClock()
        self.registry = registry or SessionRegistry(self._clock)
        self.registry.set_expiry_handler(self._handle_expiry)
        self._store = store
        self._notifier = notifier
        self._xp_award = xp_award

    def set_notifier(self, notifier: Notifier) -> None:
        self._notifier = notifier

    async def _notify(self, event: SessionEvent) -> None:
        if self._notifier is None:
            return
        try:
            await self._notifier(event)
        except Exception as e:
            log.error("Session notifier failed (%s #%d): %s",
                      event.kind, event.session_id, e, exc_info=True)

    # ── Commands ──────────────────────────────────────────────

    async def start_session(self, owner: int, task_id: int | None = None,
                            duration: int = POMODORO_DEFAULT_MINUTES) -> SessionHandle:
        if not isinstance(duration, int) or isinstance(duration, bool) or duration <= 0:
            raise ValueError(f"Duration must be a positive number of minutes, got {duration!r}")
        if duration > POMODORO_MAX_MINUTES:
            raise ValueError(f"Duration is capped at {POMODORO_MAX_MINUTES} minutes")

        async def persist(started_at: datetime) -> int:
            try:
                return self._store.create_session(owner, task_id, duration, started_at)
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Could not create session for user {owner}: {e}") from e

        handle = await self.registry.start(owner, duration, persist, task_id=task_id)
        await self._notify(SessionEvent(STARTED, owner, handle.session_id, duration))
        return handle

    async def stop_session(self, owner: int) -> SessionHandle:
        handle = await self.registry.cancel(owner)
        try:
            self._store.mark_session_aborted(handle.session_id, self._clock.now())
        except sqlite3.Error as e:
            raise PersistenceFailure(
                f"Session #{handle.session_id} stopped but not recorded: {e}") from e
        await self._notify(SessionEvent(STOPPED, owner, handle.session_id,
                                        handle.duration_minutes))
        return handle

    def status_session(self, owner: int) -> timedelta:
        remaining = self.registry.peek(owner)
        if remaining is None:
            raise NotRunningError(owner)
        return remaining

    # ── Expiry ────────────────────────────────────────────────

    async def _handle_expiry(self, handle: SessionHandle) -> None:
        await self.on_natural_expiry(handle.owner, handle.session_id,
                                     duration=handle.duration_minutes)

    async def on_natural_expiry(self, owner: int, session_id: int,
                                duration: int = POMODORO_DEFAULT_MINUTES) -> XpGrant | None:
        """Complete the session row, award XP and drop the registry entry.

        Repeated calls are no-ops. Called by the timer the entry is already
        gone; called directly it cancels the pending timer.
        """
        handle = await self.registry.discard(owner, session_id)
        if handle is not None:
            duration = handle.duration_minutes
        try:
            completed = self._store.mark_session_completed(session_id, self._clock.now())
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not complete session #{session_id}: {e}") from e

        if not completed:
            log.info("Session #%d already closed, no XP", session_id)
            return None

        grant = xp.grant(owner, self._xp_award, store=self._store) if self._xp_award else None
        log.info("Session #%d completed for user %d (+%d XP)",
                 session_id, owner, self._xp_award)
        await self._notify(SessionEvent(COMPLETED, owner, session_id, duration, grant))
        return grant

    async def shutdown(self) -> None:
        await self.registry.shutdown()

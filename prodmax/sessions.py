"""Session registry — at most one running focus timer per user.

The registry is an ordinary object owned by whoever builds it (main.py,
or a test). Each running entry has its own asyncio.Task that sleeps until
the end time and then fires the expiry handler.

Stop and expiry race for the same entry. Both paths take the owner's lock
and remove the entry under it, so exactly one of them wins:
  - cancel() pops the entry and cancels the task; a task that has woken
    up but not yet taken the lock finds the entry gone and exits.
  - the expiry task pops the entry first, so a later cancel() sees
    NotRunningError.
The expiry handler (persistence, XP) runs after the lock is released.
discard() removes an entry only if it still holds the given session id.

Nothing here survives a restart.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from prodmax.clock import Clock, SystemClock
from prodmax.errors import AlreadyRunningError, NotRunningError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionHandle:
    owner: int
    session_id: int
    duration_minutes: int
    started_at: datetime
    end_time: datetime
    task_id: int | None = None


@dataclass(eq=False)
class _Entry:
    handle: SessionHandle
    timer: asyncio.Task | None = field(default=None, repr=False)


ExpiryHandler = Callable[[SessionHandle], Awaitable[None]]


class SessionRegistry:

    def __init__(self, clock: Clock | None = None, on_expiry: ExpiryHandler | None = None):
        self._clock = clock or SystemClock()
        self._on_expiry = on_expiry
        self._entries: dict[int, _Entry] = {}
        self._locks: dict[int, asyncio.Lock] = {}
        self._firing: set[asyncio.Task] = set()

    def set_expiry_handler(self, handler: ExpiryHandler) -> None:
        """Register the coroutine called once per naturally expired session."""
        self._on_expiry = handler

    def _lock_for(self, owner: int) -> asyncio.Lock:
        lock = self._locks.get(owner)
        if lock is None:
            lock = self._locks[owner] = asyncio.Lock()
        return lock

    def _remaining(self, handle: SessionHandle) -> timedelta:
        return max(timedelta(0), handle.end_time - self._clock.now())

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self, owner: int, duration_minutes: int,
                    persist: Callable[[datetime], Awaitable[int]],
                    task_id: int | None = None) -> SessionHandle:
        """Register a new session for owner and schedule its expiry.

        `persist(started_at)` creates the durable record and returns its id.
        It is only called once the owner is known to be free, so a rejected
        start never leaves a row behind.
        """
        async with self._lock_for(owner):
            current = self._entries.get(owner)
            if current is not None:
                raise AlreadyRunningError(owner, self._remaining(current.handle))

            started_at = self._clock.now()
            session_id = await persist(started_at)
            handle = SessionHandle(
                owner=owner,
                session_id=session_id,
                duration_minutes=duration_minutes,
                started_at=started_at,
                end_time=started_at + timedelta(minutes=duration_minutes),
                task_id=task_id,
            )
            entry = _Entry(handle)
            entry.timer = asyncio.create_task(
                self._expire_after(entry), name=f"pomodoro-{owner}-{session_id}",
            )
            self._entries[owner] = entry

        log.info("Session #%d registered for user %d (%d min)",
                 session_id, owner, duration_minutes)
        return handle

    async def cancel(self, owner: int) -> SessionHandle:
        """Remove owner's session; its expiry will never fire."""
        async with self._lock_for(owner):
            entry = self._entries.pop(owner, None)
            if entry is None:
                raise NotRunningError(owner)
            if entry.timer is not None:
                entry.timer.cancel()
        log.info("Session #%d cancelled for user %d", entry.handle.session_id, owner)
        return entry.handle

    async def discard(self, owner: int, session_id: int) -> SessionHandle | None:
        """Remove owner's entry only if it is still session_id. Returns the removed handle."""
        async with self._lock_for(owner):
            entry = self._entries.get(owner)
            if entry is None or entry.handle.session_id != session_id:
                return None
            del self._entries[owner]
            if entry.timer is not None and entry.timer is not asyncio.current_task():
                entry.timer.cancel()
        log.info("Session #%d discarded for user %d", session_id, owner)
        return entry.handle

    def peek(self, owner: int) -> timedelta | None:
        """Time left for owner's session, or None. Never fires or removes."""
        entry = self._entries.get(owner)
        if entry is None:
            return None
        return self._remaining(entry.handle)

    def get(self, owner: int) -> SessionHandle | None:
        entry = self._entries.get(owner)
        return entry.handle if entry else None

    def is_running(self, owner: int) -> bool:
        return owner in self._entries

    def active_owners(self) -> list[int]:
        return list(self._entries)

    async def shutdown(self) -> None:
        """Cancel every pending timer and wait for expiry handlers already running."""
        timers = []
        for owner in list(self._entries):
            async with self._lock_for(owner):
                entry = self._entries.pop(owner, None)
            if entry and entry.timer is not None:
                entry.timer.cancel()
                timers.append(entry.timer)
        firing = [t for t in self._firing if t is not asyncio.current_task()]
        if timers or firing:
            await asyncio.gather(*timers, *firing, return_exceptions=True)
            log.info("Registry shut down, %d timers cancelled, %d expiries awaited",
                     len(timers), len(firing))

    # ── Expiry ────────────────────────────────────────────────

    async def _expire_after(self, entry: _Entry) -> None:
        handle = entry.handle
        await self._clock.sleep((handle.end_time - self._clock.now()).total_seconds())

        async with self._lock_for(handle.owner):
            if self._entries.get(handle.owner) is not entry:
                return  # lost the race to cancel()
            del self._entries[handle.owner]

        log.info("Session #%d expired for user %d", handle.session_id, handle.owner)
        if self._on_expiry is None:
            return
        task = asyncio.current_task()
        self._firing.add(task)
        try:
            await self._on_expiry(handle)
        except Exception as e:
            log.error("Expiry handler failed for session #%d: %s",
                      handle.session_id, e, exc_info=True)
        finally:
            self._firing.discard(task)

    @property
    def firing_count(self) -> int:
        """Expiry handlers currently running."""
        return len(self._firing)

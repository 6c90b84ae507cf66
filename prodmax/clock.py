"""Clock — current instant, calendar day, and awaitable delays.

Everything that reads the time or waits on it takes a Clock, so tests can
swap in ManualClock and move time by hand.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timezone, timedelta

from prodmax.config import TIMEZONE_OFFSET_HOURS

log = logging.getLogger(__name__)

TZ = timezone(timedelta(hours=TIMEZONE_OFFSET_HOURS))


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current instant, timezone-aware."""
        ...

    def today(self) -> date:
        """Calendar day of now() in the reference zone."""
        return self.now().date()

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        ...


class SystemClock(Clock):
    """Wall clock in the configured reference zone."""

    def __init__(self, tz: timezone = TZ):
        self.tz = tz

    def now(self) -> datetime:
        return datetime.now(self.tz)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


class ManualClock(Clock):
    """Clock that only moves when advance() is called.

    sleep() parks the caller until the clock has been advanced past its
    deadline. Cancelling the sleeping task removes it cleanly.
    """

    def __init__(self, start: datetime | None = None):
        self._now = start or datetime(2025, 1, 1, 9, 0, tzinfo=TZ)
        self._sleepers: list[tuple[datetime, asyncio.Future]] = []

    def now(self) -> datetime:
        return self._now

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        deadline = self._now + timedelta(seconds=seconds)
        fut = asyncio.get_running_loop().create_future()
        entry = (deadline, fut)
        self._sleepers.append(entry)
        try:
            await fut
        finally:
            if entry in self._sleepers:
                self._sleepers.remove(entry)

    async def advance(self, seconds: float = 0, *, minutes: float = 0) -> None:
        """Move time forward, wake due sleepers, and let them run."""
        self._now += timedelta(seconds=seconds, minutes=minutes)
        for deadline, fut in list(self._sleepers):
            if deadline <= self._now and not fut.done():
                fut.set_result(None)
        # Woken tasks need a few loop turns to reach their next await
        for _ in range(20):
            await asyncio.sleep(0)

    @property
    def pending_sleepers(self) -> int:
        return len(self._sleepers)

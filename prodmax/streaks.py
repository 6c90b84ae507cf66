"""Streak engine — consecutive-day completion counts for habits.

compute_streak() is pure: it takes the tracking log and a reference day.
StreakEngine wires it to the store and the XP grant on each completion.

Streak rule: walk the log newest-first; entry i continues the streak only
if it is completed AND dated exactly `today - i` days. The first miss ends
the walk. A future-dated newest entry is a miss, so the streak is 0.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from prodmax import db, xp
from prodmax.clock import Clock, SystemClock
from prodmax.config import XP_HABIT
from prodmax.errors import PersistenceFailure, SubjectNotFoundError
from prodmax.xp import XpGrant

log = logging.getLogger(__name__)


def compute_streak(log_entries: Iterable[tuple[date, bool]], today: date) -> int:
    """Length of the run of completed days ending on `today`.

    `log_entries` must be ordered by date, newest first.
    """
    streak = 0
    for i, (day, completed) in enumerate(log_entries):
        if not completed or day != today - timedelta(days=i):
            break
        streak += 1
    return streak


def next_best_streak(best: int, current: int) -> int:
    return max(best, current)


def _parse_log(rows: list[dict]) -> list[tuple[date, bool]]:
    return [(date.fromisoformat(r["date"]), bool(r["completed"])) for r in rows]


@dataclass
class AlreadyRecordedToday:
    habit_id: int
    streak: int
    best_streak: int


@dataclass
class Recorded:
    habit_id: int
    streak: int
    best_streak: int
    xp: XpGrant | None = None


class StreakEngine:
    """Records habit completions and keeps streak/best_streak in sync."""

    def __init__(self, store=db, clock: Clock | None = None, xp_award: int = XP_HABIT):
        self._store = store
        self._clock = clock or SystemClock()
        self._xp_award = xp_award

    def record_completion(self, habit_id: int, user_id: int,
                          day: date | None = None) -> AlreadyRecordedToday | Recorded:
        day = day or self._clock.today()
        try:
            habit = self._store.get_habit(habit_id, user_id)
            if habit is None:
                raise SubjectNotFoundError("habit", habit_id)

            existing = self._store.get_streak_entry(habit_id, day)
            if existing and existing["completed"]:
                return AlreadyRecordedToday(habit_id, habit["streak"], habit["best_streak"])

            self._store.upsert_streak_entry(habit_id, user_id, day, True)
            current = compute_streak(_parse_log(self._store.read_streak_log(habit_id)), day)
            best = next_best_streak(habit["best_streak"], current)
            self._store.bump_streak_counters(habit_id, current, best)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not record habit {habit_id}: {e}") from e

        log.info("Habit #%d marked for %s: streak=%d best=%d", habit_id, day, current, best)
        grant = xp.grant(user_id, self._xp_award, store=self._store) if self._xp_award else None
        return Recorded(habit_id, current, best, grant)

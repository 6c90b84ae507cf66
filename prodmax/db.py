"""SQLite database layer — persistent storage for users, tasks, pomodoros, habits, goals.

Lightweight schema. Tables are created automatically on first run.
Every function opens its own short-lived connection, so each call is one
atomic statement or transaction.
"""

import sqlite3
import logging
from datetime import date, datetime, timedelta

from prodmax.clock import TZ
from prodmax.config import DB_PATH

logger = logging.getLogger(__name__)


def _connect() -> sqlite3.Connection:
    """Return a connection with row_factory set."""
    DB_PATH.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(DB_PATH))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db() -> None:
    """Create tables if they don't exist."""
    conn = _connect()
    conn.executescript("""
        -- Chat users (external_id = chat platform user id)
        CREATE TABLE IF NOT EXISTS users (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            external_id INTEGER NOT NULL UNIQUE,
            username    TEXT,
            xp          INTEGER NOT NULL DEFAULT 0,
            level       INTEGER NOT NULL DEFAULT 1,
            created_at  TEXT    NOT NULL,
            updated_at  TEXT    NOT NULL
        );

        -- Tasks
        CREATE TABLE IF NOT EXISTS tasks (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id      INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title        TEXT    NOT NULL,
            description  TEXT    NOT NULL DEFAULT '',
            status       TEXT    NOT NULL DEFAULT 'pending',
            priority     TEXT    NOT NULL DEFAULT 'medium',
            due_date     TEXT,
            created_at   TEXT    NOT NULL,
            completed_at TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_tasks_user
            ON tasks(user_id, status);

        -- Pomodoro sessions (completed_at set only on natural expiry)
        CREATE TABLE IF NOT EXISTS pomodoro_sessions (
            id           INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id      INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            task_id      INTEGER REFERENCES tasks(id) ON DELETE SET NULL,
            duration     INTEGER NOT NULL DEFAULT 25,
            completed    INTEGER NOT NULL DEFAULT 0,
            started_at   TEXT    NOT NULL,
            completed_at TEXT,
            aborted_at   TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_pomodoro_user
            ON pomodoro_sessions(user_id);

        -- Habits (defined by user; streak counters cached from habit_tracking)
        CREATE TABLE IF NOT EXISTS habits (
            id            INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id       INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name          TEXT    NOT NULL,
            description   TEXT    NOT NULL DEFAULT '',
            streak        INTEGER NOT NULL DEFAULT 0,
            best_streak   INTEGER NOT NULL DEFAULT 0,
            reminder_time TEXT,
            last_reminded TEXT,
            active        INTEGER NOT NULL DEFAULT 1,
            created_at    TEXT    NOT NULL
        );
        CREATE UNIQUE INDEX IF NOT EXISTS idx_habits_user_name
            ON habits(user_id, name);

        -- One row per habit per calendar day
        CREATE TABLE IF NOT EXISTS habit_tracking (
            id         INTEGER PRIMARY KEY AUTOINCREMENT,
            habit_id   INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            user_id    INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            date       TEXT    NOT NULL,
            completed  INTEGER NOT NULL DEFAULT 0,
            created_at TEXT    NOT NULL,
            UNIQUE(habit_id, date)
        );
        CREATE INDEX IF NOT EXISTS idx_habit_tracking_user_date
            ON habit_tracking(user_id, date);

        -- Career goals
        CREATE TABLE IF NOT EXISTS career_goals (
            id          INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id     INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title       TEXT    NOT NULL,
            description TEXT    NOT NULL DEFAULT '',
            target_date TEXT,
            progress    INTEGER NOT NULL DEFAULT 0,
            status      TEXT    NOT NULL DEFAULT 'active',
            created_at  TEXT    NOT NULL,
            updated_at  TEXT    NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_goals_user
            ON career_goals(user_id, status);
    """)
    conn.close()
    logger.info("Database initialized at %s", DB_PATH)


def _now() -> str:
    return datetime.now(TZ).isoformat()


# ═══════════════════════════════════════════════════════════════════════════
# Users & XP
# ═══════════════════════════════════════════════════════════════════════════

def get_or_create_user(external_id: int, username: str | None = None) -> dict:
    """Find the user for a chat-platform id, creating it on first contact."""
    now = _now()
    conn = _connect()
    conn.execute(
        """INSERT INTO users (external_id, username, created_at, updated_at) VALUES (?, ?, ?, ?)
           ON CONFLICT(external_id) DO NOTHING""",
        (external_id, username, now, now),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM users WHERE external_id = ?", (external_id,)
    ).fetchone()
    conn.close()
    return dict(row)


def get_user(user_id: int) -> dict | None:
    conn = _connect()
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return dict(row) if row else None


def add_user_xp(user_id: int, amount: int) -> int | None:
    """Atomically add XP. Returns the new total, or None for an unknown user."""
    conn = _connect()
    with conn:
        conn.execute(
            "UPDATE users SET xp = xp + ?, updated_at = ? WHERE id = ?",
            (amount, _now(), user_id),
        )
        row = conn.execute("SELECT xp FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return row["xp"] if row else None


def set_user_level(user_id: int, level: int) -> None:
    conn = _connect()
    conn.execute("UPDATE users SET level = ? WHERE id = ?", (level, user_id))
    conn.commit()
    conn.close()


def get_user_stats(user_id: int) -> dict:
    """Return aggregated counters for /stats."""
    conn = _connect()
    tasks = conn.execute(
        """SELECT COUNT(*) as total,
                  COALESCE(SUM(status = 'completed'), 0) as completed,
                  COALESCE(SUM(status = 'pending'), 0) as pending
           FROM tasks WHERE user_id = ?""",
        (user_id,),
    ).fetchone()
    pomodoro = conn.execute(
        """SELECT COUNT(*) as total_sessions,
                  COALESCE(SUM(completed_at IS NOT NULL), 0) as completed_sessions,
                  COALESCE(SUM(CASE WHEN completed_at IS NOT NULL THEN duration END), 0) as total_minutes
           FROM pomodoro_sessions WHERE user_id = ?""",
        (user_id,),
    ).fetchone()
    habits = conn.execute(
        """SELECT COUNT(*) as total_habits,
                  COALESCE(SUM(streak), 0) as total_streak,
                  COALESCE(MAX(best_streak), 0) as best_streak
           FROM habits WHERE user_id = ? AND active = 1""",
        (user_id,),
    ).fetchone()
    conn.close()
    return {
        "tasks": dict(tasks),
        "pomodoro": dict(pomodoro),
        "habits": dict(habits),
    }


# ═══════════════════════════════════════════════════════════════════════════
# Tasks
# ═══════════════════════════════════════════════════════════════════════════

def create_task(user_id: int, title: str, description: str = "",
                priority: str = "medium", due_date: str | None = None) -> dict:
    conn = _connect()
    cur = conn.execute(
        """INSERT INTO tasks (user_id, title, description, priority, due_date, created_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (user_id, title, description, priority, due_date, _now()),
    )
    conn.commit()
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (cur.lastrowid,)).fetchone()
    conn.close()
    return dict(row)


def get_tasks(user_id: int, status: str | None = None) -> list[dict]:
    conn = _connect()
    sql = "SELECT * FROM tasks WHERE user_id = ?"
    params: list = [user_id]
    if status:
        sql += " AND status = ?"
        params.append(status)
    sql += " ORDER BY created_at DESC, id DESC"
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_task(task_id: int, user_id: int) -> dict | None:
    conn = _connect()
    row = conn.execute(
        "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
    ).fetchone()
    conn.close()
    return dict(row) if row else None


def complete_task(task_id: int, user_id: int) -> bool:
    """Mark a pending task completed. Returns False if it already was (or is missing)."""
    conn = _connect()
    cur = conn.execute(
        """UPDATE tasks SET status = 'completed', completed_at = ?
           WHERE id = ? AND user_id = ? AND status != 'completed'""",
        (_now(), task_id, user_id),
    )
    conn.commit()
    changed = cur.rowcount == 1
    conn.close()
    return changed


def delete_task(task_id: int, user_id: int) -> bool:
    conn = _connect()
    cur = conn.execute(
        "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
    )
    conn.commit()
    deleted = cur.rowcount == 1
    conn.close()
    return deleted


# ═══════════════════════════════════════════════════════════════════════════
# Pomodoro Sessions
# ═══════════════════════════════════════════════════════════════════════════

def create_session(user_id: int, task_id: int | None, duration: int,
                   started_at: datetime) -> int:
    """Insert an in-progress session row. Returns its id."""
    conn = _connect()
    cur = conn.execute(
        """INSERT INTO pomodoro_sessions (user_id, task_id, duration, started_at)
           VALUES (?, ?, ?, ?)""",
        (user_id, task_id, duration, started_at.isoformat()),
    )
    conn.commit()
    sid = cur.lastrowid
    conn.close()
    return sid


def get_session(session_id: int) -> dict | None:
    conn = _connect()
    row = conn.execute(
        "SELECT * FROM pomodoro_sessions WHERE id = ?", (session_id,)
    ).fetchone()
    conn.close()
    return dict(row) if row else None


def mark_session_aborted(session_id: int, aborted_at: datetime) -> None:
    conn = _connect()
    conn.execute(
        """UPDATE pomodoro_sessions SET completed = 0, aborted_at = ?
           WHERE id = ? AND completed_at IS NULL""",
        (aborted_at.isoformat(), session_id),
    )
    conn.commit()
    conn.close()


def mark_session_completed(session_id: int, completed_at: datetime) -> bool:
    """Set completed_at once. Returns True only for the call that set it."""
    conn = _connect()
    cur = conn.execute(
        """UPDATE pomodoro_sessions SET completed = 1, completed_at = ?
           WHERE id = ? AND completed_at IS NULL AND aborted_at IS NULL""",
        (completed_at.isoformat(), session_id),
    )
    conn.commit()
    changed = cur.rowcount == 1
    conn.close()
    return changed


def abort_orphaned_sessions(aborted_at: datetime) -> int:
    """Mark sessions left in progress by a previous process as aborted."""
    conn = _connect()
    cur = conn.execute(
        """UPDATE pomodoro_sessions SET aborted_at = ?
           WHERE completed_at IS NULL AND aborted_at IS NULL""",
        (aborted_at.isoformat(),),
    )
    conn.commit()
    count = cur.rowcount
    conn.close()
    return count


def get_pomodoro_stats(user_id: int) -> dict:
    conn = _connect()
    row = conn.execute(
        """SELECT COUNT(*) as total_sessions,
                  COALESCE(SUM(completed_at IS NOT NULL), 0) as completed_sessions,
                  COALESCE(SUM(CASE WHEN completed_at IS NOT NULL THEN duration END), 0) as total_minutes,
                  MAX(completed_at) as last_session
           FROM pomodoro_sessions WHERE user_id = ?""",
        (user_id,),
    ).fetchone()
    conn.close()
    return dict(row)


# ═══════════════════════════════════════════════════════════════════════════
# Habits
# ═══════════════════════════════════════════════════════════════════════════

def create_habit(user_id: int, name: str, description: str = "",
                 reminder_time: str | None = None) -> dict:
    """Create a habit, or reactivate a deactivated one with the same name."""
    conn = _connect()
    conn.execute(
        """INSERT INTO habits (user_id, name, description, reminder_time, created_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(user_id, name) DO UPDATE SET
               active = 1,
               reminder_time = COALESCE(excluded.reminder_time, habits.reminder_time)""",
        (user_id, name, description, reminder_time, _now()),
    )
    conn.commit()
    row = conn.execute(
        "SELECT * FROM habits WHERE user_id = ? AND name = ?", (user_id, name)
    ).fetchone()
    conn.close()
    return dict(row)


def get_habits(user_id: int, active_only: bool = True) -> list[dict]:
    conn = _connect()
    sql = "SELECT * FROM habits WHERE user_id = ?"
    if active_only:
        sql += " AND active = 1"
    sql += " ORDER BY created_at DESC, id DESC"
    rows = conn.execute(sql, (user_id,)).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_habit(habit_id: int, user_id: int) -> dict | None:
    """Active habit by id, scoped to its owner."""
    conn = _connect()
    row = conn.execute(
        "SELECT * FROM habits WHERE id = ? AND user_id = ? AND active = 1",
        (habit_id, user_id),
    ).fetchone()
    conn.close()
    return dict(row) if row else None


def find_habit(user_id: int, key: str) -> dict | None:
    """Look a habit up by numeric id or by exact name."""
    key = key.strip()
    if key.isdigit():
        habit = get_habit(int(key), user_id)
        if habit:
            return habit
    conn = _connect()
    row = conn.execute(
        "SELECT * FROM habits WHERE user_id = ? AND name = ? AND active = 1",
        (user_id, key),
    ).fetchone()
    conn.close()
    return dict(row) if row else None


def deactivate_habit(habit_id: int, user_id: int) -> bool:
    conn = _connect()
    cur = conn.execute(
        "UPDATE habits SET active = 0 WHERE id = ? AND user_id = ? AND active = 1",
        (habit_id, user_id),
    )
    conn.commit()
    changed = cur.rowcount == 1
    conn.close()
    return changed


def get_streak_entry(habit_id: int, day: date) -> dict | None:
    conn = _connect()
    row = conn.execute(
        "SELECT date, completed FROM habit_tracking WHERE habit_id = ? AND date = ?",
        (habit_id, day.isoformat()),
    ).fetchone()
    conn.close()
    return dict(row) if row else None


def upsert_streak_entry(habit_id: int, user_id: int, day: date, completed: bool) -> None:
    """Write the (habit, day) entry. Never creates a second row for the same day."""
    conn = _connect()
    conn.execute(
        """INSERT INTO habit_tracking (habit_id, user_id, date, completed, created_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(habit_id, date) DO UPDATE SET completed = excluded.completed""",
        (habit_id, user_id, day.isoformat(), int(completed), _now()),
    )
    conn.commit()
    conn.close()


def read_streak_log(habit_id: int) -> list[dict]:
    """All tracking entries for a habit, newest date first."""
    conn = _connect()
    rows = conn.execute(
        "SELECT date, completed FROM habit_tracking WHERE habit_id = ? ORDER BY date DESC",
        (habit_id,),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def bump_streak_counters(habit_id: int, current_streak: int, best_streak: int) -> None:
    conn = _connect()
    conn.execute(
        "UPDATE habits SET streak = ?, best_streak = MAX(best_streak, ?) WHERE id = ?",
        (current_streak, best_streak, habit_id),
    )
    conn.commit()
    conn.close()


def get_habits_stats(user_id: int, today: date) -> dict:
    conn = _connect()
    row = conn.execute(
        """SELECT COUNT(*) as total_habits,
                  COALESCE(SUM(streak), 0) as total_streak,
                  COALESCE(MAX(best_streak), 0) as best_streak,
                  COALESCE(SUM(active), 0) as active_habits
           FROM habits WHERE user_id = ?""",
        (user_id,),
    ).fetchone()
    week_start = (today - timedelta(days=7)).isoformat()
    week = conn.execute(
        """SELECT COUNT(*) as cnt FROM habit_tracking
           WHERE user_id = ? AND date >= ? AND completed = 1""",
        (user_id, week_start),
    ).fetchone()
    conn.close()
    result = dict(row)
    result["week_completed"] = week["cnt"] if week else 0
    return result


def get_due_habit_reminders(now_hhmm: str, today: date) -> list[dict]:
    """Active habits whose reminder time has passed today and that are still open.

    Skips habits already completed today or already reminded today.
    """
    day = today.isoformat()
    conn = _connect()
    rows = conn.execute(
        """SELECT h.id, h.name, h.reminder_time, h.streak, u.external_id
           FROM habits h JOIN users u ON u.id = h.user_id
           WHERE h.active = 1
             AND h.reminder_time IS NOT NULL
             AND h.reminder_time <= ?
             AND (h.last_reminded IS NULL OR h.last_reminded < ?)
             AND NOT EXISTS (
                 SELECT 1 FROM habit_tracking t
                 WHERE t.habit_id = h.id AND t.date = ? AND t.completed = 1
             )""",
        (now_hhmm, day, day),
    ).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def mark_habit_reminded(habit_id: int, today: date) -> None:
    conn = _connect()
    conn.execute(
        "UPDATE habits SET last_reminded = ? WHERE id = ?",
        (today.isoformat(), habit_id),
    )
    conn.commit()
    conn.close()


# ═══════════════════════════════════════════════════════════════════════════
# Career Goals
# ═══════════════════════════════════════════════════════════════════════════

def create_goal(user_id: int, title: str, description: str = "",
                target_date: str | None = None) -> dict:
    now = _now()
    conn = _connect()
    cur = conn.execute(
        """INSERT INTO career_goals (user_id, title, description, target_date, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?)""",
        (user_id, title, description, target_date, now, now),
    )
    conn.commit()
    row = conn.execute("SELECT * FROM career_goals WHERE id = ?", (cur.lastrowid,)).fetchone()
    conn.close()
    return dict(row)


def get_goals(user_id: int, status: str | None = None) -> list[dict]:
    conn = _connect()
    sql = "SELECT * FROM career_goals WHERE user_id = ?"
    params: list = [user_id]
    if status:
        sql += " AND status = ?"
        params.append(status)
    sql += " ORDER BY created_at DESC, id DESC"
    rows = conn.execute(sql, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def get_goal(goal_id: int, user_id: int) -> dict | None:
    conn = _connect()
    row = conn.execute(
        "SELECT * FROM career_goals WHERE id = ? AND user_id = ?", (goal_id, user_id)
    ).fetchone()
    conn.close()
    return dict(row) if row else None


def set_goal_progress(goal_id: int, user_id: int, progress: int) -> dict | None:
    """Store progress (already clamped by the caller). Returns the previous row."""
    conn = _connect()
    with conn:
        row = conn.execute(
            "SELECT * FROM career_goals WHERE id = ? AND user_id = ?", (goal_id, user_id)
        ).fetchone()
        if row:
            conn.execute(
                "UPDATE career_goals SET progress = ?, updated_at = ? WHERE id = ?",
                (progress, _now(), goal_id),
            )
    conn.close()
    return dict(row) if row else None


def complete_goal(goal_id: int, user_id: int) -> dict | None:
    """Mark a goal completed. Returns the previous row, or None if it already was (or is missing)."""
    conn = _connect()
    with conn:
        row = conn.execute(
            """SELECT * FROM career_goals
               WHERE id = ? AND user_id = ? AND status != 'completed'""",
            (goal_id, user_id),
        ).fetchone()
        if row:
            conn.execute(
                """UPDATE career_goals SET status = 'completed', progress = 100, updated_at = ?
                   WHERE id = ?""",
                (_now(), goal_id),
            )
    conn.close()
    return dict(row) if row else None

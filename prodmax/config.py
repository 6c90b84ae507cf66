"""Configuration — loads environment variables with sensible defaults.

All tunables live here. Override via .env file or environment variables.
No hardcoded XP amounts or timings elsewhere in the codebase.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)

def _env_int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))

def _env_bool(key: str, default: bool = False) -> bool:
    return os.getenv(key, str(default)).lower() in ("1", "true", "yes")


# ═══════════════════════════════════════════════════════════════════════════
# Transport
# ═══════════════════════════════════════════════════════════════════════════

TELEGRAM_BOT_TOKEN = _env("TELEGRAM_BOT_TOKEN")
TELEGRAM_DROP_PENDING = _env_bool("TELEGRAM_DROP_PENDING", True)

# ═══════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════

LOG_LEVEL = _env("LOG_LEVEL", "INFO").upper()

# ═══════════════════════════════════════════════════════════════════════════
# Pomodoro
# ═══════════════════════════════════════════════════════════════════════════

POMODORO_DEFAULT_MINUTES = _env_int("POMODORO_DEFAULT_MINUTES", 25)
POMODORO_MAX_MINUTES = _env_int("POMODORO_MAX_MINUTES", 180)

# ═══════════════════════════════════════════════════════════════════════════
# Gamification: XP awards and level curve (linear)
# ═══════════════════════════════════════════════════════════════════════════

XP_PER_LEVEL = _env_int("XP_PER_LEVEL", 100)
XP_TASK = _env_int("XP_TASK", 10)
XP_POMODORO = _env_int("XP_POMODORO", 15)
XP_HABIT = _env_int("XP_HABIT", 5)
XP_GOAL = _env_int("XP_GOAL", 50)

# ═══════════════════════════════════════════════════════════════════════════
# Habit reminders
# ═══════════════════════════════════════════════════════════════════════════

HABIT_REMINDER_CHECK_SECONDS = _env_int("HABIT_REMINDER_CHECK_SECONDS", 60)

# ═══════════════════════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════════════════════

DB_PATH = Path(_env("PRODMAX_DB_PATH") or _PROJECT_ROOT / "data" / "prodmax.db")

# ═══════════════════════════════════════════════════════════════════════════
# Timezone (default UTC, override for your locale in .env)
# ═══════════════════════════════════════════════════════════════════════════
# Streak days and habit reminders use this single fixed zone for everyone.

TIMEZONE_OFFSET_HOURS = _env_int("TIMEZONE_OFFSET_HOURS", 0)

"""Small text helpers shared by skill replies and notifications."""

from datetime import timedelta


def format_remaining(remaining: timedelta) -> str:
    """timedelta → 'M:SS' (minutes are not wrapped into hours)."""
    total = max(0, int(remaining.total_seconds()))
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}"


def format_minutes(minutes: int | None) -> str:
    if not minutes:
        return "0 min"
    hours, mins = divmod(int(minutes), 60)
    if hours == 0:
        return f"{mins} min"
    if mins == 0:
        return f"{hours} h"
    return f"{hours} h {mins} min"


def progress_bar(percent: int, width: int = 10) -> str:
    filled = max(0, min(width, int(percent) * width // 100))
    return "█" * filled + "░" * (width - filled)


def level_up_line(grant) -> str:
    """Extra reply line when an XpGrant crossed a level boundary."""
    if grant is not None and grant.leveled_up:
        return f"\n🆙 Level up! You are now level {grant.new_level}."
    return ""

"""Stats skill — level, XP and per-area totals."""

from prodmax.db import get_user, get_user_stats
from prodmax.formatting import format_minutes
from prodmax.skills.base import Skill, SkillContext, SkillResult


class StatsSkill(Skill):

    async def execute(self, context: SkillContext) -> SkillResult:
        user = get_user(context.user_id) or context.user
        s = get_user_stats(context.user_id)
        t, p, h = s["tasks"], s["pomodoro"], s["habits"]

        lines = [
            "📊 Your stats:",
            "",
            f"👤 Level: {user.get('level', 1)} | XP: {user.get('xp', 0)}",
            "",
            "📝 Tasks:",
            f"   Total: {t['total']}",
            f"   Completed: {t['completed']}",
            f"   In progress: {t['pending']}",
            "",
            "🍅 Pomodoro:",
            f"   Sessions: {p['total_sessions']}",
            f"   Completed: {p['completed_sessions']}",
            f"   Focus time: {format_minutes(p['total_minutes'])}",
            "",
            "✅ Habits:",
            f"   Active: {h['total_habits']}",
            f"   Total streak: {h['total_streak']}",
            f"   Best streak: {h['best_streak']}",
            "",
            "💪 Keep going!",
        ]
        return SkillResult(output="\n".join(lines))

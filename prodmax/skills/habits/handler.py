"""Habits skill — create habits, mark them done, show streaks."""

import re

from prodmax.db import create_habit, get_habits, find_habit, deactivate_habit, get_habits_stats
from prodmax.errors import SubjectNotFoundError
from prodmax.formatting import level_up_line
from prodmax.skills.base import Skill, SkillContext, SkillResult
from prodmax.streaks import AlreadyRecordedToday

_REMINDER_RE = re.compile(r"^(.*?)\s+at\s+(\d{1,2}):(\d{2})$", re.IGNORECASE)


def _split_reminder(text: str) -> tuple[str, str | None]:
    """'Read 20 pages at 9:30' → ('Read 20 pages', '09:30')."""
    m = _REMINDER_RE.match(text.strip())
    if not m:
        return text.strip(), None
    hour, minute = int(m.group(2)), int(m.group(3))
    if hour > 23 or minute > 59:
        return text.strip(), None
    return m.group(1).strip(), f"{hour:02d}:{minute:02d}"


class HabitsSkill(Skill):

    async def execute(self, context: SkillContext) -> SkillResult:
        command = context.command
        uid = context.user_id

        if command == "habits":
            habits = get_habits(uid)
            if not habits:
                return SkillResult(output="✅ No habits yet. Add one: /habit [name]")
            lines = ["✅ Your habits:", ""]
            for i, h in enumerate(habits, 1):
                line = f"{i}. {h['name']} (ID: {h['id']}) 🔥{h['streak']} (best: {h['best_streak']})"
                if h["reminder_time"]:
                    line += f" ⏰ {h['reminder_time']}"
                lines.append(line)
                lines.append(f"   /mark {h['id']} or /mark {h['name']}")
                lines.append("")
            lines.append("💡 Add a habit: /habit [name]")
            return SkillResult(output="\n".join(lines))

        elif command == "habit":
            name, reminder = _split_reminder(context.text)
            if not name:
                return SkillResult(output="❌ Give the habit a name: /habit [name]", success=False)
            habit = create_habit(uid, name, reminder_time=reminder)
            extra = f"\n⏰ I'll remind you daily at {reminder}." if reminder else ""
            return SkillResult(
                output=f"✅ Habit \"{habit['name']}\" added!{extra}\n\n"
                       f"Use /mark {habit['id']} to mark it done"
            )

        elif command == "mark":
            key = context.text.strip()
            if not key:
                return SkillResult(output="❌ Give the habit id or name: /mark [id or name]",
                                   success=False)
            habit = find_habit(uid, key)
            if not habit:
                return SkillResult(output="❌ Habit not found", success=False)
            try:
                result = context.services.streaks.record_completion(habit["id"], uid)
            except SubjectNotFoundError:
                return SkillResult(output="❌ Habit not found", success=False)
            if isinstance(result, AlreadyRecordedToday):
                return SkillResult(
                    output=f"👌 \"{habit['name']}\" is already marked for today!\n\n"
                           f"🔥 Streak: {result.streak}"
                )
            best = " (new best!)" if result.best_streak > habit["best_streak"] > 0 else ""
            reply = f"🎉 \"{habit['name']}\" marked!\n\n🔥 Streak: {result.streak}{best}"
            if result.xp is not None:
                reply += f"\n+{result.xp.gained} XP" + level_up_line(result.xp)
            return SkillResult(output=reply)

        elif command == "delhabit":
            key = context.text.strip()
            habit = find_habit(uid, key) if key else None
            if not habit or not deactivate_habit(habit["id"], uid):
                return SkillResult(output="❌ Habit not found", success=False)
            return SkillResult(output=f"🗑 Habit \"{habit['name']}\" removed.")

        elif command == "habitstats":
            stats = get_habits_stats(uid, context.services.clock.today())
            return SkillResult(
                output="📊 Habit stats:\n\n"
                       f"Active habits: {stats['active_habits']}\n"
                       f"Total streak: {stats['total_streak']}\n"
                       f"Best streak ever: {stats['best_streak']}\n"
                       f"Marks in the last 7 days: {stats['week_completed']}"
            )

        return SkillResult(output=f"Unknown command: /{command}", success=False)

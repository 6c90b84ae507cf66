"""Pomodoro skill — thin command layer over PomodoroScheduler."""

from prodmax.config import POMODORO_DEFAULT_MINUTES, POMODORO_MAX_MINUTES
from prodmax.db import get_pomodoro_stats, get_task
from prodmax.errors import AlreadyRunningError, NotRunningError
from prodmax.formatting import format_minutes, format_remaining
from prodmax.skills.base import Skill, SkillContext, SkillResult

USAGE = (
    "🍅 Pomodoro commands:\n"
    "/pomodoro - start a 25-minute session\n"
    "/pomodoro start [minutes] [task id] - custom session\n"
    "/pomodoro stop - stop (no XP)\n"
    "/pomodoro status - time left\n"
    "/pomodoro stats - your totals"
)


class PomodoroSkill(Skill):

    async def execute(self, context: SkillContext) -> SkillResult:
        scheduler = context.services.scheduler
        uid = context.user_id
        argv = [a.lower() for a in context.argv]
        action = argv[0] if argv else "start"

        # "/pomodoro 50" is shorthand for "/pomodoro start 50"
        if action.isdigit():
            argv = ["start"] + argv
            action = "start"

        if action == "start":
            params = argv[1:]
            if any(not p.isdigit() for p in params) or len(params) > 2:
                return SkillResult(output=USAGE, success=False)
            duration = int(params[0]) if params else POMODORO_DEFAULT_MINUTES
            task_id = int(params[1]) if len(params) > 1 else None
            if not 1 <= duration <= POMODORO_MAX_MINUTES:
                return SkillResult(
                    output=f"❌ Duration must be between 1 and {POMODORO_MAX_MINUTES} minutes.",
                    success=False,
                )
            task = None
            if task_id is not None:
                task = get_task(task_id, uid)
                if not task:
                    return SkillResult(output="❌ Task not found", success=False)

            try:
                await scheduler.start_session(uid, task_id, duration)
            except AlreadyRunningError as e:
                return SkillResult(
                    output=f"⏱️ You already have a running session!\n\n"
                           f"Time left: {format_remaining(e.remaining)}\n\n"
                           f"Use /pomodoro stop to stop it"
                )
            focus = f" on \"{task['title']}\"" if task else ""
            return SkillResult(
                output=f"🍅 Pomodoro started! {duration} minutes of focus{focus}.\n\n"
                       f"/pomodoro status - check the time\n"
                       f"/pomodoro stop - stop it"
            )

        elif action == "stop":
            try:
                await scheduler.stop_session(uid)
            except NotRunningError:
                return SkillResult(output="❌ You have no running Pomodoro session")
            return SkillResult(output="⏹️ Pomodoro stopped. No XP this time.")

        elif action == "status":
            try:
                remaining = scheduler.status_session(uid)
            except NotRunningError:
                return SkillResult(output="❌ You have no running Pomodoro session")
            return SkillResult(output=f"⏱️ Time left: {format_remaining(remaining)}")

        elif action == "stats":
            stats = get_pomodoro_stats(uid)
            return SkillResult(
                output="📊 Pomodoro stats:\n\n"
                       f"Sessions: {stats['total_sessions']}\n"
                       f"Completed: {stats['completed_sessions']}\n"
                       f"Focus time: {format_minutes(stats['total_minutes'])}"
            )

        return SkillResult(output=USAGE)

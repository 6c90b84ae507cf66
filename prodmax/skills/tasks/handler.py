"""Tasks skill — create, list, complete and delete tasks."""

from datetime import date

from prodmax import xp
from prodmax.config import XP_TASK
from prodmax.db import create_task, get_tasks, get_task, complete_task, delete_task
from prodmax.formatting import level_up_line
from prodmax.skills.base import Skill, SkillContext, SkillResult

MAX_LISTED = 10


def _parse_id(text: str) -> int | None:
    text = text.strip().lstrip("#")
    return int(text) if text.isdigit() else None


class TasksSkill(Skill):

    async def execute(self, context: SkillContext) -> SkillResult:
        command = context.command
        uid = context.user_id

        if command == "tasks":
            tasks = get_tasks(uid)
            if not tasks:
                return SkillResult(output="📝 No tasks yet. Create one: /task [title]")
            pending = [t for t in tasks if t["status"] == "pending"]
            done = [t for t in tasks if t["status"] == "completed"]

            lines = ["📝 Your tasks:", ""]
            if pending:
                lines.append("⏳ In progress:")
                for i, t in enumerate(pending[:MAX_LISTED], 1):
                    line = f"{i}. {t['title']}"
                    if t["priority"] == "high":
                        line += " 🔥"
                    if t["due_date"]:
                        line += f" (due {date.fromisoformat(t['due_date'][:10]):%d %b %Y})"
                    lines.append(line)
                    lines.append(f"   /complete {t['id']}")
            if done:
                lines.append("")
                lines.append(f"✅ Completed: {len(done)}")
            lines.append("")
            lines.append("💡 New task: /task [title]")
            return SkillResult(output="\n".join(lines))

        elif command == "task":
            title = context.text.strip()
            priority = "medium"
            if title.startswith("!"):
                title = title[1:].strip()
                priority = "high"
            if not title:
                return SkillResult(output="❌ Give the task a title: /task [title]", success=False)
            task = create_task(uid, title, priority=priority)
            return SkillResult(
                output=f"✅ Task created!\n\n\"{task['title']}\"\n\n"
                       f"Use /complete {task['id']} when it's done"
            )

        elif command == "complete":
            tid = _parse_id(context.text)
            if tid is None:
                return SkillResult(output="❌ Give the task id: /complete [id]", success=False)
            task = get_task(tid, uid)
            if not task:
                return SkillResult(output="❌ Task not found", success=False)
            if not complete_task(tid, uid):
                return SkillResult(output=f"Task \"{task['title']}\" is already completed.")
            grant = xp.grant(uid, XP_TASK)
            return SkillResult(
                output=f"🎉 Task \"{task['title']}\" done!\n\n+{XP_TASK} XP" + level_up_line(grant)
            )

        elif command == "deltask":
            tid = _parse_id(context.text)
            if tid is None:
                return SkillResult(output="❌ Give the task id: /deltask [id]", success=False)
            if not delete_task(tid, uid):
                return SkillResult(output="❌ Task not found", success=False)
            return SkillResult(output=f"🗑 Task #{tid} deleted.")

        return SkillResult(output=f"Unknown command: /{command}", success=False)

"""Career skill — goals with progress, completion XP and simple recommendations."""

from prodmax import xp
from prodmax.config import XP_GOAL
from prodmax.db import create_goal, get_goals, get_goal, set_goal_progress, complete_goal
from prodmax.formatting import level_up_line, progress_bar
from prodmax.skills.base import Skill, SkillContext, SkillResult


def recommend(goals: list[dict]) -> list[dict]:
    """Rule-based nudges: <30% start, 30-69% continue, ≥70% finish."""
    recs = []
    for goal in goals:
        progress = goal["progress"]
        if progress < 30:
            recs.append({"type": "start", "goal": goal,
                         "message": f"Get started on \"{goal['title']}\". Break it into small steps!"})
        elif progress < 70:
            recs.append({"type": "continue", "goal": goal,
                         "message": f"Great progress on \"{goal['title']}\"! Keep it up!"})
        else:
            recs.append({"type": "finish", "goal": goal,
                         "message": f"You're almost there with \"{goal['title']}\"! Just a little more!"})
    return recs


class CareerSkill(Skill):

    async def execute(self, context: SkillContext) -> SkillResult:
        command = context.command
        uid = context.user_id

        if command == "career":
            goals = get_goals(uid, "active")
            if not goals:
                return SkillResult(output="🚀 No career goals yet. Create one: /goal [title]")
            lines = ["🚀 Your career goals:", ""]
            for i, g in enumerate(goals, 1):
                lines.append(f"{i}. {g['title']} (ID: {g['id']})")
                lines.append(f"   {progress_bar(g['progress'])} {g['progress']}%")
                lines.append("")
            lines.append("💡 New goal: /goal [title]")
            return SkillResult(output="\n".join(lines))

        elif command == "goal":
            title = context.text.strip()
            if not title:
                return SkillResult(output="❌ Give the goal a title: /goal [title]", success=False)
            goal = create_goal(uid, title)
            return SkillResult(
                output=f"🚀 Goal \"{goal['title']}\" created!\n\n"
                       f"Track it with /setprogress {goal['id']} [percent]"
            )

        elif command == "setprogress":
            if len(context.argv) != 2 or not context.argv[0].isdigit():
                return SkillResult(output="❌ Usage: /setprogress [id] [percent]", success=False)
            try:
                progress = int(context.argv[1].rstrip("%"))
            except ValueError:
                return SkillResult(output="❌ Usage: /setprogress [id] [percent]", success=False)
            progress = max(0, min(100, progress))
            goal_id = int(context.argv[0])

            previous = set_goal_progress(goal_id, uid, progress)
            if previous is None:
                return SkillResult(output="❌ Goal not found", success=False)
            reply = f"📈 \"{previous['title']}\": {progress_bar(progress)} {progress}%"
            if progress == 100 and previous["progress"] < 100 and previous["status"] != "completed":
                grant = xp.grant(uid, XP_GOAL)
                reply += f"\n\n🏆 Goal reached! +{XP_GOAL} XP" + level_up_line(grant)
            return SkillResult(output=reply)

        elif command == "goaldone":
            arg = context.text.strip().lstrip("#")
            if not arg.isdigit():
                return SkillResult(output="❌ Give the goal id: /goaldone [id]", success=False)
            goal_id = int(arg)
            previous = complete_goal(goal_id, uid)
            if previous is None:
                if get_goal(goal_id, uid):
                    return SkillResult(output="This goal is already completed.")
                return SkillResult(output="❌ Goal not found", success=False)
            reply = f"🏆 Goal \"{previous['title']}\" completed!"
            # Progress already hit 100% earlier, the XP was granted then
            if previous["progress"] < 100:
                grant = xp.grant(uid, XP_GOAL)
                reply += f"\n\n+{XP_GOAL} XP" + level_up_line(grant)
            return SkillResult(output=reply)

        elif command == "progress":
            recs = recommend(get_goals(uid, "active"))
            if not recs:
                return SkillResult(output="🚀 No active goals yet. Create one: /goal [title]")
            lines = ["💡 Recommendations:", ""]
            for i, rec in enumerate(recs, 1):
                lines.append(f"{i}. {rec['message']}")
                lines.append("")
            return SkillResult(output="\n".join(lines).rstrip())

        return SkillResult(output=f"Unknown command: /{command}", success=False)

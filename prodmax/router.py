"""Command router — turns an incoming chat message into a skill call.

Flow:
1. Register (or look up) the sender
2. Parse "/command args" (or a keyboard-button / bare-word alias)
3. /start and /help are answered here; everything else goes to the
   skill that owns the command
4. Return the reply text
"""

import logging
from dataclasses import dataclass, field

from prodmax.clock import Clock
from prodmax.db import get_or_create_user
from prodmax.pomodoro import PomodoroScheduler
from prodmax.skills.base import SkillContext
from prodmax.streaks import StreakEngine
from prodmax.transport import IncomingMessage
import prodmax.skills as skill_registry

log = logging.getLogger(__name__)

HELP_COMMANDS = ("start", "help")

# Reply-keyboard buttons shown on /start (their texts are skill aliases)
KEYBOARD = [["📝 Tasks", "🍅 Pomodoro"], ["✅ Habits", "📊 Stats"]]


@dataclass
class Services:
    """Long-lived components handed to every skill."""
    scheduler: PomodoroScheduler
    streaks: StreakEngine
    clock: Clock


@dataclass
class ParsedCommand:
    name: str
    text: str = ""
    argv: list[str] = field(default_factory=list)


def parse_command(text: str) -> ParsedCommand | None:
    """'/Task@ProdMaxBot Buy milk' → ParsedCommand('task', 'Buy milk', ['Buy', 'milk'])."""
    text = (text or "").strip()
    if not text:
        return None

    if text.startswith("/"):
        head, _, rest = text[1:].partition(" ")
        name = head.split("@", 1)[0].lower()
        if not name:
            return None
        rest = rest.strip()
        return ParsedCommand(name=name, text=rest, argv=rest.split())

    alias = skill_registry.resolve(text)
    if alias:
        return ParsedCommand(name=alias)
    return None


def build_help(user: dict) -> str:
    lines = [
        "🎯 Hi! I'm ProdMax, your productivity assistant.",
        "",
        "💡 Commands:",
        "/start or /help - this menu",
    ]
    for cmd in skill_registry.get_commands():
        lines.append(f"{cmd['usage']} - {cmd['description']}")
    lines += [
        "",
        f"🔥 Level: {user.get('level', 1)} | XP: {user.get('xp', 0)}",
        "",
        "Start with your first task: /task Read the docs",
    ]
    return "\n".join(lines)


async def handle_message(message: IncomingMessage, services: Services) -> str:
    """Process an incoming message and return the reply ('' for no reply)."""
    parsed = parse_command(message.text)
    if parsed is None and not (message.text or "").strip():
        return ""

    user = get_or_create_user(message.user_id, message.username)

    if parsed is None or (parsed.name not in HELP_COMMANDS
                          and not skill_registry.get_command_skill(parsed.name)):
        log.debug("Unrecognised input from user %d: %r", user["id"], message.text)
        return "🤔 I don't know that command. Send /help for the list."

    if parsed.name in HELP_COMMANDS:
        return build_help(user)

    context = SkillContext(
        command=parsed.name,
        user_id=user["id"],
        channel_id=message.channel_id,
        text=parsed.text,
        argv=parsed.argv,
        user=user,
        services=services,
    )
    result = await skill_registry.dispatch(context)
    return result.output

"""Skill registry — auto-discovery and management of skills.

Skills are discovered by scanning the skills/ directory for subdirectories
containing handler.py and SKILL.md.

Usage:
    import prodmax.skills as registry
    registry.discover()                  # scan and load all skills
    name = registry.resolve("🍅 Pomodoro")  # alias → command
    result = await registry.dispatch(context)
"""

import importlib
import logging
from pathlib import Path

from prodmax.skills.base import Skill, SkillContext, SkillResult

log = logging.getLogger(__name__)

_SKILLS_DIR = Path(__file__).parent

# Registries
_skills: dict[str, Skill] = {}           # name → skill instance
_command_map: dict[str, str] = {}        # command name → skill name
_alias_map: dict[str, str] = {}          # lowercased alias → command name


def discover() -> list[str]:
    """Scan the skills directory and register all valid skills.

    A valid skill has: __init__.py + handler.py + SKILL.md
    Returns list of registered skill names.
    """
    registered = []

    for entry in sorted(_SKILLS_DIR.iterdir()):
        if not entry.is_dir():
            continue
        if entry.name.startswith("_"):
            continue

        handler_path = entry / "handler.py"
        skill_md_path = entry / "SKILL.md"

        if not handler_path.exists():
            continue

        # Skip disabled skills
        if not skill_md_path.exists() and (entry / "SKILL.md.disabled").exists():
            log.info("Skill disabled: %s", entry.name)
            continue

        try:
            module = importlib.import_module(f"prodmax.skills.{entry.name}.handler")
            # Look for a class that subclasses Skill
            skill_cls = None
            for attr_name in dir(module):
                attr = getattr(module, attr_name)
                if (isinstance(attr, type) and issubclass(attr, Skill)
                        and attr is not Skill):
                    skill_cls = attr
                    break

            if skill_cls is None:
                log.warning("No Skill subclass found in %s", entry.name)
                continue

            skill = skill_cls()
            _skills[skill.name] = skill

            for cmd in skill.get_commands():
                if cmd["name"] in _command_map:
                    log.warning("Command /%s already owned by %s, skipping",
                                cmd["name"], _command_map[cmd["name"]])
                    continue
                _command_map[cmd["name"]] = skill.name
                for alias in cmd["aliases"]:
                    _alias_map[alias.lower()] = cmd["name"]

            registered.append(skill.name)
            log.info("✅ Registered skill: %s (commands: %s)",
                     skill.name, [c["name"] for c in skill.get_commands()])

        except Exception as e:
            log.error("Failed to load skill %s: %s", entry.name, e, exc_info=True)

    log.info("Skill discovery complete: %d skills registered", len(registered))
    return registered


def get_skill(name: str) -> Skill | None:
    """Get a skill by name."""
    return _skills.get(name)


def get_command_skill(command: str) -> str | None:
    """Get the skill name that owns a command."""
    return _command_map.get(command)


def resolve(text: str) -> str | None:
    """Map a bare word or keyboard-button text to a command name."""
    return _alias_map.get(text.strip().lower())


def get_commands() -> list[dict]:
    """All exposed command definitions, in discovery order (for /help)."""
    commands = []
    for skill in _skills.values():
        if skill.expose:
            commands.extend(skill.get_commands())
    return commands


async def dispatch(context: SkillContext) -> SkillResult:
    """Dispatch a parsed command to the skill that owns it."""
    skill_name = _command_map.get(context.command)
    if not skill_name:
        return SkillResult(output=f"Unknown command: /{context.command}", success=False)

    skill = _skills.get(skill_name)
    if not skill:
        return SkillResult(output=f"Skill not found: {skill_name}", success=False)

    return await skill.run(context)


def list_skills() -> list[dict]:
    """List all registered skills with metadata."""
    return [
        {
            "name": s.name,
            "expose": s.expose,
            "commands": [c["name"] for c in s.get_commands()],
        }
        for s in _skills.values()
    ]

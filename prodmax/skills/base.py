"""Skill base class and SKILL.md parser.

Every skill directory must have:
  - SKILL.md       (command definitions + metadata)
  - handler.py     (execution logic)
  - __init__.py

SKILL.md drives both routing (command names and aliases) and the /help
text, so adding a command never means touching the router.
"""

import inspect
import os
import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)


@dataclass
class SkillContext:
    """Unified invocation context passed to Skill.run().

    The router builds this for every command. `services` carries the
    long-lived components (scheduler, streak engine, clock).
    """
    command: str
    user_id: int = 0            # internal users.id
    channel_id: int = 0
    text: str = ""              # everything after the command word
    argv: list[str] = field(default_factory=list)
    user: dict = field(default_factory=dict)
    services: Any = None


@dataclass
class SkillResult:
    """Unified result returned by Skill.run().

    - output: reply text sent back to the user
    - success: whether the skill executed without error
    """
    output: str = ""
    success: bool = True


def _parse_skill_md(md_path: str) -> dict:
    """Parse a SKILL.md file -> {meta, commands, expose}.

    Expected format:
      ---
      name: pomodoro
      expose: true
      ---

      ## Command: pomodoro
      Description: Start, stop or check a focus session
      Usage: /pomodoro [start|stop|status|stats]
      Aliases: 🍅 Pomodoro, pomodoro
    """
    result = {"meta": {}, "commands": [], "expose": True}

    if not os.path.exists(md_path):
        return result

    with open(md_path, "r", encoding="utf-8") as f:
        content = f.read()

    # Parse front matter
    fm_match = re.match(r"^---\s*\n(.*?)\n---", content, re.DOTALL)
    if fm_match:
        for line in fm_match.group(1).strip().split("\n"):
            if ":" in line:
                key, val = line.split(":", 1)
                key = key.strip()
                val = val.strip()
                if key == "expose":
                    result["expose"] = val.lower() in ("true", "yes", "1")
                else:
                    result["meta"][key] = val

    # Parse command sections
    blocks = re.split(r"^## Command:\s*", content, flags=re.MULTILINE)[1:]
    for block in blocks:
        lines = block.strip().split("\n")
        name = lines[0].strip().lstrip("/").lower()
        fields = {}
        for line in lines[1:]:
            m = re.match(r"^(Description|Usage|Aliases)\s*:\s*(.+)$", line.strip(), re.IGNORECASE)
            if m:
                fields[m.group(1).lower()] = m.group(2).strip()
        aliases = [a.strip() for a in fields.get("aliases", "").split(",") if a.strip()]
        result["commands"].append({
            "name": name,
            "description": fields.get("description", ""),
            "usage": fields.get("usage", f"/{name}"),
            "aliases": aliases,
        })

    return result


class Skill(ABC):
    """Base class for all ProdMax skills."""

    def __init__(self):
        self._skill_md: dict | None = None
        self._name: str = ""

    @property
    def name(self) -> str:
        if self._name:
            return self._name
        # e.g., prodmax.skills.pomodoro.handler → pomodoro
        parts = (self.__class__.__module__ or "").split(".")
        if len(parts) >= 3:
            self._name = parts[-2]
        else:
            self._name = self.__class__.__name__.lower()
        return self._name

    @property
    def skill_md(self) -> dict:
        """Parsed SKILL.md content (cached)."""
        if self._skill_md is None:
            skill_dir = os.path.dirname(inspect.getfile(self.__class__))
            self._skill_md = _parse_skill_md(os.path.join(skill_dir, "SKILL.md"))
        return self._skill_md

    def get_commands(self) -> list[dict]:
        return self.skill_md.get("commands", [])

    @property
    def expose(self) -> bool:
        """Whether this skill's commands are listed in /help."""
        return self.skill_md.get("expose", True)

    @abstractmethod
    async def execute(self, context: SkillContext) -> SkillResult:
        """Execute the skill. Must be implemented by subclasses."""
        ...

    async def run(self, context: SkillContext) -> SkillResult:
        """Unified entry point. Wraps execute() with logging."""
        log.info("Skill %s: /%s", self.name, context.command)
        try:
            return await self.execute(context)
        except Exception as e:
            log.error("Skill %s failed: %s", self.name, e, exc_info=True)
            return SkillResult(
                output="😅 Something went wrong. Try again or send /help.",
                success=False,
            )

"""XP and levels — every reward in ProdMax goes through grant().

Levels are linear: level = xp // XP_PER_LEVEL + 1.
"""

import logging
import sqlite3
from dataclasses import dataclass

from prodmax import db
from prodmax.config import XP_PER_LEVEL
from prodmax.errors import PersistenceFailure, SubjectNotFoundError

log = logging.getLogger(__name__)


@dataclass
class XpGrant:
    gained: int
    new_total: int
    new_level: int
    leveled_up: bool


def level_for(total_xp: int, per_level: int = XP_PER_LEVEL) -> int:
    return max(0, total_xp) // per_level + 1


def grant(user_id: int, amount: int, store=db) -> XpGrant:
    """Add XP to a user and refresh the cached level."""
    try:
        new_total = store.add_user_xp(user_id, amount)
        if new_total is None:
            raise SubjectNotFoundError("user", user_id)
        old_level = level_for(new_total - amount)
        new_level = level_for(new_total)
        if new_level != old_level:
            store.set_user_level(user_id, new_level)
    except sqlite3.Error as e:
        raise PersistenceFailure(f"Could not grant XP to user {user_id}: {e}") from e

    leveled_up = new_level > old_level
    if leveled_up:
        log.info("User %d reached level %d", user_id, new_level)
    return XpGrant(gained=amount, new_total=new_total,
                   new_level=new_level, leveled_up=leveled_up)

"""Domain errors raised by the pomodoro scheduler and streak engine.

All of them are recoverable: skill handlers turn them into replies.
"""

from datetime import timedelta


class ProdMaxError(Exception):
    """Base class for all ProdMax errors."""


class AlreadyRunningError(ProdMaxError):
    """A session is already running for this owner."""

    def __init__(self, owner: int, remaining: timedelta):
        super().__init__(f"Session already running for user {owner}")
        self.owner = owner
        self.remaining = remaining


class NotRunningError(ProdMaxError):
    """No session is running for this owner."""

    def __init__(self, owner: int):
        super().__init__(f"No running session for user {owner}")
        self.owner = owner


class SubjectNotFoundError(ProdMaxError):
    """A habit, task, goal or user does not exist (or is not the caller's)."""

    def __init__(self, kind: str, key):
        super().__init__(f"{kind} not found: {key}")
        self.kind = kind
        self.key = key


class PersistenceFailure(ProdMaxError):
    """A store call failed. Not retried here."""

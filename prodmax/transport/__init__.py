"""Transport abstraction — base class for message transports.

A transport handles sending and receiving messages. Telegram is the only
one shipped, but the router and the scheduler notifications only talk to
this interface.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass
class IncomingMessage:
    """A message received from any transport."""
    user_id: int             # chat platform user id
    channel_id: int
    text: str
    transport: str           # "telegram" | etc.
    username: str | None = None
    raw: dict | None = None  # transport-specific raw data


class Transport(ABC):
    """Abstract base class for message transports.

    Transports are "dumb pipes" — they handle message I/O only.
    Business logic lives in the router / skills layer.
    """

    @abstractmethod
    async def start(self) -> None:
        """Start the transport (connect, listen for messages)."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Gracefully stop the transport."""
        ...

    @abstractmethod
    async def send_message(self, user_id: int, text: str) -> None:
        """Send a text message to a user."""
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport identifier (e.g., 'telegram')."""
        ...

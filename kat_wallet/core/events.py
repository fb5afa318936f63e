"""Inbound chat events, independent of the chat platform."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class EventKind(Enum):
    """What the user did."""

    COMMAND = "command"
    MESSAGE = "message"
    COMPONENT = "component"


@dataclass(frozen=True)
class Event:
    """
    A single inbound event routed to a wallet session.

    ``custom_id`` is set for interactive component clicks and ``message_id``
    identifies the message that carried the event (the prompt for a click,
    the user's own message for text).
    """

    kind: EventKind
    user_id: int
    chat_id: int
    chat_private: bool = True
    text: str = ""
    custom_id: Optional[str] = None
    message_id: Optional[int] = None
    raw: Any = None

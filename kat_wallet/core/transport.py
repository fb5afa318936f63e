"""Chat transport abstract base class."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple, Union

from kat_wallet.core.events import Event


@dataclass(frozen=True)
class Destination:
    """A chat the bot can deliver prompts to."""

    chat_id: int
    private: bool = True


@dataclass(frozen=True)
class PromptHandle:
    """Reference to a delivered message, used to delete it later."""

    chat_id: int
    message_id: int


@dataclass(frozen=True)
class Button:
    """Interactive component: a labelled choice delivered back as its custom id."""

    custom_id: str
    label: str
    style: str = "secondary"


@dataclass(frozen=True)
class Card:
    """Structured prompt content (title, description, named fields, footer)."""

    title: str
    description: str = ""
    fields: Tuple[Tuple[str, str], ...] = field(default_factory=tuple)
    footer: Optional[str] = None


Content = Union[str, Card]
ButtonRows = Sequence[Sequence[Button]]


class Transport(ABC):
    """Rendering and delivery of prompts to the chat platform."""

    @abstractmethod
    async def send(
        self,
        destination: Destination,
        content: Content,
        buttons: Optional[ButtonRows] = None
    ) -> PromptHandle:
        """
        Render and deliver a prompt.

        Args:
            destination: Target chat
            content: Plain text or a Card
            buttons: Optional rows of interactive components

        Returns:
            Handle of the delivered message
        """
        pass

    @abstractmethod
    async def delete(self, handle: PromptHandle):
        """
        Delete a previously delivered message.

        Args:
            handle: Handle returned by ``send`` (or built from a user's message)
        """
        pass

    @abstractmethod
    async def clear(self, destination: Destination) -> int:
        """
        Delete the bot messages tracked for a chat.

        Args:
            destination: Chat to clear

        Returns:
            Number of messages deleted
        """
        pass

    @abstractmethod
    async def open_private(self, event: Event) -> Destination:
        """
        Resolve the private chat a session should run in.

        Args:
            event: The trigger event

        Returns:
            Private destination for the event's user
        """
        pass


def button_ids(rows: ButtonRows) -> List[str]:
    """Custom ids of every button in a layout, in display order."""
    return [button.custom_id for row in rows for button in row]

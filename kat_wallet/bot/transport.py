"""
Telegram implementation of the chat transport.

Renders prompts as Telegram messages with inline keyboards, keeps track of
the messages it sent so a private chat can be cleared later, and converts
incoming updates to platform-independent events.
"""

import logging
from collections import defaultdict, deque
from typing import Deque, Dict, Optional

from telegram import Bot, Update
from telegram.constants import ChatType, ParseMode
from telegram.error import BadRequest, Forbidden, TelegramError
from telegram.helpers import escape_markdown

from kat_wallet.core.errors import ChannelTypeError
from kat_wallet.core.events import Event, EventKind
from kat_wallet.core.transport import (
    ButtonRows,
    Card,
    Content,
    Destination,
    PromptHandle,
    Transport,
)
from kat_wallet.bot.keyboards import build_inline_keyboard

logger = logging.getLogger(__name__)

# Most recent bot messages remembered per chat for clearing
TRACKED_MESSAGES_PER_CHAT = 100


def render_card(card: Card) -> str:
    """Format a Card as MarkdownV2 text."""
    parts = [f"*{escape_markdown(card.title, version=2)}*"]
    if card.description:
        parts.append(escape_markdown(card.description, version=2))
    for name, value in card.fields:
        parts.append(f"*{escape_markdown(name, version=2)}*\n{escape_markdown(value, version=2)}")
    if card.footer:
        parts.append(f"_{escape_markdown(card.footer, version=2)}_")
    return "\n\n".join(parts)


class TelegramTransport(Transport):
    """Transport backed by a python-telegram-bot ``Bot``."""

    def __init__(self, bot: Bot, tracked_per_chat: int = TRACKED_MESSAGES_PER_CHAT):
        """
        Initialize the transport.

        Args:
            bot: Telegram bot instance
            tracked_per_chat: How many sent message ids to remember per chat
        """
        self.bot = bot
        self._sent: Dict[int, Deque[int]] = defaultdict(lambda: deque(maxlen=tracked_per_chat))

    async def send(
        self,
        destination: Destination,
        content: Content,
        buttons: Optional[ButtonRows] = None
    ) -> PromptHandle:
        if isinstance(content, Card):
            text, parse_mode = render_card(content), ParseMode.MARKDOWN_V2
        else:
            text, parse_mode = content, None

        try:
            message = await self.bot.send_message(
                chat_id=destination.chat_id,
                text=text,
                parse_mode=parse_mode,
                reply_markup=build_inline_keyboard(buttons)
            )
        except Forbidden as e:
            raise ChannelTypeError(
                f"Cannot message chat {destination.chat_id}: {e}",
                "I can't message you privately yet. Open a chat with the bot, press Start, and try again."
            ) from e

        self._sent[destination.chat_id].append(message.message_id)
        return PromptHandle(chat_id=destination.chat_id, message_id=message.message_id)

    async def delete(self, handle: PromptHandle):
        await self.bot.delete_message(chat_id=handle.chat_id, message_id=handle.message_id)
        tracked = self._sent.get(handle.chat_id)
        if tracked and handle.message_id in tracked:
            tracked.remove(handle.message_id)

    async def clear(self, destination: Destination) -> int:
        tracked = self._sent.pop(destination.chat_id, None)
        if not tracked:
            return 0

        deleted = 0
        for message_id in list(tracked):
            try:
                await self.bot.delete_message(chat_id=destination.chat_id, message_id=message_id)
                deleted += 1
            except BadRequest as e:
                # Already gone, or older than Telegram allows bots to delete
                logger.debug(f"Could not delete message {message_id} in chat {destination.chat_id}: {e}")
            except TelegramError as e:
                logger.warning(f"Failed to delete message {message_id} in chat {destination.chat_id}: {e}")
        return deleted

    async def open_private(self, event: Event) -> Destination:
        if event.chat_private:
            return Destination(chat_id=event.chat_id, private=True)

        # Private chat ids equal the user id on Telegram
        await self.bot.send_message(
            chat_id=event.chat_id,
            text="I've sent you a private message to start your wallet session!"
        )
        return Destination(chat_id=event.user_id, private=True)


def event_from_update(update: Update, kind: EventKind) -> Optional[Event]:
    """
    Convert a Telegram update to a session Event.

    Args:
        update: Incoming update
        kind: How the update was routed (command, text message, button click)

    Returns:
        Event, or None when the update has no user or chat
    """
    user = update.effective_user
    chat = update.effective_chat
    if user is None or chat is None:
        return None

    private = chat.type == ChatType.PRIVATE

    if kind is EventKind.COMPONENT:
        query = update.callback_query
        if query is None:
            return None
        return Event(
            kind=kind,
            user_id=user.id,
            chat_id=chat.id,
            chat_private=private,
            custom_id=query.data,
            message_id=query.message.message_id if query.message else None,
            raw=update
        )

    message = update.effective_message
    return Event(
        kind=kind,
        user_id=user.id,
        chat_id=chat.id,
        chat_private=private,
        text=(message.text or "") if message else "",
        message_id=message.message_id if message else None,
        raw=update
    )

"""
Telegram keyboard layouts.
"""

from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from kat_wallet.core.transport import ButtonRows

# Telegram buttons have no colour, so emphasis goes into the label
STYLE_PREFIXES = {
    "success": "✅ ",
    "danger": "⛔ ",
}


def build_inline_keyboard(rows: Optional[ButtonRows]) -> Optional[InlineKeyboardMarkup]:
    """
    Convert prompt button rows to an inline keyboard.

    Args:
        rows: Button rows, or None for a plain message

    Returns:
        Inline keyboard markup, or None when there are no buttons
    """
    if not rows:
        return None

    keyboard = [
        [
            InlineKeyboardButton(
                f"{STYLE_PREFIXES.get(button.style, '')}{button.label}",
                callback_data=button.custom_id
            )
            for button in row
        ]
        for row in rows
    ]
    return InlineKeyboardMarkup(keyboard)

"""
Telegram bot conversation flows.

This package contains the wallet session state machine and the prompt
steps it drives.
"""

from .prompts import SessionTimeouts, WalletPrompts
from .wallet_session import SessionController

__all__ = ["SessionController", "SessionTimeouts", "WalletPrompts"]

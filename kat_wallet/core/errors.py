"""
Wallet session error taxonomy and classification.

Every error raised inside a wallet session step is a ``WalletError`` carrying
a short machine-oriented ``code`` and a ``user_message`` with remediation
text. ``ErrorClassifier`` turns any exception (typed or not) into an
``ErrorReport`` and ``report_error`` delivers it to the user.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

import requests

if TYPE_CHECKING:
    from kat_wallet.core.transport import Destination, Transport

logger = logging.getLogger(__name__)

# Stands for the configured session command in user messages
COMMAND_PLACEHOLDER = "{command}"


class WalletError(Exception):
    """Base exception for wallet sessions."""

    code = "WALLET_ERROR"
    user_message = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        user_message: Optional[str] = None,
        code: Optional[str] = None
    ):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message
        if code is not None:
            self.code = code


# Wording used in rate limit messages, keyed by action key
ACTION_DESCRIPTIONS: Dict[str, str] = {
    "network_selection": "selecting networks",
    "wallet_actions": "performing wallet actions",
    "check_balance": "checking balance",
    "transaction_history": "viewing transaction history",
    "help": "requesting help messages",
    "clear_chat": "clearing chat history",
}


class RateLimitExceeded(WalletError):
    """An action was attempted more often than its rate limit allows."""

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, action_key: str, remaining: float):
        self.action_key = action_key
        self.remaining = remaining
        seconds = max(int(math.ceil(remaining)), 1)
        description = ACTION_DESCRIPTIONS.get(action_key, "performing this action")
        super().__init__(
            f"Rate limit exceeded for {action_key}",
            f"You're {description} too frequently. Please try again in {seconds} seconds."
        )


class InvalidInput(WalletError):
    """User input failed validation."""

    code = "INVALID_INPUT"

    MESSAGES = {
        "address": "The recipient address you entered is invalid.",
        "amount": "The amount you entered is invalid.",
        "private_key": "The private key you entered is invalid.",
        "network": "Please select a valid network.",
    }

    def __init__(self, field: str):
        self.field = field
        super().__init__(
            f"Invalid {field}",
            self.MESSAGES.get(field, f"The {field} you entered is invalid."),
            f"INVALID_{field.upper()}"
        )


class InvalidSession(WalletError):
    """The session is missing data the current step needs."""

    code = "INVALID_SESSION"

    def __init__(self, reason: str, user_message: Optional[str] = None):
        self.reason = reason
        super().__init__(
            f"Invalid session: {reason}",
            user_message or "Your wallet session is invalid. Please start over with the /{command} command."
        )


class InteractionTimeout(WalletError, TimeoutError):
    """No matching response arrived before the deadline."""

    code = "INTERACTION_TIMEOUT"

    MESSAGES = {
        "network_selection": "Network selection timed out. Please use the /{command} command again to restart.",
        "wallet_options": "Wallet setup timed out. Please use the /{command} command again to restart.",
        "import_private_key": "No private key received in time. Please choose an option again.",
        "wallet_actions": "The wallet menu timed out. Use the /{command} command to continue.",
        "recipient_address": "No recipient address received in time. The transaction was not sent.",
        "send_amount": "No amount received in time. The transaction was not sent.",
    }

    def __init__(self, step: str, timeout: float):
        self.step = step
        self.timeout = timeout
        super().__init__(
            f"Interaction '{step}' timed out after {timeout}s",
            self.MESSAGES.get(step, "No response received in time. Please use the /{command} command to continue.")
        )


class WalletCreationError(WalletError):
    """The wallet collaborator failed to generate a wallet."""

    code = "WALLET_CREATION_ERROR"
    user_message = "An error occurred while creating your wallet. Please try again."


class WalletImportError(WalletError):
    """The wallet collaborator rejected a private key."""

    code = "WALLET_IMPORT_ERROR"
    user_message = "Your wallet could not be imported. Please check the private key and try again."


class TransactionError(WalletError):
    """Sending funds failed."""

    code = "TRANSACTION_ERROR"
    user_message = "The transaction could not be completed. Please try again."


class ChannelTypeError(WalletError):
    """The operation is not possible in this kind of chat."""

    code = "INVALID_CHANNEL_TYPE"
    user_message = "This action is only available in a private chat with the bot."


class NetworkError(WalletError):
    """A remote API stayed unreachable after retries."""

    code = "NETWORK_ERROR"
    user_message = "The Kaspa network could not be reached. Please try again later."


class FlowSuperseded(Exception):
    """A newer trigger for the same user replaced the outstanding wait."""

    def __init__(self, user_id: Any):
        self.user_id = user_id
        super().__init__(f"Flow for user {user_id} superseded by a newer trigger")


@dataclass(frozen=True)
class ErrorReport:
    """Classified error: machine code and user-facing message."""

    code: str
    message: str


class ErrorClassifier:
    """
    Maps raised failures to an ErrorReport.

    Messages that point the user at the session command are rendered with
    the configured command name.
    """

    UNKNOWN = ErrorReport(
        "UNKNOWN_ERROR",
        "An unexpected error occurred. Please try again later."
    )

    def __init__(self, command: str = "wallet"):
        self.command = command

    def classify(self, error: BaseException) -> ErrorReport:
        report = self._classify(error)
        if COMMAND_PLACEHOLDER in report.message:
            return ErrorReport(report.code, report.message.replace(COMMAND_PLACEHOLDER, self.command))
        return report

    def _classify(self, error: BaseException) -> ErrorReport:
        if isinstance(error, WalletError):
            return ErrorReport(error.code, error.user_message)
        if isinstance(error, requests.RequestException):
            return ErrorReport(NetworkError.code, NetworkError.user_message)
        if isinstance(error, TimeoutError):
            return ErrorReport(
                InteractionTimeout.code,
                "No response received in time. Please use the /{command} command to continue."
            )
        return self.UNKNOWN


async def report_error(
    transport: "Transport",
    destination: "Destination",
    error: BaseException,
    context: str,
    classifier: Optional[ErrorClassifier] = None
) -> ErrorReport:
    """
    Classify, log and deliver an error to the user.

    A failure while delivering the message is logged and swallowed so that it
    never masks the caller's recovery transition.

    Args:
        transport: Transport used to reach the user
        destination: Chat to deliver the message to
        error: The raised exception
        context: Name of the step that failed (for logs)
        classifier: Optional classifier override

    Returns:
        The ErrorReport that was delivered
    """
    report = (classifier or ErrorClassifier()).classify(error)

    if report is ErrorClassifier.UNKNOWN:
        logger.error(f"[{context}] Unexpected error: {error}", exc_info=error)
    else:
        logger.warning(f"[{context}] {report.code}: {error}")

    try:
        await transport.send(destination, f"❌ {report.message}")
    except Exception as send_error:
        logger.error(f"[{context}] Failed to deliver error message: {send_error}")

    return report

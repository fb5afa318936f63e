"""
Wallet session prompt steps.

One coroutine per screen. Each renders its prompt through the transport,
waits for the user's response through the InteractionWaiter, validates it,
and returns a Transition (or raises a typed WalletError for the session
controller to recover from).
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from kat_wallet.core.errors import (
    ChannelTypeError,
    InteractionTimeout,
    InvalidInput,
    RateLimitExceeded,
    TransactionError,
    WalletCreationError,
    WalletError,
    WalletImportError,
)
from kat_wallet.core.events import Event, EventKind
from kat_wallet.core.interaction_waiter import InteractionWaiter
from kat_wallet.core.networks import SOMPI_PER_KAS, Network, explorer_link
from kat_wallet.core.rate_limiter import ActionKey, RateLimiter
from kat_wallet.core.session import Transition, UserSession, WalletState
from kat_wallet.core.transport import (
    Button,
    ButtonRows,
    Card,
    Content,
    Destination,
    PromptHandle,
    Transport,
    button_ids,
)
from kat_wallet.core.validation import (
    sanitize_input,
    validate_address,
    validate_amount,
    validate_network,
    validate_private_key,
)
from kat_wallet.services.wallet_service import WalletService

logger = logging.getLogger(__name__)

# Component ids
CREATE = "create"
IMPORT = "import"
SEND = "send"
BALANCE = "balance"
HISTORY = "history"
HELP = "help"
CLEAR = "clear"
BACK = "back"
CONFIRM_SEND = "confirm_send"
CANCEL_SEND = "cancel_send"

NETWORK_BUTTONS = [[
    Button(Network.MAINNET.value, "Mainnet", "primary"),
    Button(Network.TESTNET_10.value, "Testnet-10"),
    Button(Network.TESTNET_11.value, "Testnet-11"),
]]

WALLET_OPTION_BUTTONS = [[
    Button(CREATE, "Create New Wallet", "primary"),
    Button(IMPORT, "Import Existing Wallet"),
]]

WALLET_ACTION_BUTTONS = [
    [
        Button(SEND, "Send Kaspa", "primary"),
        Button(BALANCE, "Check Balance"),
        Button(HISTORY, "Transaction History"),
    ],
    [
        Button(HELP, "Help"),
        Button(CLEAR, "Clear Chat", "danger"),
        Button(BACK, "Back"),
    ],
]

CONFIRM_BUTTONS = [[
    Button(CONFIRM_SEND, "Confirm", "success"),
    Button(CANCEL_SEND, "Cancel", "danger"),
]]

HISTORY_DISPLAY_LIMIT = 5


@dataclass(frozen=True)
class SessionTimeouts:
    """Response deadlines in seconds."""

    menu: float = 300
    input: float = 60

    @classmethod
    def from_config(cls, config: dict) -> "SessionTimeouts":
        session = config.get('session', {})
        return cls(
            menu=session.get('menu_timeout_seconds', 300),
            input=session.get('input_timeout_seconds', 60)
        )


@dataclass(frozen=True)
class FlowContext:
    """What a step knows about the flow it runs in."""

    user_id: object
    destination: Destination
    session: UserSession


class WalletPrompts:
    """Prompt step library for the wallet session."""

    def __init__(
        self,
        transport: Transport,
        waiter: InteractionWaiter,
        rate_limiter: RateLimiter,
        wallet_service: WalletService,
        timeouts: Optional[SessionTimeouts] = None,
        command: str = "wallet"
    ):
        self.transport = transport
        self.waiter = waiter
        self.rate_limiter = rate_limiter
        self.wallet_service = wallet_service
        self.timeouts = timeouts or SessionTimeouts()
        self.command = command

    # ------------------------------------------------------------------
    # Building blocks
    # ------------------------------------------------------------------

    def _check_rate_limit(self, user_id, action_key: ActionKey):
        if not self.rate_limiter.allow(user_id, action_key):
            raise RateLimitExceeded(action_key.value, self.rate_limiter.remaining(user_id, action_key))

    async def _choose(
        self,
        ctx: FlowContext,
        step: str,
        content: Content,
        rows: ButtonRows,
        timeout: Optional[float] = None
    ) -> str:
        """Render a button prompt, wait for one of its buttons, then remove the prompt."""
        handle = await self.transport.send(ctx.destination, content, rows)
        options = set(button_ids(rows))

        def predicate(event: Event) -> bool:
            return (
                event.kind is EventKind.COMPONENT
                and event.message_id == handle.message_id
                and event.custom_id in options
            )

        event = await self.waiter.wait_for(ctx.user_id, predicate, timeout or self.timeouts.menu, step)
        await self._discard_prompt(handle, step)
        return event.custom_id

    async def _ask(self, ctx: FlowContext, step: str, question: str) -> Event:
        """Send a question and wait for the user's next text message in the same chat."""
        await self.transport.send(ctx.destination, question)

        def predicate(event: Event) -> bool:
            return event.kind is EventKind.MESSAGE and event.chat_id == ctx.destination.chat_id

        return await self.waiter.wait_for(ctx.user_id, predicate, self.timeouts.input, step)

    async def _discard_prompt(self, handle: PromptHandle, step: str):
        try:
            await self.transport.delete(handle)
        except Exception as e:
            logger.error(f"Failed to delete {step} message: {e}")

    # ------------------------------------------------------------------
    # Session setup
    # ------------------------------------------------------------------

    async def welcome(self, ctx: FlowContext) -> Transition:
        await self.transport.send(
            ctx.destination,
            "Welcome to your private Kat Wallet Session. "
            "Let's start by choosing which Network you'll be using."
        )
        return Transition.to(WalletState.NETWORK_SELECTION)

    async def network_selection(self, ctx: FlowContext) -> Transition:
        logger.info(f"Starting network selection for user: {ctx.user_id}")
        self._check_rate_limit(ctx.user_id, ActionKey.NETWORK_SELECTION)

        choice = await self._choose(
            ctx,
            "network_selection",
            Card("Network Selection", "Please select the network you want to use:"),
            NETWORK_BUTTONS
        )
        if not validate_network(choice):
            raise InvalidInput("network")

        network = Network(choice)
        logger.info(f"User {ctx.user_id} selected network: {network}")
        await self.transport.send(ctx.destination, f"You've selected {network}. Let's set up your wallet.")

        # A new network starts from a clean wallet
        return Transition.to(WalletState.WALLET_OPTIONS, network=network, address=None)

    async def wallet_options(self, ctx: FlowContext) -> Transition:
        logger.info(f"Prompting wallet options for user: {ctx.user_id}")
        network = ctx.session.require_network()

        choice = await self._choose(
            ctx,
            "wallet_options",
            Card("Wallet Options", "Please choose an option:"),
            WALLET_OPTION_BUTTONS
        )
        if choice == IMPORT:
            return Transition.to(WalletState.IMPORTING_WALLET)
        return await self._create_wallet(ctx, network)

    async def _create_wallet(self, ctx: FlowContext, network: Network) -> Transition:
        logger.info(f"Creating new wallet for user: {ctx.user_id}")
        try:
            wallet = await asyncio.to_thread(self.wallet_service.generate_wallet, ctx.user_id, network)
        except WalletCreationError:
            raise
        except Exception as e:
            raise WalletCreationError(f"Error creating wallet for user {ctx.user_id}: {e}") from e

        # Only report credentials once creation has fully succeeded
        await self.transport.send(ctx.destination, "Your new wallet has been created. Please store this information securely:")
        await self.transport.send(ctx.destination, f"Address: {wallet.address}")
        if wallet.private_key:
            await self.transport.send(ctx.destination, f"Private Key: {wallet.private_key}")
        if wallet.mnemonic:
            await self.transport.send(ctx.destination, f"Mnemonic: {wallet.mnemonic}")
        await self.transport.send(ctx.destination, "⚠️ WARNING: Never share your private key or mnemonic with anyone!")

        return Transition.to(WalletState.WALLET_ACTIONS, address=wallet.address)

    async def import_wallet(self, ctx: FlowContext) -> Transition:
        logger.info(f"Importing wallet for user: {ctx.user_id}")
        network = ctx.session.require_network()

        response = await self._ask(ctx, "import_private_key", "Please enter your private key:")

        # The key must not linger in the chat
        if response.message_id is not None:
            await self._discard_prompt(PromptHandle(response.chat_id, response.message_id), "private key")

        private_key = sanitize_input(response.text)
        if not validate_private_key(private_key):
            raise InvalidInput("private_key")

        try:
            wallet = await asyncio.to_thread(self.wallet_service.import_wallet, private_key, ctx.user_id, network)
        except WalletImportError:
            raise
        except Exception as e:
            raise WalletImportError(f"Error importing wallet for user {ctx.user_id}: {e}") from e

        await self.transport.send(
            ctx.destination,
            f"Your wallet has been imported successfully. Address: {wallet.address}"
        )
        logger.info(f"Wallet imported for user: {ctx.user_id}")
        return Transition.to(WalletState.WALLET_ACTIONS, address=wallet.address)

    # ------------------------------------------------------------------
    # Wallet actions
    # ------------------------------------------------------------------

    async def wallet_actions(self, ctx: FlowContext) -> Transition:
        logger.info(f"Prompting wallet actions for user: {ctx.user_id}")
        self._check_rate_limit(ctx.user_id, ActionKey.WALLET_ACTIONS)

        choice = await self._choose(
            ctx,
            "wallet_actions",
            Card("Wallet Actions", "What would you like to do?"),
            WALLET_ACTION_BUTTONS
        )

        if choice == SEND:
            return Transition.to(WalletState.SENDING_KASPA)
        if choice == BALANCE:
            return Transition.to(WalletState.CHECKING_BALANCE)
        if choice == HISTORY:
            return Transition.to(WalletState.VIEWING_HISTORY)
        if choice == HELP:
            await self.show_help(ctx)
        elif choice == CLEAR:
            await self.clear_chat(ctx)
        elif choice == BACK:
            return Transition.to(WalletState.NETWORK_SELECTION)

        return Transition.to(WalletState.WALLET_ACTIONS)

    async def send_funds(self, ctx: FlowContext) -> Transition:
        """
        Recipient, amount, then an explicit Confirm/Cancel choice.

        Funds only move when Confirm is chosen; any failure aborts the whole
        flow and the controller returns the session to the actions menu.
        """
        logger.info(f"Starting send Kaspa prompt for user: {ctx.user_id}")
        network = ctx.session.require_network()

        address_response = await self._ask(ctx, "recipient_address", "Please enter the recipient's Kaspa address:")
        recipient = sanitize_input(address_response.text)
        if not validate_address(recipient):
            raise InvalidInput("address")

        amount_response = await self._ask(ctx, "send_amount", "Please enter the amount of KAS to send:")
        amount = sanitize_input(amount_response.text)
        if not validate_amount(amount):
            raise InvalidInput("amount")

        confirm_card = Card(
            "Confirm Transaction",
            "Please confirm the transaction details:",
            (("Amount", f"{amount} KAS"), ("Recipient Address", recipient))
        )
        try:
            choice = await self._choose(
                ctx, "confirm_send", confirm_card, CONFIRM_BUTTONS, timeout=self.timeouts.input
            )
        except InteractionTimeout as e:
            logger.error(f"Interaction failed for user {ctx.user_id}: {e}")
            await self.transport.send(
                ctx.destination,
                "The confirmation interaction failed or timed out. Please try the transaction again."
            )
            return Transition.to(WalletState.WALLET_ACTIONS)

        if choice != CONFIRM_SEND:
            await self.transport.send(ctx.destination, "Transaction cancelled.")
            return Transition.to(WalletState.WALLET_ACTIONS)

        amount_sompi = int(Decimal(amount) * SOMPI_PER_KAS)
        try:
            tx_id = await asyncio.to_thread(
                self.wallet_service.send_funds, ctx.user_id, amount_sompi, recipient, network
            )
        except TransactionError:
            raise
        except Exception as e:
            raise TransactionError(f"Error sending {amount_sompi} sompi for user {ctx.user_id}: {e}") from e

        logger.info(f"Transaction {tx_id} sent for user: {ctx.user_id}")
        await self.transport.send(
            ctx.destination,
            f"Transaction completed successfully! View on Explorer here: {explorer_link(network, tx_id)}"
        )
        return Transition.to(WalletState.WALLET_ACTIONS)

    async def check_balance(self, ctx: FlowContext) -> Transition:
        logger.info(f"Checking balance for user: {ctx.user_id}")
        self._check_rate_limit(ctx.user_id, ActionKey.CHECK_BALANCE)

        address = ctx.session.require_address()
        network = ctx.session.require_network()
        balance = await asyncio.to_thread(self.wallet_service.get_balance, ctx.user_id, network, address)

        await self.transport.send(ctx.destination, Card(
            "Wallet Balance",
            f"Balance for {address}",
            (
                ("Kaspa Balance", balance.native_balance),
                ("KRC20 Tokens", "\n".join(balance.token_balances) if balance.token_balances else "No KRC20 tokens"),
            ),
            footer=f"Network: {network}"
        ))
        logger.info(f"Balance message sent to user: {ctx.user_id}")
        return Transition.to(WalletState.WALLET_ACTIONS)

    async def transaction_history(self, ctx: FlowContext) -> Transition:
        logger.info(f"Showing transaction history for user: {ctx.user_id}")
        self._check_rate_limit(ctx.user_id, ActionKey.TRANSACTION_HISTORY)

        address = ctx.session.require_address()
        if not validate_address(address):
            raise WalletError(
                f"Stored address for user {ctx.user_id} is malformed",
                "Your wallet address is invalid. Please create a new wallet.",
                "INVALID_WALLET"
            )
        network = ctx.session.require_network()

        history = await asyncio.to_thread(self.wallet_service.get_history, address, network)
        fields = tuple(
            (
                f"Transaction {index}",
                f"ID: {tx.id}\nAmount: {tx.amount} KAS\nType: {tx.kind}\nTimestamp: {tx.timestamp}"
            )
            for index, tx in enumerate(history[:HISTORY_DISPLAY_LIMIT], start=1)
        )

        await self.transport.send(ctx.destination, Card(
            "Transaction History",
            f"Recent transactions for {address}" if fields else f"No transactions found for {address}",
            fields,
            footer=f"Network: {network}"
        ))
        logger.info(f"Transaction history sent to user: {ctx.user_id}")
        return Transition.to(WalletState.WALLET_ACTIONS)

    async def show_help(self, ctx: FlowContext):
        logger.info(f"Showing help message for user: {ctx.user_id}")
        self._check_rate_limit(ctx.user_id, ActionKey.HELP)

        await self.transport.send(ctx.destination, Card(
            "Wallet Help",
            "Here are the available wallet commands:",
            (
                ("Send Kaspa", "Send Kaspa to another address"),
                ("Check Balance", "View your current Kaspa and KRC20 token balances"),
                ("Transaction History", "View your recent transactions"),
                ("Clear Chat", "Delete the messages this bot sent you"),
                ("Back", "Return to network selection"),
            ),
            footer=f"Use /{self.command} at any time to bring the wallet menu back."
        ))

    async def clear_chat(self, ctx: FlowContext):
        logger.info(f"Clearing chat history for user: {ctx.user_id}")
        self._check_rate_limit(ctx.user_id, ActionKey.CLEAR_CHAT)

        if not ctx.destination.private:
            raise ChannelTypeError(
                f"Clear requested outside a private chat by user {ctx.user_id}",
                "Chat history can only be cleared in private chats."
            )

        deleted = await self.transport.clear(ctx.destination)
        await self.transport.send(
            ctx.destination,
            "Bot messages have been cleared. For security, please manually delete "
            "any of your messages containing sensitive information."
        )
        logger.info(f"Chat history cleared for user {ctx.user_id} ({deleted} message(s))")

"""
Wallet session controller.

Drives each user's wallet flow as an explicit state machine:

1. A trigger (the wallet command) resolves the user's current state
2. The matching prompt step runs and returns a Transition
3. The transition is applied and the loop continues until a step suspends

Failures raised by a step are classified, reported to the user and turned
into a recovery transition; nothing escapes to the transport layer.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional

from kat_wallet.core.errors import (
    ErrorClassifier,
    FlowSuperseded,
    InteractionTimeout,
    RateLimitExceeded,
    WalletCreationError,
    report_error,
)
from kat_wallet.core.events import Event
from kat_wallet.core.interaction_waiter import InteractionWaiter
from kat_wallet.core.rate_limiter import ActionKey
from kat_wallet.core.session import (
    Transition,
    UserSession,
    WalletState,
)
from kat_wallet.core.session_registry import SessionRegistry
from kat_wallet.core.transport import Destination, Transport
from kat_wallet.bot.conversations.prompts import FlowContext, WalletPrompts

logger = logging.getLogger(__name__)

Step = Callable[[FlowContext], Awaitable[Transition]]


class SessionController:
    """
    Per-user wallet session state machine.

    The registry is the only place session state lives; the controller reads
    it at the top of every loop iteration and writes it only by applying
    transitions.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        waiter: InteractionWaiter,
        prompts: WalletPrompts,
        transport: Transport,
        classifier: Optional[ErrorClassifier] = None
    ):
        self.registry = registry
        self.waiter = waiter
        self.prompts = prompts
        self.transport = transport
        self.classifier = classifier or ErrorClassifier(command=prompts.command)
        # user_id -> token of the flow currently driving that user's session
        self._flows: Dict[object, object] = {}

        self._steps: Dict[WalletState, Step] = {
            WalletState.IDLE: prompts.welcome,
            WalletState.NETWORK_SELECTION: prompts.network_selection,
            WalletState.WALLET_OPTIONS: prompts.wallet_options,
            WalletState.IMPORTING_WALLET: prompts.import_wallet,
            WalletState.WALLET_ACTIONS: prompts.wallet_actions,
            WalletState.SENDING_KASPA: prompts.send_funds,
            WalletState.CHECKING_BALANCE: prompts.check_balance,
            WalletState.VIEWING_HISTORY: prompts.transaction_history,
        }

    async def handle_trigger(self, event: Event) -> bool:
        """
        Start or resume the user's session in response to the wallet command.

        Returns:
            False if the trigger was dropped (session mid-flow)
        """
        user_id = event.user_id
        logger.info(f"Wallet command triggered by user: {user_id} (private chat: {event.chat_private})")

        if not self._accepts_trigger(user_id):
            return False

        try:
            destination = await self.transport.open_private(event)
        except Exception as e:
            fallback = Destination(event.chat_id, event.chat_private)
            await report_error(self.transport, fallback, e, 'open_private', self.classifier)
            return False

        # The session may have moved on while the private chat was opened
        if not self._accepts_trigger(user_id):
            return False

        # The newest trigger owns the user's interaction slot
        self.waiter.cancel(user_id)
        await self.run(user_id, destination)
        return True

    def _accepts_trigger(self, user_id) -> bool:
        """False while a send or import is in progress, or a step is running outside a wait."""
        session = self.registry.get_or_create(user_id)
        if not session.interruptible:
            logger.info(f"Ignoring trigger for user {user_id} in state {session.state.name}")
            return False
        if user_id in self._flows and self.waiter.pending_step(user_id) is None:
            logger.info(f"Ignoring trigger for user {user_id}: step in progress in state {session.state.name}")
            return False
        return True

    def handle_event(self, event: Event) -> bool:
        """
        Route a non-command event to the user's outstanding wait.

        Returns:
            True if the event was consumed
        """
        consumed = self.waiter.dispatch(event)
        if not consumed:
            logger.debug(f"Dropped unmatched {event.kind.value} event from user {event.user_id}")
        return consumed

    async def run(self, user_id, destination: Destination):
        """Resolve state -> step -> transition until a step suspends."""
        token = object()
        self._flows[user_id] = token
        try:
            await self._drive(user_id, destination)
        finally:
            if self._flows.get(user_id) is token:
                del self._flows[user_id]

    async def _drive(self, user_id, destination: Destination):
        while True:
            step = self._resolve_step(self.registry.get_or_create(user_id))
            session = self.registry.get_or_create(user_id)
            state = session.state
            ctx = FlowContext(user_id=user_id, destination=destination, session=session)

            try:
                transition = await step(ctx)
            except FlowSuperseded:
                logger.info(f"Flow for user {user_id} superseded in state {state.name}")
                return
            except Exception as e:
                await report_error(self.transport, destination, e, step.__name__, self.classifier)
                transition = self._recover(state, e)

            try:
                self._apply(user_id, transition)
            except Exception as e:
                # Half-applied transition: start over on the next trigger
                logger.error(f"Failed to apply transition for user {user_id}: {e}", exc_info=True)
                self.registry.discard(user_id)
                return

            if transition.suspend:
                return

    def _resolve_step(self, session: UserSession) -> Step:
        """Pick the step for a session's state, repairing impossible states."""
        state = session.state

        if state is WalletState.WALLET_OPTIONS and session.network is None:
            logger.warning(f"User {session.user_id} in WALLET_OPTIONS without a network, back to network selection")
            self.registry.transition(session.user_id, WalletState.NETWORK_SELECTION)
            return self.prompts.network_selection

        step = self._steps.get(state)
        if step is None:
            logger.warning(f"Unexpected state for user {session.user_id}: {state!r}")
            self.registry.reset(session.user_id)
            return self._steps[WalletState.IDLE]
        return step

    @staticmethod
    def _recover(state: WalletState, error: Exception) -> Transition:
        """
        Recovery transition for a step that raised.

        The returned state is always a menu the user can act on, or a
        discarded session that requires a fresh trigger.
        """
        if state in (WalletState.IDLE, WalletState.NETWORK_SELECTION):
            if isinstance(error, RateLimitExceeded):
                return Transition.to(state, suspend=True)
            return Transition.discard()

        if state is WalletState.WALLET_OPTIONS:
            if isinstance(error, WalletCreationError):
                return Transition.to(WalletState.WALLET_OPTIONS)
            return Transition.discard()

        if state is WalletState.IMPORTING_WALLET:
            return Transition.to(WalletState.WALLET_OPTIONS)

        if state is WalletState.WALLET_ACTIONS:
            menu_rate_limited = (
                isinstance(error, RateLimitExceeded)
                and error.action_key == ActionKey.WALLET_ACTIONS.value
            )
            if menu_rate_limited or isinstance(error, InteractionTimeout):
                return Transition.to(WalletState.WALLET_ACTIONS, suspend=True)

        return Transition.to(WalletState.WALLET_ACTIONS)

    def _apply(self, user_id, transition: Transition):
        if transition.state is None:
            self.registry.discard(user_id)
            return
        self.registry.transition(user_id, transition.state, **transition.updates)

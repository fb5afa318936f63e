"""Wallet session state model."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from kat_wallet.core.errors import InvalidSession
from kat_wallet.core.networks import Network


class WalletState(Enum):
    """Position of a user in the wallet flow."""

    IDLE = "idle"
    NETWORK_SELECTION = "network_selection"
    WALLET_OPTIONS = "wallet_options"
    WALLET_ACTIONS = "wallet_actions"
    SENDING_KASPA = "sending_kaspa"
    CHECKING_BALANCE = "checking_balance"
    VIEWING_HISTORY = "viewing_history"
    IMPORTING_WALLET = "importing_wallet"


# A blocking sub-flow owns the user's interaction slot in these states
NON_INTERRUPTIBLE_STATES = frozenset({
    WalletState.SENDING_KASPA,
    WalletState.IMPORTING_WALLET,
})

# States that can only be entered once a network has been chosen
NETWORK_BOUND_STATES = frozenset({
    WalletState.WALLET_OPTIONS,
    WalletState.WALLET_ACTIONS,
    WalletState.SENDING_KASPA,
    WalletState.CHECKING_BALANCE,
    WalletState.VIEWING_HISTORY,
    WalletState.IMPORTING_WALLET,
})


@dataclass
class UserSession:
    """Per-user conversational context."""

    user_id: Any
    state: WalletState = WalletState.IDLE
    network: Optional[Network] = None
    address: Optional[str] = None
    last_activity: float = 0.0

    @property
    def interruptible(self) -> bool:
        return self.state not in NON_INTERRUPTIBLE_STATES

    def require_network(self) -> Network:
        """
        Network of the session.

        Raises:
            InvalidSession: No network chosen yet
        """
        if self.network is None:
            raise InvalidSession("network not selected")
        return self.network

    def require_address(self) -> str:
        """
        Wallet address of the session.

        Raises:
            InvalidSession: No wallet created or imported yet
        """
        if not self.address:
            raise InvalidSession(
                "wallet address missing",
                "Your wallet is not set up correctly. Please create a new wallet."
            )
        return self.address


@dataclass(frozen=True)
class Transition:
    """
    Result of a prompt step.

    ``state`` None means the session is discarded. ``updates`` holds session
    field changes (``network``, ``address``). ``suspend`` ends the controller
    loop until the next external trigger.
    """

    state: Optional[WalletState]
    updates: Dict[str, Any] = field(default_factory=dict)
    suspend: bool = False

    @classmethod
    def to(cls, state: WalletState, suspend: bool = False, **updates) -> "Transition":
        return cls(state=state, updates=updates, suspend=suspend)

    @classmethod
    def discard(cls) -> "Transition":
        return cls(state=None, suspend=True)

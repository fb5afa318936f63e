"""
Wallet service contract.

The session core never touches keys or the chain directly: it calls a
``WalletService``. Deployments provide the concrete signer (key generation,
import and transaction signing); ``RestWalletService`` supplies balance and
history lookups over the Kaspa REST API.
"""

import importlib
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from kat_wallet.core.kaspa_api import KaspaApiClient, format_kas
from kat_wallet.core.networks import Network

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletInfo:
    """Credentials of a created or imported wallet."""

    address: str
    private_key: Optional[str] = None
    mnemonic: Optional[str] = None


@dataclass(frozen=True)
class Balance:
    """Native balance (KAS, display string) plus formatted token balances."""

    native_balance: str
    token_balances: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class TransactionRecord:
    """One entry of an address's transaction history."""

    id: str
    amount: str
    kind: str
    timestamp: str


class WalletService(ABC):
    """
    Wallet operations used by the session prompts.

    Methods are synchronous; the prompts run them in a worker thread.
    """

    @abstractmethod
    def generate_wallet(self, user_id, network: Network) -> WalletInfo:
        """
        Create a new wallet for the user.

        Raises:
            WalletCreationError: Generation failed
        """
        pass

    @abstractmethod
    def import_wallet(self, private_key: str, user_id, network: Network) -> WalletInfo:
        """
        Import a wallet from a private key.

        Raises:
            WalletImportError: Key malformed or rejected
        """
        pass

    @abstractmethod
    def send_funds(self, user_id, amount_sompi: int, recipient_address: str, network: Network) -> str:
        """
        Sign and broadcast a transfer.

        Args:
            user_id: Sender
            amount_sompi: Amount in minor units (1 KAS = 10^8 sompi)
            recipient_address: Destination address
            network: Network to broadcast on

        Returns:
            Transaction id

        Raises:
            TransactionError: Construction, signing or broadcast failed
        """
        pass

    @abstractmethod
    def get_balance(self, user_id, network: Network, address: str) -> Balance:
        """Native and token balances of the user's wallet."""
        pass

    @abstractmethod
    def get_history(self, address: str, network: Network) -> List[TransactionRecord]:
        """Recent transactions of an address, newest first."""
        pass


class RestWalletService(WalletService):
    """
    WalletService with balance and history served by the Kaspa REST API.

    Subclasses implement ``generate_wallet``, ``import_wallet`` and
    ``send_funds``.
    """

    history_limit = 5

    def __init__(self, config: dict, api_client: Optional[KaspaApiClient] = None):
        """
        Initialize the service.

        Args:
            config: Full configuration dictionary
            api_client: Optional pre-built API client
        """
        self.config = config
        self.api_client = api_client or KaspaApiClient.from_config(config)

    def get_balance(self, user_id, network: Network, address: str) -> Balance:
        kas = self.api_client.get_balance(address, network)
        tokens = self.api_client.get_token_balances(address, network)
        logger.info(f"Fetched balance for user {user_id} on {network}")
        return Balance(native_balance=f"{format_kas(Decimal(kas))} KAS", token_balances=tokens)

    def get_history(self, address: str, network: Network) -> List[TransactionRecord]:
        logger.info(f"Fetching transaction history for address: {address} on network: {network}")
        return [
            TransactionRecord(
                id=tx['id'],
                amount=tx['amount'],
                kind=tx['type'],
                timestamp=tx['timestamp']
            )
            for tx in self.api_client.get_transactions(address, network, limit=self.history_limit)
        ]


def load_wallet_service(config: dict) -> WalletService:
    """
    Instantiate the wallet service named by ``wallet.service``.

    The setting is ``"package.module:ClassName"``; the class (or factory) is
    called with the full configuration dictionary.

    Raises:
        ValueError: Setting missing or malformed
        TypeError: The target does not produce a WalletService
    """
    target = (config.get('wallet') or {}).get('service')
    if not target or ':' not in target:
        raise ValueError(
            "wallet.service must be set to 'package.module:ClassName' "
            f"(current value: {target!r})"
        )

    module_name, attr_name = target.split(':', 1)
    module = importlib.import_module(module_name)
    factory = getattr(module, attr_name)
    service = factory(config)

    if not isinstance(service, WalletService):
        raise TypeError(f"{target} did not produce a WalletService (got {type(service).__name__})")

    logger.info(f"Wallet service loaded: {target}")
    return service

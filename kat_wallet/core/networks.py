"""Supported Kaspa networks and block explorer links."""

from enum import Enum
from typing import Dict, Union


class Network(str, Enum):
    """Kaspa networks a wallet session can run against."""

    MAINNET = "Mainnet"
    TESTNET_10 = "Testnet-10"
    TESTNET_11 = "Testnet-11"

    def __str__(self) -> str:
        return self.value


EXPLORER_TX_URLS: Dict[Network, str] = {
    Network.MAINNET: "https://explorer.kaspa.org/txs/{tx_id}",
    Network.TESTNET_10: "https://explorer-tn10.kaspa.org/txs/{tx_id}",
    Network.TESTNET_11: "https://explorer-tn11.kaspa.org/txs/{tx_id}",
}

# 1 KAS = 10^8 sompi
SOMPI_PER_KAS = 10 ** 8


def parse_network(value: Union[str, Network]) -> Network:
    """
    Resolve a network name to a Network.

    Raises:
        ValueError: Unknown network name
    """
    if isinstance(value, Network):
        return value
    return Network(value)


def explorer_link(network: Union[str, Network], tx_id: str) -> str:
    """
    Build the block explorer reference for a transaction.

    Falls back to the raw transaction id when the network has no explorer.
    """
    try:
        template = EXPLORER_TX_URLS[parse_network(network)]
    except (KeyError, ValueError):
        return f"Transaction ID: {tx_id}"
    return template.format(tx_id=tx_id)

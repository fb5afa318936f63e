"""
Input validators for wallet session prompts.

Pure functions: they never raise, returning False (or an empty string)
for anything they cannot accept.
"""

import re
import unicodedata
from decimal import Decimal, InvalidOperation

from kat_wallet.core.networks import Network

# bech32 charset used by Kaspa addresses
_ADDRESS_RE = re.compile(
    r'^(kaspa|kaspatest|kaspasim|kaspadev):[qpzry9x8gf2tvdw0s3jn54khce6mua7l]{61,63}$'
)
_AMOUNT_RE = re.compile(r'^\d+(\.\d{1,8})?$')
_PRIVATE_KEY_RE = re.compile(r'^(0x)?[0-9a-fA-F]{64}$')

MAX_INPUT_LENGTH = 256


def sanitize_input(value) -> str:
    """
    Normalize free-text input.

    Strips surrounding whitespace, control characters and markup brackets,
    and truncates to ``MAX_INPUT_LENGTH``.
    """
    if not isinstance(value, str):
        return ""
    cleaned = "".join(
        ch for ch in value
        if unicodedata.category(ch)[0] != "C" and ch not in "<>"
    )
    return cleaned.strip()[:MAX_INPUT_LENGTH]


def validate_address(address) -> bool:
    """True for a well-formed Kaspa address (any network prefix)."""
    if not isinstance(address, str):
        return False
    return bool(_ADDRESS_RE.match(address.strip().lower()))


def validate_amount(amount) -> bool:
    """True for a positive KAS amount with at most 8 decimal places."""
    if not isinstance(amount, str) or not _AMOUNT_RE.match(amount.strip()):
        return False
    try:
        return Decimal(amount.strip()) > 0
    except InvalidOperation:
        return False


def validate_private_key(private_key) -> bool:
    """True for a 32-byte hex private key, with or without a 0x prefix."""
    if not isinstance(private_key, str):
        return False
    return bool(_PRIVATE_KEY_RE.match(private_key.strip()))


def validate_network(network) -> bool:
    """True if ``network`` names a supported network."""
    if isinstance(network, Network):
        return True
    if not isinstance(network, str):
        return False
    return network in {n.value for n in Network}

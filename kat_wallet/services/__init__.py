"""
Services layer for the Kat Wallet bot.

Wallet operations the session prompts depend on, behind a single contract
so the signer can be swapped per deployment.
"""

from kat_wallet.services.wallet_service import (
    Balance,
    RestWalletService,
    TransactionRecord,
    WalletInfo,
    WalletService,
    load_wallet_service,
)

__all__ = [
    'Balance',
    'RestWalletService',
    'TransactionRecord',
    'WalletInfo',
    'WalletService',
    'load_wallet_service',
]

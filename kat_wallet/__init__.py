"""
Kat Wallet: conversational Kaspa wallet bot

A Telegram bot that guides each user through a private wallet session:
- Network selection (Mainnet, Testnet-10, Testnet-11)
- Wallet creation or private key import
- Wallet actions: send, balance, history, help, clear chat
"""

__version__ = "0.1.0"

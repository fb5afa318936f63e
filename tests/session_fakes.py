"""Fakes and a harness for driving wallet sessions in tests."""

import asyncio
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from kat_wallet.core.events import Event, EventKind
from kat_wallet.core.interaction_waiter import InteractionWaiter
from kat_wallet.core.rate_limiter import RateLimiter, RateLimitRule
from kat_wallet.core.session_registry import SessionRegistry
from kat_wallet.core.transport import Card, Destination, PromptHandle, Transport, button_ids
from kat_wallet.services.wallet_service import Balance, TransactionRecord, WalletInfo, WalletService
from kat_wallet.bot.conversations import SessionController, SessionTimeouts, WalletPrompts

USER = 1001
OTHER_USER = 2002

# 61 bech32 characters after the prefix
VALID_ADDRESS = "kaspa:" + "qypq" * 15 + "q"
RECIPIENT = "kaspa:" + "qzpr" * 15 + "y"
PRIVATE_KEY = "ab" * 32


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@dataclass
class SentMessage:
    destination: Destination
    content: object
    buttons: Optional[list]
    handle: PromptHandle

    @property
    def title(self) -> Optional[str]:
        return self.content.title if isinstance(self.content, Card) else None

    @property
    def text(self) -> str:
        if isinstance(self.content, Card):
            return " ".join([self.content.title, self.content.description] + [v for _, v in self.content.fields])
        return self.content

    @property
    def button_ids(self) -> List[str]:
        return button_ids(self.buttons or [])


class FakeTransport(Transport):
    def __init__(self):
        self.sent: List[SentMessage] = []
        self.deleted: List[PromptHandle] = []
        self.cleared: List[Destination] = []
        self.opened: List[Event] = []
        self._next_id = 100

    async def send(self, destination, content, buttons=None):
        self._next_id += 1
        handle = PromptHandle(destination.chat_id, self._next_id)
        self.sent.append(SentMessage(destination, content, [list(row) for row in buttons] if buttons else None, handle))
        return handle

    async def delete(self, handle):
        self.deleted.append(handle)

    async def clear(self, destination):
        self.cleared.append(destination)
        return len(self.sent)

    async def open_private(self, event):
        self.opened.append(event)
        return Destination(event.chat_id if event.chat_private else event.user_id, True)

    def texts(self) -> List[str]:
        return [message.text for message in self.sent]

    def contains(self, fragment: str) -> bool:
        return any(fragment in text for text in self.texts())


class FakeWalletService(WalletService):
    def __init__(self):
        self.calls = []
        self.generate_error: Optional[Exception] = None
        self.import_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        # Holds get_balance in its worker thread until set
        self.balance_gate: Optional[threading.Event] = None
        self.tx_id = "f00dbabe"
        self.history = [
            TransactionRecord(id=f"tx{i}", amount=str(i), kind="Received", timestamp="2024-01-01 00:00:00")
            for i in range(1, 8)
        ]

    def generate_wallet(self, user_id, network):
        self.calls.append(("generate_wallet", user_id, network))
        if self.generate_error:
            raise self.generate_error
        return WalletInfo(address=VALID_ADDRESS, private_key=PRIVATE_KEY, mnemonic="abandon " * 11 + "about")

    def import_wallet(self, private_key, user_id, network):
        self.calls.append(("import_wallet", private_key, user_id, network))
        if self.import_error:
            raise self.import_error
        return WalletInfo(address=VALID_ADDRESS)

    def send_funds(self, user_id, amount_sompi, recipient_address, network):
        self.calls.append(("send_funds", user_id, amount_sompi, recipient_address, network))
        if self.send_error:
            raise self.send_error
        return self.tx_id

    def get_balance(self, user_id, network, address):
        self.calls.append(("get_balance", user_id, network, address))
        if self.balance_gate is not None:
            self.balance_gate.wait(5)
        return Balance(native_balance="12.5 KAS", token_balances=["100 NACHO"])

    def get_history(self, address, network):
        self.calls.append(("get_history", address, network))
        return list(self.history)

    def called(self, name: str) -> list:
        return [call for call in self.calls if call[0] == name]


def build_fake_wallet_service(config):
    return FakeWalletService()


def command_event(user_id=USER, private=True) -> Event:
    chat_id = user_id if private else -500
    return Event(kind=EventKind.COMMAND, user_id=user_id, chat_id=chat_id, chat_private=private, text="/wallet")


def text_event(text: str, user_id=USER, message_id: int = 9000) -> Event:
    return Event(kind=EventKind.MESSAGE, user_id=user_id, chat_id=user_id, text=text, message_id=message_id)


def click_event(message: SentMessage, custom_id: str, user_id=USER) -> Event:
    return Event(
        kind=EventKind.COMPONENT,
        user_id=user_id,
        chat_id=message.handle.chat_id,
        custom_id=custom_id,
        message_id=message.handle.message_id
    )


async def wait_until(condition, timeout: float = 2.0, message: str = "condition"):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError(f"Timed out waiting for {message}")
        await asyncio.sleep(0.005)


class SessionHarness:
    """Wires a SessionController to fakes and drives it like a user would."""

    def __init__(self, wallet_service=None, rules=None, timeouts=None, command="wallet"):
        self.clock = FakeClock()
        self.transport = FakeTransport()
        self.registry = SessionRegistry(clock=self.clock)
        self.waiter = InteractionWaiter()
        self.rate_limiter = RateLimiter(
            rules or {},
            default_rule=RateLimitRule(max_requests=100, window_seconds=60),
            clock=self.clock
        )
        self.wallet_service = wallet_service or FakeWalletService()
        self.prompts = WalletPrompts(
            transport=self.transport,
            waiter=self.waiter,
            rate_limiter=self.rate_limiter,
            wallet_service=self.wallet_service,
            timeouts=timeouts or SessionTimeouts(menu=2, input=2),
            command=command
        )
        self.controller = SessionController(self.registry, self.waiter, self.prompts, self.transport)
        self.tasks: List[asyncio.Task] = []
        self._seen = 0

    def trigger(self, user_id=USER, private=True) -> asyncio.Task:
        task = asyncio.ensure_future(self.controller.handle_trigger(command_event(user_id, private)))
        self.tasks.append(task)
        return task

    async def prompt(self, title: str) -> SentMessage:
        """Next prompt with this title sent after the last one returned."""
        def find():
            for index in range(self._seen, len(self.transport.sent)):
                if self.transport.sent[index].title == title:
                    return index
            return None

        await wait_until(lambda: find() is not None, message=f"prompt '{title}'")
        index = find()
        self._seen = index + 1
        return self.transport.sent[index]

    async def waiting(self, step: str, user_id=USER):
        await wait_until(lambda: self.waiter.pending_step(user_id) == step, message=f"wait on '{step}'")

    async def click(self, message: SentMessage, custom_id: str, step: str, user_id=USER):
        await self.waiting(step, user_id)
        assert self.controller.handle_event(click_event(message, custom_id, user_id))

    async def reply(self, text: str, step: str, user_id=USER, message_id: int = 9000):
        await self.waiting(step, user_id)
        assert self.controller.handle_event(text_event(text, user_id, message_id))

    async def open_wallet_actions(self, network: str = "Mainnet") -> SentMessage:
        """Trigger, pick a network, create a wallet; returns the actions menu."""
        self.trigger()
        networks = await self.prompt("Network Selection")
        await self.click(networks, network, "network_selection")
        options = await self.prompt("Wallet Options")
        await self.click(options, "create", "wallet_options")
        return await self.prompt("Wallet Actions")

    def state(self, user_id=USER):
        session = self.registry.get(user_id)
        return session.state if session else None

    async def close(self):
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)

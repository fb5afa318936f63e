"""Per-user, per-action fixed window rate limiting."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Mapping, Optional, Tuple

from kat_wallet.core.logger import log


class ActionKey(str, Enum):
    """Independently throttled session actions."""

    NETWORK_SELECTION = "network_selection"
    WALLET_ACTIONS = "wallet_actions"
    CHECK_BALANCE = "check_balance"
    TRANSACTION_HISTORY = "transaction_history"
    HELP = "help"
    CLEAR_CHAT = "clear_chat"


@dataclass(frozen=True)
class RateLimitRule:
    """At most ``max_requests`` attempts per ``window_seconds``."""

    max_requests: int
    window_seconds: float


@dataclass
class RateLimitRecord:
    """Counting window for one (user, action) pair."""

    window_start: float
    count: int


class RateLimiter:
    """
    Fixed window throttle keyed by (user id, action key).

    Each action key has its own budget. Records expire logically once their
    window has elapsed and are physically dropped by ``purge_expired``.
    Thread-safe: all table access happens under a single lock.
    """

    DEFAULT_RULE = RateLimitRule(max_requests=5, window_seconds=60)

    def __init__(
        self,
        rules: Optional[Mapping[str, RateLimitRule]] = None,
        default_rule: Optional[RateLimitRule] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the rate limiter.

        Args:
            rules: Rule per action key
            default_rule: Rule for action keys without an explicit rule
            clock: Monotonic time source in seconds
        """
        self.rules: Dict[str, RateLimitRule] = {
            self._key(action): rule for action, rule in (rules or {}).items()
        }
        self.default_rule = default_rule or self.DEFAULT_RULE
        self._clock = clock
        self._records: Dict[Tuple[object, str], RateLimitRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls, config: dict, clock: Callable[[], float] = time.monotonic) -> "RateLimiter":
        """
        Build a rate limiter from the ``rate_limits`` config section.

        Args:
            config: Full configuration dictionary
            clock: Monotonic time source in seconds
        """
        rules = {
            action: RateLimitRule(
                max_requests=int(rule['max_requests']),
                window_seconds=float(rule['window_seconds'])
            )
            for action, rule in config.get('rate_limits', {}).items()
        }
        return cls(rules=rules, clock=clock)

    @staticmethod
    def _key(action_key) -> str:
        return action_key.value if isinstance(action_key, ActionKey) else str(action_key)

    def rule_for(self, action_key) -> RateLimitRule:
        return self.rules.get(self._key(action_key), self.default_rule)

    def allow(self, user_id, action_key) -> bool:
        """
        Record an attempt and report whether it is within the limit.

        Args:
            user_id: User identity
            action_key: Action being attempted

        Returns:
            True if the attempt is allowed
        """
        action = self._key(action_key)
        rule = self.rule_for(action)
        now = self._clock()

        with self._lock:
            record = self._records.get((user_id, action))
            if record is None or now - record.window_start >= rule.window_seconds:
                self._records[(user_id, action)] = RateLimitRecord(window_start=now, count=1)
                return True

            record.count += 1
            count = record.count

        allowed = count <= rule.max_requests
        if not allowed:
            log.info(f"Rate limit hit for user {user_id} on '{action}' ({count}/{rule.max_requests})")
        return allowed

    def remaining(self, user_id, action_key) -> float:
        """
        Seconds until the current window for (user, action) resets.

        Returns 0 when there is no active window.
        """
        action = self._key(action_key)
        rule = self.rule_for(action)

        with self._lock:
            record = self._records.get((user_id, action))
            if record is None:
                return 0.0
            return max(record.window_start + rule.window_seconds - self._clock(), 0.0)

    def purge_expired(self) -> int:
        """
        Drop records whose window has elapsed.

        Returns:
            Number of records removed
        """
        now = self._clock()
        with self._lock:
            expired = [
                key for key, record in self._records.items()
                if now - record.window_start >= self.rule_for(key[1]).window_seconds
            ]
            for key in expired:
                del self._records[key]

        if expired:
            log.debug(f"Purged {len(expired)} expired rate limit record(s)")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

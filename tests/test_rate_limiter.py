"""Tests for the per-user, per-action rate limiter."""

import threading
import unittest

from session_fakes import FakeClock

from kat_wallet.core.config_loader import normalize_config
from kat_wallet.core.rate_limiter import ActionKey, RateLimiter, RateLimitRule


class RateLimiterTest(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(
            {ActionKey.CHECK_BALANCE: RateLimitRule(max_requests=1, window_seconds=10)},
            clock=self.clock
        )

    def test_first_attempt_always_allowed(self):
        self.assertTrue(self.limiter.allow(1, ActionKey.CHECK_BALANCE))

    def test_second_attempt_in_window_refused(self):
        self.limiter.allow(1, ActionKey.CHECK_BALANCE)
        self.clock.advance(3)

        self.assertFalse(self.limiter.allow(1, ActionKey.CHECK_BALANCE))
        self.assertAlmostEqual(self.limiter.remaining(1, ActionKey.CHECK_BALANCE), 7.0)

    def test_window_resets_after_elapsing(self):
        self.limiter.allow(1, ActionKey.CHECK_BALANCE)
        self.clock.advance(10)

        self.assertTrue(self.limiter.allow(1, ActionKey.CHECK_BALANCE))

    def test_users_and_actions_are_independent(self):
        self.limiter.allow(1, ActionKey.CHECK_BALANCE)

        self.assertTrue(self.limiter.allow(2, ActionKey.CHECK_BALANCE))
        self.assertTrue(self.limiter.allow(1, ActionKey.HELP))

    def test_default_rule_applies_to_unconfigured_actions(self):
        results = [self.limiter.allow(1, ActionKey.HELP) for _ in range(6)]
        self.assertEqual(results, [True] * 5 + [False])

    def test_string_and_enum_keys_share_a_window(self):
        self.limiter.allow(1, "check_balance")
        self.assertFalse(self.limiter.allow(1, ActionKey.CHECK_BALANCE))

    def test_remaining_is_zero_without_record(self):
        self.assertEqual(self.limiter.remaining(1, ActionKey.CLEAR_CHAT), 0.0)

    def test_purge_expired_drops_only_elapsed_windows(self):
        self.limiter.allow(1, ActionKey.CHECK_BALANCE)
        self.limiter.allow(1, ActionKey.HELP)
        self.clock.advance(15)

        self.assertEqual(self.limiter.purge_expired(), 1)
        self.assertEqual(len(self.limiter), 1)

    def test_refusal_log_reports_count_seen_under_lock(self):
        limiter = self.limiter
        limiter.allow(1, ActionKey.CHECK_BALANCE)

        class ConcurrentWriteLock:
            """Lets another caller bump the window right after each release."""

            def __init__(self):
                self._lock = threading.Lock()

            def __enter__(self):
                self._lock.acquire()

            def __exit__(self, *exc_info):
                self._lock.release()
                limiter._records[(1, "check_balance")].count += 5

        limiter._lock = ConcurrentWriteLock()

        with self.assertLogs("kat_wallet", level="INFO") as logs:
            self.assertFalse(limiter.allow(1, ActionKey.CHECK_BALANCE))

        self.assertIn("(2/1)", logs.output[-1])

    def test_from_config_uses_configured_defaults(self):
        limiter = RateLimiter.from_config(normalize_config({}), clock=self.clock)

        self.assertEqual(limiter.rule_for(ActionKey.WALLET_ACTIONS), RateLimitRule(20, 60.0))
        self.assertEqual(limiter.rule_for(ActionKey.TRANSACTION_HISTORY), RateLimitRule(1, 10.0))
        self.assertEqual(limiter.rule_for(ActionKey.CLEAR_CHAT), RateLimitRule(1, 60.0))


if __name__ == "__main__":
    unittest.main()

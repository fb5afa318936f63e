"""Tests for InteractionWaiter."""

import asyncio
import unittest

from session_fakes import USER, OTHER_USER, text_event, wait_until

from kat_wallet.core.errors import FlowSuperseded, InteractionTimeout
from kat_wallet.core.events import Event, EventKind
from kat_wallet.core.interaction_waiter import InteractionWaiter


def any_message(event):
    return event.kind is EventKind.MESSAGE


class InteractionWaiterTest(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.waiter = InteractionWaiter()

    async def _start(self, user_id=USER, predicate=any_message, timeout=1.0, step="step"):
        task = asyncio.ensure_future(self.waiter.wait_for(user_id, predicate, timeout, step))
        await wait_until(lambda: self.waiter.pending_step(user_id) == step)
        return task

    async def test_matching_event_resolves_wait(self):
        task = await self._start()

        event = text_event("hello")
        self.assertTrue(self.waiter.dispatch(event))
        self.assertIs(await task, event)
        self.assertIsNone(self.waiter.pending_step(USER))

    async def test_answered_wait_is_no_longer_pending(self):
        task = await self._start()

        self.assertTrue(self.waiter.dispatch(text_event("hello")))

        self.assertIsNone(self.waiter.pending_step(USER))
        self.assertFalse(self.waiter.dispatch(text_event("again")))
        await task

    async def test_non_matching_event_is_not_consumed(self):
        task = await self._start(predicate=lambda e: e.text == "yes")

        self.assertFalse(self.waiter.dispatch(text_event("no")))
        self.assertTrue(self.waiter.dispatch(text_event("yes")))
        self.assertEqual((await task).text, "yes")

    async def test_events_from_other_users_are_ignored(self):
        task = await self._start()

        self.assertFalse(self.waiter.dispatch(text_event("hi", user_id=OTHER_USER)))
        self.assertFalse(task.done())
        task.cancel()

    async def test_timeout_raises_interaction_timeout(self):
        with self.assertRaises(InteractionTimeout) as ctx:
            await self.waiter.wait_for(USER, any_message, 0.01, "wallet_options")

        self.assertEqual(ctx.exception.step, "wallet_options")
        self.assertIsInstance(ctx.exception, TimeoutError)
        self.assertIsNone(self.waiter.pending_step(USER))

    async def test_new_wait_supersedes_previous(self):
        first = await self._start(step="first")
        second = await self._start(step="second")

        with self.assertRaises(FlowSuperseded):
            await first
        self.assertEqual(self.waiter.pending_step(USER), "second")

        self.waiter.dispatch(text_event("x"))
        await second

    async def test_cancel_supersedes_and_reports(self):
        task = await self._start()

        self.assertTrue(self.waiter.cancel(USER))
        self.assertFalse(self.waiter.cancel(USER))
        with self.assertRaises(FlowSuperseded):
            await task

    async def test_dispatch_without_wait(self):
        event = Event(kind=EventKind.COMPONENT, user_id=USER, chat_id=USER, custom_id="create")
        self.assertFalse(self.waiter.dispatch(event))


if __name__ == "__main__":
    unittest.main()

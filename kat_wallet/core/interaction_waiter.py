"""
Deadline-bound suspension of a wallet session until the user responds.

A prompt step renders a prompt and then calls ``wait_for``; inbound events
are fed through ``dispatch``, which resolves the user's outstanding wait when
the event matches its predicate.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from kat_wallet.core.errors import FlowSuperseded, InteractionTimeout
from kat_wallet.core.events import Event

logger = logging.getLogger(__name__)

EventPredicate = Callable[[Event], bool]


@dataclass
class PendingInteraction:
    """An outstanding wait owned by a single prompt step."""

    user_id: object
    step: str
    predicate: EventPredicate
    deadline: float
    future: asyncio.Future


class InteractionWaiter:
    """
    Single-waiter-per-user event matcher.

    All access happens on the event loop thread, so no locking is needed.
    Registering a new wait for a user supersedes the previous one.
    """

    def __init__(self):
        self._pending: Dict[object, PendingInteraction] = {}

    async def wait_for(
        self,
        user_id,
        predicate: EventPredicate,
        timeout: float,
        step: str
    ) -> Event:
        """
        Suspend until a matching event from ``user_id`` arrives.

        Args:
            user_id: User the wait belongs to
            predicate: Acceptance test for candidate events
            timeout: Deadline in seconds
            step: Step name used in logs and timeout errors

        Returns:
            The matching event

        Raises:
            InteractionTimeout: No match before the deadline
            FlowSuperseded: A newer wait or trigger replaced this one
        """
        loop = asyncio.get_running_loop()
        self.cancel(user_id)

        pending = PendingInteraction(
            user_id=user_id,
            step=step,
            predicate=predicate,
            deadline=loop.time() + timeout,
            future=loop.create_future()
        )
        self._pending[user_id] = pending
        logger.debug(f"Waiting up to {timeout}s for '{step}' from user {user_id}")

        try:
            return await asyncio.wait_for(pending.future, timeout)
        except asyncio.TimeoutError:
            logger.info(f"Interaction '{step}' timed out for user {user_id}")
            raise InteractionTimeout(step, timeout) from None
        finally:
            if self._pending.get(user_id) is pending:
                del self._pending[user_id]

    def dispatch(self, event: Event) -> bool:
        """
        Offer an inbound event to its user's outstanding wait.

        Returns:
            True if the event was consumed
        """
        pending = self._pending.get(event.user_id)
        if pending is None or pending.future.done():
            return False

        if not pending.predicate(event):
            logger.debug(f"Event {event.kind.value} from user {event.user_id} does not match '{pending.step}'")
            return False

        pending.future.set_result(event)
        return True

    def cancel(self, user_id) -> bool:
        """
        Supersede the user's outstanding wait, if any.

        Returns:
            True if a wait was superseded
        """
        pending = self._pending.pop(user_id, None)
        if pending is None or pending.future.done():
            return False

        pending.future.set_exception(FlowSuperseded(user_id))
        logger.info(f"Superseded pending '{pending.step}' for user {user_id}")
        return True

    def pending_step(self, user_id) -> Optional[str]:
        """Step of the user's unresolved wait, or None once it has been answered."""
        pending = self._pending.get(user_id)
        if pending is None or pending.future.done():
            return None
        return pending.step

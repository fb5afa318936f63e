"""In-memory registry of wallet sessions keyed by user identity."""

import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Optional

from kat_wallet.core.errors import InvalidSession
from kat_wallet.core.logger import log
from kat_wallet.core.session import (
    NETWORK_BOUND_STATES,
    NON_INTERRUPTIBLE_STATES,
    UserSession,
    WalletState,
)


class SessionRegistry:
    """
    Owned map from user identity to UserSession.

    Holds at most one session per user. Callers receive copies; the stored
    session only changes through ``transition`` / ``discard`` / ``sweep``.
    Thread-safe: every read-modify-write happens under a single lock.
    """

    _UPDATABLE_FIELDS = ('network', 'address')

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Initialize an empty registry.

        Args:
            clock: Wall clock used for ``last_activity``
        """
        self._clock = clock
        self._sessions: Dict[object, UserSession] = {}
        self._lock = threading.Lock()

    def get(self, user_id) -> Optional[UserSession]:
        """Copy of the user's session, or None."""
        with self._lock:
            session = self._sessions.get(user_id)
            return replace(session) if session else None

    def get_or_create(self, user_id) -> UserSession:
        """Copy of the user's session, creating an IDLE one on first contact."""
        with self._lock:
            session = self._sessions.get(user_id)
            if session is None:
                session = UserSession(user_id=user_id, last_activity=self._clock())
                self._sessions[user_id] = session
                log.info(f"Created wallet session for user {user_id}")
            return replace(session)

    def transition(self, user_id, state: WalletState, **updates) -> UserSession:
        """
        Move a session to ``state``, applying field updates.

        Args:
            user_id: User identity
            state: Target state
            **updates: ``network`` and/or ``address``

        Returns:
            Copy of the updated session

        Raises:
            InvalidSession: Target state needs a network the session lacks
            ValueError: Unknown field update
        """
        unknown = set(updates) - set(self._UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update session field(s): {', '.join(sorted(unknown))}")

        with self._lock:
            current = self._sessions.get(user_id) or UserSession(user_id=user_id)
            updated = replace(current, state=state, last_activity=self._clock(), **updates)

            if state in NETWORK_BOUND_STATES and updated.network is None:
                raise InvalidSession(f"state {state.name} requires a network")

            self._sessions[user_id] = updated
            previous = current.state

        if previous is not state:
            log.debug(f"User {user_id}: {getattr(previous, 'name', previous)} -> {state.name}")
        return replace(updated)

    def reset(self, user_id) -> UserSession:
        """Replace the user's session with a fresh IDLE one."""
        with self._lock:
            session = UserSession(user_id=user_id, last_activity=self._clock())
            self._sessions[user_id] = session
            return replace(session)

    def discard(self, user_id) -> bool:
        """
        Remove the user's session entirely.

        Returns:
            True if a session existed
        """
        with self._lock:
            removed = self._sessions.pop(user_id, None)

        if removed is not None:
            log.info(f"Discarded wallet session for user {user_id}")
        return removed is not None

    def sweep(self, max_idle: float) -> int:
        """
        Evict sessions idle for longer than ``max_idle`` seconds.

        Sessions in a non-interruptible state are kept regardless of age.

        Returns:
            Number of sessions evicted
        """
        cutoff = self._clock() - max_idle
        with self._lock:
            stale = [
                user_id for user_id, session in self._sessions.items()
                if session.last_activity < cutoff and session.state not in NON_INTERRUPTIBLE_STATES
            ]
            for user_id in stale:
                del self._sessions[user_id]

        if stale:
            log.info(f"Evicted {len(stale)} idle wallet session(s)")
        return len(stale)

    def __contains__(self, user_id) -> bool:
        with self._lock:
            return user_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

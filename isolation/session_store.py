"""In-memory session store with staleness eviction.

The store is created once at process start and handed to the lifecycle
manager by reference. A periodic sweep (driven by the service host, see
:mod:`isolation.main`) removes sessions older than the staleness threshold
regardless of outcome. Eviction never touches aggregate statistics.
"""

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Iterator, List

from .errors import InvalidStateError, SessionNotFoundError
from .metrics import ACTIVE_SESSIONS, SESSIONS_EVICTED
from .session import GameSession, utcnow

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TTL_SECONDS = 60 * 60


class SessionStore:
    """Mapping from session id to :class:`GameSession`."""

    def __init__(self, ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS) -> None:
        self._sessions: Dict[str, GameSession] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self.ttl_seconds = ttl_seconds

    def create(self, owner_id: str) -> GameSession:
        session = GameSession(id=str(uuid.uuid4()), owner_id=owner_id)
        self._locks[session.id] = threading.Lock()
        self._sessions[session.id] = session
        ACTIVE_SESSIONS.set(len(self._sessions))
        return session

    def get(self, session_id: str) -> GameSession:
        """Return the session or raise :class:`SessionNotFoundError`."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @contextmanager
    def claim(self, session_id: str) -> Iterator[GameSession]:
        """Hold the session's action lock for the duration of the block.

        Actions on one session never overlap: a second action arriving while
        the first still holds the lock is rejected with
        :class:`InvalidStateError` and the session is left untouched.
        """
        lock = self._locks.get(session_id)
        if lock is None:
            raise SessionNotFoundError(session_id)
        if not lock.acquire(blocking=False):
            raise InvalidStateError(
                "Another action is in progress for this game",
                context={"session_id": session_id},
            )
        try:
            yield self.get(session_id)
        finally:
            lock.release()

    def evict(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        self._locks.pop(session_id, None)
        ACTIVE_SESSIONS.set(len(self._sessions))
        return removed

    def sweep(self, now: datetime | None = None) -> int:
        """Evict sessions created more than ``ttl_seconds`` ago.

        Returns the number of sessions evicted.
        """
        cutoff = (now or utcnow()) - timedelta(seconds=self.ttl_seconds)
        stale = [sid for sid, s in self._sessions.items() if s.created_at < cutoff]
        for sid in stale:
            del self._sessions[sid]
            self._locks.pop(sid, None)

        ACTIVE_SESSIONS.set(len(self._sessions))
        if stale:
            SESSIONS_EVICTED.inc(len(stale))
            logger.info(f"Cleaned up {len(stale)} stale sessions")
        return len(stale)

    def values(self) -> List[GameSession]:
        return list(self._sessions.values())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

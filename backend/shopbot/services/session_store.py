# /shopbot/services/session_store.py

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from shopbot.models.flow import Session

# In-process session storage. Sessions live only in memory and expire after a
# fixed TTL. The store owns every stored Session: callers always receive
# copies and write back through ``set``.

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _KeyLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class InMemorySessionStore:
    def __init__(self, timeout_seconds: int, clock: Callable[[], datetime] = utcnow):
        if timeout_seconds <= 0:
            raise ValueError("Session timeout must be positive")
        self.timeout = timedelta(seconds=timeout_seconds)
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._locks: Dict[str, _KeyLock] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: Session, now: datetime) -> bool:
        return now > session.expires_at

    def get(self, conversation_id: str) -> Optional[Session]:
        """Returns a copy of the stored session, evicting it if it has expired."""
        session = self._sessions.get(conversation_id)
        if session is None:
            return None
        if self._is_expired(session, self._clock()):
            self._sessions.pop(conversation_id, None)
            logger.info(f"Session for {conversation_id} expired and was evicted.")
            return None
        return session.model_copy(deep=True)

    def set(self, conversation_id: str, session: Session) -> Session:
        """Stores a copy of ``session``, refreshing ``updated_at`` and ``expires_at``."""
        now = self._clock()
        stored = session.model_copy(deep=True, update={"updated_at": now, "expires_at": now + self.timeout})
        self._sessions[conversation_id] = stored
        return stored.model_copy(deep=True)

    def delete(self, conversation_id: str):
        self._sessions.pop(conversation_id, None)

    def create_session(self, conversation_id: str, initial_step: str) -> Session:
        """Builds a fresh session with an empty context. It is not stored until ``set``."""
        now = self._clock()
        return Session(
            conversation_id=conversation_id,
            current_step=initial_step,
            context={},
            created_at=now,
            updated_at=now,
            expires_at=now + self.timeout,
        )

    def sweep_expired(self) -> int:
        """Removes every expired session and returns how many were removed."""
        now = self._clock()
        expired = [cid for cid, session in list(self._sessions.items()) if self._is_expired(session, now)]
        for conversation_id in expired:
            current = self._sessions.get(conversation_id)
            if current is not None and self._is_expired(current, now):
                del self._sessions[conversation_id]
        if expired:
            logger.info(f"Swept {len(expired)} expired sessions.")
        return len(expired)

    @asynccontextmanager
    async def lock(self, conversation_id: str):
        """
        Serializes units of work for one conversation. Different conversations
        never wait on each other; lock entries are dropped once nobody holds or
        waits for them.
        """
        entry = self._locks.get(conversation_id)
        if entry is None:
            entry = self._locks[conversation_id] = _KeyLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._locks.get(conversation_id) is entry:
                del self._locks[conversation_id]

"""
Inquest sessions - Storage backends.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Protocol

from .core import Session, SessionID


class SessionStore(Protocol):
    """Async persistence for sessions, keyed by SessionID."""

    async def load(self, session_id: SessionID) -> Session | None: ...

    async def save(self, session: Session) -> None: ...

    async def delete(self, session_id: SessionID) -> None: ...

    async def exists(self, session_id: SessionID) -> bool: ...


class MemoryStore:
    """
    Process-local store with least-recently-used eviction.

    Sessions are held by reference: every request that resolves the same
    id works on the same Session object, so concurrent read-modify-write
    sequences (CSRF rotation among them) can interleave.

    Example:
        >>> store = MemoryStore(max_sessions=1000)
        >>> await store.save(session)
        >>> (await store.load(session.id)) is session
        True
    """

    def __init__(self, max_sessions: int = 10000):
        self.max_sessions = max_sessions
        self._sessions: OrderedDict[SessionID, Session] = OrderedDict()
        self._lock = asyncio.Lock()

    async def load(self, session_id: SessionID) -> Session | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    async def save(self, session: Session) -> None:
        async with self._lock:
            if session.id not in self._sessions:
                while self._sessions and len(self._sessions) >= self.max_sessions:
                    self._sessions.popitem(last=False)
            self._sessions[session.id] = session
            self._sessions.move_to_end(session.id)
            session.mark_clean()

    async def delete(self, session_id: SessionID) -> None:
        async with self._lock:
            self._sessions.pop(session_id, None)

    async def exists(self, session_id: SessionID) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

"""
Inquest sessions - Session lifecycle orchestration.

The engine brackets a request: ``resolve`` loads (or creates) the session
and activates it before the request is built; ``commit`` persists it and
deactivates it after the response is sent.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from .core import Session, SessionID
from .store import SessionStore


class SessionEngine:
    """
    Session lifecycle orchestrator.
    
    Example:
        >>> engine = SessionEngine(store=MemoryStore(), ttl=timedelta(hours=1))
        >>> session = await engine.resolve(cookie_value)
        >>> # ... request handling reads/writes session ...
        >>> await engine.commit(session)
    """
    
    def __init__(
        self,
        store: SessionStore,
        ttl: Optional[timedelta] = None,
        logger: logging.Logger | None = None,
    ):
        self.store = store
        self.ttl = ttl
        self.logger = logger or logging.getLogger("inquest.sessions")
    
    async def resolve(self, session_id_str: Optional[str] = None) -> Session:
        """
        Load the session named by ``session_id_str`` or create a new one.
        
        Malformed, unknown or expired ids silently yield a fresh session.
        The returned session is active.
        """
        now = datetime.now(timezone.utc)
        session: Session | None = None
        
        if session_id_str:
            try:
                session = await self.store.load(SessionID.from_string(session_id_str))
            except ValueError:
                self.logger.warning(f"Invalid session ID format: {session_id_str[:16]}...")
            
            if session is not None and session.is_expired(now):
                self.logger.info(f"Session expired, creating new: {session_id_str[:16]}...")
                await self.store.delete(session.id)
                session = None
        
        if session is None:
            session = Session(id=SessionID(), created_at=now, last_accessed_at=now)
            if self.ttl:
                session.extend_expiry(self.ttl, now)
            self.logger.info("Created new session")
        else:
            session.touch(now)
        
        session.activate()
        return session
    
    async def commit(self, session: Session) -> None:
        """Persist the session if it changed, then deactivate it."""
        try:
            if session.is_dirty or not await self.store.exists(session.id):
                await self.store.save(session)
                self.logger.info("Session committed")
        finally:
            session.deactivate()
    
    async def destroy(self, session: Session) -> None:
        """Delete the session from the store and deactivate it."""
        await self.store.delete(session.id)
        session.deactivate()

"""
Inquest sessions - Explicit server-side session state.

Sessions are injected into the components that need them instead of
being read from ambient process state.

Exports:
- Session, SessionID: core types
- SessionStore, MemoryStore: persistence
- SessionEngine: resolve/commit lifecycle
- SessionFault, SessionNotActiveFault: faults
"""

from .core import Session, SessionID
from .engine import SessionEngine
from .faults import SessionFault, SessionNotActiveFault
from .store import MemoryStore, SessionStore

__all__ = [
    "Session",
    "SessionID",
    "SessionEngine",
    "SessionStore",
    "MemoryStore",
    "SessionFault",
    "SessionNotActiveFault",
]

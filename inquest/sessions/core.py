"""
Inquest sessions - Core types.

- SessionID: opaque random identifier
- Session: key/value state with dirty tracking and an active flag
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

SESSION_ID_PREFIX = "sess_"
SESSION_ID_BYTES = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SessionID
# ============================================================================

class SessionID:
    """
    Random session identifier, rendered as ``sess_`` plus unpadded
    url-safe base64 of 32 random bytes. It carries no meaning.

    Example:
        >>> sid = SessionID()
        >>> SessionID.from_string(str(sid)) == sid
        True
    """

    __slots__ = ("raw",)

    def __init__(self, raw: bytes | None = None):
        if raw is None:
            raw = secrets.token_bytes(SESSION_ID_BYTES)
        if len(raw) != SESSION_ID_BYTES:
            raise ValueError(f"Session ID must be {SESSION_ID_BYTES} bytes, got {len(raw)}")
        self.raw = raw

    @classmethod
    def from_string(cls, encoded: str) -> SessionID:
        """
        Decode the string form produced by ``str()``.

        Raises:
            ValueError: If the prefix, encoding or length is wrong
        """
        prefix, body = encoded[:len(SESSION_ID_PREFIX)], encoded[len(SESSION_ID_PREFIX):]
        if prefix != SESSION_ID_PREFIX:
            raise ValueError(f"Session ID must start with {SESSION_ID_PREFIX!r}")

        try:
            raw = base64.urlsafe_b64decode(body + "=" * (-len(body) % 4))
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Session ID is not url-safe base64: {e}")

        return cls(raw)

    def __str__(self) -> str:
        return SESSION_ID_PREFIX + base64.urlsafe_b64encode(self.raw).decode("ascii").rstrip("=")

    def __repr__(self) -> str:
        return f"SessionID({str(self)[:12]}...)"

    def __eq__(self, other: object) -> bool:
        return isinstance(other, SessionID) and other.raw == self.raw

    def __hash__(self) -> int:
        return hash(self.raw)


# ============================================================================
# Session
# ============================================================================

@dataclass
class Session:
    """
    Server-side session state.

    The host activates the session once it is resolved for a request and
    deactivates it after committing. Components holding session secrets,
    such as the CSRF guard, refuse an inactive session.

    Example:
        >>> session = Session()
        >>> session.activate()
        >>> session.set("$.csrf_token", "a1b2c3d4e5f6")
        >>> session.is_dirty
        True
    """

    id: SessionID = field(default_factory=SessionID)
    data: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
    last_accessed_at: datetime = field(default_factory=_utcnow)
    expires_at: datetime | None = None

    _dirty: bool = field(default=False, repr=False)
    _active: bool = field(default=False, repr=False)

    # -- data -----------------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value
        self._dirty = True

    def unset(self, key: str) -> None:
        """Remove ``key``; a missing key leaves the session clean."""
        if self.data.pop(key, _MISSING) is not _MISSING:
            self._dirty = True

    def clear_data(self) -> None:
        self.data.clear()
        self._dirty = True

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    __setitem__ = set

    def __contains__(self, key: str) -> bool:
        return key in self.data

    # -- lifecycle ------------------------------------------------------------

    def activate(self) -> None:
        self._active = True

    def deactivate(self) -> None:
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and (now or _utcnow()) >= self.expires_at

    def touch(self, now: datetime | None = None) -> None:
        self.last_accessed_at = now or _utcnow()

    def extend_expiry(self, ttl: timedelta, now: datetime | None = None) -> None:
        """Expire ``ttl`` from ``now`` (marks dirty)."""
        self.expires_at = (now or _utcnow()) + ttl
        self._dirty = True

    @property
    def is_dirty(self) -> bool:
        """Whether the state changed since it was last persisted."""
        return self._dirty

    def mark_clean(self) -> None:
        self._dirty = False


_MISSING = object()

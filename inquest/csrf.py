"""
CSRF protection - Synchronizer tokens bound to a server-side session.

Provides:
- CSRFGuard:      Per-request token issue/verify/rotate state machine
- CSRFError:      Fault raised by the guard's raising API
- CSRFMiddleware: Async middleware verifying state-changing requests
- csrf_token_func: Bridge from request state into template context

Token lifecycle:
    1. The first guard built for a session stores a random token under a
       reserved session key.
    2. Forms embed it via ``render_hidden_field()``.
    3. A state-changing request submits it back in a body field; the guard
       compares it in constant time.
    4. On the first success in a request the session token is replaced,
       so a captured token cannot be replayed.

Concurrent requests sharing a session race on step 4: the slower one
sees the rotated token and fails. Session-level locking is left to the
host.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from typing import Any, Awaitable, Callable, Optional, Protocol

from jinja2 import Environment

from .config import CSRFConfig
from .faults import CSRFViolationFault
from .sessions.core import Session
from .sessions.faults import SessionNotActiveFault

logger = logging.getLogger("inquest.csrf")

_HIDDEN_FIELD = Environment(autoescape=True).from_string(
    '<input type="hidden" name="{{ name }}" value="{{ token }}">'
)


class CSRFRequest(Protocol):
    """What the guard needs from a request."""

    @property
    def method(self) -> str: ...

    def parsed_body(self, name: Optional[str] = None) -> Any: ...


class CSRFError(CSRFViolationFault):
    """
    CSRF validation fault.

    Attributes:
        reason: Human-readable description of the violation
        code: "CSRF_VIOLATION"
    """

    def __init__(self, reason: str = "CSRF validation failed", **kwargs):
        super().__init__(reason=reason, **kwargs)


class CSRFGuard:
    """
    Per-request CSRF token guard.

    States: disabled, enabled-unverified, enabled-verified. ``verify()``
    moves enabled-unverified to enabled-verified, rotating the session
    token on the way; nothing moves back within a request.

    Args:
        request: Request exposing ``method`` and ``parsed_body(name)``
        session: Active session holding the token
        config: CSRF settings (defaults to ``CSRFConfig()``)

    Raises:
        SessionNotActiveFault: If the session is missing or inactive

    Example::

        guard = CSRFGuard(request, session)
        if not guard.verify():
            raise CSRFError("CSRF token invalid")
        html = f"<form method='post'>{guard.render_hidden_field()}...</form>"
    """

    def __init__(
        self,
        request: CSRFRequest,
        session: Optional[Session],
        config: Optional[CSRFConfig] = None,
    ):
        if session is None or not session.is_active:
            raise SessionNotActiveFault(component="CSRFGuard")

        self.request = request
        self.session = session
        self.config = config or CSRFConfig()
        self._token_field = self.config.token_field
        self._enabled = self.config.enabled
        self._verified = False

        if self.token is None:
            self._issue_token()

    # ── Token storage ────────────────────────────────────────────────────

    @property
    def token(self) -> Optional[str]:
        """Current session token."""
        return self.session.get(self.config.session_key)

    def _issue_token(self) -> str:
        token = secrets.token_hex(self.config.token_bytes)
        self.session.set(self.config.session_key, token)
        logger.debug("Issued CSRF token for session")
        return token

    @property
    def token_field(self) -> str:
        """Body field name carrying the submitted token."""
        return self._token_field

    @token_field.setter
    def token_field(self, name: str) -> None:
        self._token_field = name

    # ── Enable / disable ─────────────────────────────────────────────────

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    @property
    def verified(self) -> bool:
        """Whether a submitted token was accepted during this request."""
        return self._verified

    # ── Verification ─────────────────────────────────────────────────────

    def _submitted_token(self) -> Optional[str]:
        value = self.request.parsed_body(self._token_field)
        return value if isinstance(value, str) else None

    def verify(self) -> bool:
        """
        Verify the submitted token of a state-changing request.

        Safe methods and a disabled guard always pass. The first success
        rotates the session token; later calls in the same request pass
        without rotating again.

        Returns:
            True if the request may proceed
        """
        if not self._enabled:
            return True
        if self.request.method.upper() in self.config.safe_methods:
            return True
        if self._verified:
            return True

        submitted = self._submitted_token()
        if submitted is None:
            logger.warning(
                "CSRF token missing in field %r (%s request)",
                self._token_field, self.request.method,
            )
            return False

        stored = self.token
        if stored is None or not hmac.compare_digest(
            stored.encode("utf-8"), submitted.encode("utf-8")
        ):
            logger.warning("CSRF token mismatch (%s request)", self.request.method)
            return False

        self._issue_token()
        self._verified = True
        logger.debug("CSRF token verified and rotated")
        return True

    def require(self) -> None:
        """
        Verify or raise.

        Raises:
            CSRFError: If ``verify()`` fails
        """
        if self.verify():
            return
        if self._submitted_token() is None:
            raise CSRFError("CSRF token missing", metadata={"field": self._token_field})
        raise CSRFError("CSRF token invalid", metadata={"field": self._token_field})

    # ── Rendering ────────────────────────────────────────────────────────

    def render_hidden_field(self) -> str:
        """
        Hidden input carrying the current token.

        Returns an empty string when the guard is disabled.
        """
        if not self._enabled:
            return ""
        return _HIDDEN_FIELD.render(name=self._token_field, token=self.token)


Handler = Callable[..., Awaitable[Any]]


class CSRFMiddleware:
    """
    Middleware verifying CSRF tokens on state-changing requests.

    Loads the request form when the body is form-encoded, verifies the
    guard and exposes the (possibly rotated) token to handlers and
    templates through ``request.state["csrf_token"]``.

    Raises:
        CSRFError: If verification fails; the handler is not called

    Example::

        csrf = CSRFMiddleware()
        response = await csrf(request, ctx, handler)
    """

    async def __call__(self, request: Any, ctx: Any, next_handler: Handler) -> Any:
        if request.has_form_body:
            await request.load_form()

        guard = request.csrf
        request.state["csrf_token_field"] = guard.token_field

        guard.require()
        request.state["csrf_token"] = guard.token or ""

        return await next_handler(request, ctx)


def csrf_token_func(request: Any) -> str:
    """
    Extract the CSRF token from request state.

    Designed for template context injection after ``CSRFMiddleware`` ran.
    """
    return request.state.get("csrf_token", "")

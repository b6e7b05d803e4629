"""
Tests for CSRF token issue, verification and rotation.
"""

import logging
import re

import pytest

from inquest._uploads import FormData
from inquest.config import CSRFConfig, RequestConfig
from inquest.csrf import CSRFError, CSRFGuard, CSRFMiddleware, csrf_token_func
from inquest.sessions.faults import SessionNotActiveFault
from tests.conftest import make_request, make_session

TOKEN_KEY = "$.csrf_token"


class FakeRequest:
    """Minimal request: method plus parsed body fields."""

    def __init__(self, method="POST", body=None):
        self.method = method
        self.body = body or {}

    def parsed_body(self, name=None):
        if name is None:
            return self.body
        return self.body.get(name)


def post_with(session, token):
    return FakeRequest("POST", {"csrf_token": token})


class TestIssue:

    def test_fresh_token(self, session):
        guard = CSRFGuard(FakeRequest("GET"), session)
        assert re.fullmatch(r"[0-9a-f]{12}", guard.token)
        assert session.get(TOKEN_KEY) == guard.token

    def test_existing_token_kept(self):
        session = make_session({TOKEN_KEY: "abcdefabcdef"})
        guard = CSRFGuard(FakeRequest("GET"), session)
        assert guard.token == "abcdefabcdef"

    def test_inactive_session(self):
        with pytest.raises(SessionNotActiveFault) as exc_info:
            CSRFGuard(FakeRequest(), make_session(active=False))
        assert exc_info.value.code == "SESSION_NOT_ACTIVE"
        assert "CSRFGuard" in exc_info.value.message

    def test_missing_session(self):
        with pytest.raises(SessionNotActiveFault):
            CSRFGuard(FakeRequest(), None)

    def test_custom_namespace_and_size(self, session):
        config = CSRFConfig(session_namespace="app", token_bytes=16)
        guard = CSRFGuard(FakeRequest("GET"), session, config)
        assert len(guard.token) == 32
        assert session.get("app.csrf_token") == guard.token


class TestVerify:

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    def test_safe_methods_pass_without_change(self, session, method):
        guard = CSRFGuard(FakeRequest(method), session)
        before = guard.token
        assert guard.verify() is True
        assert guard.verify() is True
        assert guard.token == before
        assert not guard.verified

    def test_correct_token_rotates_once(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        guard = CSRFGuard(post_with(session, token), session)

        assert guard.verify() is True
        rotated = guard.token
        assert rotated != token
        assert re.fullmatch(r"[0-9a-f]{12}", rotated)
        assert guard.verified

        assert guard.verify() is True
        assert guard.token == rotated

    def test_wrong_token(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        guard = CSRFGuard(post_with(session, "0" * 12), session)
        assert guard.verify() is False
        assert guard.token == token
        assert not guard.verified

    def test_missing_token(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        guard = CSRFGuard(FakeRequest("POST"), session)
        assert guard.verify() is False
        assert guard.token == token

    def test_non_string_token(self, session):
        guard = CSRFGuard(FakeRequest("POST", {"csrf_token": {"a": "b"}}), session)
        assert guard.verify() is False

    def test_non_ascii_token(self, session):
        guard = CSRFGuard(post_with(session, "tökén"), session)
        assert guard.verify() is False

    def test_replayed_token_fails(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        assert CSRFGuard(post_with(session, token), session).verify() is True
        assert CSRFGuard(post_with(session, token), session).verify() is False

    def test_custom_token_field(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        guard = CSRFGuard(FakeRequest("PUT", {"_token": token}), session)
        assert guard.verify() is False

        guard.token_field = "_token"
        assert guard.token_field == "_token"
        assert guard.verify() is True

    def test_failure_logs_without_token_value(self, session, caplog):
        CSRFGuard(FakeRequest("GET"), session)
        guard = CSRFGuard(post_with(session, "deadbeef0000"), session)
        with caplog.at_level(logging.WARNING, logger="inquest.csrf"):
            guard.verify()
        assert "mismatch" in caplog.text
        assert "deadbeef0000" not in caplog.text
        assert session.get(TOKEN_KEY) not in caplog.text


class TestEnableDisable:

    def test_disabled_passes_and_keeps_token(self, session):
        guard = CSRFGuard(FakeRequest("POST"), session)
        token = guard.token
        assert guard.disable() is None
        assert not guard.enabled
        assert guard.verify() is True
        assert guard.token == token

        guard.enable()
        assert guard.enabled
        assert guard.verify() is False

    def test_disabled_by_config(self, session):
        guard = CSRFGuard(FakeRequest("POST"), session, CSRFConfig(enabled=False))
        assert guard.verify() is True


class TestRendering:

    def test_hidden_field(self, session):
        guard = CSRFGuard(FakeRequest("GET"), session)
        assert guard.render_hidden_field() == (
            f'<input type="hidden" name="csrf_token" value="{guard.token}">'
        )

    def test_hidden_field_escapes(self):
        session = make_session({TOKEN_KEY: '"><script>'})
        guard = CSRFGuard(FakeRequest("GET"), session)
        html = guard.render_hidden_field()
        assert "<script>" not in html
        assert "&#34;&gt;&lt;script&gt;" in html

    def test_hidden_field_disabled(self, session):
        guard = CSRFGuard(FakeRequest("GET"), session)
        guard.disable()
        assert guard.render_hidden_field() == ""


class TestRequire:

    def test_missing(self, session):
        guard = CSRFGuard(FakeRequest("POST"), session)
        with pytest.raises(CSRFError) as exc_info:
            guard.require()
        assert exc_info.value.code == "CSRF_VIOLATION"
        assert exc_info.value.message == "CSRF token missing"

    def test_invalid(self, session):
        guard = CSRFGuard(post_with(session, "nope"), session)
        with pytest.raises(CSRFError) as exc_info:
            guard.require()
        assert exc_info.value.message == "CSRF token invalid"
        assert exc_info.value.metadata["field"] == "csrf_token"


class TestMiddleware:

    @pytest.mark.asyncio
    async def test_valid_post(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        request = make_request(
            method="POST",
            headers=[("content-type", "application/x-www-form-urlencoded")],
            body=f"csrf_token={token}&title=hi".encode(),
            session=session,
        )
        calls = []

        async def handler(req, ctx):
            calls.append(req.parsed_body("title"))
            return "ok"

        assert await CSRFMiddleware()(request, None, handler) == "ok"
        assert calls == ["hi"]
        assert request.state["csrf_token"] == session.get(TOKEN_KEY)
        assert request.state["csrf_token"] != token
        assert csrf_token_func(request) == request.state["csrf_token"]

    @pytest.mark.asyncio
    async def test_invalid_post_stops_handler(self, session):
        request = make_request(
            method="POST",
            headers=[("content-type", "application/x-www-form-urlencoded")],
            body=b"csrf_token=forged",
            session=session,
        )

        async def handler(req, ctx):
            raise AssertionError("handler must not run")

        with pytest.raises(CSRFError):
            await CSRFMiddleware()(request, None, handler)
        assert "csrf_token" not in request.state

    @pytest.mark.asyncio
    async def test_get_exposes_token(self, session):
        request = make_request(session=session)

        async def handler(req, ctx):
            return csrf_token_func(req)

        assert await CSRFMiddleware()(request, None, handler) == session.get(TOKEN_KEY)

    @pytest.mark.asyncio
    async def test_prebuilt_form(self, session):
        token = CSRFGuard(FakeRequest("GET"), session).token
        request = make_request(
            method="POST",
            session=session,
            form=FormData.from_pairs(fields=[("csrf_token", token)]),
            config=RequestConfig(),
        )

        async def handler(req, ctx):
            return "ok"

        assert await CSRFMiddleware()(request, None, handler) == "ok"

    def test_token_func_default(self):
        request = make_request()
        assert csrf_token_func(request) == ""

"""
Shared test fixtures and helpers for the inquest test suite.
"""

import base64
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from inquest.request import Request
from inquest.sessions.core import Session, SessionID


# ============================================================================
# Request Helpers
# ============================================================================


def make_scope(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[List[tuple]] = None,
    scheme: str = "http",
    client: Optional[tuple] = None,
) -> dict:
    """Build a minimal ASGI HTTP scope."""
    raw_headers = []
    if headers:
        for name, value in headers:
            raw_headers.append(
                (name.encode("latin-1") if isinstance(name, str) else name,
                 value.encode("latin-1") if isinstance(value, str) else value)
            )
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "path": path,
        "raw_path": path.encode("utf-8"),
        "query_string": query_string.encode("utf-8") if isinstance(query_string, str) else query_string,
        "headers": raw_headers,
        "scheme": scheme,
        "server": ("127.0.0.1", 8000),
        "client": client or ("127.0.0.1", 12345),
        "root_path": "",
    }


def make_receive(body: bytes = b"", *, chunks: Optional[List[bytes]] = None):
    """Create an ASGI receive callable from body bytes or chunked list."""
    if chunks:
        messages = []
        for i, chunk in enumerate(chunks):
            messages.append({
                "type": "http.request",
                "body": chunk,
                "more_body": i < len(chunks) - 1,
            })
    else:
        messages = [{"type": "http.request", "body": body, "more_body": False}]

    idx = 0

    async def receive():
        nonlocal idx
        if idx < len(messages):
            msg = messages[idx]
            idx += 1
            return msg
        return {"type": "http.disconnect"}

    return receive


def make_request(
    method: str = "GET",
    path: str = "/",
    query_string: str = "",
    headers: Optional[List[tuple]] = None,
    body: bytes = b"",
    scheme: str = "http",
    client: Optional[tuple] = None,
    **kwargs,
) -> Request:
    """Build a full Request object for testing."""
    scope = make_scope(
        method=method,
        path=path,
        query_string=query_string,
        headers=headers,
        scheme=scheme,
        client=client,
    )
    receive = make_receive(body)
    return Request(scope, receive, **kwargs)


def basic_header(userpass: str) -> str:
    """Build a Basic Authorization header value."""
    return "Basic " + base64.b64encode(userpass.encode("utf-8")).decode("ascii")


def build_multipart(
    boundary: str,
    fields: Optional[List[Tuple[str, str]]] = None,
    files: Optional[List[Tuple[str, str, str, bytes]]] = None,
) -> bytes:
    """
    Build a multipart/form-data body by hand.

    ``files`` entries are ``(field, filename, content_type, content)``.
    """
    lines: List[bytes] = []
    for name, value in fields or []:
        lines.append(f"--{boundary}".encode())
        lines.append(f'Content-Disposition: form-data; name="{name}"'.encode())
        lines.append(b"")
        lines.append(value.encode("utf-8"))
    for name, filename, content_type, content in files or []:
        lines.append(f"--{boundary}".encode())
        lines.append(
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"'.encode()
        )
        lines.append(f"Content-Type: {content_type}".encode())
        lines.append(b"")
        lines.append(content)
    lines.append(f"--{boundary}--".encode())
    lines.append(b"")
    return b"\r\n".join(lines)


# ============================================================================
# Session Helpers
# ============================================================================


def make_session(data: Optional[Dict[str, Any]] = None, active: bool = True) -> Session:
    """Create a test Session, active by default."""
    s = Session(id=SessionID())
    if data:
        s.data.update(data)
    if active:
        s.activate()
    return s


@pytest.fixture
def session() -> Session:
    return make_session()


@pytest.fixture
def upload_path(tmp_path: Path) -> Path:
    """A temporary file standing in for a spilled upload."""
    path = tmp_path / "upload.bin"
    path.write_bytes(b"data")
    return path

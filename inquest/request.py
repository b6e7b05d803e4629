"""
Request - ASGI request model with lazy, cached derivations.

Provides:
- Typed access to method, headers and content type of an ASGI scope
- Streaming body support with idempotent caching
- Form parsing: urlencoded and multipart/form-data (uploads spilled to disk)
- Content negotiation over the Accept header family
- Authorization header parsing (Basic, Digest)
- CSRF guard bound to the request session
- Wire rendering with multipart bodies rebuilt from the parsed form

Every derivation is computed on first access and reused for the rest of
the request; collaborators (headers, session) are not consulted again.
"""

from __future__ import annotations

import asyncio
import json as stdlib_json
import logging
import shutil
import tempfile
import uuid
from pathlib import Path
from typing import (
    Any, AsyncIterator, Awaitable, Callable, Dict, List,
    Mapping, Optional, Sequence, Tuple
)
from urllib.parse import parse_qsl

from python_multipart import MultipartParser
from python_multipart.multipart import parse_options_header

from ._datastructures import Headers, ParsedContentType, lookup_path
from ._uploads import FormData, UploadFile, create_upload_file_from_path
from .authorization import (
    AuthCredentials, AuthScheme, BasicCredentials, DigestCredentials,
    parse_authorization,
)
from .config import RequestConfig
from .csrf import CSRFGuard
from .faults import (
    BadRequest, ClientDisconnect, Fault, InvalidHost, InvalidJSON,
    MultipartParseError, PayloadTooLarge, UnsupportedMediaType,
)
from .multipart import MULTIPART_FORM_DATA, MultipartComposer
from .negotiation import NegotiationKind, Negotiator
from .sessions.core import Session

logger = logging.getLogger("inquest.request")

FORM_URLENCODED = "application/x-www-form-urlencoded"
JSON_MEDIA_TYPES = ("application/json",)
PROXY_IP_HEADERS = ("X-Forwarded-For", "Client-IP", "X-Client-IP", "X-Cluster-Client-IP")

_UNSET = object()


async def _empty_receive() -> dict:
    return {"type": "http.request", "body": b"", "more_body": False}


class Request:
    """
    Request object for inquest.

    Wraps an ASGI scope and receive callable. The session is an explicit
    dependency: pass the session resolved for this request (see
    :class:`~inquest.sessions.SessionEngine`) to use CSRF protection.

    Example:
        >>> request = Request(scope, receive, session=session)
        >>> await request.load_form()
        >>> request.csrf.verify()
        True
        >>> request.negotiate_accept(["application/json", "text/html"])
        'text/html'
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        receive: Optional[Callable[..., Awaitable[dict]]] = None,
        *,
        session: Optional[Session] = None,
        config: Optional[RequestConfig] = None,
        form: Optional[FormData] = None,
        chunk_size: int = 64 * 1024,
    ):
        """
        Initialize Request.

        Args:
            scope: ASGI scope dict
            receive: ASGI receive callable (an empty body when omitted)
            session: Active session for this request, if any
            config: Request settings (limits, allowed hosts, CSRF)
            form: Already-parsed form data, skipping body parsing
            chunk_size: Default chunk size for streaming

        Raises:
            InvalidHost: If ``allowed_hosts`` is set and the Host header
                is not in it
        """
        self.scope = scope
        self._receive = receive or _empty_receive
        self.session = session
        self.config = config or RequestConfig()
        self.chunk_size = chunk_size

        # State
        self.state: Dict[str, Any] = {}

        # Cached values
        self._body: Optional[bytes] = None
        self._body_consumed = False
        self._json: Any = _UNSET
        self._form_data: Optional[FormData] = form
        self._headers: Optional[Headers] = None
        self._content_type: Any = _UNSET
        self._negotiator: Optional[Negotiator] = None
        self._auth: Any = _UNSET
        self._csrf: Optional[CSRFGuard] = None
        self._multipart_body: Optional[str] = None
        self._request_id: Any = _UNSET
        self._is_ajax: Optional[bool] = None
        self._disconnected = False

        # Cleanup tracking
        self._temp_dir: Optional[Path] = None

        self._validate_host()

    # ========================================================================
    # Basic Properties
    # ========================================================================

    @property
    def method(self) -> str:
        """HTTP method (GET, POST, etc.)."""
        return self.scope.get("method", "GET").upper()

    @property
    def http_version(self) -> str:
        """HTTP version (e.g., '1.1', '2')."""
        return self.scope.get("http_version", "1.1")

    @property
    def path(self) -> str:
        """Request path (decoded)."""
        return self.scope.get("path", "/")

    @property
    def query_string(self) -> str:
        """Raw query string."""
        return self.scope.get("query_string", b"").decode("utf-8")

    @property
    def scheme(self) -> str:
        return self.scope.get("scheme", "http")

    @property
    def client(self) -> Optional[tuple]:
        """Client address (host, port)."""
        return self.scope.get("client")

    @property
    def target(self) -> str:
        """Request target as sent on the request line."""
        query = self.query_string
        return f"{self.path}?{query}" if query else self.path

    # ========================================================================
    # Headers
    # ========================================================================

    @property
    def headers(self) -> Headers:
        """Get request headers."""
        if self._headers is None:
            self._headers = Headers(raw=list(self.scope.get("headers", [])))
        return self._headers

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get single header value (case-insensitive)."""
        return self.headers.get(name, default)

    def has_header(self, name: str) -> bool:
        return self.headers.has(name)

    @property
    def host(self) -> Optional[str]:
        """Host header without port, lower-cased."""
        host = self.header("host")
        if not host:
            return None
        if host.startswith("["):
            # IPv6 literal
            return host.split("]", 1)[0].lower() + "]"
        return host.rsplit(":", 1)[0].lower() if ":" in host else host.lower()

    def _validate_host(self) -> None:
        allowed = self.config.allowed_hosts
        if allowed is None:
            return

        host = self.host
        if host is None or host not in {h.lower() for h in allowed}:
            logger.warning("Rejected request for host %r", self.header("host"))
            raise InvalidHost(
                f"Host {self.header('host')!r} is not allowed",
                host=self.header("host"),
            )

    @property
    def id(self) -> Optional[str]:
        """Client- or proxy-assigned request id (``X-Request-ID``)."""
        if self._request_id is _UNSET:
            self._request_id = self.header("x-request-id")
        return self._request_id

    @property
    def is_ajax(self) -> bool:
        """Whether the request was sent by XMLHttpRequest."""
        if self._is_ajax is None:
            requested_with = self.header("x-requested-with") or ""
            self._is_ajax = requested_with.lower() == "xmlhttprequest"
        return self._is_ajax

    @property
    def is_secure(self) -> bool:
        return self.scheme in ("https", "wss")

    @property
    def proxied_ip(self) -> Optional[str]:
        """
        Client IP reported by a proxy header.

        Checks ``X-Forwarded-For``, ``Client-IP``, ``X-Client-IP`` and
        ``X-Cluster-Client-IP`` in order. For a forwarded-for list the
        first (original client) address is returned. These headers are
        client-controlled; only trust them behind a known proxy.
        """
        for name in PROXY_IP_HEADERS:
            value = self.header(name)
            if value:
                return value.split(",")[0].strip()
        return None

    # ========================================================================
    # Content Helpers
    # ========================================================================

    @property
    def content_type(self) -> Optional[str]:
        """Get Content-Type header."""
        return self.header("content-type")

    @property
    def parsed_content_type(self) -> Optional[ParsedContentType]:
        if self._content_type is _UNSET:
            self._content_type = ParsedContentType.parse(self.content_type)
        return self._content_type

    @property
    def media_type(self) -> Optional[str]:
        """Content-Type without parameters, lower-cased."""
        parsed = self.parsed_content_type
        return parsed.media_type if parsed else None

    @property
    def content_length(self) -> Optional[int]:
        """Get Content-Length header as int."""
        length = self.header("content-length")
        if length:
            try:
                return int(length)
            except ValueError:
                return None
        return None

    @property
    def is_multipart(self) -> bool:
        return self.media_type == MULTIPART_FORM_DATA

    @property
    def is_form(self) -> bool:
        """Whether the body is urlencoded or multipart form data."""
        return self.media_type == FORM_URLENCODED or self.is_multipart

    has_form_body = is_form

    @property
    def is_json(self) -> bool:
        """Check if request content type is JSON."""
        media_type = self.media_type
        if not media_type:
            return False
        return media_type in JSON_MEDIA_TYPES or media_type.endswith("+json")

    @property
    def is_post(self) -> bool:
        return self.method == "POST"

    # ========================================================================
    # Content Negotiation
    # ========================================================================

    @property
    def negotiator(self) -> Negotiator:
        """Per-request negotiator reading this request's headers."""
        if self._negotiator is None:
            self._negotiator = Negotiator(self.header)
        return self._negotiator

    def accepted_media_types(self) -> List[str]:
        """Accept header tokens, most preferred first."""
        return self.negotiator.preferences(NegotiationKind.ACCEPT)

    def accepted_charsets(self) -> List[str]:
        return self.negotiator.preferences(NegotiationKind.CHARSET)

    def accepted_encodings(self) -> List[str]:
        return self.negotiator.preferences(NegotiationKind.ENCODING)

    def accepted_languages(self) -> List[str]:
        return self.negotiator.preferences(NegotiationKind.LANGUAGE)

    def negotiate_accept(self, candidates: Sequence[str]) -> str:
        """
        Pick the media type to respond with.

        Args:
            candidates: Producible media types, default first
        """
        return self.negotiator.negotiate(NegotiationKind.ACCEPT, candidates)

    def negotiate_charset(self, candidates: Sequence[str]) -> str:
        return self.negotiator.negotiate(NegotiationKind.CHARSET, candidates)

    def negotiate_encoding(self, candidates: Sequence[str]) -> str:
        return self.negotiator.negotiate(NegotiationKind.ENCODING, candidates)

    def negotiate_language(self, candidates: Sequence[str]) -> str:
        return self.negotiator.negotiate(NegotiationKind.LANGUAGE, candidates)

    def accepts(self, *media_types: str) -> bool:
        """Check whether any of ``media_types`` is explicitly accepted."""
        accepted = set(self.accepted_media_types())
        return any(media_type.lower() in accepted for media_type in media_types)

    # ========================================================================
    # Authorization
    # ========================================================================

    @property
    def auth(self) -> AuthCredentials:
        """Parsed Authorization credentials (computed once)."""
        if self._auth is _UNSET:
            self._auth = parse_authorization(self.header("authorization"))
            if self._auth is None and self.has_header("authorization"):
                logger.debug("Ignoring Authorization header with unsupported scheme")
        return self._auth

    @property
    def auth_type(self) -> Optional[AuthScheme]:
        """Detected authorization scheme, or None."""
        credentials = self.auth
        return credentials.scheme if credentials is not None else None

    @property
    def basic_auth(self) -> Optional[BasicCredentials]:
        """Basic credentials, or None when the scheme is not Basic."""
        credentials = self.auth
        return credentials if isinstance(credentials, BasicCredentials) else None

    @property
    def digest_auth(self) -> Optional[DigestCredentials]:
        """Digest credentials, or None when the scheme is not Digest."""
        credentials = self.auth
        return credentials if isinstance(credentials, DigestCredentials) else None

    # ========================================================================
    # Body Streaming
    # ========================================================================

    async def _receive_message(self) -> dict:
        """
        Receive next ASGI message.

        Handles disconnect detection.
        """
        try:
            message = await self._receive()
            if message["type"] == "http.disconnect":
                self._disconnected = True
                raise ClientDisconnect("Client disconnected")
            return message
        except asyncio.CancelledError:
            self._disconnected = True
            raise

    def is_disconnected(self) -> bool:
        """Check if client has disconnected."""
        return self._disconnected

    async def iter_bytes(self, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
        """
        Stream request body in chunks.

        Args:
            chunk_size: Size of chunks (uses default if not specified)

        Yields:
            Body chunks

        Raises:
            ClientDisconnect: If client disconnects during streaming
            PayloadTooLarge: If body exceeds max_body_size
        """
        chunk_size = chunk_size or self.chunk_size

        # If body already consumed, yield from cache
        if self._body is not None:
            for i in range(0, len(self._body), chunk_size):
                yield self._body[i:i + chunk_size]
            return

        if self._body_consumed:
            # Already streamed, nothing to yield
            return

        total_size = 0
        max_body_size = self.config.max_body_size

        while True:
            message = await self._receive_message()

            if message["type"] == "http.request":
                chunk = message.get("body", b"")

                if chunk:
                    total_size += len(chunk)
                    if total_size > max_body_size:
                        raise PayloadTooLarge(
                            "Request body exceeds maximum size",
                            max_allowed=max_body_size,
                            actual=total_size,
                        )
                    yield chunk

                if not message.get("more_body", False):
                    break

        self._body_consumed = True

    async def body(self) -> bytes:
        """
        Read full request body (idempotent).

        Returns:
            Complete request body as bytes

        Raises:
            ClientDisconnect: If client disconnects
            PayloadTooLarge: If body exceeds max_body_size
        """
        if self._body is not None:
            return self._body

        chunks = []
        async for chunk in self.iter_bytes():
            chunks.append(chunk)

        self._body = b"".join(chunks)
        return self._body

    async def text(self, encoding: Optional[str] = None) -> str:
        """
        Read request body as text.

        Args:
            encoding: Text encoding (from Content-Type charset if None)
        """
        body_bytes = await self.body()

        if encoding is None:
            parsed = self.parsed_content_type
            encoding = parsed.charset if parsed else "utf-8"

        return body_bytes.decode(encoding)

    # ========================================================================
    # JSON Parsing
    # ========================================================================

    async def json(self) -> Any:
        """
        Parse request body as JSON (idempotent).

        Raises:
            InvalidJSON: If the body is not valid UTF-8 JSON
            PayloadTooLarge: If body exceeds max_body_size
        """
        if self._json is not _UNSET:
            return self._json

        body_bytes = await self.body()

        try:
            self._json = stdlib_json.loads(body_bytes.decode("utf-8"))
        except UnicodeDecodeError as e:
            raise InvalidJSON(f"Invalid UTF-8 in JSON payload: {e}")
        except stdlib_json.JSONDecodeError as e:
            raise InvalidJSON(f"Invalid JSON: {e}")

        return self._json

    # ========================================================================
    # Form & Multipart Parsing
    # ========================================================================

    @property
    def form(self) -> FormData:
        """Loaded form data (empty until :meth:`load_form` ran)."""
        if self._form_data is None:
            return FormData()
        return self._form_data

    def parsed_body(self, name: Optional[str] = None) -> Any:
        """
        Access parsed body fields.

        Reads the loaded form, or a loaded JSON object when the body was
        JSON. Bracketed names address nested values (``user[name]``).

        Args:
            name: Array-path field name, or None for all fields

        Returns:
            The nested field mapping, the value at ``name``, or None
        """
        if self._form_data is not None:
            source: Mapping = self._form_data.fields
        elif isinstance(self._json, dict):
            source = self._json
        else:
            if self.is_form and not self._body_consumed:
                logger.debug("parsed_body() called before load_form()")
            source = {}

        if name is None:
            return source
        return lookup_path(source, name)

    async def load_form(self) -> FormData:
        """
        Parse the form body (idempotent).

        Handles ``application/x-www-form-urlencoded`` and
        ``multipart/form-data``.

        Returns:
            FormData with nested fields and files

        Raises:
            UnsupportedMediaType: If the body is not a form
            BadRequest: If there are too many fields or no boundary
            PayloadTooLarge: If the body or an upload is too large
            MultipartParseError: If the multipart body is malformed
        """
        if self._form_data is not None:
            return self._form_data

        parsed_ct = self.parsed_content_type
        if parsed_ct is None:
            raise UnsupportedMediaType("No Content-Type header")

        if parsed_ct.media_type == FORM_URLENCODED:
            self._form_data = await self._parse_urlencoded(parsed_ct)
        elif parsed_ct.media_type == MULTIPART_FORM_DATA:
            boundary = parsed_ct.boundary
            if not boundary:
                raise BadRequest("No boundary in multipart Content-Type")
            self._form_data = await self._parse_multipart(boundary.encode("latin-1"))
        else:
            raise UnsupportedMediaType(
                f"Expected {FORM_URLENCODED} or {MULTIPART_FORM_DATA}, got {self.content_type}",
                content_type=self.content_type,
            )

        return self._form_data

    async def _parse_urlencoded(self, parsed_ct: ParsedContentType) -> FormData:
        body_bytes = await self.body()
        items = parse_qsl(body_bytes.decode(parsed_ct.charset), keep_blank_values=True)

        if len(items) > self.config.max_field_count:
            raise BadRequest(
                "Too many form fields",
                max_allowed=self.config.max_field_count,
                actual=len(items),
            )

        return FormData.from_pairs(fields=items)

    def _upload_dir(self) -> Path:
        if self._temp_dir is None:
            base = self.config.upload_tempdir
            if base:
                Path(base).mkdir(parents=True, exist_ok=True)
            self._temp_dir = Path(tempfile.mkdtemp(prefix="inquest_", dir=base))
        return self._temp_dir

    async def _parse_multipart(self, boundary: bytes) -> FormData:
        """
        Parse multipart form data with python-multipart.

        Field values are decoded as UTF-8. Every upload is written to its
        own temporary file so that it is described by path like any other
        upload.
        """
        fields: List[Tuple[str, str]] = []
        files: List[Tuple[str, UploadFile]] = []
        max_field_count = self.config.max_field_count
        max_file_size = self.config.max_file_size

        part = {
            "count": 0,
            "name": None,
            "filename": None,
            "content_type": None,
            "data": bytearray(),
            "path": None,
            "handle": None,
            "size": 0,
        }
        header_state = {
            "field": bytearray(),
            "value": bytearray(),
            "headers": {},
        }

        def close_handle():
            if part["handle"] is not None:
                part["handle"].close()
                part["handle"] = None

        def on_part_begin():
            part["count"] += 1
            if part["count"] > max_field_count:
                raise BadRequest(
                    "Too many multipart parts",
                    max_allowed=max_field_count,
                    actual=part["count"],
                )

            part.update(
                name=None, filename=None, content_type=None,
                data=bytearray(), path=None, handle=None, size=0,
            )
            header_state["headers"] = {}

        def on_header_field(data: bytes, start: int, end: int):
            header_state["field"].extend(data[start:end])

        def on_header_value(data: bytes, start: int, end: int):
            header_state["value"].extend(data[start:end])

        def on_header_end():
            if header_state["field"]:
                name = header_state["field"].decode("latin-1").lower()
                header_state["headers"][name] = header_state["value"].decode("utf-8", errors="replace")
            header_state["field"] = bytearray()
            header_state["value"] = bytearray()

        def on_headers_finished():
            disposition = header_state["headers"].get("content-disposition", "")
            _, options = parse_options_header(disposition)

            name = options.get(b"name")
            part["name"] = name.decode("utf-8", errors="replace") if name is not None else None

            # An empty filename is a file input submitted without a file.
            filename = options.get(b"filename")
            if filename is not None:
                part["filename"] = filename.decode("utf-8", errors="replace")
                part["content_type"] = header_state["headers"].get(
                    "content-type", "application/octet-stream"
                )
                part["path"] = self._upload_dir() / uuid.uuid4().hex
                part["handle"] = open(part["path"], "wb")

        def on_part_data(data: bytes, start: int, end: int):
            chunk = data[start:end]
            part["size"] += len(chunk)

            if part["handle"] is not None:
                if part["size"] > max_file_size:
                    close_handle()
                    raise PayloadTooLarge(
                        "File upload exceeds maximum size",
                        max_allowed=max_file_size,
                        actual=part["size"],
                        filename=part["filename"],
                    )
                part["handle"].write(chunk)
            else:
                part["data"].extend(chunk)

        def on_part_end():
            close_handle()

            if not part["name"]:
                return

            if part["path"] is not None:
                files.append((
                    part["name"],
                    create_upload_file_from_path(
                        filename=part["filename"],
                        file_path=part["path"],
                        content_type=part["content_type"],
                    ),
                ))
            else:
                fields.append((part["name"], part["data"].decode("utf-8", errors="replace")))

        def on_end():
            part["finished"] = True

        part["finished"] = False
        callbacks = {
            "on_part_begin": on_part_begin,
            "on_part_data": on_part_data,
            "on_part_end": on_part_end,
            "on_header_field": on_header_field,
            "on_header_value": on_header_value,
            "on_header_end": on_header_end,
            "on_headers_finished": on_headers_finished,
            "on_end": on_end,
        }

        parser = MultipartParser(boundary, callbacks)

        try:
            async for chunk in self.iter_bytes():
                parser.write(chunk)
            parser.finalize()
            # on_end only fires once the closing delimiter has been parsed
            if not part["finished"]:
                raise MultipartParseError(
                    "Multipart body ended before the closing boundary",
                    parts=part["count"],
                )
        except Fault:
            close_handle()
            await self.cleanup()
            raise
        except (ValueError, OSError) as e:
            close_handle()
            await self.cleanup()
            raise MultipartParseError(f"Multipart parsing failed: {e}")
        finally:
            close_handle()

        logger.debug("Parsed multipart body: %d fields, %d files", len(fields), len(files))
        return FormData.from_pairs(fields=fields, files=files)

    @property
    def files(self) -> Dict[Any, Any]:
        """Uploaded files nested by array path (empty until loaded)."""
        return self.form.files

    def file(self, name: str) -> Optional[UploadFile]:
        """Get an uploaded file by array path."""
        return self.form.get_file(name)

    @property
    def has_files(self) -> bool:
        return bool(self.form.files)

    # ========================================================================
    # CSRF
    # ========================================================================

    @property
    def csrf(self) -> CSRFGuard:
        """
        CSRF guard bound to this request's session (created once).

        Raises:
            SessionNotActiveFault: If the request has no active session
        """
        if self._csrf is None:
            self._csrf = CSRFGuard(self, self.session, self.config.csrf)
        return self._csrf

    # ========================================================================
    # Wire Rendering
    # ========================================================================

    def multipart_body(self) -> str:
        """
        Multipart body rebuilt from the parsed form.

        Before ``load_form()`` the form is empty and the result is not
        kept; once the form is loaded the body is computed once.

        Raises:
            UnsupportedMediaType: If the request is not multipart/form-data
            BadRequest: If the Content-Type has no boundary
        """
        if self._multipart_body is not None:
            return self._multipart_body

        composer = MultipartComposer.from_content_type(self.content_type)
        body = composer.compose(self.form)
        if self._form_data is not None:
            self._multipart_body = body
        return body

    def _body_text(self) -> str:
        if self.is_multipart and self._form_data is not None:
            try:
                return self.multipart_body()
            except BadRequest as e:
                logger.warning("Cannot rebuild multipart body, using raw body: %s", e)
        if self._body is None:
            return ""
        return self._body.decode("utf-8", errors="replace")

    def to_string(self) -> str:
        """
        Render the request in HTTP/1.1 wire form.

        Request line, headers, a blank line, then the body. Multipart
        bodies are rebuilt from the parsed form; other bodies are shown
        only once read.
        """
        lines = [f"{self.method} {self.target} HTTP/{self.http_version}"]
        for name, value in self.headers.items():
            lines.append(f"{name}: {value}")
        return "\r\n".join(lines) + "\r\n\r\n" + self._body_text()

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.target}>"

    # ========================================================================
    # Cleanup
    # ========================================================================

    async def cleanup(self) -> None:
        """
        Clean up temporary resources.

        Removes temporary upload files that were not moved.
        """
        if self._form_data:
            self._form_data.cleanup()

        if self._temp_dir is not None:
            shutil.rmtree(self._temp_dir, ignore_errors=True)
            self._temp_dir = None

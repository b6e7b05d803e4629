"""
Multipart/form-data composition.

Rebuilds a ``multipart/form-data`` body from already-parsed form fields
and uploaded files. Used when a request has to be rendered back to its
wire form (debug output, logging, replay) after its body was consumed by
the parser.

Framing follows RFC 7578: every part starts with ``--boundary``, the body
closes with ``--boundary--`` and all lines end in CRLF.

Field names and filenames are HTML-entity escaped, matching the markup
layer that renders them; quotes become ``&#34;``, not ``\\"``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Tuple

from markupsafe import escape

from ._datastructures import ParsedContentType
from ._uploads import FormData, UploadFile
from .faults import BadRequest, UnsupportedMediaType

logger = logging.getLogger("inquest.multipart")

CRLF = b"\r\n"
MULTIPART_FORM_DATA = "multipart/form-data"


def escape_disposition_value(value: Any) -> str:
    """Escape a field name or filename for a Content-Disposition header."""
    return str(escape(str(value)))


class MultipartComposer:
    """
    Serialize form fields and uploads as a multipart/form-data body.
    
    Fields are emitted before files, each group in insertion order, so
    the output is deterministic for a given form.
    
    Example:
        >>> composer = MultipartComposer("XYZ")
        >>> composer.compose(FormData.from_pairs([("name", "alice")]))
        '--XYZ\\r\\nContent-Disposition: form-data; name="name"\\r\\n\\r\\nalice\\r\\n--XYZ--\\r\\n'
    """
    
    def __init__(self, boundary: str):
        boundary = boundary.strip() if boundary else ""
        if not boundary:
            raise BadRequest("No boundary in multipart Content-Type")
        self.boundary = boundary
    
    @classmethod
    def from_content_type(cls, content_type: Optional[str]) -> "MultipartComposer":
        """
        Build a composer from a Content-Type header value.
        
        Raises:
            UnsupportedMediaType: If the type is not multipart/form-data
            BadRequest: If the boundary parameter is missing
        """
        parsed = ParsedContentType.parse(content_type)
        if not parsed or parsed.media_type != MULTIPART_FORM_DATA:
            raise UnsupportedMediaType(
                f"Expected {MULTIPART_FORM_DATA}, got {content_type}",
                content_type=content_type,
            )
        return cls(parsed.boundary or "")
    
    # ========================================================================
    # Parts
    # ========================================================================
    
    def field_part(self, name: str, value: Any) -> bytes:
        """Build one form-field part (without its delimiter line)."""
        if isinstance(value, bytes):
            data = value
        else:
            data = str(value).encode("utf-8")
        disposition = f'Content-Disposition: form-data; name="{escape_disposition_value(name)}"'
        return CRLF.join([disposition.encode("utf-8"), b"", data])
    
    def file_part(self, name: str, upload: UploadFile) -> bytes:
        """Build one file part (without its delimiter line)."""
        disposition = (
            f'Content-Disposition: form-data; name="{escape_disposition_value(name)}"; '
            f'filename="{escape_disposition_value(upload.filename)}"'
        )
        return CRLF.join([
            disposition.encode("utf-8"),
            f"Content-Type: {upload.content_type}".encode("utf-8"),
            b"",
            self._read_upload(upload),
        ])
    
    def _read_upload(self, upload: UploadFile) -> bytes:
        """Read upload content, degrading to empty content on failure."""
        if not upload.path:
            return b""
        try:
            return upload.read()
        except OSError as e:
            logger.warning(
                "Cannot read upload %r from %s, composing empty part: %s",
                upload.filename, upload.path, e,
            )
            return b""
    
    # ========================================================================
    # Body
    # ========================================================================
    
    def compose_parts(
        self,
        fields: Iterable[Tuple[str, Any]] = (),
        files: Iterable[Tuple[str, UploadFile]] = (),
    ) -> bytes:
        """
        Compose a body from flattened ``(path, value)`` and ``(path, file)`` pairs.
        
        Returns:
            The complete multipart body as bytes
        """
        parts: List[bytes] = []
        for name, value in fields:
            parts.append(self.field_part(name, value))
        for name, upload in files:
            parts.append(self.file_part(name, upload))
        
        delimiter = f"--{self.boundary}".encode("utf-8")
        lines = [delimiter + CRLF + part for part in parts]
        lines.append(delimiter + b"--")
        lines.append(b"")
        return CRLF.join(lines)
    
    def compose_bytes(self, form: FormData) -> bytes:
        """Compose the multipart body of ``form`` as bytes."""
        return self.compose_parts(form.flat_fields(), form.flat_files())
    
    def compose(self, form: FormData) -> str:
        """
        Compose the multipart body of ``form`` as text.
        
        Binary file content that is not valid UTF-8 is replaced, so use
        :meth:`compose_bytes` when the exact bytes matter.
        """
        return self.compose_bytes(form).decode("utf-8", errors="replace")

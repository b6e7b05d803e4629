"""
Inquest faults - Concrete fault types per domain.

- CONFIG:   settings that cannot be used
- IO:       filesystem trouble and malformed request input
- SECURITY: CSRF violations
"""

from typing import Any

from .core import Fault, FaultDomain, Severity


def _merge_metadata(base: dict[str, Any], kwargs: dict[str, Any]) -> dict[str, Any]:
    return {**base, **kwargs.get("metadata", {})}


# ============================================================================
# CONFIG Faults
# ============================================================================

class ConfigFault(Fault):
    """Base class for configuration faults (never shown to clients)."""
    domain = FaultDomain.CONFIG
    public = False


class ConfigInvalidFault(ConfigFault):
    """A configuration value has the wrong type or an unusable value."""
    code = "CONFIG_INVALID"

    def __init__(self, key: str, reason: str, **kwargs):
        self.key = key
        super().__init__(
            message=f"Configuration key '{key}' is invalid: {reason}",
            metadata=_merge_metadata({"key": key, "reason": reason}, kwargs),
        )


# ============================================================================
# IO Faults
# ============================================================================

class IOFault(Fault):
    """Base class for I/O faults."""
    domain = FaultDomain.IO


class FilesystemFault(IOFault):
    """A file operation on an upload failed."""
    code = "FILESYSTEM_FAULT"

    def __init__(self, operation: str, path: str, reason: str, **kwargs):
        super().__init__(
            message=f"Cannot {operation} '{path}': {reason}",
            metadata=_merge_metadata(
                {"operation": operation, "path": path, "reason": reason}, kwargs
            ),
        )


# ============================================================================
# SECURITY Faults
# ============================================================================

class SecurityFault(Fault):
    """Base class for security faults."""
    domain = FaultDomain.SECURITY
    public = True


class CSRFViolationFault(SecurityFault):
    """A state-changing request did not carry a valid CSRF token."""
    code = "CSRF_VIOLATION"
    severity = Severity.WARN

    def __init__(self, reason: str = "CSRF validation failed", **kwargs):
        self.reason = reason
        super().__init__(
            message=reason,
            metadata=_merge_metadata({"reason": reason}, kwargs),
        )


# ============================================================================
# REQUEST Faults
# ============================================================================

class RequestFault(Fault):
    """Base class for faults caused by the request itself."""
    code = "REQUEST_FAULT"
    message = "Request fault"
    domain = FaultDomain.IO
    severity = Severity.ERROR
    public = True

    def __init__(self, message: str = None, **metadata):
        super().__init__(message=message, metadata=metadata)


class BadRequest(RequestFault):
    """Malformed request (400)."""
    code = "BAD_REQUEST"
    message = "Bad request"


class InvalidHost(BadRequest):
    """Host header not in the allowed hosts (400)."""
    code = "INVALID_HOST"
    message = "Invalid host"


class PayloadTooLarge(RequestFault):
    """Body or upload over the configured limit (413)."""
    code = "PAYLOAD_TOO_LARGE"
    message = "Payload too large"


class UnsupportedMediaType(RequestFault):
    """Content-Type cannot be handled here (415)."""
    code = "UNSUPPORTED_MEDIA_TYPE"
    message = "Unsupported media type"


class InvalidJSON(RequestFault):
    """Body is not valid JSON (400)."""
    code = "INVALID_JSON"
    message = "Invalid JSON"


class MultipartParseError(RequestFault):
    """Multipart body is malformed (400)."""
    code = "MULTIPART_PARSE_ERROR"
    message = "Multipart parsing failed"


class ClientDisconnect(RequestFault):
    """Client went away while the body was read (499)."""
    code = "CLIENT_DISCONNECT"
    message = "Client disconnected"
    severity = Severity.WARN

"""
Inquest faults - Core types and fault taxonomy.

A fault is an exception that describes itself: a stable code for
machines, a message for people, the domain it came from and how
serious it is. Hosts map faults to responses and log records by
reading those fields.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """How loudly a host should react to a fault."""
    INFO = "info"
    WARN = "warn"       # client mistakes, tolerated conditions
    ERROR = "error"
    FATAL = "fatal"     # programming or deployment errors


class FaultDomain:
    """
    Functional area a fault belongs to.

    Domains compare equal to their name, so ``FaultDomain.IO == "io"``.
    Each domain carries the severity used when a fault does not set one.
    """

    CONFIG: ClassVar[FaultDomain]
    IO: ClassVar[FaultDomain]
    SECURITY: ClassVar[FaultDomain]
    SYSTEM: ClassVar[FaultDomain]

    def __init__(self, name: str, description: str = "", severity: Severity = Severity.ERROR):
        self.name = name
        self.description = description
        self.severity = severity

    @property
    def value(self) -> str:
        return self.name

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain({self.name!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return other.name == self.name
        return isinstance(other, str) and other == self.name

    def __hash__(self) -> int:
        return hash(self.name)


FaultDomain.CONFIG = FaultDomain("config", "Invalid or missing settings", Severity.FATAL)
FaultDomain.IO = FaultDomain("io", "Request input and file I/O", Severity.WARN)
FaultDomain.SECURITY = FaultDomain("security", "Sessions, CSRF and credentials", Severity.ERROR)
FaultDomain.SYSTEM = FaultDomain("system", "Unexpected internal failures", Severity.FATAL)


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Structured exception base.

    Subclasses usually pin ``code``, ``message``, ``domain`` and
    optionally ``severity``, ``retryable`` and ``public`` as class
    attributes; keyword arguments override them per instance. Severity
    falls back to the domain's default.

    Example:
        ```python
        raise Fault(
            code="UPLOAD_MISSING",
            message="Upload vanished before it was read",
            domain=FaultDomain.IO,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        retryable: Optional[bool] = None,
        public: bool | None = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        cls = type(self)
        self.code = code if code is not None else getattr(cls, "code", None)
        self.message = message if message is not None else getattr(cls, "message", None)
        self.domain = domain if domain is not None else getattr(cls, "domain", None)

        missing = [
            name for name in ("code", "message", "domain")
            if getattr(self, name) is None
        ]
        if missing:
            raise TypeError(f"{cls.__name__} needs {', '.join(missing)}")

        super().__init__(self.message)

        self.severity = severity or getattr(cls, "severity", None) or self.domain.severity
        self.retryable = retryable if retryable is not None else getattr(cls, "retryable", False)
        self.public = public if public is not None else getattr(cls, "public", False)
        self.metadata = metadata or {}

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, domain={self.domain.name}, "
            f"severity={self.severity.value}, public={self.public})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for log records and error payloads."""
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.name,
            "severity": self.severity.value,
            "retryable": self.retryable,
            "public": self.public,
            "metadata": self.metadata,
        }

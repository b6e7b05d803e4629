"""
Inquest faults - Typed fault signals.

Errors raised by inquest are structured faults carrying a stable code,
a domain and a severity, so hosts can map them to responses and logs
without string matching.

Core exports:
- Fault: Base fault class
- FaultDomain: Domain taxonomy
- Severity: Severity levels
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
)

from .domains import (
    ConfigFault,
    ConfigInvalidFault,
    IOFault,
    FilesystemFault,
    SecurityFault,
    CSRFViolationFault,
    RequestFault,
    BadRequest,
    InvalidHost,
    PayloadTooLarge,
    UnsupportedMediaType,
    InvalidJSON,
    MultipartParseError,
    ClientDisconnect,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",
    
    # Domain faults
    "ConfigFault",
    "ConfigInvalidFault",
    "IOFault",
    "FilesystemFault",
    "SecurityFault",
    "CSRFViolationFault",
    
    # Request faults
    "RequestFault",
    "BadRequest",
    "InvalidHost",
    "PayloadTooLarge",
    "UnsupportedMediaType",
    "InvalidJSON",
    "MultipartParseError",
    "ClientDisconnect",
]

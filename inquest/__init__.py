"""
Inquest - Inbound HTTP request model with structured derivations

Derives typed information from loosely specified request data:
- Negotiation: Quality-value ranking of the Accept header family
- Authorization: Basic and Digest credentials as a tagged union
- Multipart: Rebuilding multipart/form-data bodies from parsed forms
- CSRF: Session-bound synchronizer tokens with rotation
- Faults: Structured error handling with fault domains
"""

__version__ = "0.1.0"

# ============================================================================
# Request
# ============================================================================

from .request import Request
from .config import ConfigError, ConfigLoader, CSRFConfig, RequestConfig

# Request data structures
from ._datastructures import (
    Headers,
    ParsedContentType,
    flatten,
    lookup_path,
    nest_pairs,
)

# Upload handling
from ._uploads import (
    UploadFile,
    FormData,
)

# ============================================================================
# Derivations
# ============================================================================

from .negotiation import (
    NegotiationKind,
    Negotiator,
    QualityEntry,
    parse_quality_values,
)

from .authorization import (
    AuthCredentials,
    AuthScheme,
    BasicCredentials,
    DigestCredentials,
    parse_authorization,
)

from .multipart import MultipartComposer

from .csrf import (
    CSRFError,
    CSRFGuard,
    CSRFMiddleware,
    csrf_token_func,
)

# ============================================================================
# Sessions & Faults
# ============================================================================

from .sessions import (
    MemoryStore,
    Session,
    SessionEngine,
    SessionID,
    SessionNotActiveFault,
)

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    BadRequest,
    InvalidHost,
    InvalidJSON,
    MultipartParseError,
    PayloadTooLarge,
    UnsupportedMediaType,
)

__all__ = [
    "__version__",
    # Request
    "Request",
    "RequestConfig",
    "CSRFConfig",
    "ConfigLoader",
    "ConfigError",
    "Headers",
    "ParsedContentType",
    "nest_pairs",
    "flatten",
    "lookup_path",
    "UploadFile",
    "FormData",
    # Derivations
    "NegotiationKind",
    "Negotiator",
    "QualityEntry",
    "parse_quality_values",
    "AuthCredentials",
    "AuthScheme",
    "BasicCredentials",
    "DigestCredentials",
    "parse_authorization",
    "MultipartComposer",
    "CSRFError",
    "CSRFGuard",
    "CSRFMiddleware",
    "csrf_token_func",
    # Sessions
    "Session",
    "SessionID",
    "SessionEngine",
    "MemoryStore",
    "SessionNotActiveFault",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "BadRequest",
    "InvalidHost",
    "InvalidJSON",
    "MultipartParseError",
    "PayloadTooLarge",
    "UnsupportedMediaType",
]

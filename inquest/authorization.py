"""
Authorization header parsing.

Turns an ``Authorization`` header into typed credentials:

- ``Basic``  -> :class:`BasicCredentials`
- ``Digest`` -> :class:`DigestCredentials`
- anything else, or no header -> ``None``

Malformed credentials never raise. A Basic header that does not decode
gives a record with both fields ``None``; Digest attributes that cannot
be read are simply absent.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Iterator, Optional, Tuple, Union

logger = logging.getLogger("inquest.authorization")


class AuthScheme(str, Enum):
    """Supported authorization schemes (matched case-sensitively)."""
    
    BASIC = "Basic"
    DIGEST = "Digest"


@dataclass(frozen=True)
class BasicCredentials:
    """Credentials of a ``Basic`` Authorization header."""
    
    scheme: ClassVar[AuthScheme] = AuthScheme.BASIC
    
    username: Optional[str] = None
    password: Optional[str] = None


@dataclass(frozen=True)
class DigestCredentials:
    """Credentials of a ``Digest`` Authorization header (RFC 7616)."""
    
    scheme: ClassVar[AuthScheme] = AuthScheme.DIGEST
    
    username: Optional[str] = None
    realm: Optional[str] = None
    nonce: Optional[str] = None
    uri: Optional[str] = None
    response: Optional[str] = None
    opaque: Optional[str] = None
    qop: Optional[str] = None
    nc: Optional[str] = None
    cnonce: Optional[str] = None


AuthCredentials = Union[BasicCredentials, DigestCredentials, None]

DIGEST_ATTRIBUTES = (
    "username", "realm", "nonce", "uri", "response",
    "opaque", "qop", "nc", "cnonce",
)


# ============================================================================
# Basic
# ============================================================================

def parse_basic_credentials(params: Optional[str]) -> BasicCredentials:
    """
    Decode the base64 ``user:password`` payload of a Basic header.
    
    Anything short of a decodable payload containing ``:`` yields
    ``BasicCredentials(None, None)``.
    """
    if not params:
        return BasicCredentials()
    
    # Clients that strip the trailing "=" padding are accepted.
    payload = params.strip()
    payload += "=" * (-len(payload) % 4)
    try:
        decoded = base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, ValueError):
        logger.debug("Ignoring undecodable Basic credentials")
        return BasicCredentials()
    
    username, sep, password = decoded.partition(":")
    if not sep:
        logger.debug("Ignoring Basic credentials without ':' separator")
        return BasicCredentials()
    
    return BasicCredentials(username=username, password=password)


# ============================================================================
# Digest
# ============================================================================

_QUOTES = ('"', "'")


def _tokenize_digest(params: str) -> Iterator[Tuple[str, str]]:
    """
    Yield ``(key, value)`` pairs from a Digest parameter list.
    
    Accepts ``key="quoted value"``, ``key='quoted value'`` and
    ``key=bare-value`` separated by commas and/or whitespace. A backslash
    inside a quoted value escapes the next character. Segments without
    ``=`` are skipped. Single pass, no backtracking.
    """
    i = 0
    length = len(params)
    
    while i < length:
        # Skip separators
        while i < length and (params[i] in ", \t"):
            i += 1
        if i >= length:
            break
        
        key_start = i
        while i < length and params[i] not in "=, \t":
            i += 1
        key = params[key_start:i]
        
        while i < length and params[i] in " \t":
            i += 1
        if i >= length or params[i] != "=":
            # Not a key=value pair; drop up to the next comma
            while i < length and params[i] != ",":
                i += 1
            continue
        i += 1  # consume "="
        
        while i < length and params[i] in " \t":
            i += 1
        
        if i < length and params[i] in _QUOTES:
            quote = params[i]
            i += 1
            chars = []
            while i < length and params[i] != quote:
                if params[i] == "\\" and i + 1 < length:
                    i += 1
                chars.append(params[i])
                i += 1
            i += 1  # consume closing quote (or run past the end)
            value = "".join(chars)
        else:
            value_start = i
            while i < length and params[i] not in ", \t":
                i += 1
            value = params[value_start:i]
        
        if key:
            yield key, value


def parse_digest_credentials(params: Optional[str]) -> DigestCredentials:
    """
    Read the nine recognized Digest attributes.
    
    Keys are matched case-sensitively, unknown keys are ignored and the
    last occurrence of a repeated key wins.
    """
    values: Dict[str, str] = {}
    for key, value in _tokenize_digest(params or ""):
        if key in DIGEST_ATTRIBUTES:
            values[key] = value
    return DigestCredentials(**values)


# ============================================================================
# Dispatcher
# ============================================================================

def parse_authorization(header_value: Optional[str]) -> AuthCredentials:
    """
    Parse an Authorization header value into typed credentials.
    
    The scheme is the text before the first space and must be exactly
    ``Basic`` or ``Digest``. Re-parsing the same value always yields an
    equal record.
    
    Returns:
        BasicCredentials, DigestCredentials, or ``None`` for no usable scheme
    """
    if not header_value:
        return None
    
    scheme, _, params = header_value.partition(" ")
    
    if scheme == AuthScheme.BASIC.value:
        return parse_basic_credentials(params)
    if scheme == AuthScheme.DIGEST.value:
        return parse_digest_credentials(params)
    
    return None

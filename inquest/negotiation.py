"""
Content negotiation for Accept-family headers.

Parses ``Accept``, ``Accept-Charset``, ``Accept-Encoding`` and
``Accept-Language`` into preference lists ordered by quality value and
matches them against the values a handler can produce.

Example:
    >>> entries = parse_quality_values("text/html;q=0.8, application/json;q=0.9")
    >>> [e.token for e in entries]
    ['application/json', 'text/html']
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger("inquest.negotiation")

DEFAULT_QUALITY = 1.0


class NegotiationKind(str, Enum):
    """Negotiable header kinds, valued by the header they read."""
    
    ACCEPT = "Accept"
    CHARSET = "Accept-Charset"
    ENCODING = "Accept-Encoding"
    LANGUAGE = "Accept-Language"
    
    @property
    def header(self) -> str:
        return self.value


@dataclass(frozen=True)
class QualityEntry:
    """A negotiable token with its quality weight."""
    
    token: str
    quality: float = DEFAULT_QUALITY


def _parse_quality(raw: str) -> float:
    """Parse a q parameter, falling back to 1.0 for anything unusable."""
    try:
        quality = float(raw)
    except ValueError:
        return DEFAULT_QUALITY
    if not math.isfinite(quality) or not 0.0 <= quality <= 1.0:
        return DEFAULT_QUALITY
    return quality


def parse_quality_values(header_value: Optional[str]) -> List[QualityEntry]:
    """
    Parse a quality-valued header into entries ordered by preference.
    
    The token is the part before the first ``;``, lower-cased. Only the
    ``q`` parameter affects ranking. Entries keep header order when their
    weights tie, and a repeated token keeps its first occurrence.
    
    This never raises: a malformed q value counts as 1.0.
    
    Args:
        header_value: Raw header value (``None`` or empty gives ``[]``)
    
    Returns:
        Entries sorted by descending quality
    """
    if not header_value:
        return []
    
    entries: List[QualityEntry] = []
    seen = set()
    
    for item in header_value.split(","):
        parts = item.split(";")
        token = parts[0].strip().lower()
        if not token or token in seen:
            continue
        
        quality = DEFAULT_QUALITY
        for param in parts[1:]:
            name, sep, value = param.partition("=")
            if sep and name.strip().lower() == "q":
                quality = _parse_quality(value.strip())
                break
        
        seen.add(token)
        entries.append(QualityEntry(token, quality))
    
    # sorted() is stable, so ties keep header order
    return sorted(entries, key=lambda entry: entry.quality, reverse=True)


class Negotiator:
    """
    Per-request negotiation over Accept-family headers.
    
    Preference lists are computed on first use and memoized per kind; the
    header accessor is not consulted again for a kind once cached.
    
    Args:
        get_header: Callable returning a header value or ``None``
    """
    
    def __init__(self, get_header: Callable[[str], Optional[str]]):
        self._get_header = get_header
        self._cache: Dict[NegotiationKind, List[str]] = {}
    
    def preferences(self, kind: NegotiationKind) -> List[str]:
        """
        Get the ordered, lower-cased tokens of one header kind.
        
        Returns a copy; the cached list is never handed out.
        """
        kind = NegotiationKind(kind)
        if kind not in self._cache:
            entries = parse_quality_values(self._get_header(kind.header))
            self._cache[kind] = [entry.token for entry in entries]
            logger.debug("Parsed %s preferences: %s", kind.header, self._cache[kind])
        return list(self._cache[kind])
    
    def negotiate(self, kind: NegotiationKind, candidates: Sequence[str]) -> str:
        """
        Pick the client's most preferred candidate.
        
        Matching is case-insensitive and the candidate is returned as the
        caller spelled it. When nothing matches, ``candidates[0]`` is the
        answer, so callers pass their default first.
        
        Args:
            kind: Header kind to negotiate
            candidates: Values the server can produce, default first
        
        Returns:
            One of ``candidates``
        
        Raises:
            ValueError: If ``candidates`` is empty
        """
        if not candidates:
            raise ValueError(f"Cannot negotiate {NegotiationKind(kind).header} without candidates")
        
        by_token: Dict[str, str] = {}
        for candidate in candidates:
            by_token.setdefault(candidate.lower(), candidate)
        
        for token in self.preferences(kind):
            if token in by_token:
                return by_token[token]
        
        return candidates[0]

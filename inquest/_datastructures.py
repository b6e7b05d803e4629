"""
Core data structures for inquest request handling.

Provides:
- Headers: Case-insensitive header access keyed by canonical names
- ParsedContentType: Content-Type parsing helper
- Array-path helpers: nest_pairs, flatten, lookup_path for
  bracketed form field names such as ``user[address][city]``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import (
    Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union
)


# ============================================================================
# Headers
# ============================================================================

def canonical_header_name(name: str) -> str:
    """
    Normalize a header name to its canonical form.
    
    Examples:
        "content-type"      -> "Content-Type"
        "ACCEPT_LANGUAGE"   -> "Accept-Language"
        "x-requested-with"  -> "X-Requested-With"
    """
    parts = name.strip().replace("_", "-").split("-")
    return "-".join(part.capitalize() for part in parts)


@dataclass
class Headers:
    """
    Case-insensitive header access with raw preservation.
    
    Names are normalized to their canonical form. When a header is
    repeated, the last value wins.
    """
    
    raw: List[Tuple[bytes, bytes]] = field(default_factory=list)
    _index: Dict[str, str] = field(default_factory=dict, init=False, repr=False)
    
    def __post_init__(self):
        """Build canonical index."""
        self._index = {}
        for name, value in self.raw:
            key = canonical_header_name(name.decode("latin-1"))
            self._index[key] = value.decode("latin-1")
    
    @classmethod
    def from_mapping(cls, headers: Mapping[str, str]) -> "Headers":
        """Build headers from a plain ``{name: value}`` mapping."""
        return cls(raw=[
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in headers.items()
        ])
    
    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Get header value (case-insensitive)."""
        return self._index.get(canonical_header_name(name), default)
    
    def has(self, name: str) -> bool:
        """Check if header exists."""
        return canonical_header_name(name) in self._index
    
    def items(self) -> Iterator[Tuple[str, str]]:
        """Iterate over canonical names and their effective values."""
        return iter(self._index.items())
    
    def keys(self) -> Iterator[str]:
        return iter(self._index.keys())
    
    def __contains__(self, name: str) -> bool:
        return self.has(name)
    
    def __getitem__(self, name: str) -> str:
        """Get header value (raises KeyError if not found)."""
        value = self.get(name)
        if value is None:
            raise KeyError(f"Header '{name}' not found")
        return value
    
    def __len__(self) -> int:
        return len(self._index)
    
    def __repr__(self) -> str:
        return f"Headers({list(self.items())})"


# ============================================================================
# ParsedContentType
# ============================================================================

@dataclass
class ParsedContentType:
    """
    Parsed Content-Type header.
    
    Extracts media type and parameters (e.g., charset, boundary).
    """
    
    media_type: str
    params: Dict[str, str] = field(default_factory=dict)
    
    @classmethod
    def parse(cls, content_type: Optional[str]) -> Optional["ParsedContentType"]:
        """Parse Content-Type header."""
        if not content_type:
            return None
        
        parts = content_type.split(";")
        media_type = parts[0].strip().lower()
        
        params = {}
        for part in parts[1:]:
            if "=" in part:
                key, value = part.split("=", 1)
                params[key.strip().lower()] = value.strip().strip('"')
        
        return cls(media_type=media_type, params=params)
    
    @property
    def charset(self) -> str:
        """Get charset parameter (default: utf-8)."""
        return self.params.get("charset", "utf-8")
    
    @property
    def boundary(self) -> Optional[str]:
        """Get boundary parameter (for multipart)."""
        return self.params.get("boundary") or None


# ============================================================================
# Array-path field names
# ============================================================================

PathKey = Union[str, int]


def split_path(name: str) -> List[str]:
    """
    Split a bracketed field name into its segments.
    
    ``"user[address][city]"`` -> ``["user", "address", "city"]``
    ``"tags[]"``              -> ``["tags", ""]``
    
    Names with unbalanced brackets are treated as a single literal key.
    """
    start = name.find("[")
    if start <= 0:
        return [name]
    
    segments = [name[:start]]
    rest = name[start:]
    while rest:
        if not rest.startswith("["):
            return [name]
        end = rest.find("]")
        if end == -1:
            return [name]
        segments.append(rest[1:end])
        rest = rest[end + 1:]
    return segments


def _next_index(container: Dict[PathKey, Any]) -> int:
    indexes = [key for key in container if isinstance(key, int)]
    return max(indexes) + 1 if indexes else 0


def _normalize_key(segment: str) -> PathKey:
    return int(segment) if segment.isdigit() else segment


def nest_pairs(pairs: Iterable[Tuple[str, Any]]) -> Dict[PathKey, Any]:
    """
    Build a nested structure from ``(field-name, value)`` pairs.
    
    Bracketed names create nested dicts; empty brackets append with the
    next integer key. Later scalar values replace earlier ones.
    
    Example:
        >>> nest_pairs([("user[name]", "ann"), ("tags[]", "a"), ("tags[]", "b")])
        {'user': {'name': 'ann'}, 'tags': {0: 'a', 1: 'b'}}
    """
    result: Dict[PathKey, Any] = {}
    
    for name, value in pairs:
        segments = split_path(name)
        current = result
        for position, segment in enumerate(segments):
            key = _next_index(current) if segment == "" else _normalize_key(segment)
            if position == len(segments) - 1:
                current[key] = value
                break
            child = current.get(key)
            if not isinstance(child, dict):
                child = {}
                current[key] = child
            current = child
    
    return result


def flatten(nested: Mapping[PathKey, Any], prefix: str = "") -> List[Tuple[str, Any]]:
    """
    Flatten a nested structure back into ``(field-name, value)`` pairs.
    
    Inverse of :func:`nest_pairs` for explicit keys; appended entries come
    back with their integer index (``tags[0]``). Insertion order is kept.
    """
    items: List[Tuple[str, Any]] = []
    for key, value in nested.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if isinstance(value, Mapping):
            items.extend(flatten(value, name))
        else:
            items.append((name, value))
    return items


def lookup_path(nested: Mapping[PathKey, Any], name: str, default: Any = None) -> Any:
    """
    Resolve a bracketed field name against a nested structure.
    
    Returns ``default`` when any segment is missing or empty.
    """
    current: Any = nested
    for segment in split_path(name):
        if segment == "" or not isinstance(current, Mapping):
            return default
        key = _normalize_key(segment)
        if key not in current:
            return default
        current = current[key]
    return current

"""
Config system - Layered typed configuration with validation.

Merge order (later overrides earlier):
1. Dataclass defaults
2. ``.env`` file (read with python-dotenv)
3. Environment variables (``INQUEST_`` prefix)
4. Manual overrides

Nested keys use a double underscore: ``INQUEST_CSRF__TOKEN_FIELD``.
"""

from __future__ import annotations

import json
import os
import types
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import (
    Any, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union,
    get_args, get_origin, get_type_hints,
)

from dotenv import dotenv_values

from .faults import ConfigInvalidFault

T = TypeVar("T")


class ConfigError(ConfigInvalidFault):
    """Raised when configuration validation fails."""


# ============================================================================
# Typed Config
# ============================================================================

@dataclass
class CSRFConfig:
    """
    CSRF guard settings.

    Attributes:
        enabled: Initial enabled state of new guards
        token_field: Parsed-body field carrying the submitted token
        session_namespace: Reserved session namespace holding the token
        token_bytes: Random bytes per token (hex doubles the length)
        safe_methods: Methods that never need a token
    """

    enabled: bool = True
    token_field: str = "csrf_token"
    session_namespace: str = "$"
    token_bytes: int = 6
    safe_methods: Tuple[str, ...] = ("GET", "HEAD", "OPTIONS")

    @property
    def session_key(self) -> str:
        """Session key under which the current token is stored."""
        return f"{self.session_namespace}.csrf_token"


@dataclass
class RequestConfig:
    """
    Request model settings.

    Attributes:
        max_body_size: Maximum request body size in bytes
        max_field_count: Maximum number of form fields/parts
        max_file_size: Maximum file upload size in bytes
        upload_tempdir: Directory for temporary upload files
        allowed_hosts: Accepted Host header values (None accepts any)
        csrf: CSRF guard settings
    """

    max_body_size: int = 10_485_760  # 10 MiB
    max_field_count: int = 1000
    max_file_size: int = 2_147_483_648  # 2 GiB
    upload_tempdir: Optional[str] = None
    allowed_hosts: Optional[list] = None
    csrf: CSRFConfig = field(default_factory=CSRFConfig)


# ============================================================================
# Loader
# ============================================================================

class ConfigLoader:
    """
    Collects raw settings from every source into one nested dict, then
    builds typed config objects from it.

    Example:
        >>> loader = ConfigLoader.load(env_file=".env", overrides={"max_field_count": 50})
        >>> loader.get("csrf.token_field")
        >>> config = loader.request_config()
    """

    def __init__(self, env_prefix: str = "INQUEST_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        env_prefix: str = "INQUEST_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Read ``env_file``, then the process environment, then ``overrides``.

        Args:
            env_prefix: Only variables with this prefix are read
            env_file: Optional .env file; a missing file is skipped
            overrides: Nested dict applied last
        """
        loader = cls(env_prefix=env_prefix)

        if env_file and Path(env_file).is_file():
            loader._apply_env(dotenv_values(env_file))

        loader._apply_env(os.environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    # ========================================================================
    # Raw data
    # ========================================================================

    def _apply_env(self, variables: Mapping[str, Optional[str]]):
        for name, raw in variables.items():
            if raw is None or not name.startswith(self.env_prefix):
                continue
            *parents, leaf = name[len(self.env_prefix):].lower().split("__")

            target = self.config_data
            for parent in parents:
                child = target.get(parent)
                if not isinstance(child, dict):
                    child = target[parent] = {}
                target = child
            target[leaf] = self._parse_value(raw)

    def _parse_value(self, raw: str) -> Any:
        """Coerce an environment string to bool, number, JSON or str."""
        lowered = raw.lower()
        if lowered in ("true", "yes"):
            return True
        if lowered in ("false", "no"):
            return False

        for number_type in (int, float):
            try:
                return number_type(raw)
            except ValueError:
                continue

        if raw[:1] in ("{", "["):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                return raw

        return raw

    def _merge_dict(self, target: dict, source: Mapping):
        for key, value in source.items():
            existing = target.get(key)
            if isinstance(existing, dict) and isinstance(value, Mapping):
                self._merge_dict(existing, value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Look up a raw value by dotted path (``"csrf.token_field"``)."""
        node: Any = self.config_data
        for key in path.split("."):
            if not isinstance(node, dict) or key not in node:
                return default
            node = node[key]
        return node

    # ========================================================================
    # Typed config
    # ========================================================================

    def request_config(self) -> RequestConfig:
        """
        Build a validated RequestConfig from the loaded data.

        Raises:
            ConfigError: If a value does not match its field type
        """
        return self._build(RequestConfig, self.config_data)

    def _build(self, config_class: Type[T], data: Mapping[str, Any]) -> T:
        hints = get_type_hints(config_class)
        kwargs = {}

        for field_def in fields(config_class):
            if field_def.name not in data:
                continue  # dataclass default applies

            expected = hints[field_def.name]
            value = data[field_def.name]

            if is_dataclass(expected) and isinstance(value, Mapping):
                value = self._build(expected, value)
            elif get_origin(expected) is tuple and isinstance(value, list):
                value = tuple(value)

            if not self._matches(value, expected):
                raise ConfigError(
                    field_def.name,
                    f"expected {getattr(expected, '__name__', expected)}, got {type(value).__name__}",
                )
            kwargs[field_def.name] = value

        return config_class(**kwargs)

    def _matches(self, value: Any, expected: Any) -> bool:
        origin = get_origin(expected)

        if origin is Union or origin is types.UnionType:
            return any(
                value is None if arg is type(None) else self._matches(value, arg)
                for arg in get_args(expected)
            )
        if origin is not None:
            return isinstance(value, origin)

        # bool is an int subclass but never a valid number here
        if isinstance(value, bool) and expected is not bool:
            return False
        if expected is float:
            return isinstance(value, (int, float))
        return isinstance(value, expected)

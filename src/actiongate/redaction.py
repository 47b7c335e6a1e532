"""Redaction and JSON coercion for values written to the audit log or shown to approvers."""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from pathlib import PurePath
from typing import Any, Mapping

from .audit.types import JSONValue

REDACTED = "[redacted]"

_SENSITIVE_KEY_TERMS = (
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "passwd",
    "authorization",
    "bearer",
    "private_key",
    "privatekey",
    "access_key",
    "accesskey",
    "credential",
    "session",
    "jwt",
    "auth",
)

_SENSITIVE_VALUE_PREFIXES = (
    "sk-",
    "rk-",
    "ghp_",
    "github_pat_",
    "xoxb-",
    "xoxa-",
)


def safe_repr(obj: Any, max_length: int = 200) -> str:
    try:
        r = repr(obj)
        if len(r) > max_length:
            return r[:max_length] + "..."
        return r
    except Exception:
        return "<repr failed>"


def is_sensitive_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def is_sensitive_value(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    s = value.strip()
    if s.count(".") == 2 and len(s) >= 24 and " " not in s:
        return True
    if s.lower().startswith("bearer "):
        return True
    for prefix in _SENSITIVE_VALUE_PREFIXES:
        if s.startswith(prefix):
            return True
    if "-----BEGIN" in s:
        return True
    return False


def _non_json_placeholder(value: Any) -> str:
    """Return a deterministic, non-leaky placeholder for non-JSON values."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<bytes:{len(value)}>"
    return f"<{type(value).__name__}>"


def redact_value(key: str | None, value: Any) -> JSONValue:
    """Redact a value while preserving safe primitive types.

    Used for everything written to the audit log. The result is always
    serializable by the canonical encoder in ``audit.jcs``.
    """
    if key is not None and is_sensitive_key(key):
        return REDACTED

    if isinstance(value, str):
        if value == REDACTED or is_sensitive_value(value):
            return REDACTED
        return value

    if value is None or value is True or value is False:
        return value
    # NOTE: bool is a subclass of int, so check bool before int.
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Decimal):
        return value if value.is_finite() else str(value)
    if isinstance(value, PurePath):
        return str(value)

    if isinstance(value, (list, tuple)):
        return [redact_value(None, v) for v in value]

    if isinstance(value, Mapping):
        if all(isinstance(k, str) for k in value.keys()):
            return {k: redact_value(k, v) for k, v in value.items()}
        return _non_json_placeholder(value)

    return _non_json_placeholder(value)


def redact_parameters(params: Mapping[str, Any]) -> dict[str, JSONValue]:
    return {k: redact_value(k, v) for k, v in params.items()}


def json_safe(value: Any) -> JSONValue:
    """Coerce a value into canonical-JSON-safe form without redacting anything.

    Unknown objects fall back to their ``str()`` so distinct values stay distinct.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Decimal):
        return value if value.is_finite() else str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((json_safe(v) for v in value), key=repr)
    if isinstance(value, Mapping):
        return {str(k): json_safe(v) for k, v in value.items()}
    return str(value)

"""Canonical JSON helpers for audit lines and approval request keys.

- Object keys are sorted after NFC normalization; duplicates are rejected.
- Strings are NFC-normalized.
- Decimals are rendered fixed-point without exponent.
- Finite floats are rendered with their shortest round-trip repr so a parsed
  line re-encodes to the same bytes. NaN and infinities are rejected.
"""

from __future__ import annotations

import json
import math
import unicodedata
from decimal import Decimal
from typing import Any

_JSON_SEPARATORS = (",", ":")


class CanonicalizationError(ValueError):
    """Raised when a value cannot be represented in canonical JSON."""


def canonical_bytes(value: Any) -> bytes:
    """Return canonical UTF-8 bytes for the given JSON-serializable value."""
    return _canonical_json(value).encode("utf-8")


def _canonical_json(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"

    # NOTE: bool is a subclass of int, so check bool before int.
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise CanonicalizationError("NaN/Infinity are rejected")
        return json.dumps(value)
    if isinstance(value, Decimal):
        return _canonical_decimal(value)

    if isinstance(value, str):
        normalized = unicodedata.normalize("NFC", value)
        return json.dumps(normalized, ensure_ascii=False, separators=_JSON_SEPARATORS)

    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonical_json(v) for v in value) + "]"

    if isinstance(value, dict):
        normalized_items: dict[str, Any] = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise CanonicalizationError("object keys must be strings")
            nk = unicodedata.normalize("NFC", k)
            if nk in normalized_items:
                raise CanonicalizationError(f"duplicate key after NFC normalization: {nk!r}")
            normalized_items[nk] = v

        parts: list[str] = []
        for k in sorted(normalized_items.keys()):
            parts.append(
                json.dumps(k, ensure_ascii=False, separators=_JSON_SEPARATORS)
                + ":"
                + _canonical_json(normalized_items[k])
            )
        return "{" + ",".join(parts) + "}"

    raise CanonicalizationError(f"type {type(value).__name__} is not JSON-serializable")


def _canonical_decimal(value: Decimal) -> str:
    if not value.is_finite():
        raise CanonicalizationError("NaN/Infinity are rejected")

    # JSON has no "-0"; normalize any signed zero to "0".
    if value == 0:
        return "0"

    s = format(value, "f")
    if "." in s:
        s = s.rstrip("0").rstrip(".")
    if s == "-0":
        return "0"
    return s

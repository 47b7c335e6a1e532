"""Shared approval store constants and helpers."""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from ..audit.jcs import canonical_bytes
from ..redaction import json_safe

DEFAULT_TTL_SECONDS: int = 3600  # approved grants live one hour unless configured


def request_key(agent_id: str, action_name: str, params: Mapping[str, Any]) -> str:
    """Return the canonical approval id for an intent.

    Parameter order does not matter (keys are sorted canonically). The triple
    is encoded as a JSON array so separators inside ids cannot collide. The
    result is urlsafe base64 so it can travel in URLs unchanged.
    """
    raw = canonical_bytes([agent_id, action_name, json_safe(dict(params))])
    return base64.urlsafe_b64encode(raw).decode("ascii")


def grant_expiry(ttl_seconds: int, now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=ttl_seconds)


def validate_ttl(ttl_seconds: int) -> int:
    if not isinstance(ttl_seconds, int) or isinstance(ttl_seconds, bool) or ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be a positive integer")
    return ttl_seconds

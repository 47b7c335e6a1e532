"""Runtime settings, read from ``ACTIONGATE_*`` environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field, field_validator

from .approvals.common import DEFAULT_TTL_SECONDS
from .audit.signing import Ed25519Signer, EntrySigner, load_private_key

ENV_PREFIX = "ACTIONGATE_"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


class GatewaySettings(BaseModel):
    """Settings shared by the gateway, the audit log and the approval store."""

    model_config = {"frozen": True}

    audit_log_path: Path = Path("./logs/audit.log")
    approvals_path: Path = Path("./data/approvals.json")
    audit_secret: str | None = Field(default=None, repr=False)
    strict_audit: bool = False
    approval_ttl: int = Field(default=DEFAULT_TTL_SECONDS, gt=0)
    approval_timeout: float = Field(default=300.0, gt=0)
    poll_interval: float = Field(default=0.5, gt=0)
    execution_timeout: float | None = Field(default=None, gt=0)
    signing_key_path: Path | None = None

    @field_validator("audit_secret")
    @classmethod
    def _empty_secret_is_none(cls, value: str | None) -> str | None:
        return value or None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GatewaySettings":
        """Build settings from the environment. Unset variables keep their defaults."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        mapping = {
            "AUDIT_LOG": "audit_log_path",
            "APPROVALS_PATH": "approvals_path",
            "AUDIT_SECRET": "audit_secret",
            "APPROVAL_TTL": "approval_ttl",
            "APPROVAL_TIMEOUT": "approval_timeout",
            "POLL_INTERVAL": "poll_interval",
            "EXECUTION_TIMEOUT": "execution_timeout",
            "SIGNING_KEY": "signing_key_path",
        }
        for suffix, field_name in mapping.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        strict = env.get(ENV_PREFIX + "STRICT_AUDIT")
        if strict is not None:
            values["strict_audit"] = _parse_bool(ENV_PREFIX + "STRICT_AUDIT", strict)
        return cls.model_validate(values)

    def audit_signer(self) -> EntrySigner | None:
        """Ed25519 signer from ``signing_key_path`` (a PEM written by ``actiongate keygen``).

        None when no key is configured; the audit log then signs with the secret, if any.
        Raises OSError, ValueError or RuntimeError (cryptography missing) for an unusable key.
        """
        if self.signing_key_path is None:
            return None
        return Ed25519Signer(load_private_key(self.signing_key_path.read_bytes()))


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")

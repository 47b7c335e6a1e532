"""Typed models for actiongate."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class Decision(str, Enum):
    """Outcome of a governed action."""

    ALLOW = "ALLOW"
    BLOCK = "BLOCK"
    REQUIRE_APPROVAL = "REQUIRE_APPROVAL"
    SHADOW_BLOCK = "SHADOW_BLOCK"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class _WireModel(BaseModel):
    """Base for models persisted to files shared with external tools (camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Action(_WireModel):
    """A named, parameterized request to perform an external effect."""

    action_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    agent_id: str
    reason: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    shadow_mode: bool = False

    @field_validator("action_name", "agent_id")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("parameters", mode="before")
    @classmethod
    def _parameters_not_none(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        raise TypeError("parameters must be a dict")

    @field_validator("timestamp")
    @classmethod
    def _timestamp_timezone_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
            raise ValueError("timestamp must be timezone-aware")
        return value


class ApprovalRequest(_WireModel):
    """A persisted approval record keyed by the canonical request id."""

    id: str
    agent_id: str
    action_name: str
    params: dict[str, Any] = Field(default_factory=dict)
    status: ApprovalStatus = ApprovalStatus.PENDING
    timestamp: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None

    @field_validator("timestamp", "expires_at")
    @classmethod
    def _naive_is_utc(cls, value: datetime | None) -> datetime | None:
        # External writers may omit the offset.
        if value is not None and (value.tzinfo is None or value.tzinfo.utcoffset(value) is None):
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utc_now())

    def is_live_grant(self, now: datetime | None = None) -> bool:
        return self.status is ApprovalStatus.APPROVED and not self.is_expired(now)


class AuditResult(_WireModel):
    success: bool
    output: Any = None
    error: str | None = None
    dry_run: bool = False
    reason: str | None = None
    reason_code: str | None = None


class AuditLogEntry(_WireModel):
    """One line of the audit log.

    ``previous_hash`` and ``signature`` are filled in by the audit log at write time.
    """

    timestamp: str
    agent_id: str
    action: dict[str, Any]
    decision: Decision
    result: AuditResult
    previous_hash: str | None = None
    signature: str | None = None

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GatewayResult(BaseModel):
    """Structured outcome of ExecutionGateway.run()."""

    decision: Decision
    success: bool
    output: Any = None
    error: str | None = None
    reason: str = ""
    reason_code: str | None = None

"""Approval store protocol and the shared JSON file implementation.

Design notes:
- The file is a JSON array of ApprovalRequest records (camelCase keys) and is
  shared with out-of-process approval channels (dashboard, CLI).
- Every operation takes an exclusive lock on a sidecar ``.lock`` file and
  reloads the full file before acting, so a concurrent external update is
  never masked by stale state. Writes go to a temp file and are moved into
  place atomically.
- Approved grants carry ``expiresAt``; an expired grant is treated as absent
  and evicted on the next access.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator, Mapping, Protocol

from pydantic import ValidationError

from ..audit.errors import LockTimeout, sanitize_exception
from ..audit.filelock import DEFAULT_LOCK_TIMEOUT, locked_file
from ..errors import ApprovalStoreError
from ..redaction import json_safe
from ..types import ApprovalRequest, ApprovalStatus, utc_now
from .common import DEFAULT_TTL_SECONDS, grant_expiry, request_key, validate_ttl

_logger = logging.getLogger(__name__)


class ApprovalStore(Protocol):
    """Durable approval state as used by ExecutionGateway."""

    def request_approval(
        self, agent_id: str, action_name: str, params: Mapping[str, Any]
    ) -> ApprovalRequest:
        ...

    def resolve(
        self, agent_id: str, action_name: str, params: Mapping[str, Any], status: ApprovalStatus
    ) -> ApprovalRequest:
        ...

    def get(self, request_id: str) -> ApprovalRequest | None:
        ...

    def is_approved(self, agent_id: str, action_name: str, params: Mapping[str, Any]) -> bool:
        ...


@dataclass
class JSONApprovalStore:
    """File-backed approval store safe for concurrent use by several processes."""

    path: Path
    ttl_seconds: int = field(default=DEFAULT_TTL_SECONDS)
    lock_timeout: float = field(default=DEFAULT_LOCK_TIMEOUT)

    def __post_init__(self) -> None:
        self.path = Path(self.path)
        validate_ttl(self.ttl_seconds)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    # -- intent-keyed operations -------------------------------------------------

    def request_approval(
        self, agent_id: str, action_name: str, params: Mapping[str, Any]
    ) -> ApprovalRequest:
        """Create a PENDING request, or return the open/granted one for the same intent.

        A REJECTED or expired record is reopened as a fresh PENDING request.
        """
        key = request_key(agent_id, action_name, params)
        now = utc_now()
        with self._locked() as records:
            existing = records.get(key)
            if existing is not None and (
                existing.status is ApprovalStatus.PENDING or existing.is_live_grant(now)
            ):
                return existing
            record = self._new_record(key, agent_id, action_name, params, ApprovalStatus.PENDING, now)
            records[key] = record
            self._save(records)
            return record

    def approve(self, agent_id: str, action_name: str, params: Mapping[str, Any]) -> ApprovalRequest:
        """Record an APPROVED grant (creating it if needed) valid for ``ttl_seconds``."""
        return self._set(agent_id, action_name, params, ApprovalStatus.APPROVED)

    def reject(self, agent_id: str, action_name: str, params: Mapping[str, Any]) -> ApprovalRequest:
        return self._set(agent_id, action_name, params, ApprovalStatus.REJECTED)

    def resolve(
        self, agent_id: str, action_name: str, params: Mapping[str, Any], status: ApprovalStatus
    ) -> ApprovalRequest:
        """Resolve a PENDING request; the first authority to decide wins.

        If another channel already decided, the existing record is returned
        unchanged and the caller must honor its status.
        """
        if status is ApprovalStatus.PENDING:
            raise ValueError("resolve() requires APPROVED or REJECTED")
        key = request_key(agent_id, action_name, params)
        now = utc_now()
        with self._locked() as records:
            existing = records.get(key)
            if existing is not None and existing.status is not ApprovalStatus.PENDING:
                if not existing.is_expired(now):
                    return existing
            record = self._new_record(key, agent_id, action_name, params, status, now)
            if existing is not None:
                record = existing.model_copy(
                    update={"status": status, "expires_at": record.expires_at}
                )
            records[key] = record
            self._save(records)
            return record

    def status(
        self, agent_id: str, action_name: str, params: Mapping[str, Any]
    ) -> ApprovalStatus | None:
        record = self.get(request_key(agent_id, action_name, params))
        return None if record is None else record.status

    def is_approved(self, agent_id: str, action_name: str, params: Mapping[str, Any]) -> bool:
        return self.status(agent_id, action_name, params) is ApprovalStatus.APPROVED

    def is_rejected(self, agent_id: str, action_name: str, params: Mapping[str, Any]) -> bool:
        return self.status(agent_id, action_name, params) is ApprovalStatus.REJECTED

    # -- id-keyed operations (external channels) -------------------------------------

    def get(self, request_id: str) -> ApprovalRequest | None:
        """Return the record for ``request_id``; expired grants are evicted and read as absent."""
        now = utc_now()
        with self._locked() as records:
            record = records.get(request_id)
            if record is None:
                return None
            if record.status is ApprovalStatus.APPROVED and record.is_expired(now):
                del records[request_id]
                self._save(records)
                _logger.info("evicted expired approval grant %s", request_id)
                return None
            return record

    def update_status(self, request_id: str, status: ApprovalStatus) -> ApprovalRequest | None:
        """Set the status of an existing record. Returns None if the id is unknown."""
        now = utc_now()
        with self._locked() as records:
            record = records.get(request_id)
            if record is None:
                return None
            expires_at = grant_expiry(self.ttl_seconds, now) if status is ApprovalStatus.APPROVED else None
            record = record.model_copy(update={"status": status, "expires_at": expires_at})
            records[request_id] = record
            self._save(records)
            return record

    def revoke(self, request_id: str) -> bool:
        with self._locked() as records:
            if records.pop(request_id, None) is None:
                return False
            self._save(records)
            return True

    def revoke_matching(self, *, agent_id: str | None = None, action_name: str | None = None) -> int:
        """Drop APPROVED grants matching the filters (all grants when none given)."""
        with self._locked() as records:
            doomed = [
                key
                for key, record in records.items()
                if record.status is ApprovalStatus.APPROVED
                and (agent_id is None or record.agent_id == agent_id)
                and (action_name is None or record.action_name == action_name)
            ]
            for key in doomed:
                del records[key]
            if doomed:
                self._save(records)
            return len(doomed)

    def clear_expired(self) -> int:
        now = utc_now()
        with self._locked() as records:
            doomed = [
                key
                for key, record in records.items()
                if record.status is ApprovalStatus.APPROVED and record.is_expired(now)
            ]
            for key in doomed:
                del records[key]
            if doomed:
                self._save(records)
            return len(doomed)

    def get_all(self) -> list[ApprovalRequest]:
        with self._locked() as records:
            return list(records.values())

    # -- internals ---------------------------------------------------------------

    def _set(
        self, agent_id: str, action_name: str, params: Mapping[str, Any], status: ApprovalStatus
    ) -> ApprovalRequest:
        key = request_key(agent_id, action_name, params)
        now = utc_now()
        with self._locked() as records:
            record = self._new_record(key, agent_id, action_name, params, status, now)
            existing = records.get(key)
            if existing is not None:
                record = existing.model_copy(
                    update={"status": status, "expires_at": record.expires_at}
                )
            records[key] = record
            self._save(records)
            return record

    def _new_record(
        self,
        key: str,
        agent_id: str,
        action_name: str,
        params: Mapping[str, Any],
        status: ApprovalStatus,
        now: datetime,
    ) -> ApprovalRequest:
        safe_params = json_safe(dict(params))
        return ApprovalRequest(
            id=key,
            agent_id=agent_id,
            action_name=action_name,
            params=safe_params if isinstance(safe_params, dict) else {},
            status=status,
            timestamp=now,
            expires_at=grant_expiry(self.ttl_seconds, now) if status is ApprovalStatus.APPROVED else None,
        )

    @contextmanager
    def _locked(self) -> Iterator[dict[str, ApprovalRequest]]:
        try:
            with locked_file(self.lock_path, timeout=self.lock_timeout):
                yield self._load()
        except LockTimeout as exc:
            raise ApprovalStoreError(f"approval store is busy: {exc}") from exc
        except OSError as exc:
            raise ApprovalStoreError(f"approval store I/O failed: {sanitize_exception(exc)}") from exc

    def _load(self) -> dict[str, ApprovalRequest]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return {}
        try:
            items = json.loads(text)
            if not isinstance(items, list):
                raise ValueError("approval store must contain a JSON array")
            records = [ApprovalRequest.model_validate(item) for item in items]
        except (ValueError, ValidationError) as exc:
            raise ApprovalStoreError(f"approval store is corrupt: {exc}") from exc
        return {record.id: record for record in records}

    def _save(self, records: dict[str, ApprovalRequest]) -> None:
        payload = [record.model_dump(mode="json", by_alias=True) for record in records.values()]
        tmp_path = self.path.with_name(f"{self.path.name}.{os.getpid()}.tmp")
        with tmp_path.open("w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2, ensure_ascii=False)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, self.path)

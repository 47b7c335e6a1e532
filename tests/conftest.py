from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from actiongate.approvals.store import JSONApprovalStore
from actiongate.audit.log import AuditLog
from actiongate.config import GatewaySettings
from actiongate.gateway import ExecutionGateway
from actiongate.policies import Policy


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep ACTIONGATE_* variables from the developer shell out of tests."""
    for name in list(os.environ):
        if name.startswith("ACTIONGATE_"):
            monkeypatch.delenv(name)
    yield


@pytest.fixture
def settings(tmp_path: Path) -> GatewaySettings:
    return GatewaySettings(
        audit_log_path=tmp_path / "logs" / "audit.log",
        approvals_path=tmp_path / "data" / "approvals.json",
        approval_timeout=2.0,
        poll_interval=0.05,
    )


@pytest.fixture
def audit_log(settings: GatewaySettings) -> AuditLog:
    return AuditLog(settings.audit_log_path, strict=True)


@pytest.fixture
def approval_store(settings: GatewaySettings) -> JSONApprovalStore:
    return JSONApprovalStore(settings.approvals_path, ttl_seconds=settings.approval_ttl)


@pytest.fixture
def make_gateway(
    settings: GatewaySettings, audit_log: AuditLog, approval_store: JSONApprovalStore
) -> Callable[..., ExecutionGateway]:
    def _make(policy: Policy, **kwargs: Any) -> ExecutionGateway:
        kwargs.setdefault("approver", None)
        kwargs.setdefault("audit_log", audit_log)
        kwargs.setdefault("approval_store", approval_store)
        kwargs.setdefault("settings", settings)
        return ExecutionGateway(policy, **kwargs)

    return _make



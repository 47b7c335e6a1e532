from __future__ import annotations

import json
from pathlib import Path

import pytest

from actiongate.approvals.store import JSONApprovalStore
from actiongate.audit.log import AuditLog
from actiongate.audit.signing import CRYPTO_AVAILABLE, Ed25519Signer, load_private_key
from actiongate.cli import main
from actiongate.types import ApprovalStatus, AuditLogEntry, AuditResult, Decision


def _entry(n: int) -> AuditLogEntry:
    return AuditLogEntry(
        timestamp="2026-01-25T12:00:00.000000Z",
        agent_id="agent:test",
        action={"actionName": "run_command", "parameters": {"command": f"echo {n}"}},
        decision=Decision.ALLOW,
        result=AuditResult(success=True, output=str(n)),
    )


def _write_valid_log(path: Path, **kwargs) -> AuditLog:
    log = AuditLog(path, strict=True, **kwargs)
    log.log(_entry(0))
    log.log(_entry(1))
    return log


def test_verify_success(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    log_path = tmp_path / "audit.log"
    _write_valid_log(log_path)

    code = main(["verify", str(log_path)])

    captured = capsys.readouterr()
    assert code == 0
    assert "verification ok (2 entries)" in captured.out
    assert captured.err == ""


def test_verify_failure_on_tamper(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    log_path = tmp_path / "audit.log"
    _write_valid_log(log_path)
    text = log_path.read_text(encoding="utf-8")
    log_path.write_text(text.replace("echo 0", "echo tampered"), encoding="utf-8")

    code = main(["verify", str(log_path)])

    captured = capsys.readouterr()
    assert code == 1
    assert "line 2: hash_mismatch" in captured.err
    assert captured.out == ""


def test_verify_json_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    log_path = tmp_path / "audit.log"
    _write_valid_log(log_path)

    code = main(["verify", str(log_path), "--json"])

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload == {"status": "ok", "valid": True, "entries": 2, "issues": []}


def test_verify_uses_secret_from_environment(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    log_path = tmp_path / "audit.log"
    _write_valid_log(log_path, secret="s3cret")

    monkeypatch.setenv("ACTIONGATE_AUDIT_SECRET", "wrong")
    assert main(["verify", str(log_path)]) == 1

    monkeypatch.setenv("ACTIONGATE_AUDIT_SECRET", "s3cret")
    assert main(["verify", str(log_path)]) == 0


def test_verify_missing_file(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = main(["verify", str(tmp_path / "missing.log")])

    assert code == 1
    assert "audit log not found" in capsys.readouterr().err


@pytest.mark.skipif(not CRYPTO_AVAILABLE, reason="cryptography not installed")
def test_keygen_and_verify_with_public_key(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    private_path = tmp_path / "keys" / "private.pem"
    public_path = tmp_path / "keys" / "public.pem"
    assert main(["keygen", "--private-key", str(private_path), "--public-key", str(public_path)]) == 0

    log_path = tmp_path / "audit.log"
    signer = Ed25519Signer(load_private_key(private_path.read_bytes()))
    _write_valid_log(log_path, signer=signer)

    assert main(["verify", str(log_path), "--public-key", str(public_path)]) == 0
    assert main(["keygen", "--private-key", str(private_path), "--public-key", str(public_path)]) == 1
    assert "key file already exists" in capsys.readouterr().err


def test_approvals_list_and_approve(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_path = tmp_path / "approvals.json"
    store = JSONApprovalStore(store_path)
    pending = store.request_approval("agent:test", "read_file", {"path": "/srv/report.csv"})

    assert main(["approvals", "--store", str(store_path), "list", "--json"]) == 0
    listed = json.loads(capsys.readouterr().out)
    assert [item["id"] for item in listed] == [pending.id]

    assert main(["approvals", "--store", str(store_path), "approve", pending.id]) == 0
    assert "APPROVED" in capsys.readouterr().out
    assert store.is_approved("agent:test", "read_file", {"path": "/srv/report.csv"})


def test_approvals_table_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_path = tmp_path / "approvals.json"
    JSONApprovalStore(store_path).request_approval("agent:test", "read_file", {"path": "/a"})

    assert main(["approvals", "--store", str(store_path), "list"]) == 0

    out = capsys.readouterr().out
    assert "read_file" in out
    assert "PENDING" in out


def test_approvals_reject_revoke_and_unknown(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_path = tmp_path / "approvals.json"
    store = JSONApprovalStore(store_path)
    pending = store.request_approval("agent:test", "run_command", {"command": "ls"})

    assert main(["approvals", "--store", str(store_path), "reject", pending.id]) == 0
    assert store.get(pending.id).status is ApprovalStatus.REJECTED
    assert main(["approvals", "--store", str(store_path), "revoke", pending.id]) == 0
    assert main(["approvals", "--store", str(store_path), "approve", pending.id]) == 1
    assert "approval request not found" in capsys.readouterr().err


def test_approvals_clear_and_revoke_grants(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    store_path = tmp_path / "approvals.json"
    store = JSONApprovalStore(store_path)
    store.approve("agent:a", "run_command", {"command": "ls"})
    store.approve("agent:b", "run_command", {"command": "ls"})

    assert main(["approvals", "--store", str(store_path), "clear-expired"]) == 0
    assert main(["approvals", "--store", str(store_path), "revoke-grants", "--agent-id", "agent:a"]) == 0

    out = capsys.readouterr().out
    assert "cleared 0 expired grants" in out
    assert "revoked 1 grants" in out
    assert len(store.get_all()) == 1


def test_run_command_through_default_policy(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ACTIONGATE_AUDIT_LOG", str(tmp_path / "audit.log"))
    monkeypatch.setenv("ACTIONGATE_APPROVALS_PATH", str(tmp_path / "approvals.json"))

    assert main(["run", "run_command", "echo", "hello"]) == 0
    assert capsys.readouterr().out.strip() == "hello"

    assert main(["run", "run_command", "rm -rf /nonexistent"]) == 1
    assert "Blocked action: BLOCK" in capsys.readouterr().err
    assert AuditLog(tmp_path / "audit.log").verify_chain().entries == 2


def test_invalid_configuration_exit_code(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    monkeypatch.setenv("ACTIONGATE_POLL_INTERVAL", "never")

    assert main(["verify", "audit.log"]) == 2
    assert "invalid configuration" in capsys.readouterr().err


@pytest.mark.skipif(not CRYPTO_AVAILABLE, reason="cryptography not installed")
def test_run_signs_with_configured_key(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    private_path = tmp_path / "private.pem"
    public_path = tmp_path / "public.pem"
    log_path = tmp_path / "audit.log"
    assert main(["keygen", "--private-key", str(private_path), "--public-key", str(public_path)]) == 0
    monkeypatch.setenv("ACTIONGATE_AUDIT_LOG", str(log_path))
    monkeypatch.setenv("ACTIONGATE_APPROVALS_PATH", str(tmp_path / "approvals.json"))
    monkeypatch.setenv("ACTIONGATE_SIGNING_KEY", str(private_path))

    assert main(["run", "run_command", "echo", "signed"]) == 0
    capsys.readouterr()

    assert "signature" in json.loads(log_path.read_text(encoding="utf-8").splitlines()[0])
    assert main(["verify", str(log_path), "--public-key", str(public_path)]) == 0
    assert main(["verify", str(log_path)]) == 0


def test_run_with_missing_signing_key(
    tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("ACTIONGATE_AUDIT_LOG", str(tmp_path / "audit.log"))
    monkeypatch.setenv("ACTIONGATE_SIGNING_KEY", str(tmp_path / "missing.pem"))

    assert main(["run", "run_command", "echo", "hi"]) == 2
    assert "invalid configuration" in capsys.readouterr().err

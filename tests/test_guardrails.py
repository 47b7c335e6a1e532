from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from actiongate import reason_codes
from actiongate.guardrails import normalize_command, path_within, run_guardrails
from actiongate.policies import PermissionScope
from actiongate.types import Action, Decision


def _check(scope: PermissionScope, **params: object):
    action = Action(action_name=scope.action_name, parameters=params, agent_id="agent:test")
    return asyncio.run(run_guardrails(action, scope))


@pytest.mark.parametrize(
    ("path", "allowed"),
    [
        ("/tmp", True),
        ("/tmp/sub/file", True),
        ("/tmp/../etc/passwd", False),
        ("/tmpevil/file", False),
        ("/etc/passwd", False),
    ],
)
def test_path_within_resolves_before_comparing(path: str, allowed: bool) -> None:
    assert path_within(path, ["/tmp"]) is allowed


def test_relative_paths_resolve_against_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / "logs").mkdir()

    assert path_within("logs/app.log", ["./logs"])
    assert not path_within("logs/../secrets.txt", ["./logs"])


@pytest.mark.skipif(not hasattr(os, "symlink") or os.name == "nt", reason="symlinks required")
def test_symlink_escape_is_blocked(tmp_path: Path) -> None:
    allowed = tmp_path / "allowed"
    outside = tmp_path / "outside"
    allowed.mkdir()
    outside.mkdir()
    (allowed / "link").symlink_to(outside, target_is_directory=True)

    assert not path_within(str(allowed / "link" / "data.txt"), [str(allowed)])


def test_missing_path_fails_when_roots_present() -> None:
    scope = PermissionScope("write_file", Decision.ALLOW, allowed_paths=("/tmp",))

    failure = _check(scope, content="x")

    assert failure is not None
    assert failure.reason_code == reason_codes.PATH_NOT_ALLOWED


def test_no_allowed_paths_means_unrestricted() -> None:
    scope = PermissionScope("read_file", Decision.ALLOW)
    assert _check(scope, path="/anywhere/at/all") is None


def test_path_that_cannot_be_resolved_fails_closed(caplog: pytest.LogCaptureFixture) -> None:
    scope = PermissionScope("write_file", Decision.ALLOW, allowed_paths=("/tmp",))

    failure = _check(scope, path="/tmp/a\x00b", content="x")

    assert failure is not None
    assert failure.reason_code == reason_codes.PATH_NOT_ALLOWED
    assert "guardrail check_path raised" in caplog.text


@pytest.mark.parametrize(
    "command",
    [
        "rm -rf /",
        "rm  -rf  /",
        "rm\\ -rf /",
        "'rm' -rf /",
        '"rm" "-rf" /',
        "rm\t-rf /",
        "echo ok && rm -rf /home",
    ],
)
def test_command_evasion_is_normalized(command: str) -> None:
    scope = PermissionScope("run_command", Decision.ALLOW, blocked_command_patterns=("rm -rf",))

    failure = _check(scope, command=command)

    assert failure is not None
    assert failure.reason_code == reason_codes.COMMAND_BLOCKED


def test_harmless_command_passes() -> None:
    scope = PermissionScope("run_command", Decision.ALLOW, blocked_command_patterns=("rm -rf",))
    assert _check(scope, command="ls -la") is None


def test_empty_command_with_patterns_fails_closed() -> None:
    scope = PermissionScope("run_command", Decision.ALLOW, blocked_command_patterns=("rm -rf",))

    assert _check(scope) is not None
    assert _check(scope, command="   ") is not None


def test_normalize_command() -> None:
    assert normalize_command("  rm\\  -rf   '/'  ") == "rm -rf /"

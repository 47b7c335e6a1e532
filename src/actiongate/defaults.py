"""Zero-configuration policy used when an agent is created without one."""

from __future__ import annotations

import tempfile

from .policies import PermissionScope, Policy
from .types import Action, Decision

DANGEROUS_COMMAND_PATTERNS: tuple[str, ...] = (
    # file deletion
    r"rm -rf",
    r"rm -f",
    r"del /s",
    r"del /f",
    # disk
    r"mkfs",
    r"fdisk",
    r"format",
    # system
    r"shutdown",
    r"reboot",
    # permissions
    r"chmod 777",
    r"chown root",
)

SENSITIVE_PATH_MARKERS: tuple[str, ...] = (".env", "id_rsa", "shadow", "passwd", ".pem", ".key")


def is_sensitive_path(path: object) -> bool:
    lowered = str(path or "").lower()
    return any(marker in lowered for marker in SENSITIVE_PATH_MARKERS)


def _not_sensitive(action: Action) -> bool:
    return not is_sensitive_path(action.parameters.get("path"))


def default_policy() -> Policy:
    """Shell commands minus destructive patterns, writes under temp/logs, non-secret reads."""
    return Policy(
        (
            PermissionScope(
                action_name="run_command",
                decision=Decision.ALLOW,
                blocked_command_patterns=DANGEROUS_COMMAND_PATTERNS,
            ),
            PermissionScope(
                action_name="write_file",
                decision=Decision.ALLOW,
                allowed_paths=(tempfile.gettempdir(), "./temp", "./logs"),
            ),
            PermissionScope(
                action_name="read_file",
                decision=Decision.ALLOW,
                validator=_not_sensitive,
            ),
        )
    )

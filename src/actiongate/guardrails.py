"""Guardrails applied to ALLOW / REQUIRE_APPROVAL scopes.

Order: path -> command -> validator. The first failing check is reported and
downgrades the scope to BLOCK.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

from . import reason_codes
from .types import Action

if TYPE_CHECKING:
    from .policies import PermissionScope

_logger = logging.getLogger(__name__)

_QUOTES = re.compile(r"[\\'\"`]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class GuardrailFailure:
    reason: str
    reason_code: str


def canonical_path(path: str) -> str:
    return os.path.realpath(os.path.abspath(os.path.expanduser(path)))


def path_within(path: str, roots: Sequence[str]) -> bool:
    """True if ``path`` equals one of ``roots`` or lies beneath it."""
    target = canonical_path(path)
    for root in roots:
        base = canonical_path(root)
        if target == base:
            return True
        prefix = base if base.endswith(os.sep) else base + os.sep
        if target.startswith(prefix):
            return True
    return False


def normalize_command(command: str) -> str:
    """Strip escapes and quotes and collapse whitespace so patterns see the plain command."""
    return _WHITESPACE.sub(" ", _QUOTES.sub("", command)).strip()


def check_path(action: Action, scope: PermissionScope) -> GuardrailFailure | None:
    if not scope.allowed_paths:
        return None
    raw = action.parameters.get("path")
    if not isinstance(raw, str) or not raw.strip():
        return GuardrailFailure("path parameter is required", reason_codes.PATH_NOT_ALLOWED)
    if path_within(raw, scope.allowed_paths):
        return None
    return GuardrailFailure(f"Path not allowed: {raw}", reason_codes.PATH_NOT_ALLOWED)


def check_command(action: Action, scope: PermissionScope) -> GuardrailFailure | None:
    if not scope.compiled_patterns:
        return None
    raw = action.parameters.get("command")
    if not isinstance(raw, str) or not raw.strip():
        return GuardrailFailure("command parameter is required", reason_codes.COMMAND_BLOCKED)
    command = normalize_command(raw)
    for pattern in scope.compiled_patterns:
        if pattern.search(command):
            return GuardrailFailure(
                f"Command blocked by pattern: {pattern.pattern}", reason_codes.COMMAND_BLOCKED
            )
    return None


async def check_validator(
    action: Action, scope: PermissionScope, timeout: float | None
) -> GuardrailFailure | None:
    validator = scope.validator
    if validator is None:
        return None
    try:
        outcome: Any = validator(action)
        if inspect.isawaitable(outcome):
            outcome = await asyncio.wait_for(outcome, timeout=timeout)
    except asyncio.TimeoutError:
        _logger.warning("validator for %s timed out after %ss", action.action_name, timeout)
        return GuardrailFailure("Custom validation timed out", reason_codes.VALIDATOR_REJECTED)
    except Exception:
        _logger.exception("validator for %s raised", action.action_name)
        return GuardrailFailure("Custom validation failed", reason_codes.VALIDATOR_REJECTED)
    if not outcome:
        _logger.info("validator rejected %s", action.action_name)
        return GuardrailFailure("Custom validation failed", reason_codes.VALIDATOR_REJECTED)
    return None


_SYNC_CHECKS = (
    (check_path, reason_codes.PATH_NOT_ALLOWED),
    (check_command, reason_codes.COMMAND_BLOCKED),
)


async def run_guardrails(
    action: Action, scope: PermissionScope, *, validator_timeout: float | None = None
) -> GuardrailFailure | None:
    """Return the first failing guardrail for ``scope`` or None if all pass."""
    for check, code in _SYNC_CHECKS:
        try:
            failure = check(action, scope)
        except Exception:
            _logger.exception("guardrail %s raised for %s", check.__name__, action.action_name)
            failure = GuardrailFailure("Guardrail evaluation failed", code)
        if failure is not None:
            return failure
    return await check_validator(action, scope, validator_timeout)

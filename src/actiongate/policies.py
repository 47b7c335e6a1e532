"""Policy model and evaluator.

All scopes whose ``action_name`` matches are evaluated. Priority is
BLOCK > REQUIRE_APPROVAL > ALLOW: the first effective BLOCK wins outright, and
an action no scope mentions is blocked.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Union

from pydantic import BaseModel, field_validator

from . import reason_codes
from .errors import PolicyError
from .guardrails import run_guardrails
from .types import Action, Decision

_logger = logging.getLogger(__name__)

DEFAULT_VALIDATOR_TIMEOUT: float = 30.0

Validator = Callable[[Action], Union[bool, Awaitable[bool]]]

_SCOPE_DECISIONS = frozenset({Decision.ALLOW, Decision.BLOCK, Decision.REQUIRE_APPROVAL})


class PolicyResult(BaseModel):
    """Decision for one action, with a human reason and a stable reason code."""

    model_config = {"frozen": True}

    decision: Decision
    reason: str
    reason_code: str

    @field_validator("reason")
    @classmethod
    def _reason_non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("reason must be a non-empty string")
        return value


@dataclass(frozen=True)
class PermissionScope:
    """One rule of a policy. Patterns are compiled once, at construction."""

    action_name: str
    decision: Decision
    allowed_paths: tuple[str, ...] | None = None
    blocked_command_patterns: tuple[str, ...] | None = None
    validator: Validator | None = field(default=None, compare=False)
    compiled_patterns: tuple[re.Pattern[str], ...] = field(default=(), init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.action_name:
            raise PolicyError("scope action_name must be non-empty")
        try:
            decision = Decision(self.decision)
        except ValueError as exc:
            raise PolicyError(f"unknown decision: {self.decision!r}") from exc
        if decision not in _SCOPE_DECISIONS:
            raise PolicyError(f"{decision.value} cannot be declared by a policy scope")
        object.__setattr__(self, "decision", decision)
        if self.allowed_paths is not None:
            object.__setattr__(self, "allowed_paths", tuple(self.allowed_paths))
        if self.blocked_command_patterns is not None:
            patterns = tuple(self.blocked_command_patterns)
            try:
                compiled = tuple(re.compile(pattern) for pattern in patterns)
            except re.error as exc:
                raise PolicyError(f"invalid blocked command pattern: {exc}") from exc
            object.__setattr__(self, "blocked_command_patterns", patterns)
            object.__setattr__(self, "compiled_patterns", compiled)


@dataclass(frozen=True)
class Policy:
    scopes: tuple[PermissionScope, ...] = ()

    def __post_init__(self) -> None:
        scopes = tuple(self.scopes)
        for scope in scopes:
            if not isinstance(scope, PermissionScope):
                raise PolicyError(f"expected PermissionScope, got {type(scope).__name__}")
        object.__setattr__(self, "scopes", scopes)

    @classmethod
    def from_scopes(cls, scopes: Iterable[PermissionScope]) -> "Policy":
        return cls(tuple(scopes))

    def matching(self, action_name: str) -> tuple[PermissionScope, ...]:
        return tuple(scope for scope in self.scopes if scope.action_name == action_name)


class PolicyEvaluator:
    """Evaluates actions against a fixed policy."""

    def __init__(self, policy: Policy, *, validator_timeout: float | None = DEFAULT_VALIDATOR_TIMEOUT) -> None:
        self.policy = policy
        self.validator_timeout = validator_timeout

    async def evaluate(self, action: Action) -> PolicyResult:
        scopes = self.policy.matching(action.action_name)
        if not scopes:
            return PolicyResult(
                decision=Decision.BLOCK,
                reason=f"No policy allows action: {action.action_name}",
                reason_code=reason_codes.NO_MATCHING_POLICY,
            )

        requires_approval = False
        for scope in scopes:
            if scope.decision is Decision.BLOCK:
                return PolicyResult(
                    decision=Decision.BLOCK,
                    reason=f"Action blocked by policy: {action.action_name}",
                    reason_code=reason_codes.EXPLICIT_BLOCK,
                )
            failure = await run_guardrails(action, scope, validator_timeout=self.validator_timeout)
            if failure is not None:
                _logger.info("guardrail blocked %s: %s", action.action_name, failure.reason)
                return PolicyResult(
                    decision=Decision.BLOCK, reason=failure.reason, reason_code=failure.reason_code
                )
            if scope.decision is Decision.REQUIRE_APPROVAL:
                requires_approval = True

        if requires_approval:
            return PolicyResult(
                decision=Decision.REQUIRE_APPROVAL,
                reason=f"Action requires approval: {action.action_name}",
                reason_code=reason_codes.POLICY_REQUIRE_APPROVAL,
            )
        return PolicyResult(
            decision=Decision.ALLOW,
            reason=f"Action allowed by policy: {action.action_name}",
            reason_code=reason_codes.POLICY_ALLOW,
        )


async def evaluate(action: Action, policy: Policy, **kwargs: Any) -> PolicyResult:
    """Evaluate ``action`` against ``policy``."""
    return await PolicyEvaluator(policy, **kwargs).evaluate(action)

"""Caller-facing adapter: ``agent.act(name, params)`` returns output or raises."""

from __future__ import annotations

from typing import Any, Callable, Mapping

from . import async_utils
from .approvals.store import ApprovalStore
from .audit.log import AuditLog
from .config import GatewaySettings
from .defaults import default_policy
from .errors import PolicyViolation
from .executors import Executor
from .gateway import _UNSET, ExecutionGateway
from .notifiers.base import Approver
from .policies import Policy
from .types import Action

DEFAULT_AGENT_ID = "actiongate-agent"


class Agent:
    """Wraps an ExecutionGateway with a default agent id and optional shadow mode."""

    def __init__(
        self,
        policy: Policy,
        *,
        agent_id: str = DEFAULT_AGENT_ID,
        shadow_mode: bool = False,
        executors: Mapping[str, Executor | Callable[[Mapping[str, Any]], Any]] | None = None,
        audit_log: AuditLog | None = None,
        approval_store: ApprovalStore | None = None,
        approver: Approver | None = _UNSET,
        settings: GatewaySettings | None = None,
    ) -> None:
        self.agent_id = agent_id
        self.shadow_mode = shadow_mode
        self.gateway = ExecutionGateway(
            policy,
            audit_log=audit_log,
            approval_store=approval_store,
            executors=executors,
            approver=approver,
            settings=settings,
        )

    async def aact(
        self,
        action_name: str,
        params: Mapping[str, Any] | None = None,
        agent_id: str | None = None,
        *,
        reason: str | None = None,
    ) -> Any:
        """Run one action; return its output or raise PolicyViolation."""
        action = Action(
            action_name=action_name,
            parameters=dict(params or {}),
            agent_id=agent_id or self.agent_id,
            reason=reason,
            shadow_mode=self.shadow_mode,
        )
        result = await self.gateway.run(action)
        if not result.success:
            raise PolicyViolation(
                f"Blocked action: {result.decision.value} - {result.error or 'Policy Violation'}",
                decision=result.decision.value,
                reason_code=result.reason_code,
            )
        return result.output

    def act(
        self,
        action_name: str,
        params: Mapping[str, Any] | None = None,
        agent_id: str | None = None,
        *,
        reason: str | None = None,
    ) -> Any:
        return async_utils.run_sync(self.aact(action_name, params, agent_id, reason=reason))


def create_agent(
    policy: Policy | None = None,
    *,
    name: str = DEFAULT_AGENT_ID,
    shadow_mode: bool = False,
    executors: Mapping[str, Executor | Callable[[Mapping[str, Any]], Any]] | None = None,
    **kwargs: Any,
) -> Agent:
    """Build an Agent, using the default policy when none is given."""
    return Agent(
        policy if policy is not None else default_policy(),
        agent_id=name,
        shadow_mode=shadow_mode,
        executors=executors,
        **kwargs,
    )

"""Execution gateway: evaluate -> (approve) -> execute -> audit.

Every call to ``run`` produces exactly one audit entry, whatever the outcome.
Blocking file I/O runs in worker threads so unrelated actions overlap.
"""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import Any, Callable, Mapping

from . import async_utils, reason_codes
from .approvals.store import ApprovalStore, JSONApprovalStore
from .audit.log import AuditLog
from .config import GatewaySettings
from .errors import ApprovalStoreError
from .executors import Executor, ExecutorRegistry
from .notifiers.base import Approver
from .notifiers.interactive import InteractiveApprover
from .policies import Policy, PolicyEvaluator, PolicyResult
from .redaction import redact_parameters, redact_value
from .types import (
    Action,
    ApprovalStatus,
    AuditLogEntry,
    AuditResult,
    Decision,
    GatewayResult,
    format_timestamp,
    utc_now,
)

_logger = logging.getLogger(__name__)

SHADOW_OUTPUT = "[SHADOW] Action appeared successful."

_STORE = "store"
_APPROVER = "approver"


class _Unset:
    pass


_UNSET: Any = _Unset()


def default_approver() -> Approver | None:
    """Prompt on the terminal when attached to one; otherwise rely on the store only."""
    stdin = sys.stdin
    if stdin is not None and stdin.isatty():
        return InteractiveApprover()
    return None


class ExecutionGateway:
    """Runs actions through policy, approval, execution and audit."""

    def __init__(
        self,
        policy: Policy | PolicyEvaluator,
        *,
        audit_log: AuditLog | None = None,
        approval_store: ApprovalStore | None = None,
        executors: ExecutorRegistry | Mapping[str, Executor | Callable[[Mapping[str, Any]], Any]] | None = None,
        approver: Approver | None = _UNSET,
        settings: GatewaySettings | None = None,
    ) -> None:
        self.settings = settings if settings is not None else GatewaySettings.from_env()
        self.evaluator = policy if isinstance(policy, PolicyEvaluator) else PolicyEvaluator(policy)
        self.audit_log = audit_log or AuditLog(
            self.settings.audit_log_path,
            secret=self.settings.audit_secret,
            signer=self.settings.audit_signer(),
            strict=self.settings.strict_audit,
        )
        self.approval_store: ApprovalStore = approval_store or JSONApprovalStore(
            self.settings.approvals_path, ttl_seconds=self.settings.approval_ttl
        )
        self.executors = executors if isinstance(executors, ExecutorRegistry) else ExecutorRegistry(executors)
        self._approver = approver

    @property
    def approver(self) -> Approver | None:
        """The interactive channel; resolved on first use when not given explicitly."""
        if self._approver is _UNSET:
            self._approver = default_approver()
        return self._approver

    async def run(self, action: Action, dry_run: bool = False) -> GatewayResult:
        """Govern one action and return its outcome.

        Raises AuditLogError only when the audit log is strict and the write fails.
        """
        policy_result = await self.evaluator.evaluate(action)
        decision = policy_result.decision
        reason = policy_result.reason
        reason_code = policy_result.reason_code

        if decision is Decision.REQUIRE_APPROVAL:
            decision, reason, reason_code = await self._resolve_approval(action, policy_result, dry_run)

        output: Any = None
        error: str | None = None
        success = False
        if decision is Decision.ALLOW:
            if dry_run:
                success = True
                reason_code = reason_codes.DRY_RUN
            else:
                try:
                    output = await self.executors.execute(
                        action.action_name,
                        action.parameters,
                        timeout=self.settings.execution_timeout,
                    )
                    success = True
                except Exception as exc:
                    _logger.warning("execution of %s failed: %s", action.action_name, exc)
                    error = str(exc) or type(exc).__name__
                    reason_code = reason_codes.EXECUTION_ERROR
        elif decision is Decision.BLOCK and action.shadow_mode:
            decision = Decision.SHADOW_BLOCK
            success = True
            output = SHADOW_OUTPUT
            reason_code = reason_codes.SHADOW_BLOCK
        elif decision is Decision.BLOCK:
            error = reason

        result = GatewayResult(
            decision=decision,
            success=success,
            output=output,
            error=error,
            reason=reason,
            reason_code=reason_code,
        )
        await self._audit(action, result, dry_run)
        return result

    def run_sync(self, action: Action, dry_run: bool = False) -> GatewayResult:
        return async_utils.run_sync(self.run(action, dry_run))

    # -- approval -----------------------------------------------------------------

    async def _resolve_approval(
        self, action: Action, policy_result: PolicyResult, dry_run: bool
    ) -> tuple[Decision, str, str]:
        store = self.approval_store
        key = (action.agent_id, action.action_name, action.parameters)
        try:
            granted = await asyncio.to_thread(store.is_approved, *key)
        except ApprovalStoreError:
            _logger.exception("approval store unavailable; treating %s as not approved", action.action_name)
            granted = False
        if granted:
            return Decision.ALLOW, "Approved by existing grant", reason_codes.APPROVAL_GRANTED
        if dry_run:
            return Decision.REQUIRE_APPROVAL, policy_result.reason, reason_codes.APPROVAL_PENDING

        try:
            record = await asyncio.to_thread(store.request_approval, *key)
        except ApprovalStoreError:
            _logger.exception("could not persist approval request for %s", action.action_name)
            return Decision.BLOCK, "Approval store unavailable", reason_codes.APPROVAL_REJECTED
        if record.is_live_grant():
            return Decision.ALLOW, "Approved by existing grant", reason_codes.APPROVAL_GRANTED

        outcome = await self._await_approval(action, policy_result, record.id)
        if outcome is None:
            approved = await self._persist(action, ApprovalStatus.REJECTED, fallback=False)
            if approved:
                return Decision.ALLOW, "Approved externally", reason_codes.APPROVAL_GRANTED
            timeout = self.settings.approval_timeout
            return Decision.BLOCK, f"Approval timed out after {timeout:g}s", reason_codes.APPROVAL_TIMEOUT

        source, answer = outcome
        if source == _APPROVER:
            status = ApprovalStatus.APPROVED if answer else ApprovalStatus.REJECTED
            answer = await self._persist(action, status, fallback=answer)
        if answer:
            return Decision.ALLOW, f"Approved via {source}", reason_codes.APPROVAL_GRANTED
        return Decision.BLOCK, f"Approval rejected via {source}", reason_codes.APPROVAL_REJECTED

    async def _await_approval(
        self, action: Action, policy_result: PolicyResult, request_id: str
    ) -> tuple[str, bool] | None:
        """Race the interactive approver against the store; None on timeout."""
        loop = asyncio.get_running_loop()
        decided: asyncio.Future[tuple[str, bool]] = loop.create_future()

        def settle(source: str, answer: bool) -> None:
            if not decided.done():
                decided.set_result((source, answer))

        approver = self.approver
        if approver is not None:
            threading.Thread(
                target=self._prompt,
                args=(approver, loop, settle, action, policy_result, request_id),
                name="actiongate-approver",
                daemon=True,
            ).start()
        poller = asyncio.create_task(self._poll(request_id, settle))
        try:
            return await asyncio.wait_for(decided, timeout=self.settings.approval_timeout)
        except asyncio.TimeoutError:
            _logger.warning("approval for %s timed out", action.action_name)
            return None
        finally:
            poller.cancel()

    def _prompt(
        self,
        approver: Approver,
        loop: asyncio.AbstractEventLoop,
        settle: Callable[[str, bool], None],
        action: Action,
        policy_result: PolicyResult,
        request_id: str,
    ) -> None:
        try:
            answer = bool(approver.approve(action, policy_result, request_id))
        except Exception:
            # The store channel stays open until the timeout.
            _logger.exception("approver failed for %s", action.action_name)
            return
        try:
            loop.call_soon_threadsafe(settle, _APPROVER, answer)
        except RuntimeError:
            _logger.debug("approval answer for %s arrived after the wait ended", action.action_name)

    async def _poll(self, request_id: str, settle: Callable[[str, bool], None]) -> None:
        while True:
            await asyncio.sleep(self.settings.poll_interval)
            try:
                record = await asyncio.to_thread(self.approval_store.get, request_id)
            except ApprovalStoreError as exc:
                _logger.warning("approval poll failed: %s", exc)
                continue
            if record is None:
                settle(_STORE, False)
                return
            if record.status is ApprovalStatus.APPROVED:
                settle(_STORE, True)
                return
            if record.status is ApprovalStatus.REJECTED:
                settle(_STORE, False)
                return

    async def _persist(self, action: Action, status: ApprovalStatus, *, fallback: bool) -> bool:
        """Record a local decision; an earlier external decision wins. Returns approved?"""
        try:
            record = await asyncio.to_thread(
                self.approval_store.resolve,
                action.agent_id,
                action.action_name,
                action.parameters,
                status,
            )
        except ApprovalStoreError:
            _logger.exception("could not persist approval decision for %s", action.action_name)
            return fallback
        return record.is_live_grant()

    # -- audit ----------------------------------------------------------------------

    async def _audit(self, action: Action, result: GatewayResult, dry_run: bool) -> None:
        recorded = action.model_dump(mode="json", by_alias=True, exclude={"parameters"}, exclude_none=True)
        recorded["parameters"] = redact_parameters(action.parameters)
        entry = AuditLogEntry(
            timestamp=format_timestamp(utc_now()),
            agent_id=action.agent_id,
            action=recorded,
            decision=result.decision,
            result=AuditResult(
                success=result.success,
                output=redact_value(None, result.output),
                error=result.error,
                dry_run=dry_run,
                reason=result.reason,
                reason_code=result.reason_code,
            ),
        )
        await asyncio.to_thread(self.audit_log.log, entry)

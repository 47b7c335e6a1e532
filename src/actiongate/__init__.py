"""actiongate public API."""

from .adapter import Agent, create_agent
from .approvals import ApprovalStore, JSONApprovalStore
from .audit import AuditLog, ChainIssue, ChainReport, Ed25519Signer, Ed25519Verifier, HmacSigner
from .config import GatewaySettings
from .defaults import default_policy
from .errors import (
    ActionGateError,
    ApprovalError,
    ApprovalStoreError,
    AuditLogError,
    ExecutionError,
    PolicyError,
    PolicyViolation,
)
from .executors import CallableExecutor, Executor, ExecutorRegistry
from .gateway import ExecutionGateway
from .notifiers import Approver, ImmediateApprover, InteractiveApprover
from .policies import PermissionScope, Policy, PolicyEvaluator, PolicyResult, evaluate
from .types import (
    Action,
    ApprovalRequest,
    ApprovalStatus,
    AuditLogEntry,
    Decision,
    GatewayResult,
)

__all__ = (
    # Adapter
    "Agent",
    "create_agent",
    # Gateway
    "ExecutionGateway",
    "GatewaySettings",
    # Types
    "Action",
    "Decision",
    "GatewayResult",
    "ApprovalRequest",
    "ApprovalStatus",
    "AuditLogEntry",
    # Policies
    "PermissionScope",
    "Policy",
    "PolicyEvaluator",
    "PolicyResult",
    "evaluate",
    "default_policy",
    # Approvals
    "ApprovalStore",
    "JSONApprovalStore",
    "Approver",
    "ImmediateApprover",
    "InteractiveApprover",
    # Audit
    "AuditLog",
    "ChainIssue",
    "ChainReport",
    "HmacSigner",
    "Ed25519Signer",
    "Ed25519Verifier",
    # Executors
    "Executor",
    "CallableExecutor",
    "ExecutorRegistry",
    # Errors
    "ActionGateError",
    "PolicyError",
    "PolicyViolation",
    "ApprovalError",
    "ApprovalStoreError",
    "AuditLogError",
    "ExecutionError",
)

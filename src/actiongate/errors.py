"""Exception types for actiongate."""


class ActionGateError(Exception):
    """Base exception for all actiongate errors."""


class PolicyError(ActionGateError):
    """Raised when a policy or scope cannot be constructed."""


class PolicyViolation(ActionGateError):
    """Raised to callers when an action was blocked or failed."""

    def __init__(self, message: str, *, decision: str | None = None, reason_code: str | None = None) -> None:
        super().__init__(message)
        self.decision = decision
        self.reason_code = reason_code


class ApprovalError(ActionGateError):
    """Raised when the approval process fails."""


class ApprovalStoreError(ActionGateError):
    """Raised when the approval store cannot be locked, read or written."""


class AuditLogError(ActionGateError):
    """Raised when audit logging fails in strict mode."""


class ExecutionError(ActionGateError):
    """Raised by executors when an action cannot be carried out."""

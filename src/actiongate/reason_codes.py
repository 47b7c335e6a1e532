"""Stable reason codes attached to policy results and gateway outcomes."""

from __future__ import annotations

# Policy evaluation
NO_MATCHING_POLICY = "NO_MATCHING_POLICY"
EXPLICIT_BLOCK = "EXPLICIT_BLOCK"
PATH_NOT_ALLOWED = "PATH_NOT_ALLOWED"
COMMAND_BLOCKED = "COMMAND_BLOCKED"
VALIDATOR_REJECTED = "VALIDATOR_REJECTED"
POLICY_ALLOW = "POLICY_ALLOW"
POLICY_REQUIRE_APPROVAL = "POLICY_REQUIRE_APPROVAL"

# Approval
APPROVAL_GRANTED = "APPROVAL_GRANTED"
APPROVAL_REJECTED = "APPROVAL_REJECTED"
APPROVAL_TIMEOUT = "APPROVAL_TIMEOUT"
APPROVAL_PENDING = "APPROVAL_PENDING"

# Execution
EXECUTION_ERROR = "EXECUTION_ERROR"
SHADOW_BLOCK = "SHADOW_BLOCK"
DRY_RUN = "DRY_RUN"

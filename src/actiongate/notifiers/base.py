"""Approver interface."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from ..policies import PolicyResult
from ..types import Action


class Approver(Protocol):
    """Synchronous approval channel. Runs in a worker thread while the store is polled."""

    def approve(self, action: Action, result: PolicyResult, request_id: str) -> bool:
        """Return True if approved, False if rejected."""
        ...


@dataclass
class ImmediateApprover:
    """Approver that answers at once. For testing only."""

    approved: bool = True

    def approve(self, action: Action, result: PolicyResult, request_id: str) -> bool:
        return self.approved

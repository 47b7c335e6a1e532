"""Durable approval grants shared with out-of-process approval channels."""

from .common import DEFAULT_TTL_SECONDS, request_key
from .store import ApprovalStore, JSONApprovalStore

__all__ = ["ApprovalStore", "DEFAULT_TTL_SECONDS", "JSONApprovalStore", "request_key"]

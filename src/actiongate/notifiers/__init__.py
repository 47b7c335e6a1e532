"""Notifiers package - approval channels."""

from .base import Approver, ImmediateApprover
from .interactive import InteractiveApprover

__all__ = ["Approver", "ImmediateApprover", "InteractiveApprover"]

"""Hash-chained audit log and verification utilities."""

from .errors import LockTimeout
from .log import AuditLog, ChainIssue, ChainReport
from .signing import Ed25519Signer, Ed25519Verifier, HmacSigner
from .types import GENESIS_HASH

__all__ = (
    "AuditLog",
    "ChainIssue",
    "ChainReport",
    "GENESIS_HASH",
    "HmacSigner",
    "Ed25519Signer",
    "Ed25519Verifier",
    "LockTimeout",
)

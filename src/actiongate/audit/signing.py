"""Chain hashing and entry signatures for the audit log.

Two signature schemes are supported:
- HMAC-SHA256 with a shared secret (the default when a secret is configured).
- Ed25519 with a private key, verifiable by holders of the public key only.
  Requires the optional ``cryptography`` dependency.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric.ed25519 import (  # type: ignore[import-not-found]
        Ed25519PrivateKey,
        Ed25519PublicKey,
    )

_ed25519: Any | None = None
_serialization: Any | None = None

try:
    from cryptography.hazmat.primitives import serialization as _serialization_mod  # type: ignore[import-not-found]
    from cryptography.hazmat.primitives.asymmetric import ed25519 as _ed25519_mod  # type: ignore[import-not-found]

    _serialization = _serialization_mod
    _ed25519 = _ed25519_mod
except ModuleNotFoundError:
    pass

CRYPTO_AVAILABLE = _serialization is not None and _ed25519 is not None


class EntrySigner(Protocol):
    def sign(self, payload: bytes) -> str:
        ...


class EntryVerifier(Protocol):
    def verify(self, payload: bytes, signature: str) -> bool:
        ...


def _as_bytes(secret: str | bytes) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else secret


def chain_hash(line: bytes, secret: str | bytes | None = None) -> str:
    """Hash the raw bytes of a serialized audit line (HMAC-SHA256 when keyed)."""
    if secret:
        return hmac.new(_as_bytes(secret), line, hashlib.sha256).hexdigest()
    return hashlib.sha256(line).hexdigest()


@dataclass(frozen=True)
class HmacSigner:
    """Shared-secret signer; also acts as its own verifier."""

    secret: bytes = field(repr=False)

    @classmethod
    def from_secret(cls, secret: str | bytes) -> "HmacSigner":
        if not secret:
            raise ValueError("HMAC secret must be non-empty")
        return cls(_as_bytes(secret))

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.secret, payload, hashlib.sha256).hexdigest()

    def verify(self, payload: bytes, signature: str) -> bool:
        return hmac.compare_digest(self.sign(payload), signature)


def _crypto_modules() -> tuple[Any, Any]:
    """Return runtime crypto modules or raise with a friendly message."""
    if _serialization is None or _ed25519 is None:
        raise RuntimeError('cryptography is required for Ed25519 signing (install "actiongate[crypto]")')
    return _serialization, _ed25519


def generate_keypair() -> tuple[bytes, bytes]:
    serialization, ed25519 = _crypto_modules()
    private_key = ed25519.Ed25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_bytes, public_bytes


def load_private_key(data: bytes) -> "Ed25519PrivateKey":
    serialization, ed25519 = _crypto_modules()
    key = serialization.load_pem_private_key(data, password=None)
    if not isinstance(key, ed25519.Ed25519PrivateKey):
        raise ValueError("unsupported private key type")
    return key  # type: ignore[return-value]


def load_public_key(data: bytes) -> "Ed25519PublicKey":
    serialization, ed25519 = _crypto_modules()
    key = serialization.load_pem_public_key(data)
    if not isinstance(key, ed25519.Ed25519PublicKey):
        raise ValueError("unsupported public key type")
    return key  # type: ignore[return-value]


@dataclass(frozen=True)
class Ed25519Signer:
    private_key: "Ed25519PrivateKey" = field(repr=False)

    def sign(self, payload: bytes) -> str:
        _crypto_modules()
        return base64.b64encode(self.private_key.sign(payload)).decode("ascii")


@dataclass(frozen=True)
class Ed25519Verifier:
    public_key: "Ed25519PublicKey"

    def verify(self, payload: bytes, signature: str) -> bool:
        _crypto_modules()
        try:
            self.public_key.verify(base64.b64decode(signature), payload)
            return True
        except Exception:
            return False

"""Append-only, hash-chained JSONL audit log.

Each line is the canonical JSON of one AuditLogEntry. ``previousHash`` of line
N is the hash of the exact bytes of line N-1 (GENESIS_HASH for the first line).
With a secret configured the hash is HMAC-SHA256, so the chain cannot be
rebuilt offline by someone who does not hold the secret.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, TextIO

from ..errors import AuditLogError
from ..types import AuditLogEntry
from .errors import sanitize_exception
from .filelock import DEFAULT_LOCK_TIMEOUT, locked_file
from .jcs import CanonicalizationError, canonical_bytes
from .signing import (
    Ed25519Signer,
    Ed25519Verifier,
    EntrySigner,
    EntryVerifier,
    HmacSigner,
    chain_hash,
)
from .types import GENESIS_HASH

_logger = logging.getLogger(__name__)

TAIL_READ_CHUNK_SIZE = 4096

HASH_MISMATCH = "hash_mismatch"
SIGNATURE_MISMATCH = "signature_mismatch"
PARSE_ERROR = "parse_error"


@dataclass(frozen=True, slots=True)
class ChainIssue:
    line: int
    kind: str
    detail: str

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line, "kind": self.kind, "detail": self.detail}


@dataclass(frozen=True, slots=True)
class ChainReport:
    """Result of AuditLog.verify_chain()."""

    valid: bool
    entries: int
    issues: tuple[ChainIssue, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "entries": self.entries,
            "issues": [issue.to_dict() for issue in self.issues],
        }


class AuditLog:
    """Hash-chained audit log shared safely between processes."""

    def __init__(
        self,
        path: str | Path,
        *,
        secret: str | bytes | None = None,
        signer: EntrySigner | None = None,
        strict: bool = False,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
    ) -> None:
        self.path = Path(path)
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret
        if signer is None and self._secret:
            signer = HmacSigner(self._secret)
        self._signer = signer
        self.strict = strict
        self.lock_timeout = lock_timeout
        self.last_hash = self._recover_last_hash()

    def _hash(self, line: bytes) -> str:
        return chain_hash(line, self._secret)

    def _recover_last_hash(self) -> str:
        if not self.path.exists():
            return GENESIS_HASH
        try:
            with self.path.open("rb") as handle:
                last_line, _ = _read_last_line(handle)
        except OSError as exc:
            _logger.error("failed to recover audit chain: %s", sanitize_exception(exc))
            return GENESIS_HASH
        return GENESIS_HASH if last_line is None else self._hash(last_line)

    def log(self, entry: AuditLogEntry) -> str | None:
        """Append an entry and return the hash of the written line.

        Failures raise AuditLogError in strict mode. Otherwise they are logged
        and None is returned so the caller's result is not lost.
        """
        try:
            return self._append(entry)
        except (OSError, CanonicalizationError) as exc:
            message = sanitize_exception(exc)
            if self.strict:
                raise AuditLogError(f"Failed to write audit log: {message}") from exc
            _logger.exception("audit log write failed (non-strict, entry dropped): %s", message)
            return None

    def _append(self, entry: AuditLogEntry) -> str:
        record = entry.to_record()
        record.pop("signature", None)
        with locked_file(self.path, timeout=self.lock_timeout) as handle:
            # Another process may have appended since our last write.
            last_line, ends_with_newline = _read_last_line(_buffer(handle))
            record["previousHash"] = GENESIS_HASH if last_line is None else self._hash(last_line)
            if self._signer is not None:
                record["signature"] = self._signer.sign(canonical_bytes(record))
            line = canonical_bytes(record)
            handle.seek(0, os.SEEK_END)
            if last_line is not None and not ends_with_newline:
                handle.write("\n")
            handle.write(line.decode("utf-8") + "\n")
            handle.flush()
            os.fsync(handle.fileno())
            self.last_hash = self._hash(line)
            return self.last_hash

    def _default_verifier(self) -> EntryVerifier | None:
        if isinstance(self._signer, HmacSigner):
            return self._signer
        if isinstance(self._signer, Ed25519Signer):
            return Ed25519Verifier(self._signer.private_key.public_key())
        return None

    def verify_chain(self, verifier: EntryVerifier | None = None) -> ChainReport:
        """Re-walk the whole file from genesis. Never modifies the log."""
        if not self.path.exists():
            return ChainReport(valid=True, entries=0)
        verifier = verifier if verifier is not None else self._default_verifier()
        with locked_file(self.path, timeout=self.lock_timeout) as handle:
            buffer = _buffer(handle)
            buffer.seek(0)
            return self._verify_stream(buffer, verifier)

    def _verify_stream(self, buffer: BinaryIO, verifier: EntryVerifier | None) -> ChainReport:
        issues: list[ChainIssue] = []
        expected = GENESIS_HASH
        entries = 0
        for index, raw in enumerate(buffer, start=1):
            line = raw[:-1] if raw.endswith(b"\n") else raw
            if not line:
                issues.append(ChainIssue(index, PARSE_ERROR, f"empty line at {index}"))
                continue
            entries += 1
            entry = _parse_line(line)
            if entry is None:
                issues.append(ChainIssue(index, PARSE_ERROR, f"line {index} is not a JSON object"))
            else:
                if entry.get("previousHash") != expected:
                    source = "genesis" if index == 1 else f"line {index - 1}"
                    issues.append(
                        ChainIssue(
                            index,
                            HASH_MISMATCH,
                            f"previousHash at line {index} does not match the hash of {source}",
                        )
                    )
                signature = entry.get("signature")
                if verifier is not None:
                    if not isinstance(signature, str):
                        issues.append(
                            ChainIssue(index, SIGNATURE_MISMATCH, f"signature missing at line {index}")
                        )
                    elif not _signature_valid(entry, signature, verifier):
                        issues.append(
                            ChainIssue(index, SIGNATURE_MISMATCH, f"signature invalid at line {index}")
                        )
            expected = self._hash(line)
        return ChainReport(valid=not issues, entries=entries, issues=tuple(issues))


def _buffer(handle: TextIO) -> BinaryIO:
    return handle.buffer  # type: ignore[attr-defined,return-value]


def _parse_line(line: bytes) -> dict[str, Any] | None:
    try:
        entry = json.loads(line.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return entry if isinstance(entry, dict) else None


def _signature_valid(entry: dict[str, Any], signature: str, verifier: EntryVerifier) -> bool:
    unsigned = dict(entry)
    unsigned.pop("signature", None)
    try:
        payload = canonical_bytes(unsigned)
    except CanonicalizationError:
        return False
    return verifier.verify(payload, signature)


def _read_last_line(fb: BinaryIO) -> tuple[bytes | None, bool]:
    """Return the last non-empty line (without its newline) and whether the file ends with one.

    Reads backwards in chunks so large logs are not scanned in full.
    """
    fb.seek(0, os.SEEK_END)
    size = fb.tell()
    if size == 0:
        return None, True

    data = b""
    pos = size
    while pos > 0:
        read_size = TAIL_READ_CHUNK_SIZE if pos >= TAIL_READ_CHUNK_SIZE else pos
        pos -= read_size
        fb.seek(pos)
        data = fb.read(read_size) + data
        if b"\n" in data.rstrip(b"\n") or pos == 0:
            break

    ends_with_newline = data.endswith(b"\n")
    stripped = data.rstrip(b"\n")
    if not stripped:
        return None, ends_with_newline
    return stripped.split(b"\n")[-1], ends_with_newline

"""Cross-platform advisory file locking with bounded retry.

Used by the audit log (lock on the log file itself) and by the approval store
(lock on a sidecar ``.lock`` file, because the data file is atomically replaced).

Design notes:
- LOCK_LENGTH_BYTES: On Windows, msvcrt.locking() requires a byte count.
  We use 1 byte because we're locking for exclusive access, not range locking.
- Advisory locking on Unix: flock() is advisory - cooperating processes must
  also use flock(). Locks belong to the open file description, so two handles
  in the same process contend like two processes do.
- Acquisition is non-blocking and retried until ``timeout`` elapses, then
  LockTimeout is raised. Nothing waits forever on a stuck peer.
"""

from __future__ import annotations

import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Protocol, TextIO, cast

from .errors import LockTimeout

LOCK_LENGTH_BYTES: int = 1
DEFAULT_LOCK_TIMEOUT: float = 10.0
LOCK_RETRY_INTERVAL: float = 0.01


class _LockStrategy(Protocol):
    """Platform-specific file lock strategy."""

    def try_acquire(self, file_handle: TextIO) -> bool:
        """Try once to take an exclusive lock. Returns False if it is held elsewhere."""
        ...

    def release(self, file_handle: TextIO) -> None:
        ...


class _MsvcrtModule(Protocol):
    LK_NBLCK: int
    LK_UNLCK: int

    def locking(self, fd: int, mode: int, nbytes: int) -> None:
        ...


class _FcntlModule(Protocol):
    LOCK_EX: int
    LOCK_NB: int
    LOCK_UN: int

    def flock(self, fd: int, operation: int) -> None:
        ...


class _WindowsLockStrategy:
    def __init__(self) -> None:
        import msvcrt
        self._msvcrt: _MsvcrtModule = cast(_MsvcrtModule, msvcrt)

    def try_acquire(self, file_handle: TextIO) -> bool:
        try:
            self._msvcrt.locking(file_handle.fileno(), self._msvcrt.LK_NBLCK, LOCK_LENGTH_BYTES)
        except OSError:
            return False
        return True

    def release(self, file_handle: TextIO) -> None:
        self._msvcrt.locking(file_handle.fileno(), self._msvcrt.LK_UNLCK, LOCK_LENGTH_BYTES)


class _UnixLockStrategy:
    def __init__(self) -> None:
        import fcntl
        self._fcntl: _FcntlModule = cast(_FcntlModule, fcntl)

    def try_acquire(self, file_handle: TextIO) -> bool:
        try:
            self._fcntl.flock(file_handle.fileno(), self._fcntl.LOCK_EX | self._fcntl.LOCK_NB)
        except BlockingIOError:
            return False
        return True

    def release(self, file_handle: TextIO) -> None:
        self._fcntl.flock(file_handle.fileno(), self._fcntl.LOCK_UN)


_LOCK_STRATEGY: _LockStrategy
if os.name == "nt":
    _LOCK_STRATEGY = _WindowsLockStrategy()
else:
    _LOCK_STRATEGY = _UnixLockStrategy()


def _acquire(file_handle: TextIO, timeout: float) -> None:
    deadline = time.monotonic() + timeout
    while not _LOCK_STRATEGY.try_acquire(file_handle):
        if time.monotonic() >= deadline:
            raise LockTimeout(f"could not acquire file lock within {timeout:.2f}s")
        time.sleep(LOCK_RETRY_INTERVAL)


@contextmanager
def locked_file(path: Path, *, timeout: float = DEFAULT_LOCK_TIMEOUT) -> Iterator[TextIO]:
    """Open ``path`` in append+ mode holding an exclusive lock.

    Usage:
        with locked_file(Path("audit.log")) as handle:
            handle.write(line + "\\n")
            handle.flush()
            os.fsync(handle.fileno())

    The handle is positioned at end of file after the lock is acquired.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handle = path.open("a+", encoding="utf-8", newline="")
    try:
        file_handle.seek(0)
        _acquire(file_handle, timeout)
        try:
            file_handle.seek(0, os.SEEK_END)
            yield file_handle
        finally:
            file_handle.seek(0)
            _LOCK_STRATEGY.release(file_handle)
    finally:
        file_handle.close()

from __future__ import annotations


class LockTimeout(TimeoutError):
    """Raised when an exclusive file lock cannot be acquired in time."""


def sanitize_exception(exc: BaseException) -> str:
    """Return a safe error message without filesystem paths."""
    if isinstance(exc, OSError) and not isinstance(exc, LockTimeout):
        parts: list[str] = [exc.__class__.__name__]
        if exc.errno is not None:
            parts.append(f"errno={exc.errno}")
        if exc.strerror:
            parts.append(exc.strerror)
        return " ".join(parts).strip()
    return str(exc)

"""Executors: the code that actually performs an allowed action.

An executor is any object with ``invoke(params)`` (sync or async); plain
callables are wrapped. Caller-registered executors take precedence over the
built-ins for ``read_file``, ``write_file`` and ``run_command``.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol

from .errors import ExecutionError

_logger = logging.getLogger(__name__)


class Executor(Protocol):
    def invoke(self, params: Mapping[str, Any]) -> Any:
        ...


@dataclass(frozen=True)
class CallableExecutor:
    """Adapts a plain ``fn(params)`` (sync or async) to the Executor protocol."""

    fn: Callable[[Mapping[str, Any]], Any]

    def invoke(self, params: Mapping[str, Any]) -> Any:
        return self.fn(params)


def _require(params: Mapping[str, Any], name: str) -> str:
    value = params.get(name)
    if not isinstance(value, str) or not value:
        raise ExecutionError(f"Missing {name} parameter")
    return value


class ReadFileExecutor:
    def invoke(self, params: Mapping[str, Any]) -> str:
        path = _require(params, "path")
        try:
            return Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ExecutionError(f"Failed to read {path}: {exc.strerror or exc}") from exc


class WriteFileExecutor:
    def invoke(self, params: Mapping[str, Any]) -> str:
        path = _require(params, "path")
        content = params.get("content") or ""
        try:
            Path(path).write_text(str(content), encoding="utf-8")
        except OSError as exc:
            raise ExecutionError(f"Failed to write {path}: {exc.strerror or exc}") from exc
        return f"File written to {path}"


class RunCommandExecutor:
    """Runs a shell command; returns stripped stdout, raises on a non-zero exit."""

    def invoke(self, params: Mapping[str, Any]) -> str:
        command = _require(params, "command")
        completed = subprocess.run(command, shell=True, capture_output=True, text=True)
        if completed.returncode != 0:
            detail = completed.stderr.strip() or f"exit status {completed.returncode}"
            raise ExecutionError(f"Command failed: {detail}")
        return completed.stdout.strip()


BUILTIN_EXECUTORS: Mapping[str, Executor] = {
    "read_file": ReadFileExecutor(),
    "write_file": WriteFileExecutor(),
    "run_command": RunCommandExecutor(),
}


def as_executor(candidate: Executor | Callable[[Mapping[str, Any]], Any]) -> Executor:
    if hasattr(candidate, "invoke"):
        return candidate  # type: ignore[return-value]
    if callable(candidate):
        return CallableExecutor(candidate)
    raise TypeError(f"not an executor: {type(candidate).__name__}")


class ExecutorRegistry:
    """Maps action names to executors, falling back to the built-ins."""

    def __init__(
        self,
        executors: Mapping[str, Executor | Callable[[Mapping[str, Any]], Any]] | None = None,
        *,
        include_builtins: bool = True,
    ) -> None:
        self._executors: dict[str, Executor] = {}
        self._builtins: Mapping[str, Executor] = BUILTIN_EXECUTORS if include_builtins else {}
        for name, executor in (executors or {}).items():
            self.register(name, executor)

    def register(self, name: str, executor: Executor | Callable[[Mapping[str, Any]], Any]) -> None:
        self._executors[name] = as_executor(executor)

    def get(self, name: str) -> Executor | None:
        return self._executors.get(name) or self._builtins.get(name)

    def names(self) -> list[str]:
        return sorted(set(self._executors) | set(self._builtins))

    async def execute(
        self, action_name: str, params: Mapping[str, Any], *, timeout: float | None = None
    ) -> Any:
        """Run the executor for ``action_name``.

        Sync executors run in a worker thread. Raises ExecutionError for an
        unknown action or a timeout; executor exceptions propagate.
        """
        executor = self.get(action_name)
        if executor is None:
            raise ExecutionError(f"Unknown action type: {action_name} - No executor available.")
        try:
            return await asyncio.wait_for(self._invoke(executor, params), timeout=timeout)
        except asyncio.TimeoutError as exc:
            _logger.warning("executor for %s timed out after %ss", action_name, timeout)
            raise ExecutionError(f"Execution timed out after {timeout}s") from exc

    @staticmethod
    async def _invoke(executor: Executor, params: Mapping[str, Any]) -> Any:
        invoke = executor.invoke
        if inspect.iscoroutinefunction(invoke):
            return await invoke(params)
        result = await asyncio.to_thread(invoke, params)
        if inspect.isawaitable(result):
            return await result
        return result

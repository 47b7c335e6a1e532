from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Mapping

import pytest

from actiongate.errors import ExecutionError
from actiongate.executors import (
    CallableExecutor,
    ExecutorRegistry,
    ReadFileExecutor,
    RunCommandExecutor,
    WriteFileExecutor,
)


def test_write_then_read_file(tmp_path: Path) -> None:
    target = tmp_path / "note.txt"

    message = WriteFileExecutor().invoke({"path": str(target), "content": "hello"})

    assert message == f"File written to {target}"
    assert ReadFileExecutor().invoke({"path": str(target)}) == "hello"


def test_write_file_defaults_to_empty_content(tmp_path: Path) -> None:
    target = tmp_path / "empty.txt"
    WriteFileExecutor().invoke({"path": str(target)})
    assert target.read_text(encoding="utf-8") == ""


def test_missing_path_parameter() -> None:
    with pytest.raises(ExecutionError, match="Missing path parameter"):
        ReadFileExecutor().invoke({})


def test_read_missing_file_is_execution_error(tmp_path: Path) -> None:
    with pytest.raises(ExecutionError, match="Failed to read"):
        ReadFileExecutor().invoke({"path": str(tmp_path / "nope.txt")})


def test_run_command_strips_stdout() -> None:
    assert RunCommandExecutor().invoke({"command": "echo hi"}) == "hi"


def test_run_command_failure_carries_stderr() -> None:
    command = f'"{sys.executable}" -c "import sys; sys.stderr.write(\'bad things\'); sys.exit(3)"'

    with pytest.raises(ExecutionError, match="Command failed: bad things"):
        RunCommandExecutor().invoke({"command": command})


def test_registered_executor_overrides_builtin() -> None:
    registry = ExecutorRegistry({"read_file": lambda params: "stubbed"})

    assert asyncio.run(registry.execute("read_file", {"path": "/etc/hosts"})) == "stubbed"


def test_async_and_object_executors() -> None:
    class Upper:
        def invoke(self, params: Mapping[str, Any]) -> str:
            return str(params["text"]).upper()

    async def lower(params: Mapping[str, Any]) -> str:
        await asyncio.sleep(0)
        return str(params["text"]).lower()

    registry = ExecutorRegistry()
    registry.register("upper", Upper())
    registry.register("lower", lower)

    assert asyncio.run(registry.execute("upper", {"text": "Hi"})) == "HI"
    assert asyncio.run(registry.execute("lower", {"text": "Hi"})) == "hi"
    assert isinstance(registry.get("lower"), CallableExecutor)


def test_unknown_action_has_no_executor() -> None:
    registry = ExecutorRegistry(include_builtins=False)

    assert registry.get("read_file") is None
    with pytest.raises(ExecutionError, match="Unknown action type: read_file - No executor available."):
        asyncio.run(registry.execute("read_file", {}))


def test_registry_lists_names() -> None:
    registry = ExecutorRegistry({"deploy": lambda params: None})
    assert registry.names() == ["deploy", "read_file", "run_command", "write_file"]


def test_non_executor_rejected() -> None:
    with pytest.raises(TypeError):
        ExecutorRegistry({"bad": 42})  # type: ignore[dict-item]

"""Unit tests for depmigrator/agent/tool_registry.py."""
from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import pytest

from depmigrator.agent.messages import ToolCallRequest
from depmigrator.agent.tool_registry import (
    ToolDef,
    ToolDescriptor,
    ToolParameter,
    ToolRegistry,
    build_default_registry,
    validate_arguments,
)
from depmigrator.errors import ArgumentError, ToolTimeoutError, UnknownToolError
from depmigrator.observability.metrics import get_runtime_metrics
from depmigrator.sandbox.workspace import Sandbox

BUILTIN_TOOL_NAMES = [
    "get_root",
    "list_directory",
    "read_file",
    "write_file",
    "patch_lines",
    "install_dependency",
    "tidy_dependencies",
    "fetch_package_docs",
]


def _echo_tool() -> ToolDef:
    return ToolDef(
        descriptor=ToolDescriptor(
            name="echo",
            description="echo",
            parameters=(
                ToolParameter("msg", "string"),
                ToolParameter("times", "integer", required=False),
            ),
        ),
        handler=lambda msg, times=1: msg * times,
    )


def test_register_and_get():
    registry = ToolRegistry()
    td = _echo_tool()
    registry.register(td)
    assert registry.get("echo") is td
    assert registry.get("missing") is None


def test_register_rejects_duplicates():
    registry = ToolRegistry()
    registry.register(_echo_tool())
    with pytest.raises(ValueError):
        registry.register(_echo_tool())


def test_descriptor_input_schema():
    schema = _echo_tool().descriptor.input_schema
    assert schema["type"] == "object"
    assert schema["properties"]["msg"] == {"type": "string"}
    assert schema["required"] == ["msg"]


def test_array_parameter_schema_has_string_items():
    param = ToolParameter("new_lines", "array", "lines")
    assert param.to_schema() == {"type": "array", "items": {"type": "string"}, "description": "lines"}


@pytest.mark.parametrize(
    "arguments",
    [
        {},
        {"msg": 3},
        {"msg": "hi", "times": "2"},
        {"msg": "hi", "times": True},
        {"msg": "hi", "extra": 1},
        ["msg"],
    ],
)
def test_validate_arguments_rejects(arguments):
    with pytest.raises(ArgumentError):
        validate_arguments(_echo_tool().descriptor, arguments)


def test_validate_arguments_drops_null_optional():
    assert validate_arguments(_echo_tool().descriptor, {"msg": "hi", "times": None}) == {"msg": "hi"}


@pytest.mark.asyncio
async def test_invoke_sync_handler():
    registry = ToolRegistry()
    registry.register(_echo_tool())
    assert await registry.invoke("echo", {"msg": "ab", "times": 2}) == "abab"


@pytest.mark.asyncio
async def test_invoke_async_handler():
    registry = ToolRegistry()

    async def handler(x: int) -> str:
        return f"async: {x}"

    registry.register(ToolDef(
        descriptor=ToolDescriptor("async_tool", "async", (ToolParameter("x", "integer"),)),
        handler=handler,
    ))
    assert await registry.invoke("async_tool", {"x": 42}) == "async: 42"


@pytest.mark.asyncio
async def test_invoke_unknown_tool():
    with pytest.raises(UnknownToolError):
        await ToolRegistry().invoke("nonexistent", {})


@pytest.mark.asyncio
async def test_argument_errors_are_raised_before_handler_runs():
    calls: list[str] = []
    registry = ToolRegistry()
    registry.register(ToolDef(
        descriptor=ToolDescriptor("record", "record", (ToolParameter("value", "string"),)),
        handler=lambda value: calls.append(value),
    ))

    with pytest.raises(ArgumentError):
        await registry.invoke("record", {})
    assert calls == []


@pytest.mark.asyncio
async def test_execute_folds_errors_into_result():
    registry = ToolRegistry()
    registry.register(_echo_tool())

    unknown = await registry.execute(ToolCallRequest("c1", "nope", {}))
    bad_args = await registry.execute(ToolCallRequest("c2", "echo", {}))
    ok = await registry.execute(ToolCallRequest("c3", "echo", {"msg": "hi"}))

    assert unknown.call_id == "c1"
    assert unknown.error.startswith("E_UNKNOWN_TOOL")
    assert bad_args.error.startswith("E_ARGUMENT")
    assert ok.error is None
    assert ok.result == "hi"


@pytest.mark.asyncio
async def test_execute_catches_unexpected_handler_exceptions():
    registry = ToolRegistry()

    def explode() -> None:
        raise RuntimeError("kaboom")

    registry.register(ToolDef(descriptor=ToolDescriptor("explode", "boom"), handler=explode))
    result = await registry.execute(ToolCallRequest("c1", "explode", {}))

    assert result.is_error
    assert "kaboom" in result.error


@pytest.mark.asyncio
async def test_execute_enforces_call_timeout():
    registry = ToolRegistry(call_timeout=0.05)

    async def slow() -> str:
        await asyncio.sleep(5)
        return "late"

    registry.register(ToolDef(descriptor=ToolDescriptor("slow", "slow"), handler=slow))
    result = await registry.execute(ToolCallRequest("c1", "slow", {}))

    assert result.error.startswith("E_TOOL_TIMEOUT")


@pytest.mark.asyncio
async def test_invoke_raises_tool_timeout_for_async_handler():
    registry = ToolRegistry(call_timeout=0.05)

    async def slow() -> str:
        await asyncio.sleep(5)
        return "late"

    registry.register(ToolDef(descriptor=ToolDescriptor("slow", "slow"), handler=slow))

    with pytest.raises(ToolTimeoutError) as excinfo:
        await registry.invoke("slow", {})
    assert excinfo.value.pending is None


@pytest.mark.asyncio
async def test_timed_out_sync_handler_is_tracked_until_it_exits():
    release = threading.Event()
    finished: list[str] = []
    registry = ToolRegistry(call_timeout=0.05)

    def blocking() -> str:
        release.wait(5)
        finished.append("done")
        return "late"

    registry.register(ToolDef(descriptor=ToolDescriptor("blocking", "blocking"), handler=blocking))
    result = await registry.execute(ToolCallRequest("c1", "blocking", {}))

    assert result.error.startswith("E_TOOL_TIMEOUT")
    assert finished == []

    release.set()
    await registry.settle("c1")
    assert finished == ["done"]


@pytest.mark.asyncio
async def test_settle_without_timeout_returns_immediately():
    registry = ToolRegistry()
    await asyncio.wait_for(registry.settle("never-timed-out"), timeout=1)


@pytest.mark.asyncio
async def test_execute_counts_calls_and_errors():
    metrics = get_runtime_metrics()
    registry = ToolRegistry()
    registry.register(_echo_tool())
    before_calls = metrics.tool_calls_total.get("echo", 0)
    before_errors = metrics.tool_errors_total.get("echo", 0)

    await registry.execute(ToolCallRequest("c1", "echo", {"msg": "x"}))
    await registry.execute(ToolCallRequest("c2", "echo", {}))

    assert metrics.tool_calls_total["echo"] == before_calls + 2
    assert metrics.tool_errors_total["echo"] == before_errors + 1


def test_builtin_registry_exposes_fixed_tool_set(sandbox: Sandbox):
    registry = build_default_registry(sandbox)
    assert [d.name for d in registry.descriptors()] == BUILTIN_TOOL_NAMES


def test_path_key_normalises_relative_and_absolute(sandbox: Sandbox, workspace: Path):
    registry = build_default_registry(sandbox)

    relative = registry.path_key(ToolCallRequest("c1", "write_file", {"file_path": "main.go", "content": ""}))
    absolute = registry.path_key(
        ToolCallRequest("c2", "read_file", {"file_path": str(workspace / "main.go")})
    )
    no_path = registry.path_key(ToolCallRequest("c3", "get_root", {}))

    assert relative == absolute
    assert no_path is None


@pytest.mark.asyncio
async def test_builtin_patch_lines_through_registry(sandbox: Sandbox, workspace: Path):
    registry = build_default_registry(sandbox)
    target = str(workspace / "main.go")

    await registry.execute(ToolCallRequest("w", "write_file", {"file_path": target, "content": "a\nb\nc\n"}))
    patched = await registry.execute(ToolCallRequest(
        "p",
        "patch_lines",
        {"file_path": target, "new_lines": ["B"], "line_start": 2, "line_end": 3},
    ))
    read = await registry.execute(ToolCallRequest("r", "read_file", {"file_path": target}))

    assert patched.error is None
    assert read.result == "a\nB\nc\n"


@pytest.mark.asyncio
async def test_builtin_invalid_range_becomes_error_result(sandbox: Sandbox, workspace: Path):
    registry = build_default_registry(sandbox)
    target = str(workspace / "main.go")
    (workspace / "main.go").write_text("a\n", encoding="utf-8")

    result = await registry.execute(ToolCallRequest(
        "p",
        "patch_lines",
        {"file_path": target, "new_lines": ["x"], "line_start": 0, "line_end": 1},
    ))

    assert result.error.startswith("E_INVALID_RANGE")
    assert (workspace / "main.go").read_text(encoding="utf-8") == "a\n"


@pytest.mark.asyncio
async def test_builtin_path_escape_becomes_error_result(tmp_path: Path, sandbox: Sandbox):
    registry = build_default_registry(sandbox)
    result = await registry.execute(ToolCallRequest("r", "read_file", {"file_path": str(tmp_path / "x")}))
    assert result.error.startswith("E_INVALID_PATH")

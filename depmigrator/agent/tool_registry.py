"""Tool registry: descriptors, argument validation, and dispatch."""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from depmigrator.agent.messages import ToolCallRequest, ToolCallResult
from depmigrator.errors import (
    ArgumentError,
    ToolError,
    ToolTimeoutError,
    UnknownToolError,
    format_tool_error,
)
from depmigrator.observability.metrics import get_runtime_metrics

if TYPE_CHECKING:
    from depmigrator.config import Settings
    from depmigrator.sandbox.workspace import Sandbox

logger = logging.getLogger(__name__)

PARAMETER_TYPES = ("string", "integer", "boolean", "array")


@dataclass(slots=True, frozen=True)
class ToolParameter:
    name: str
    type: str
    description: str = ""
    required: bool = True

    def to_schema(self) -> dict:
        schema: dict[str, Any] = {"type": self.type}
        if self.type == "array":
            schema["items"] = {"type": "string"}
        if self.description:
            schema["description"] = self.description
        return schema


@dataclass(slots=True, frozen=True)
class ToolDescriptor:
    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()

    @property
    def input_schema(self) -> dict:
        return {
            "type": "object",
            "properties": {p.name: p.to_schema() for p in self.parameters},
            "required": [p.name for p in self.parameters if p.required],
        }


@dataclass(slots=True)
class ToolDef:
    descriptor: ToolDescriptor
    handler: Callable[..., Any]
    # argument that names the sandbox path this tool touches, if any
    path_argument: str | None = None

    @property
    def name(self) -> str:
        return self.descriptor.name


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "integer":
        return isinstance(value, int) and not isinstance(value, bool)
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "array":
        return isinstance(value, list) and all(isinstance(item, str) for item in value)
    return False


def validate_arguments(descriptor: ToolDescriptor, arguments: Any) -> dict[str, Any]:
    if not isinstance(arguments, dict):
        raise ArgumentError(f"Arguments for '{descriptor.name}' must be an object.")

    known = {p.name for p in descriptor.parameters}
    unexpected = sorted(set(arguments) - known)
    if unexpected:
        raise ArgumentError(f"Unexpected arguments for '{descriptor.name}': {', '.join(unexpected)}")

    validated: dict[str, Any] = {}
    for param in descriptor.parameters:
        value = arguments.get(param.name)
        if value is None:
            if param.required:
                raise ArgumentError(f"Missing required argument '{param.name}' for '{descriptor.name}'.")
            continue
        if not _matches_type(value, param.type):
            raise ArgumentError(
                f"Argument '{param.name}' for '{descriptor.name}' must be of type {param.type}."
            )
        validated[param.name] = value
    return validated


class ToolRegistry:
    def __init__(
        self,
        *,
        call_timeout: float | None = None,
        path_resolver: Callable[[str], str] | None = None,
    ) -> None:
        self._tools: dict[str, ToolDef] = {}
        # call_id -> handler thread still running after its call timed out
        self._abandoned: dict[str, asyncio.Future] = {}
        self.call_timeout = call_timeout
        self.path_resolver = path_resolver

    def register(self, tool: ToolDef) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        for param in tool.descriptor.parameters:
            if param.type not in PARAMETER_TYPES:
                raise ValueError(f"Unsupported parameter type {param.type!r} on {tool.name}")
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDef | None:
        return self._tools.get(name)

    def descriptors(self) -> list[ToolDescriptor]:
        return [td.descriptor for td in self._tools.values()]

    def path_key(self, request: ToolCallRequest) -> str | None:
        """The sandbox path a request targets, used to serialise same-file calls."""
        td = self._tools.get(request.tool_name)
        if td is None or td.path_argument is None:
            return None
        value = request.arguments.get(td.path_argument)
        if not isinstance(value, str) or not value:
            return None
        return self.path_resolver(value) if self.path_resolver else value

    async def invoke(self, name: str, arguments: Any) -> Any:
        td = self._tools.get(name)
        if td is None:
            raise UnknownToolError(f"Unknown tool: {name}")
        kwargs = validate_arguments(td.descriptor, arguments)

        if inspect.iscoroutinefunction(td.handler):
            if self.call_timeout is None:
                return await td.handler(**kwargs)
            try:
                return await asyncio.wait_for(td.handler(**kwargs), timeout=self.call_timeout)
            except asyncio.TimeoutError as exc:
                raise ToolTimeoutError(self._timeout_message(name)) from exc

        # A thread cannot be cancelled, so on timeout it is handed back still running.
        worker = asyncio.ensure_future(asyncio.to_thread(td.handler, **kwargs))
        if self.call_timeout is None:
            return await worker
        try:
            return await asyncio.wait_for(asyncio.shield(worker), timeout=self.call_timeout)
        except asyncio.TimeoutError as exc:
            raise ToolTimeoutError(self._timeout_message(name), pending=worker) from exc

    def _timeout_message(self, name: str) -> str:
        return (
            f"Tool '{name}' did not finish within {self.call_timeout}s; "
            "its effects may still be applied."
        )

    async def execute(self, request: ToolCallRequest) -> ToolCallResult:
        """Run one request, folding every handler failure into the result."""
        metrics = get_runtime_metrics()
        try:
            value = await self.invoke(request.tool_name, request.arguments)
        except ToolError as exc:
            if isinstance(exc, ToolTimeoutError) and exc.pending is not None:
                self._track_abandoned(request.call_id, exc.pending)
            metrics.increment_tool_call(request.tool_name, failed=True)
            return ToolCallResult(call_id=request.call_id, error=format_tool_error(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("tool handler crashed", extra={"tool_name": request.tool_name})
            metrics.increment_tool_call(request.tool_name, failed=True)
            return ToolCallResult(call_id=request.call_id, error=format_tool_error(exc))

        metrics.increment_tool_call(request.tool_name)
        return ToolCallResult(call_id=request.call_id, result=value)

    async def settle(self, call_id: str) -> None:
        """Wait until the handler thread of a timed-out call has exited."""
        worker = self._abandoned.get(call_id)
        if worker is not None:
            await asyncio.wait([worker])

    def _track_abandoned(self, call_id: str, worker: asyncio.Future) -> None:
        self._abandoned[call_id] = worker

        def _done(fut: asyncio.Future) -> None:
            self._abandoned.pop(call_id, None)
            if not fut.cancelled() and fut.exception() is not None:
                logger.warning(
                    "timed-out call %s failed after its deadline",
                    call_id,
                    exc_info=fut.exception(),
                    extra={"call_id": call_id},
                )

        worker.add_done_callback(_done)


def build_builtin_tools(sandbox: Sandbox, settings: Settings | None = None) -> list[ToolDef]:
    """Build the migration tool set bound to one sandbox."""
    from depmigrator.tools.docs import fetch_package_docs
    from depmigrator.tools.go_tools import install_dependency, tidy_dependencies

    go_bin = settings.go_bin if settings else "go"
    process_timeout = settings.process_timeout_s if settings else None
    docs_timeout = settings.docs_timeout_s if settings else 30.0

    return [
        ToolDef(
            descriptor=ToolDescriptor(
                name="get_root",
                description=(
                    "Returns the base directory which contains all relevant files. "
                    "This is also known as the current working directory. "
                    "No file operations outside of this directory are permitted."
                ),
            ),
            handler=sandbox.get_root,
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="list_directory",
                description=(
                    "Returns the names of all files and directories in the specified directory. "
                    "Subdirectories have a trailing slash."
                ),
                parameters=(ToolParameter("directory", "string", "Directory path inside the base directory"),),
            ),
            handler=lambda directory: sandbox.list_dir(directory),
            path_argument="directory",
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="read_file",
                description="Reads the contents of a file.",
                parameters=(ToolParameter("file_path", "string", "File path inside the base directory"),),
            ),
            handler=lambda file_path: sandbox.read_file(file_path),
            path_argument="file_path",
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="write_file",
                description=(
                    "Writes content to a file, completely overwriting any existing contents. "
                    "Missing parent directories are created."
                ),
                parameters=(
                    ToolParameter("file_path", "string", "File path inside the base directory"),
                    ToolParameter("content", "string", "Full new file content"),
                ),
            ),
            handler=lambda file_path, content: sandbox.write_file(file_path, content),
            path_argument="file_path",
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="patch_lines",
                description=(
                    "Replaces a line range of an existing file with the given lines. "
                    "line_start is 1-based; line_end is exclusive, so line_start=1 and line_end=2 "
                    "replace only the first line. line_end may be one past the last line, "
                    "and -1 means the end of the file."
                ),
                parameters=(
                    ToolParameter("file_path", "string", "Existing file inside the base directory"),
                    ToolParameter("new_lines", "array", "Replacement lines, without line terminators"),
                    ToolParameter("line_start", "integer", "First line to replace (1-based)"),
                    ToolParameter("line_end", "integer", "Line after the last replaced line, or -1"),
                ),
            ),
            handler=lambda file_path, new_lines, line_start, line_end: sandbox.patch_lines(
                file_path, new_lines, line_start, line_end
            ),
            path_argument="file_path",
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="install_dependency",
                description=(
                    "Install a Go package in the specified module directory. "
                    "Installs the latest version when no version is given."
                ),
                parameters=(
                    ToolParameter("directory", "string", "Module directory inside the base directory"),
                    ToolParameter("package_name", "string", "Go package path, e.g. github.com/pkg/errors"),
                    ToolParameter("package_version", "string", "Version such as 1.2.3", required=False),
                ),
            ),
            handler=lambda directory, package_name, package_version=None: install_dependency(
                sandbox,
                directory,
                package_name,
                package_version,
                go_bin=go_bin,
                timeout=process_timeout,
            ),
            path_argument="directory",
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="tidy_dependencies",
                description="Run 'go mod tidy' in the specified module directory.",
                parameters=(ToolParameter("directory", "string", "Module directory inside the base directory"),),
            ),
            handler=lambda directory: tidy_dependencies(
                sandbox, directory, go_bin=go_bin, timeout=process_timeout
            ),
            path_argument="directory",
        ),
        ToolDef(
            descriptor=ToolDescriptor(
                name="fetch_package_docs",
                description="Get the documentation text of a Go package from pkg.go.dev.",
                parameters=(ToolParameter("package", "string", "Go package path"),),
            ),
            handler=lambda package: fetch_package_docs(package, timeout=docs_timeout),
        ),
    ]


def build_default_registry(sandbox: Sandbox, settings: Settings | None = None) -> ToolRegistry:
    def resolve_path(value: str) -> str:
        try:
            return str(sandbox.resolve(value))
        except ToolError:
            return value

    registry = ToolRegistry(
        call_timeout=settings.tool_timeout_s if settings else None,
        path_resolver=resolve_path,
    )
    for tool in build_builtin_tools(sandbox, settings):
        registry.register(tool)
    return registry

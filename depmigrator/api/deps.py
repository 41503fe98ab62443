from __future__ import annotations

from fastapi import Request

from depmigrator.agent.tool_registry import ToolRegistry
from depmigrator.sandbox.workspace import Sandbox


def get_sandbox(request: Request) -> Sandbox:
    sandbox = getattr(request.app.state, "sandbox", None)
    if sandbox is None:
        raise RuntimeError("Sandbox not initialized")
    return sandbox


def get_registry(request: Request) -> ToolRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise RuntimeError("ToolRegistry not initialized")
    return registry

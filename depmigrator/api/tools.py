from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from depmigrator.agent.messages import ToolCallRequest
from depmigrator.agent.tool_registry import ToolRegistry
from depmigrator.api.deps import get_registry, get_sandbox
from depmigrator.errors import UnknownToolError
from depmigrator.observability.metrics import get_runtime_metrics
from depmigrator.sandbox.workspace import Sandbox

router = APIRouter(prefix="/v1", tags=["tools"])


class InvokeToolRequest(BaseModel):
    arguments: dict[str, Any] = Field(default_factory=dict)
    call_id: str | None = None


@router.get("/health")
async def health(sandbox: Sandbox = Depends(get_sandbox)):
    return {"ok": True, "workspace_root": sandbox.get_root()}


@router.get("/tools")
async def list_tools(registry: ToolRegistry = Depends(get_registry)):
    return {
        "tools": [
            {
                "name": descriptor.name,
                "description": descriptor.description,
                "input_schema": descriptor.input_schema,
            }
            for descriptor in registry.descriptors()
        ]
    }


@router.post("/tools/{name}/invoke")
async def invoke_tool(
    name: str,
    payload: InvokeToolRequest,
    registry: ToolRegistry = Depends(get_registry),
):
    if registry.get(name) is None:
        raise UnknownToolError(f"Unknown tool: {name}")

    call_id = payload.call_id or f"call_{uuid.uuid4().hex[:8]}"
    result = await registry.execute(
        ToolCallRequest(call_id=call_id, tool_name=name, arguments=payload.arguments)
    )
    return {"call_id": result.call_id, "result": result.result, "error": result.error}


@router.get("/metrics")
async def metrics():
    return get_runtime_metrics().snapshot()

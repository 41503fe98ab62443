"""HTTP transport exposing the tool registry to out-of-process agents."""
from __future__ import annotations

import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from depmigrator.agent.tool_registry import build_default_registry
from depmigrator.api import tools
from depmigrator.config import Settings
from depmigrator.errors import ToolError, error_from_exception
from depmigrator.observability.logging import get_runtime_logger
from depmigrator.sandbox.workspace import Sandbox
from depmigrator.trace import TRACE_HEADER, bind_trace_id, get_current_trace_id, normalize_trace_id

logger = get_runtime_logger()


def create_app(settings: Settings) -> FastAPI:
    app = FastAPI(title="depmigrator tool server", version="0.1.0")
    sandbox = Sandbox(settings.workspace_root)
    app.state.sandbox = sandbox
    app.state.registry = build_default_registry(sandbox, settings)

    @app.middleware("http")
    async def trace_middleware(request: Request, call_next):
        trace_id = bind_trace_id(normalize_trace_id(request.headers.get(TRACE_HEADER)))
        request.state.trace_id = trace_id
        started = time.monotonic()
        try:
            response = await call_next(request)
        except Exception as exc:  # noqa: BLE001
            status_code, payload = error_from_exception(exc, trace_id)
            response = JSONResponse(status_code=status_code, content=payload)
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "http_request",
            extra={
                "trace_id": trace_id,
                "path": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "duration_ms": duration_ms,
                "outcome": "ok" if response.status_code < 400 else "error",
            },
        )
        response.headers[TRACE_HEADER] = trace_id
        return response

    @app.exception_handler(ToolError)
    async def exception_handler(request: Request, exc: Exception):
        trace_id = str(getattr(request.state, "trace_id", None) or get_current_trace_id() or "")
        status_code, payload = error_from_exception(exc, trace_id)
        response = JSONResponse(status_code=status_code, content=payload)
        response.headers[TRACE_HEADER] = trace_id
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return await exception_handler(request, exc)

    app.include_router(tools.router)
    return app

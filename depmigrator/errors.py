"""Error taxonomy for tool handlers and the conversation loop.

Tool failures (`ToolError` subclasses) are always converted into a tool-call
result the model can read. `OrchestratorError` subclasses are plumbing faults
and end the run.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError

DEFAULT_INTERNAL_MESSAGE = "Internal server error"


class ToolError(Exception):
    code = "E_TOOL"
    retryable = False
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidPathError(ToolError):
    code = "E_INVALID_PATH"


class NotFoundError(ToolError):
    code = "E_NOT_FOUND"
    status_code = 404


class InvalidRangeError(ToolError):
    code = "E_INVALID_RANGE"


class ArgumentError(ToolError):
    code = "E_ARGUMENT"
    status_code = 422


class UnknownToolError(ToolError):
    code = "E_UNKNOWN_TOOL"
    status_code = 404


class ProcessFailedError(ToolError):
    code = "E_PROCESS_FAILED"
    status_code = 500

    def __init__(self, exit_code: int, stderr: str) -> None:
        super().__init__(f"Process failed with exit code {exit_code}: {stderr.strip()}")
        self.exit_code = exit_code
        self.stderr = stderr


class ProcessTimeoutError(ToolError):
    code = "E_PROCESS_TIMEOUT"
    retryable = True
    status_code = 504


class ToolTimeoutError(ToolError):
    code = "E_TOOL_TIMEOUT"
    retryable = True
    status_code = 504

    def __init__(self, message: str, pending: asyncio.Future | None = None) -> None:
        super().__init__(message)
        # worker thread of a sync handler that is still running past the deadline
        self.pending = pending


class UpstreamFailureError(ToolError):
    code = "E_UPSTREAM"
    retryable = True
    status_code = 502


class OrchestratorError(Exception):
    pass


class MalformedStreamError(OrchestratorError):
    pass


class ConversationStateError(OrchestratorError):
    pass


class ModelTurnTimeoutError(OrchestratorError):
    pass


def format_tool_error(exc: BaseException) -> str:
    """Render a handler failure as the plain-text error of a tool-call result."""
    if isinstance(exc, ToolError):
        return f"{exc.code}: {exc.message}"
    return f"E_INTERNAL: {exc.__class__.__name__}: {exc}"


def build_error(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "code": code,
        "message": message,
        "trace_id": trace_id,
        "retryable": retryable,
        "ts": datetime.now(tz=timezone.utc).isoformat(),
    }
    if details:
        payload["details"] = details
    return payload


def error_response(
    *,
    code: str,
    message: str,
    trace_id: str,
    retryable: bool,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "error": build_error(
            code=code,
            message=message,
            trace_id=trace_id,
            retryable=retryable,
            details=details,
        )
    }


def error_from_exception(exc: Exception, trace_id: str) -> tuple[int, dict[str, Any]]:
    if isinstance(exc, ToolError):
        return (
            exc.status_code,
            error_response(
                code=exc.code,
                message=exc.message,
                trace_id=trace_id,
                retryable=exc.retryable,
            ),
        )

    if isinstance(exc, RequestValidationError):
        return (
            422,
            error_response(
                code="E_SCHEMA_INVALID",
                message="Request validation failed.",
                trace_id=trace_id,
                retryable=False,
                details={"errors": exc.errors()},
            ),
        )

    if isinstance(exc, HTTPException):
        return (
            exc.status_code,
            error_response(
                code="E_INTERNAL" if exc.status_code >= 500 else "E_SCHEMA_INVALID",
                message=str(exc.detail),
                trace_id=trace_id,
                retryable=exc.status_code >= 500,
            ),
        )

    if isinstance(exc, httpx.TimeoutException):
        return (
            503,
            error_response(
                code="E_NETWORK_TIMEOUT",
                message="Network timeout.",
                trace_id=trace_id,
                retryable=True,
            ),
        )

    return (
        500,
        error_response(
            code="E_INTERNAL",
            message=DEFAULT_INTERNAL_MESSAGE,
            trace_id=trace_id,
            retryable=False,
            details={"cause": exc.__class__.__name__},
        ),
    )

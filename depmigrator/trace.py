"""Trace ids correlating one conversation's model rounds, tool calls and log lines."""
from __future__ import annotations

import uuid
from contextvars import ContextVar

TRACE_HEADER = "X-Trace-Id"

_trace_id_var: ContextVar[str | None] = ContextVar("depmigrator_trace_id", default=None)


def new_trace_id() -> str:
    return f"tr_{uuid.uuid4().hex}"


def normalize_trace_id(candidate: str | None) -> str:
    value = (candidate or "").strip()
    return value or new_trace_id()


def bind_trace_id(trace_id: str | None = None) -> str:
    """Bind a trace id to the current context and return it."""
    value = normalize_trace_id(trace_id)
    _trace_id_var.set(value)
    return value


def get_current_trace_id() -> str | None:
    return _trace_id_var.get()

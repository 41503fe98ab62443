"""Make tool arguments and results safe and short enough for log lines."""
from __future__ import annotations

import re
from typing import Any

_SENSITIVE_KEYWORDS = ("authorization", "api_key", "apikey", "token", "secret", "password")
_BEARER_PATTERN = re.compile(r"(?i)bearer\s+[a-z0-9_\-\.]+")

MAX_LOGGED_CHARS = 200


def _is_sensitive_key(key: str) -> bool:
    normalized = key.lower()
    return any(word in normalized for word in _SENSITIVE_KEYWORDS)


def _shorten(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}... [{len(value) - limit} more chars]"


def redact(value: Any, key: str = "", limit: int = MAX_LOGGED_CHARS) -> Any:
    if isinstance(value, dict):
        return {k: redact(v, k, limit) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        if len(value) > 20:
            return [redact(item, key, limit) for item in value[:20]] + [f"... [{len(value) - 20} more items]"]
        return [redact(item, key, limit) for item in value]
    if isinstance(value, str):
        if _is_sensitive_key(key):
            return "<redacted>"
        return _shorten(_BEARER_PATTERN.sub("Bearer <redacted>", value), limit)
    return value

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class Settings:
    workspace_root: Path
    provider: str
    model: str
    api_key: str
    base_url: str | None
    max_tool_rounds: int
    tool_timeout_s: float
    process_timeout_s: float
    model_turn_timeout_s: float
    docs_timeout_s: float
    go_bin: str
    verbose: bool
    host: str
    port: int


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def load_settings() -> Settings:
    workspace_root = Path(
        os.getenv("DEPMIGRATOR_WORKSPACE_ROOT", str(Path.cwd()))
    ).resolve()
    if not workspace_root.is_dir():
        raise RuntimeError(f"DEPMIGRATOR_WORKSPACE_ROOT does not exist: {workspace_root}")

    base_url = os.getenv("DEPMIGRATOR_BASE_URL", "").strip()

    return Settings(
        workspace_root=workspace_root,
        provider=os.getenv("DEPMIGRATOR_PROVIDER", "openai").strip().lower(),
        model=os.getenv("DEPMIGRATOR_MODEL", "gpt-4.1"),
        api_key=os.getenv("DEPMIGRATOR_API_KEY", ""),
        base_url=base_url or None,
        max_tool_rounds=int(os.getenv("DEPMIGRATOR_MAX_TOOL_ROUNDS", "25")),
        tool_timeout_s=float(os.getenv("DEPMIGRATOR_TOOL_TIMEOUT_S", "600")),
        process_timeout_s=float(os.getenv("DEPMIGRATOR_PROCESS_TIMEOUT_S", "300")),
        model_turn_timeout_s=float(os.getenv("DEPMIGRATOR_MODEL_TURN_TIMEOUT_S", "300")),
        docs_timeout_s=float(os.getenv("DEPMIGRATOR_DOCS_TIMEOUT_S", "30")),
        go_bin=os.getenv("DEPMIGRATOR_GO_BIN", "go"),
        verbose=_parse_bool(os.getenv("DEPMIGRATOR_VERBOSE"), False),
        host=os.getenv("DEPMIGRATOR_HOST", "127.0.0.1"),
        port=int(os.getenv("DEPMIGRATOR_PORT", "8040")),
    )

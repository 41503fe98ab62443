from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(slots=True)
class RuntimeMetrics:
    turns_total: int = 0
    model_rounds_total: int = 0
    tool_calls_total: Dict[str, int] = field(default_factory=dict)
    tool_errors_total: Dict[str, int] = field(default_factory=dict)

    def increment_tool_call(self, tool_name: str, *, failed: bool = False) -> None:
        self.tool_calls_total[tool_name] = self.tool_calls_total.get(tool_name, 0) + 1
        if failed:
            self.tool_errors_total[tool_name] = self.tool_errors_total.get(tool_name, 0) + 1

    def snapshot(self) -> dict:
        return {
            "turns_total": self.turns_total,
            "model_rounds_total": self.model_rounds_total,
            "tool_calls_total": dict(self.tool_calls_total),
            "tool_errors_total": dict(self.tool_errors_total),
        }


_runtime_metrics = RuntimeMetrics()


def get_runtime_metrics() -> RuntimeMetrics:
    return _runtime_metrics

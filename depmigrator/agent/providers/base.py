"""Provider base types: ChatRequest and the streaming ProviderAdapter contract."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import AsyncIterator

from depmigrator.agent.messages import Message, ResponseFragment
from depmigrator.agent.tool_registry import ToolDescriptor


@dataclass(slots=True)
class ChatRequest:
    model: str
    messages: tuple[Message, ...]
    tools: list[ToolDescriptor] = field(default_factory=list)
    max_tokens: int = 4096
    temperature: float = 0.0


class ProviderAdapter(ABC):
    @abstractmethod
    def chat_stream(self, request: ChatRequest) -> AsyncIterator[ResponseFragment]:
        """Stream one model turn as TextDelta / ToolCallDelta fragments ending in StreamEnd."""

"""Conversation message types, streamed response fragments and the message log."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Union

from depmigrator.errors import ConversationStateError

ROLES = ("system", "user", "assistant", "tool")


@dataclass(slots=True, frozen=True)
class TextContent:
    text: str


@dataclass(slots=True, frozen=True)
class ToolCallRequest:
    call_id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ToolCallResult:
    call_id: str
    result: Any = None
    error: str | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


ContentItem = Union[TextContent, ToolCallRequest, ToolCallResult]


@dataclass(slots=True, frozen=True)
class Message:
    role: str  # "system" | "user" | "assistant" | "tool"
    items: tuple[ContentItem, ...] = ()

    @classmethod
    def text(cls, role: str, text: str) -> "Message":
        return cls(role=role, items=(TextContent(text),))

    @property
    def content(self) -> str:
        return "".join(item.text for item in self.items if isinstance(item, TextContent))

    @property
    def tool_calls(self) -> list[ToolCallRequest]:
        return [item for item in self.items if isinstance(item, ToolCallRequest)]

    @property
    def tool_results(self) -> list[ToolCallResult]:
        return [item for item in self.items if isinstance(item, ToolCallResult)]


# Streamed response fragments


@dataclass(slots=True, frozen=True)
class TextDelta:
    text: str


@dataclass(slots=True, frozen=True)
class ToolCallDelta:
    """A piece of one tool-call request.

    `index` identifies the request's slot within the streamed turn. The first
    fragment of a slot carries `call_id` and `name`; later fragments only append
    to `arguments`, which is partial JSON text.
    """

    index: int
    call_id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass(slots=True, frozen=True)
class StreamEnd:
    stop_reason: str  # "end_turn" | "tool_use" | "max_tokens"


ResponseFragment = Union[TextDelta, ToolCallDelta, StreamEnd]


class MessageLog:
    """Append-only, ordered conversation history.

    Enforces that system messages come first and that every tool result answers
    exactly one earlier tool-call request.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: list[Message] = []
        self._requested: set[str] = set()
        self._answered: set[str] = set()
        for message in messages:
            self.append(message)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(tuple(self._messages))

    def __getitem__(self, index: int) -> Message:
        return self._messages[index]

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    def pending_call_ids(self) -> set[str]:
        return self._requested - self._answered

    def append(self, message: Message) -> None:
        self._check(message)
        for item in message.items:
            if isinstance(item, ToolCallRequest):
                self._requested.add(item.call_id)
            elif isinstance(item, ToolCallResult):
                self._answered.add(item.call_id)
        self._messages.append(message)

    def extend(self, messages: Iterable[Message]) -> None:
        """Append several messages, all or none."""
        start = len(self._messages)
        requested = set(self._requested)
        answered = set(self._answered)
        try:
            for message in list(messages):
                self.append(message)
        except ConversationStateError:
            del self._messages[start:]
            self._requested, self._answered = requested, answered
            raise

    def _check(self, message: Message) -> None:
        if message.role not in ROLES:
            raise ConversationStateError(f"Unknown message role: {message.role!r}")
        if message.role == "system":
            if any(m.role != "system" for m in self._messages):
                raise ConversationStateError("System messages must precede all other messages.")

        requested = set(self._requested)
        answered = set(self._answered)
        for item in message.items:
            if isinstance(item, ToolCallRequest):
                if message.role != "assistant":
                    raise ConversationStateError("Tool-call requests must come from the assistant.")
                if item.call_id in requested:
                    raise ConversationStateError(f"Duplicate tool call id: {item.call_id}")
                requested.add(item.call_id)
            elif isinstance(item, ToolCallResult):
                if message.role != "tool":
                    raise ConversationStateError("Tool-call results must be in tool messages.")
                if item.call_id not in requested:
                    raise ConversationStateError(f"Result for unknown tool call id: {item.call_id}")
                if item.call_id in answered:
                    raise ConversationStateError(f"Duplicate result for tool call id: {item.call_id}")
                answered.add(item.call_id)
            elif message.role == "tool":
                raise ConversationStateError("Tool messages may only carry tool-call results.")

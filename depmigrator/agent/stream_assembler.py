"""Assemble a streamed model turn into text and complete tool-call requests."""
from __future__ import annotations

import json
from dataclasses import dataclass, field

from depmigrator.agent.messages import (
    ResponseFragment,
    StreamEnd,
    TextDelta,
    ToolCallDelta,
    ToolCallRequest,
)
from depmigrator.errors import MalformedStreamError


@dataclass(slots=True)
class _PendingCall:
    call_id: str
    name: str
    argument_parts: list[str] = field(default_factory=list)


@dataclass(slots=True)
class AssembledTurn:
    text: str
    tool_calls: list[ToolCallRequest]
    stop_reason: str
    # call_id -> reason, for requests whose argument text was not a JSON object
    argument_errors: dict[str, str] = field(default_factory=dict)


class TurnAssembler:
    def __init__(self) -> None:
        self._text_parts: list[str] = []
        self._slots: dict[int, _PendingCall] = {}
        self._call_ids: set[str] = set()
        self._stop_reason: str | None = None

    @property
    def finished(self) -> bool:
        return self._stop_reason is not None

    def feed(self, fragment: ResponseFragment) -> str | None:
        """Consume one fragment; return its text if it is a text delta."""
        if self.finished:
            raise MalformedStreamError("Fragment received after the end of the stream.")

        if isinstance(fragment, TextDelta):
            self._text_parts.append(fragment.text)
            return fragment.text

        if isinstance(fragment, ToolCallDelta):
            self._feed_tool_call(fragment)
            return None

        if isinstance(fragment, StreamEnd):
            self._stop_reason = fragment.stop_reason or "end_turn"
            return None

        raise MalformedStreamError(f"Unexpected stream fragment: {fragment!r}")

    def _feed_tool_call(self, fragment: ToolCallDelta) -> None:
        pending = self._slots.get(fragment.index)
        if pending is None:
            if not fragment.call_id:
                raise MalformedStreamError(
                    f"Tool-call fragment for slot {fragment.index} arrived before its call id."
                )
            if not fragment.name:
                raise MalformedStreamError(f"Tool call {fragment.call_id} has no tool name.")
            if fragment.call_id in self._call_ids:
                raise MalformedStreamError(f"Duplicate tool call id in turn: {fragment.call_id}")
            pending = _PendingCall(call_id=fragment.call_id, name=fragment.name)
            self._slots[fragment.index] = pending
            self._call_ids.add(fragment.call_id)
        elif fragment.call_id and fragment.call_id != pending.call_id:
            raise MalformedStreamError(
                f"Slot {fragment.index} changed call id from {pending.call_id} to {fragment.call_id}."
            )

        if fragment.arguments:
            pending.argument_parts.append(fragment.arguments)

    def finish(self) -> AssembledTurn:
        if not self.finished:
            # Some providers close the stream without an explicit stop marker.
            self._stop_reason = "tool_use" if self._slots else "end_turn"

        tool_calls: list[ToolCallRequest] = []
        argument_errors: dict[str, str] = {}
        for index in sorted(self._slots):
            pending = self._slots[index]
            raw = "".join(pending.argument_parts).strip()
            arguments: dict = {}
            if raw:
                try:
                    decoded = json.loads(raw)
                except json.JSONDecodeError as exc:
                    argument_errors[pending.call_id] = f"Arguments are not valid JSON: {exc.msg}"
                else:
                    if isinstance(decoded, dict):
                        arguments = decoded
                    else:
                        argument_errors[pending.call_id] = "Arguments must be a JSON object."
            tool_calls.append(ToolCallRequest(call_id=pending.call_id, tool_name=pending.name, arguments=arguments))

        return AssembledTurn(
            text="".join(self._text_parts),
            tool_calls=tool_calls,
            stop_reason=self._stop_reason or "end_turn",
            argument_errors=argument_errors,
        )

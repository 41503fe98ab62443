"""Anthropic Messages API streaming provider with native tool_use support."""
from __future__ import annotations

from typing import AsyncIterator

from anthropic import AsyncAnthropic

from depmigrator.agent.messages import (
    Message,
    ResponseFragment,
    StreamEnd,
    TextDelta,
    ToolCallDelta,
)
from depmigrator.agent.providers.base import ChatRequest, ProviderAdapter
from depmigrator.agent.providers.openai_provider import render_tool_result
from depmigrator.agent.tool_registry import ToolDescriptor


class AnthropicProvider(ProviderAdapter):
    def __init__(self, api_key: str, base_url: str | None = None) -> None:
        self.client = AsyncAnthropic(api_key=api_key, base_url=base_url)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ResponseFragment]:
        system_prompt, messages = _build_messages(request.messages)
        payload: dict = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "messages": messages,
            "temperature": request.temperature,
            "stream": True,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if request.tools:
            payload["tools"] = _build_tools(request.tools)

        stream = await self.client.messages.create(**payload)
        stop_reason: str | None = None
        async for event in stream:
            fragment = _fragment_from_event(event)
            if fragment is not None:
                yield fragment
            if event.type == "message_delta" and event.delta.stop_reason:
                stop_reason = event.delta.stop_reason

        yield StreamEnd(stop_reason=_map_stop_reason(stop_reason))


def _map_stop_reason(stop_reason: str | None) -> str:
    if stop_reason in ("tool_use", "max_tokens"):
        return stop_reason
    return "end_turn"


def _fragment_from_event(event) -> ResponseFragment | None:
    if event.type == "content_block_start":
        block = event.content_block
        if block.type == "tool_use":
            return ToolCallDelta(index=event.index, call_id=block.id, name=block.name)
        if block.type == "text" and block.text:
            return TextDelta(block.text)
        return None
    if event.type == "content_block_delta":
        delta = event.delta
        if delta.type == "text_delta":
            return TextDelta(delta.text)
        if delta.type == "input_json_delta":
            return ToolCallDelta(index=event.index, arguments=delta.partial_json)
    return None


def _build_messages(messages: tuple[Message, ...] | list[Message]) -> tuple[str, list[dict]]:
    """Split out the system prompt and convert the rest to Anthropic format.

    Consecutive tool messages are merged into a single user turn of
    tool_result blocks, as the API requires.
    """
    system_parts: list[str] = []
    result: list[dict] = []
    for msg in messages:
        if msg.role == "system":
            system_parts.append(msg.content)
        elif msg.role == "user":
            result.append({"role": "user", "content": msg.content})
        elif msg.role == "assistant":
            content: list[dict] = []
            if msg.content:
                content.append({"type": "text", "text": msg.content})
            for tc in msg.tool_calls:
                content.append({
                    "type": "tool_use",
                    "id": tc.call_id,
                    "name": tc.tool_name,
                    "input": tc.arguments,
                })
            result.append({"role": "assistant", "content": content})
        elif msg.role == "tool":
            blocks = [
                {
                    "type": "tool_result",
                    "tool_use_id": tr.call_id,
                    "content": render_tool_result(tr.result, tr.error),
                    "is_error": tr.is_error,
                }
                for tr in msg.tool_results
            ]
            previous = result[-1] if result else None
            if previous and previous["role"] == "user" and isinstance(previous["content"], list):
                previous["content"].extend(blocks)
            else:
                result.append({"role": "user", "content": blocks})
    return "\n\n".join(system_parts), result


def _build_tools(tools: list[ToolDescriptor]) -> list[dict]:
    """Convert descriptors to Anthropic tools format."""
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.input_schema,
        }
        for t in tools
    ]

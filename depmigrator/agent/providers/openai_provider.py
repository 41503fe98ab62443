"""OpenAI Chat Completions streaming provider with function-calling support."""
from __future__ import annotations

import json
from typing import AsyncIterator

from openai import AsyncAzureOpenAI, AsyncOpenAI

from depmigrator.agent.messages import (
    Message,
    ResponseFragment,
    StreamEnd,
    TextDelta,
    ToolCallDelta,
)
from depmigrator.agent.providers.base import ChatRequest, ProviderAdapter
from depmigrator.agent.tool_registry import ToolDescriptor

AZURE_API_VERSION = "2024-10-21"


class OpenAIProvider(ProviderAdapter):
    def __init__(self, api_key: str, base_url: str | None = None, *, azure: bool = False) -> None:
        if azure:
            if not base_url:
                raise ValueError("Azure OpenAI requires an endpoint base_url")
            self.client = AsyncAzureOpenAI(
                api_key=api_key,
                azure_endpoint=base_url,
                api_version=AZURE_API_VERSION,
            )
        else:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def chat_stream(self, request: ChatRequest) -> AsyncIterator[ResponseFragment]:
        payload: dict = {
            "model": request.model,
            "messages": _build_messages(request.messages),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "stream": True,
        }
        if request.tools:
            payload["tools"] = _build_tools(request.tools)

        stream = await self.client.chat.completions.create(**payload)
        finish_reason: str | None = None
        async for chunk in stream:
            for fragment, reason in _fragments_from_chunk(chunk):
                if fragment is not None:
                    yield fragment
                if reason:
                    finish_reason = reason

        yield StreamEnd(stop_reason=_map_finish_reason(finish_reason))


def _fragments_from_chunk(chunk) -> list[tuple[ResponseFragment | None, str | None]]:
    out: list[tuple[ResponseFragment | None, str | None]] = []
    for choice in chunk.choices or []:
        delta = choice.delta
        if delta is not None:
            if delta.content:
                out.append((TextDelta(delta.content), None))
            for tc in delta.tool_calls or []:
                function = tc.function
                out.append((
                    ToolCallDelta(
                        index=tc.index,
                        call_id=tc.id,
                        name=function.name if function else None,
                        arguments=(function.arguments or "") if function else "",
                    ),
                    None,
                ))
        if choice.finish_reason:
            out.append((None, choice.finish_reason))
    return out


def _map_finish_reason(finish: str | None) -> str:
    if finish == "tool_calls":
        return "tool_use"
    if finish == "length":
        return "max_tokens"
    return "end_turn"


def _build_messages(messages: tuple[Message, ...] | list[Message]) -> list[dict]:
    """Convert the message log to OpenAI chat format."""
    result: list[dict] = []
    for msg in messages:
        if msg.role in ("system", "user"):
            result.append({"role": msg.role, "content": msg.content})
        elif msg.role == "assistant":
            entry: dict = {"role": "assistant"}
            if msg.content:
                entry["content"] = msg.content
            if msg.tool_calls:
                entry["tool_calls"] = [
                    {
                        "id": tc.call_id,
                        "type": "function",
                        "function": {
                            "name": tc.tool_name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
            result.append(entry)
        elif msg.role == "tool":
            for tr in msg.tool_results:
                result.append({
                    "role": "tool",
                    "tool_call_id": tr.call_id,
                    "content": render_tool_result(tr.result, tr.error),
                })
    return result


def render_tool_result(result, error: str | None) -> str:
    if error is not None:
        return f"Error: {error}"
    if result is None:
        return "ok"
    if isinstance(result, str):
        return result
    return json.dumps(result, ensure_ascii=False, default=str)


def _build_tools(tools: list[ToolDescriptor]) -> list[dict]:
    """Convert descriptors to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.input_schema,
            },
        }
        for t in tools
    ]

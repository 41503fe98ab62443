"""
loop.py: conversation orchestrator

Each user message starts a turn: stream the model's reply, run the tool calls
it requested, feed the results back, and repeat until a reply requests no tools.
"""
from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from depmigrator.agent.messages import (
    Message,
    MessageLog,
    TextContent,
    ToolCallRequest,
    ToolCallResult,
)
from depmigrator.agent.providers.base import ChatRequest, ProviderAdapter
from depmigrator.agent.stream_assembler import AssembledTurn, TurnAssembler
from depmigrator.agent.tool_registry import ToolRegistry
from depmigrator.errors import (
    ArgumentError,
    ConversationStateError,
    ModelTurnTimeoutError,
    format_tool_error,
)
from depmigrator.observability.metrics import get_runtime_metrics
from depmigrator.observability.redaction import redact
from depmigrator.trace import bind_trace_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 25


class OrchestratorState(str, Enum):
    AWAITING_USER_INPUT = "awaiting_user_input"
    STREAMING_MODEL_RESPONSE = "streaming_model_response"
    EXECUTING_TOOLS = "executing_tools"


@dataclass(slots=True)
class LoopCallbacks:
    on_text_delta: Callable[[str], Awaitable[None] | None] | None = None
    on_tool_call: Callable[[ToolCallRequest], Awaitable[None] | None] | None = None
    on_tool_result: Callable[[ToolCallResult], Awaitable[None] | None] | None = None


@dataclass(slots=True)
class TurnOutcome:
    text: str
    stop_reason: str  # "end_turn" | "max_tokens" | "max_rounds"
    rounds: int


class ConversationOrchestrator:
    def __init__(
        self,
        *,
        provider: ProviderAdapter,
        model: str,
        tools: ToolRegistry,
        system_prompt: str = "",
        callbacks: LoopCallbacks | None = None,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        model_turn_timeout: float | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        verbose: bool = False,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.provider = provider
        self.model = model
        self.tools = tools
        self.callbacks = callbacks or LoopCallbacks()
        self.max_rounds = max_rounds
        self.model_turn_timeout = model_turn_timeout
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.verbose = verbose
        self._log = MessageLog()
        if system_prompt:
            self._log.append(Message.text("system", system_prompt))
        self._state = OrchestratorState.AWAITING_USER_INPUT

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def messages(self) -> tuple[Message, ...]:
        return self._log.snapshot()

    async def send(self, user_text: str) -> TurnOutcome:
        """Add a user message and run model rounds until one requests no tools."""
        if self._state is not OrchestratorState.AWAITING_USER_INPUT:
            raise ConversationStateError(f"Cannot accept user input while {self._state.value}.")
        pending = self._log.pending_call_ids()
        if pending:
            raise ConversationStateError(f"Tool calls left unanswered: {', '.join(sorted(pending))}")

        trace_id = bind_trace_id()
        metrics = get_runtime_metrics()
        metrics.turns_total += 1
        self._log.append(Message.text("user", user_text))

        try:
            for round_no in range(1, self.max_rounds + 1):
                self._state = OrchestratorState.STREAMING_MODEL_RESPONSE
                metrics.model_rounds_total += 1
                turn = await self._stream_turn(round_no, trace_id)

                items: list = [TextContent(turn.text)] if turn.text else []
                items.extend(turn.tool_calls)
                self._log.append(Message(role="assistant", items=tuple(items)))

                if not turn.tool_calls:
                    logger.debug(
                        "turn finished after %d rounds, reason=%s",
                        round_no,
                        turn.stop_reason,
                        extra={"trace_id": trace_id, "round": round_no},
                    )
                    return TurnOutcome(text=turn.text, stop_reason=turn.stop_reason, rounds=round_no)

                self._state = OrchestratorState.EXECUTING_TOOLS
                results, failure = await self._execute_tools(turn, trace_id)
                self._log.extend(Message(role="tool", items=(result,)) for result in results)
                if failure is not None:
                    raise failure
        finally:
            self._state = OrchestratorState.AWAITING_USER_INPUT

        logger.warning(
            "turn hit max_rounds=%d",
            self.max_rounds,
            extra={"trace_id": trace_id, "round": self.max_rounds},
        )
        return TurnOutcome(text="", stop_reason="max_rounds", rounds=self.max_rounds)

    async def _stream_turn(self, round_no: int, trace_id: str) -> AssembledTurn:
        request = ChatRequest(
            model=self.model,
            messages=self._log.snapshot(),
            tools=self.tools.descriptors(),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        logger.debug(
            "round %d: querying model with %d messages",
            round_no,
            len(request.messages),
            extra={"trace_id": trace_id, "round": round_no},
        )

        async def consume() -> AssembledTurn:
            assembler = TurnAssembler()
            async for fragment in self.provider.chat_stream(request):
                text = assembler.feed(fragment)
                if text and self.callbacks.on_text_delta:
                    await _call_maybe_async(self.callbacks.on_text_delta, text)
            return assembler.finish()

        if self.model_turn_timeout is None:
            return await consume()
        try:
            return await asyncio.wait_for(consume(), timeout=self.model_turn_timeout)
        except asyncio.TimeoutError as exc:
            raise ModelTurnTimeoutError(
                f"Model did not finish streaming within {self.model_turn_timeout}s"
            ) from exc

    async def _execute_tools(
        self, turn: AssembledTurn, trace_id: str
    ) -> tuple[list[ToolCallResult], BaseException | None]:
        """Run all calls of one turn concurrently; return results in completion order.

        Calls naming the same sandbox path are serialised in request order, and a
        path stays locked until a timed-out handler on it has really finished.
        Every call gets a result even when a callback raises; the first such
        exception is returned alongside so the caller can re-raise it once the
        results are logged.
        """
        locks: dict[str, asyncio.Lock] = {}
        for request in turn.tool_calls:
            key = self.tools.path_key(request)
            if key is not None:
                locks.setdefault(key, asyncio.Lock())

        buffer: list[ToolCallResult] = []

        async def run_one(request: ToolCallRequest) -> None:
            key = self.tools.path_key(request)
            lock = locks[key] if key is not None else contextlib.nullcontext()
            async with lock:
                self._log_call(request, trace_id)
                if self.callbacks.on_tool_call:
                    await _call_maybe_async(self.callbacks.on_tool_call, request)

                started = time.monotonic()
                reason = turn.argument_errors.get(request.call_id)
                if reason is not None:
                    result = ToolCallResult(
                        call_id=request.call_id,
                        error=format_tool_error(ArgumentError(reason)),
                    )
                else:
                    result = await self.tools.execute(request)
                duration_ms = int((time.monotonic() - started) * 1000)

                self._log_result(request, result, trace_id, duration_ms)
                buffer.append(result)
                try:
                    if self.callbacks.on_tool_result:
                        await _call_maybe_async(self.callbacks.on_tool_result, result)
                finally:
                    if key is not None:
                        await self.tools.settle(request.call_id)

        outcomes = await asyncio.gather(
            *(run_one(request) for request in turn.tool_calls),
            return_exceptions=True,
        )

        failure: BaseException | None = None
        answered = {result.call_id for result in buffer}
        for request, outcome in zip(turn.tool_calls, outcomes):
            if not isinstance(outcome, BaseException):
                continue
            failure = failure or outcome
            if request.call_id not in answered:
                buffer.append(ToolCallResult(call_id=request.call_id, error=format_tool_error(outcome)))

        if sorted(r.call_id for r in buffer) != sorted(r.call_id for r in turn.tool_calls):
            raise ConversationStateError("Tool results do not match the requested calls.")
        return buffer, failure

    def _log_call(self, request: ToolCallRequest, trace_id: str) -> None:
        logger.log(
            logging.INFO if self.verbose else logging.DEBUG,
            "call %s: %s with arguments %s",
            request.call_id,
            request.tool_name,
            redact(request.arguments),
            extra={"trace_id": trace_id, "call_id": request.call_id, "tool_name": request.tool_name},
        )

    def _log_result(
        self, request: ToolCallRequest, result: ToolCallResult, trace_id: str, duration_ms: int
    ) -> None:
        logger.log(
            logging.INFO if self.verbose else logging.DEBUG,
            "result %s: %s",
            result.call_id,
            result.error if result.is_error else redact(result.result),
            extra={
                "trace_id": trace_id,
                "call_id": result.call_id,
                "tool_name": request.tool_name,
                "duration_ms": duration_ms,
                "outcome": "error" if result.is_error else "ok",
            },
        )


async def _call_maybe_async(fn: Callable, *args):
    result = fn(*args)
    if inspect.isawaitable(result):
        return await result
    return result

"""Bounded model/tool loop driving one conversation turn."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any

from rag_engine.agent.models import ChatModel, ModelResponse
from rag_engine.agent.router import ToolRouter
from rag_engine.config import AgentConfig
from rag_engine.errors import (
    ProviderError,
    RoutingError,
    RunTimeoutError,
    SchemaError,
    ToolExecutionError,
)
from rag_engine.obs.tracing import Timer, TraceStore
from rag_engine.types import (
    ChatExecutionResult,
    Content,
    EmptyContent,
    ExecutedTool,
    ExecutionTrace,
    Message,
    TextContent,
    TokenUsage,
    ToolCall,
    flatten_content,
    validate_conversation,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are a retrieval-augmented assistant with access to tools.

Rules:
1) Use `search_documents` to look up facts in the indexed documents before answering.
2) Cite supporting passages with their ids like [doc-chunk-0003].
3) If the tools return no evidence, say that you cannot verify the answer.
4) Avoid unnecessary tool calls; stop calling tools once you can answer.
""".strip()


class ChatOrchestrator:
    """Alternates model calls and tool execution until the model stops asking.

    Every run builds its own `ToolRouter` from `router_factory`, so concurrent
    runs share no mutable state. The loop is capped at `max_iterations` model
    calls; when the cap is hit the last model response is returned as-is.
    """

    def __init__(
        self,
        *,
        chat_model: ChatModel,
        router_factory: Callable[[], ToolRouter],
        config: AgentConfig | None = None,
        trace_store: TraceStore | None = None,
        system_prompt: str | None = SYSTEM_PROMPT,
    ) -> None:
        self.chat_model = chat_model
        self.router_factory = router_factory
        self.config = config or AgentConfig()
        self.trace_store = trace_store
        self.system_prompt = system_prompt

    async def run(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> ChatExecutionResult:
        """Run one turn and return the final message, summed usage and trace.

        Raises `InvalidConversationError` for malformed input history, and
        `ProviderError`/`SchemaError` when the model fails, or `RunTimeoutError`;
        those carry the partial `ExecutionTrace` on `exc.trace`. Tool failures
        never abort a run.
        """

        validate_conversation(messages)
        temperature = self.config.default_temperature if temperature is None else temperature
        question = next((m.text for m in reversed(messages) if m.role == "user"), "")
        trace = ExecutionTrace()
        state: dict[str, Any] = {"usage": None, "iterations": 0}
        result: ChatExecutionResult | None = None
        failure: Exception | None = None

        with Timer() as timer:
            coro = self._loop(messages, trace, state, model, temperature, max_tokens)
            try:
                if self.config.run_timeout_seconds is not None:
                    result = await asyncio.wait_for(coro, self.config.run_timeout_seconds)
                else:
                    result = await coro
            except (ProviderError, SchemaError) as exc:
                exc.trace = trace
                failure = exc
            except asyncio.TimeoutError:
                logger.error("Run exceeded %.1fs", self.config.run_timeout_seconds)
                timeout = RunTimeoutError(f"run exceeded {self.config.run_timeout_seconds}s")
                timeout.trace = trace
                failure = timeout

        if failure is not None or result is None:
            error = f"{type(failure).__name__}: {failure}" if failure else "no result"
            self._record(question, "", trace, state, timer, error)
            if failure is not None:
                raise failure
            raise SchemaError("model produced no response")

        self._record(question, result.final_message.text, trace, state, timer, None)
        return result

    async def _loop(
        self,
        messages: list[Message],
        trace: ExecutionTrace,
        state: dict[str, Any],
        model: str | None,
        temperature: float,
        max_tokens: int | None,
    ) -> ChatExecutionResult:
        conversation = list(messages)
        if self.system_prompt and not any(m.role == "system" for m in conversation):
            conversation.insert(0, Message.system(self.system_prompt))

        router = self.router_factory()
        try:
            catalog = await router.connect()
            response: ModelResponse | None = None
            while state["iterations"] < self.config.max_iterations:
                state["iterations"] += 1
                response = await self.chat_model.complete(
                    conversation,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    tools=catalog or None,
                )
                if response.usage is not None:
                    usage: TokenUsage | None = state["usage"]
                    state["usage"] = response.usage if usage is None else usage + response.usage

                tool_calls = response.message.tool_calls
                if not tool_calls:
                    break
                if state["iterations"] >= self.config.max_iterations:
                    logger.warning(
                        "Reached max iterations (%d) with %d pending tool call(s)",
                        self.config.max_iterations,
                        len(tool_calls),
                    )
                    break

                logger.info("Iteration %d: %d tool call(s)", state["iterations"], len(tool_calls))
                assistant = Message(
                    role="assistant",
                    content=_tool_call_content(response.message.content),
                    tool_calls=list(tool_calls),
                )
                conversation.append(assistant)
                trace.intermediate_messages.append(assistant)

                for call in tool_calls:
                    tool_message = await self._execute(router, call, trace)
                    conversation.append(tool_message)
                    trace.intermediate_messages.append(tool_message)
        finally:
            for exc in await router.close():
                logger.warning("Tool router close error: %s", exc)

        if response is None:
            raise SchemaError("model produced no response")

        final = response.message
        return ChatExecutionResult(
            final_message=Message(
                role="assistant",
                content=TextContent(flatten_content(final.content)),
                tool_calls=list(final.tool_calls),
            ),
            usage=state["usage"],
            executed_tools=list(trace.executed_tools),
            intermediate_messages=list(trace.intermediate_messages),
            iterations=state["iterations"],
        )

    async def _execute(self, router: ToolRouter, call: ToolCall, trace: ExecutionTrace) -> Message:
        preview = self.config.executed_tool_preview_chars
        arguments: Any = None
        start = perf_counter()
        try:
            arguments = _parse_arguments(call)
            output = await router.call_tool(call.name, arguments)
        except (RoutingError, ToolExecutionError) as exc:
            logger.error("Tool %s failed: %s", call.name, exc)
            text = f"Error: {exc}"
            failed = True
        else:
            text = output
            failed = False

        trace.executed_tools.append(
            ExecutedTool(
                id=call.id,
                name=call.name,
                arguments=arguments,
                result=text[:preview],
                failed=failed,
                latency_ms=(perf_counter() - start) * 1000.0,
            )
        )
        return Message.tool_result(call.id, text)

    def _record(
        self,
        question: str,
        answer: str,
        trace: ExecutionTrace,
        state: dict[str, Any],
        timer: Timer,
        error: str | None,
    ) -> None:
        if self.trace_store is None:
            return
        self.trace_store.create_record(
            question=question,
            answer=answer,
            executed_tools=trace.executed_tools,
            usage=state["usage"],
            iterations=state["iterations"],
            latency_ms=timer.elapsed_ms,
            error=error,
        )


def _parse_arguments(call: ToolCall) -> dict[str, Any]:
    try:
        arguments = json.loads(call.arguments or "{}")
    except json.JSONDecodeError as exc:
        raise ToolExecutionError(call.name, f"invalid JSON arguments: {exc}") from exc
    if not isinstance(arguments, dict):
        raise ToolExecutionError(call.name, "tool arguments must be a JSON object")
    return arguments


def _tool_call_content(content: Content) -> Content:
    """Empty text next to tool calls becomes EmptyContent; anything else is kept."""
    if not flatten_content(content).strip():
        return EmptyContent()
    return content

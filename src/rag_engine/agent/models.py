"""Chat model contract and the LangChain-backed implementation."""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from rag_engine.errors import ProviderError, SchemaError
from rag_engine.types import (
    Content,
    Message,
    PartsContent,
    TextContent,
    TokenUsage,
    ToolCall,
    ToolDescriptor,
    content_from_raw,
)


@dataclass(slots=True)
class ModelResponse:
    message: Message
    usage: TokenUsage | None = None


class ChatModel(ABC):
    """One model call: full history and optional tool catalog in, one message out."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float = 1.0,
        max_tokens: int | None = None,
        tools: list[ToolDescriptor] | None = None,
    ) -> ModelResponse:
        """Return the assistant reply; raise `ProviderError` on failure."""


class LangChainChatModel(ChatModel):
    """Adapts any LangChain chat model (e.g. `ChatOpenAI`) to `ChatModel`."""

    def __init__(self, llm: BaseChatModel) -> None:
        self.llm = llm

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float = 1.0,
        max_tokens: int | None = None,
        tools: list[ToolDescriptor] | None = None,
    ) -> ModelResponse:
        runnable: Any = self.llm
        if tools:
            runnable = self.llm.bind_tools([tool.to_openai_tool() for tool in tools])

        params: dict[str, Any] = {"temperature": temperature}
        if model:
            params["model"] = model
        if max_tokens is not None:
            params["max_tokens"] = max_tokens

        try:
            result = await runnable.ainvoke(to_langchain_messages(messages), **params)
        except Exception as exc:
            raise ProviderError(
                f"model call failed: {exc}",
                status=getattr(exc, "status_code", None),
                body=str(getattr(exc, "body", "") or ""),
            ) from exc

        if not isinstance(result, AIMessage):
            raise SchemaError(f"model returned {type(result).__name__}, expected AIMessage")
        return ModelResponse(message=from_langchain_message(result), usage=_usage(result))


def to_langchain_messages(messages: list[Message]) -> list[BaseMessage]:
    converted: list[BaseMessage] = []
    for message in messages:
        content = _to_langchain_content(message.content)
        if message.role == "system":
            converted.append(SystemMessage(content=content))
        elif message.role == "user":
            converted.append(HumanMessage(content=content))
        elif message.role == "tool":
            converted.append(ToolMessage(content=content, tool_call_id=message.tool_call_id or ""))
        else:
            tool_calls = []
            invalid_tool_calls = []
            for call in message.tool_calls:
                try:
                    args = json.loads(call.arguments or "{}")
                except json.JSONDecodeError as exc:
                    invalid_tool_calls.append(
                        {"name": call.name, "args": call.arguments, "id": call.id, "error": str(exc)}
                    )
                    continue
                tool_calls.append({"name": call.name, "args": args, "id": call.id, "type": "tool_call"})
            converted.append(
                AIMessage(content=content, tool_calls=tool_calls, invalid_tool_calls=invalid_tool_calls)
            )
    return converted


def from_langchain_message(message: AIMessage) -> Message:
    calls = [
        ToolCall(
            id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=call["name"],
            arguments=json.dumps(call.get("args") or {}, ensure_ascii=False),
        )
        for call in message.tool_calls
    ]
    # Arguments that failed to parse are kept raw so the tool result reports the error.
    calls.extend(
        ToolCall(
            id=call.get("id") or f"call_{uuid.uuid4().hex[:12]}",
            name=call.get("name") or "",
            arguments=call.get("args") or "",
        )
        for call in message.invalid_tool_calls
    )
    return Message(role="assistant", content=content_from_raw(message.content), tool_calls=calls)


def _to_langchain_content(content: Content) -> str | list[str | dict[str, Any]]:
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, PartsContent):
        parts: list[str | dict[str, Any]] = []
        for part in content.parts:
            item: dict[str, Any] = {"type": part.type, **part.data}
            if part.text is not None:
                item["text"] = part.text
            parts.append(item)
        return parts
    return ""


def _usage(message: AIMessage) -> TokenUsage | None:
    metadata = message.usage_metadata
    if not metadata:
        return None
    return TokenUsage(
        prompt_tokens=int(metadata.get("input_tokens", 0)),
        completion_tokens=int(metadata.get("output_tokens", 0)),
        total_tokens=int(metadata.get("total_tokens", 0)),
    )

"""Deterministic chat model used when no external LLM is configured."""

from __future__ import annotations

import json
import uuid
from typing import Any

from rag_engine.agent.models import ChatModel, ModelResponse
from rag_engine.agent.tools import SEARCH_TOOL_NAME
from rag_engine.obs.tracing import estimate_token_count
from rag_engine.types import Message, TokenUsage, ToolCall, ToolDescriptor

_NO_EVIDENCE = "I could not find verifiable evidence in the indexed documents."


class ExtractiveChatModel(ChatModel):
    """Answers from retrieval evidence without an LLM.

    Keeps the same tool-calling contract as a real model: on a fresh user turn
    it requests `search_documents`, and once the tool result is in the history
    it answers with the top passages and their record ids. Useful for local and
    offline environments where `OPENAI_API_KEY` is not configured.
    """

    def __init__(self, top_k: int = 3) -> None:
        self.top_k = top_k

    async def complete(
        self,
        messages: list[Message],
        *,
        model: str | None = None,
        temperature: float = 1.0,
        max_tokens: int | None = None,
        tools: list[ToolDescriptor] | None = None,
    ) -> ModelResponse:
        del model, temperature  # output is deterministic.
        last = messages[-1] if messages else None
        prompt_tokens = sum(estimate_token_count(m.text) for m in messages)
        can_search = any(tool.name == SEARCH_TOOL_NAME for tool in tools or [])

        if last is not None and last.role == "user" and can_search:
            call = ToolCall(
                id=f"call_{uuid.uuid4().hex[:12]}",
                name=SEARCH_TOOL_NAME,
                arguments=json.dumps({"query": last.text, "top_k": self.top_k}, ensure_ascii=False),
            )
            return ModelResponse(
                message=Message.assistant(None, [call]),
                usage=TokenUsage(prompt_tokens, 0, prompt_tokens),
            )

        answer = _NO_EVIDENCE
        if last is not None and last.role == "tool":
            answer = _build_answer(_parse_search_output(last.text))
        if max_tokens is not None:
            answer = " ".join(answer.split(" ")[:max_tokens])
        completion_tokens = estimate_token_count(answer)
        return ModelResponse(
            message=Message.assistant(answer),
            usage=TokenUsage(prompt_tokens, completion_tokens, prompt_tokens + completion_tokens),
        )


def _parse_search_output(raw: str) -> list[tuple[str, str]]:
    try:
        payload: Any = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(payload, dict):
        return []
    hits: list[tuple[str, str]] = []
    for item in payload.get("results", []):
        text = str(item.get("text", "")).replace("\n", " ").strip()
        if text:
            hits.append((str(item.get("id", "unknown")), text))
    return hits


def _build_answer(hits: list[tuple[str, str]]) -> str:
    if not hits:
        return _NO_EVIDENCE
    return "\n".join(
        f"{idx}. {snippet} [{record_id}]" for idx, (record_id, snippet) in enumerate(hits[:3], start=1)
    )

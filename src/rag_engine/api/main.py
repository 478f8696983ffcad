"""FastAPI entrypoint for chat/search/trace endpoints."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Literal

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from rag_engine.config import EngineSettings
from rag_engine.context import EngineContext, build_context
from rag_engine.errors import (
    IndexEmptyError,
    InvalidConversationError,
    ProviderError,
    RunTimeoutError,
    SchemaError,
)
from rag_engine.types import ExecutedTool, Message, ToolCall, content_from_raw


class ToolCallPayload(BaseModel):
    id: str
    name: str
    arguments: str = "{}"


class MessagePayload(BaseModel):
    role: Literal["user", "assistant", "system", "tool"]
    content: str | list[dict[str, Any]] | None = None
    tool_calls: list[ToolCallPayload] = Field(default_factory=list)
    tool_call_id: str | None = None

    def to_message(self) -> Message:
        return Message(
            role=self.role,
            content=content_from_raw(self.content),
            tool_calls=[ToolCall(id=c.id, name=c.name, arguments=c.arguments) for c in self.tool_calls],
            tool_call_id=self.tool_call_id,
        )


class ChatRequest(BaseModel):
    messages: list[MessagePayload] = Field(min_length=1)
    model: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=1)


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=3, ge=1, le=10)


def _message_json(message: Message) -> dict[str, Any]:
    payload: dict[str, Any] = {"role": message.role, "content": message.text}
    if message.tool_calls:
        payload["tool_calls"] = [asdict(call) for call in message.tool_calls]
    if message.tool_call_id:
        payload["tool_call_id"] = message.tool_call_id
    return payload


def _tools_json(tools: list[ExecutedTool]) -> list[dict[str, Any]]:
    return [asdict(tool) for tool in tools]


def create_app(context: EngineContext | None = None) -> FastAPI:
    ctx = context or build_context(EngineSettings.from_env())
    orchestrator = ctx.orchestrator()
    app = FastAPI(title="RAG Engine", version="0.1.0")

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "model": type(ctx.chat_model).__name__,
            "indexed_chunks": len(ctx.retriever.vector_store) if ctx.retriever else 0,
            "mcp_servers": [server.name for server in ctx.mcp_servers],
        }

    @app.post("/chat")
    async def chat(request: ChatRequest) -> dict[str, Any]:
        try:
            result = await orchestrator.run(
                [m.to_message() for m in request.messages],
                model=request.model,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except InvalidConversationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (ProviderError, SchemaError) as exc:
            detail: dict[str, Any] = {"error": str(exc)}
            if isinstance(exc, ProviderError):
                detail["status"] = exc.status
            if exc.trace is not None:
                detail["executedTools"] = _tools_json(exc.trace.executed_tools)
            raise HTTPException(status_code=502, detail=detail) from exc
        except RunTimeoutError as exc:
            timeout_detail: dict[str, Any] = {"error": str(exc)}
            if exc.trace is not None:
                timeout_detail["executedTools"] = _tools_json(exc.trace.executed_tools)
            raise HTTPException(status_code=504, detail=timeout_detail) from exc

        return {
            "message": _message_json(result.final_message),
            "usage": asdict(result.usage) if result.usage else None,
            "executedTools": _tools_json(result.executed_tools),
            "intermediateMessages": [_message_json(m) for m in result.intermediate_messages],
            "iterations": result.iterations,
        }

    @app.post("/sources/search")
    def source_search(request: SourceSearchRequest) -> dict[str, Any]:
        if ctx.retriever is None:
            return {"items": []}
        try:
            result = ctx.retriever.retrieve(request.query, top_k=request.top_k)
        except IndexEmptyError:
            return {"items": []}
        except ProviderError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {
            "relaxed": result.relaxed,
            "items": [
                {
                    "id": hit.record_id,
                    "doc_id": hit.document_ref,
                    "score": hit.score,
                    "text": hit.chunk.text,
                    "chunk_index": hit.chunk.sequence_index,
                    "previous": hit.previous.text if hit.previous else None,
                    "next": hit.next.text if hit.next else None,
                }
                for hit in result.hits
            ],
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in ctx.trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = ctx.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return ctx.trace_store.summary()

    return app

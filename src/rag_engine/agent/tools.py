"""Built-in retrieval tool exposed to the model."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import BaseModel, Field

from rag_engine.agent.registry import ToolRegistry, ToolSpec
from rag_engine.errors import IndexEmptyError, IndexMissingError
from rag_engine.retrieval.retriever import SemanticRetriever

logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "search_documents"

_SEARCH_DESCRIPTION = """
Semantic (vector) search over the indexed knowledge base.

Pass keywords or phrases you expect to appear in the text rather than a direct
question: "fixed assets depreciation" works better than "How is depreciation
calculated?". Returns the most similar passages with their neighboring context.
""".strip()


class SearchToolInput(BaseModel):
    query: str = Field(min_length=1, description="Keywords or phrases to search for.")
    top_k: int = Field(default=3, ge=1, le=10, description="Number of passages to return.")


def register_retrieval_tools(registry: ToolRegistry, retriever: SemanticRetriever | None) -> None:
    """Register `search_documents` backed by `retriever`.

    With no retriever (index never built) the tool still registers and answers
    with a structured error payload.
    """

    def _search(input_data: SearchToolInput) -> str:
        return search_documents(retriever, input_data.query, input_data.top_k)

    registry.register(
        ToolSpec(
            name=SEARCH_TOOL_NAME,
            description=_SEARCH_DESCRIPTION,
            args_schema=SearchToolInput,
            handler=_search,
            tags=["retrieval", "rag"],
        )
    )


def search_documents(retriever: SemanticRetriever | None, query: str, top_k: int = 3) -> str:
    """Run a retrieval and render it as the JSON text handed back to the model."""
    logger.info("search_documents query=%r top_k=%d", query, top_k)
    if retriever is None:
        return _dump({"query": query, "resultsCount": 0, "error": "index is not loaded"})

    try:
        result = retriever.retrieve(query, top_k=top_k)
    except (IndexEmptyError, IndexMissingError) as exc:
        return _dump({"query": query, "resultsCount": 0, "error": str(exc)})

    if not result.hits:
        return _dump(
            {
                "query": query,
                "resultsCount": 0,
                "threshold": result.threshold,
                "message": "No relevant documents found",
            }
        )

    limit = retriever.config.max_snippet_chars
    context = "\n\n--- --- ---\n\n".join(
        f"[Document {rank}, relevance: {hit.score * 100:.2f}%]\n{_truncate(hit.text_with_context(), limit)}"
        for rank, hit in enumerate(result.hits, start=1)
    )
    payload: dict[str, Any] = {
        "query": query,
        "resultsCount": len(result.hits),
        "totalDocumentsInIndex": len(retriever.vector_store),
        "threshold": result.threshold,
        "relaxed": result.relaxed,
        "results": [
            {
                "rank": rank,
                "id": hit.record_id,
                "score": round(hit.score, 4),
                "chunkIndex": hit.chunk.sequence_index,
                "text": _truncate(hit.chunk.text, limit),
            }
            for rank, hit in enumerate(result.hits, start=1)
        ],
        "context": context,
    }
    if result.variants:
        payload["expandedQueries"] = result.variants
    return _dump(payload)


def _dump(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2)


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."

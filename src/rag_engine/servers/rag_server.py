"""Stdio MCP server exposing `search_documents` over a persisted index."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated

from fastmcp import FastMCP
from pydantic import Field

from rag_engine.agent.tools import SEARCH_TOOL_NAME, search_documents
from rag_engine.config import RetrievalConfig
from rag_engine.errors import IndexMissingError
from rag_engine.ingest.embedder import Embedder
from rag_engine.retrieval.retriever import SemanticRetriever
from rag_engine.retrieval.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)


def create_rag_server(
    index_path: str | Path,
    embedder: Embedder,
    config: RetrievalConfig | None = None,
    name: str = "rag-search-server",
) -> FastMCP:
    """Build the server; a missing index is reported per call, not at startup."""
    try:
        retriever: SemanticRetriever | None = SemanticRetriever(
            InMemoryVectorStore.load(index_path), embedder, config
        )
    except IndexMissingError as exc:
        logger.warning("%s; run `rag-engine index` first", exc)
        retriever = None

    mcp = FastMCP(name=name)

    @mcp.tool(
        name=SEARCH_TOOL_NAME,
        description="Semantic search over the indexed documents. Pass keywords, not questions.",
    )
    def tool_search_documents(
        query: Annotated[str, Field(description="Keywords or phrases to search for.")],
        top_k: Annotated[int, Field(ge=1, le=10, description="Number of passages to return.")] = 3,
    ) -> str:
        return search_documents(retriever, query, top_k)

    return mcp

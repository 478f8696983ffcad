"""Configuration models for the RAG engine."""

from __future__ import annotations

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field, TypeAdapter, model_validator


class ChunkingConfig(BaseModel):
    """Configures sentence-bounded chunking with character overlap."""

    size: int = Field(default=1200, ge=1)
    overlap: int = Field(default=200, ge=0)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap >= self.size:
            raise ValueError("overlap must be less than size")
        return self


class EmbeddingConfig(BaseModel):
    """Configures the remote embedding service and batch pacing."""

    url: str = "https://openrouter.ai/api/v1/embeddings"
    model: str = "qwen/qwen3-embedding-8b"
    api_key: str | None = None
    dimension: int = Field(default=4096, ge=1)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    pause_every: int = Field(default=10, ge=1)
    pause_seconds: float = Field(default=1.0, ge=0.0)


class RetrievalConfig(BaseModel):
    """Configures thresholds, relaxation and query expansion scoring."""

    final_k: int = Field(default=3, ge=1)
    max_k: int = Field(default=10, ge=1)
    min_score: float = Field(default=0.2, ge=-1.0, le=1.0)
    floor_score: float = Field(default=0.05, ge=-1.0, le=1.0)
    original_query_boost: float = Field(default=1.1, ge=1.0)
    include_neighbors: bool = True
    max_snippet_chars: int = Field(default=800, ge=16)


class AgentConfig(BaseModel):
    """Configures the orchestrator loop."""

    max_iterations: int = Field(default=10, ge=1)
    default_temperature: float = Field(default=1.0, ge=0.0, le=2.0)
    run_timeout_seconds: float | None = Field(default=None, gt=0.0)
    executed_tool_preview_chars: int = Field(default=1000, ge=1)


class McpServerConfig(BaseModel):
    """Launch parameters for one out-of-process MCP tool server."""

    name: str = Field(min_length=1)
    command: str = Field(min_length=1)
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] | None = None
    connect_timeout_seconds: float = Field(default=20.0, gt=0.0)


_MCP_SERVER_LIST = TypeAdapter(list[McpServerConfig])


def load_mcp_servers(path: str | Path) -> list[McpServerConfig]:
    """Load MCP server launch configs from a JSON array file."""
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    return _MCP_SERVER_LIST.validate_python(payload)


class EngineSettings(BaseModel):
    """Process-level settings resolved from the environment."""

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str | None = None
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    index_path: Path | None = None
    mcp_servers: list[McpServerConfig] = Field(default_factory=list)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        embedding = EmbeddingConfig(
            url=os.getenv("EMBEDDING_URL", EmbeddingConfig().url),
            model=os.getenv("EMBEDDING_MODEL", EmbeddingConfig().model),
            api_key=os.getenv("EMBEDDING_API_KEY") or os.getenv("OPENROUTER_API_KEY"),
            dimension=int(os.getenv("EMBEDDING_DIMENSION", EmbeddingConfig().dimension)),
        )
        index_path = os.getenv("RAG_ENGINE_INDEX_PATH")
        servers_path = os.getenv("RAG_ENGINE_MCP_SERVERS")
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_base_url=os.getenv("OPENAI_BASE_URL"),
            embedding=embedding,
            index_path=Path(index_path) if index_path else None,
            mcp_servers=load_mcp_servers(servers_path) if servers_path else [],
        )

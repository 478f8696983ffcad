"""Retrieval-augmented, tool-using conversation engine."""

from .config import AgentConfig, ChunkingConfig, RetrievalConfig

__all__ = ["AgentConfig", "ChunkingConfig", "RetrievalConfig"]

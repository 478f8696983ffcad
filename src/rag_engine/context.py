"""Explicit wiring of engine components, threaded into every run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from rag_engine.agent.fallback import ExtractiveChatModel
from rag_engine.agent.models import ChatModel, LangChainChatModel
from rag_engine.agent.orchestrator import ChatOrchestrator
from rag_engine.agent.providers import McpStdioToolProvider, RegistryToolProvider, ToolProvider
from rag_engine.agent.registry import ToolRegistry
from rag_engine.agent.router import ToolRouter
from rag_engine.agent.tools import register_retrieval_tools
from rag_engine.config import AgentConfig, EngineSettings, McpServerConfig, RetrievalConfig
from rag_engine.errors import IndexMissingError
from rag_engine.ingest.embedder import Embedder, HashingEmbedder, HttpEmbedder
from rag_engine.obs.tracing import TraceStore
from rag_engine.retrieval.expansion import QueryExpander
from rag_engine.retrieval.retriever import SemanticRetriever
from rag_engine.retrieval.vector_store import InMemoryVectorStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class EngineContext:
    """Everything a run needs; no process-wide singletons.

    The vector store and registry are read-only during runs. Each call to
    `router_factory` returns a fresh router with fresh MCP connections.
    """

    chat_model: ChatModel
    registry: ToolRegistry
    retriever: SemanticRetriever | None = None
    mcp_servers: list[McpServerConfig] = field(default_factory=list)
    agent_config: AgentConfig = field(default_factory=AgentConfig)
    trace_store: TraceStore = field(default_factory=TraceStore)

    def router_factory(self) -> ToolRouter:
        providers: list[ToolProvider] = [RegistryToolProvider(self.registry)]
        providers.extend(McpStdioToolProvider(server) for server in self.mcp_servers)
        return ToolRouter(providers)

    def orchestrator(self) -> ChatOrchestrator:
        return ChatOrchestrator(
            chat_model=self.chat_model,
            router_factory=self.router_factory,
            config=self.agent_config,
            trace_store=self.trace_store,
        )


def build_context(
    settings: EngineSettings,
    *,
    vector_store: InMemoryVectorStore | None = None,
    embedder: Embedder | None = None,
    chat_model: ChatModel | None = None,
    expander: QueryExpander | None = None,
    retrieval_config: RetrievalConfig | None = None,
    agent_config: AgentConfig | None = None,
) -> EngineContext:
    """Resolve components from settings; explicit arguments take precedence."""
    if embedder is None:
        embedder = HttpEmbedder(settings.embedding) if settings.embedding.api_key else HashingEmbedder()
    if vector_store is None:
        vector_store = _load_store(settings)

    retriever = SemanticRetriever(vector_store, embedder, retrieval_config, expander)
    registry = ToolRegistry()
    register_retrieval_tools(registry, retriever)

    return EngineContext(
        chat_model=chat_model or _create_chat_model(settings),
        registry=registry,
        retriever=retriever,
        mcp_servers=list(settings.mcp_servers),
        agent_config=agent_config or AgentConfig(),
    )


def _load_store(settings: EngineSettings) -> InMemoryVectorStore:
    if settings.index_path is None:
        return InMemoryVectorStore()
    try:
        return InMemoryVectorStore.load(settings.index_path)
    except IndexMissingError as exc:
        logger.warning("%s; starting with an empty index", exc)
        return InMemoryVectorStore()


def _create_chat_model(settings: EngineSettings) -> ChatModel:
    if not settings.openai_api_key:
        logger.info("OPENAI_API_KEY not set, using the extractive fallback model")
        return ExtractiveChatModel()

    from langchain_openai import ChatOpenAI

    kwargs: dict[str, Any] = {"model": settings.openai_model, "api_key": settings.openai_api_key}
    if settings.openai_base_url:
        kwargs["base_url"] = settings.openai_base_url
    return LangChainChatModel(ChatOpenAI(**kwargs))

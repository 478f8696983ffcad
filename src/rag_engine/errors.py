"""Error taxonomy shared by ingest, retrieval and the agent loop."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rag_engine.types import ExecutionTrace


class RagEngineError(Exception):
    """Base class for engine errors.

    `trace` is filled by the orchestrator when a run aborts, so callers keep the
    tool calls that were already executed.
    """

    trace: "ExecutionTrace | None" = None


class ProviderError(RagEngineError):
    """A model or embedding provider failed at transport level or returned non-success."""

    def __init__(self, message: str, *, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class ServiceError(ProviderError):
    """Embedding service transport or authentication failure."""


class SchemaError(RagEngineError):
    """A provider response did not have the expected shape."""


class RoutingError(RagEngineError):
    """A tool call could not be routed to a provider."""


class UnknownToolError(RoutingError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ProviderUnavailableError(RoutingError):
    def __init__(self, name: str, provider_id: str) -> None:
        super().__init__(f"Provider {provider_id} for tool {name} is not connected")
        self.name = name
        self.provider_id = provider_id


class ToolExecutionError(RagEngineError):
    """A routed tool call failed inside its provider."""

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = name


class IndexEmptyError(RagEngineError):
    """The vector index has no records yet."""


class IndexMissingError(RagEngineError):
    """No persisted index exists at the configured path."""


class InvalidConversationError(RagEngineError, ValueError):
    """The caller supplied a message history that breaks role invariants."""


class RunTimeoutError(RagEngineError):
    """A run exceeded `AgentConfig.run_timeout_seconds`."""

"""Tool providers: independent sources of tools behind the router."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp import types as mcp_types
from mcp.client.stdio import stdio_client

from rag_engine.agent.registry import ToolRegistry
from rag_engine.config import McpServerConfig
from rag_engine.errors import ToolExecutionError
from rag_engine.types import ParameterSchema, ToolDescriptor

logger = logging.getLogger(__name__)


class ToolProvider(ABC):
    """A process or service exposing tools under a stable `provider_id`."""

    provider_id: str

    @abstractmethod
    async def start(self) -> list[ToolDescriptor]:
        """Start the provider and return its tool catalog."""

    @abstractmethod
    async def call(self, name: str, arguments: dict[str, Any]) -> str:
        """Run one tool and return its text result."""

    @abstractmethod
    async def close(self) -> None:
        """Release the provider's resources."""


class RegistryToolProvider(ToolProvider):
    """Serves tools registered in an in-process `ToolRegistry`.

    Handlers are synchronous and may block on embedding calls, so they run on a
    worker thread.
    """

    def __init__(self, registry: ToolRegistry, provider_id: str = "local") -> None:
        self.provider_id = provider_id
        self._registry = registry

    async def start(self) -> list[ToolDescriptor]:
        return [spec.describe(self.provider_id) for spec in self._registry.specs()]

    async def call(self, name: str, arguments: dict[str, Any]) -> str:
        return await asyncio.to_thread(self._registry.execute, name, arguments)

    async def close(self) -> None:
        return None


class McpStdioToolProvider(ToolProvider):
    """Launches an MCP server as a subprocess and talks to it over stdio."""

    def __init__(self, config: McpServerConfig) -> None:
        self.provider_id = config.name
        self.config = config
        self._stack: AsyncExitStack | None = None
        self._session: ClientSession | None = None

    async def start(self) -> list[ToolDescriptor]:
        params = StdioServerParameters(
            command=self.config.command,
            args=list(self.config.args),
            env=self.config.env,
        )
        timeout = self.config.connect_timeout_seconds
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(params))
            session = await stack.enter_async_context(ClientSession(read, write))
            await asyncio.wait_for(session.initialize(), timeout)
            listed = await asyncio.wait_for(session.list_tools(), timeout)
            descriptors = [descriptor_from_mcp_tool(tool, self.provider_id) for tool in listed.tools]
        except Exception:
            await stack.aclose()
            raise

        self._stack = stack
        self._session = session
        logger.info("Connected to MCP server %s, tools: %d", self.provider_id, len(descriptors))
        return descriptors

    async def call(self, name: str, arguments: dict[str, Any]) -> str:
        if self._session is None:
            raise ToolExecutionError(name, f"MCP server {self.provider_id} is not connected")
        logger.info("Calling %s on %s with %s", name, self.provider_id, arguments)
        result = await self._session.call_tool(name, arguments)
        text = text_from_tool_result(result)
        if result.isError:
            raise ToolExecutionError(name, text)
        return text

    async def close(self) -> None:
        stack, self._stack, self._session = self._stack, None, None
        if stack is not None:
            await stack.aclose()
            logger.info("Closed MCP server %s", self.provider_id)


def descriptor_from_mcp_tool(tool: mcp_types.Tool, provider_id: str) -> ToolDescriptor:
    return ToolDescriptor(
        name=tool.name,
        description=tool.description or "",
        parameter_schema=ParameterSchema.from_json_schema(tool.inputSchema),
        provider_id=provider_id,
    )


def text_from_tool_result(result: mcp_types.CallToolResult) -> str:
    """First text item of an MCP tool result, else the whole result as JSON."""
    for item in result.content:
        if isinstance(item, mcp_types.TextContent):
            return item.text
    return result.model_dump_json(indent=2)

"""Aggregates several tool providers under one tool namespace."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from rag_engine.agent.providers import ToolProvider
from rag_engine.errors import (
    ProviderUnavailableError,
    RoutingError,
    ToolExecutionError,
    UnknownToolError,
)
from rag_engine.types import ToolDescriptor

logger = logging.getLogger(__name__)


class ToolRouter:
    """Connects providers, resolves tool names and isolates provider failures.

    A provider that fails to start is skipped; the remaining tools stay usable.
    Tool names are unique across providers: the first provider to declare a
    name owns it, later declarations are logged and listed in
    `shadowed_tools`. One router belongs to one run.
    """

    def __init__(self, providers: Sequence[ToolProvider]) -> None:
        self._providers = list(providers)
        self._started: dict[str, ToolProvider] = {}
        self._owners: dict[str, str] = {}
        self._catalog: list[ToolDescriptor] = []
        self._connected = False
        self.failed_providers: dict[str, str] = {}
        self.shadowed_tools: list[ToolDescriptor] = []

    @property
    def catalog(self) -> list[ToolDescriptor]:
        return list(self._catalog)

    async def connect(self) -> list[ToolDescriptor]:
        if self._connected:
            return self.catalog
        self._connected = True

        for provider in self._providers:
            try:
                descriptors = await provider.start()
            except Exception as exc:
                logger.warning("Tool provider %s failed to start: %s", provider.provider_id, exc)
                self.failed_providers[provider.provider_id] = str(exc)
                continue

            self._started[provider.provider_id] = provider
            for descriptor in descriptors:
                owner = self._owners.get(descriptor.name)
                if owner is not None:
                    logger.warning(
                        "Tool %s from %s ignored: already provided by %s",
                        descriptor.name,
                        descriptor.provider_id,
                        owner,
                    )
                    self.shadowed_tools.append(descriptor)
                    continue
                self._owners[descriptor.name] = provider.provider_id
                self._catalog.append(descriptor)

        logger.info(
            "Tool router connected: %d tools from %d/%d providers",
            len(self._catalog),
            len(self._started),
            len(self._providers),
        )
        return self.catalog

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        provider_id = self._owners.get(name)
        if provider_id is None:
            raise UnknownToolError(name)
        provider = self._started.get(provider_id)
        if provider is None:
            raise ProviderUnavailableError(name, provider_id)

        try:
            return await provider.call(name, arguments)
        except (RoutingError, ToolExecutionError):
            raise
        except Exception as exc:
            raise ToolExecutionError(name, f"{type(exc).__name__}: {exc}") from exc

    async def close(self) -> list[Exception]:
        """Close every started provider, newest first; failures are logged and returned.

        MCP stdio providers hold task groups opened in this task, which must be
        exited in reverse order of entry.
        """
        errors: list[Exception] = []
        for provider_id, provider in reversed(list(self._started.items())):
            try:
                await provider.close()
            except Exception as exc:
                logger.error("Failed to close tool provider %s: %s", provider_id, exc)
                errors.append(exc)
        self._started.clear()
        return errors

    async def __aenter__(self) -> "ToolRouter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> None:
        await self.close()

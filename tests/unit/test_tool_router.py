import asyncio
from collections.abc import Callable
from typing import Any

import pytest

from rag_engine.agent.providers import RegistryToolProvider, ToolProvider
from rag_engine.agent.registry import ToolRegistry
from rag_engine.agent.router import ToolRouter
from rag_engine.agent.tools import SEARCH_TOOL_NAME, register_retrieval_tools
from rag_engine.errors import ProviderUnavailableError, ToolExecutionError, UnknownToolError
from rag_engine.types import ParameterSchema, ToolDescriptor


class FakeProvider(ToolProvider):
    def __init__(
        self,
        provider_id: str,
        tools: dict[str, Callable[[dict[str, Any]], str]],
        *,
        fail_start: bool = False,
        fail_close: bool = False,
    ) -> None:
        self.provider_id = provider_id
        self.tools = tools
        self.fail_start = fail_start
        self.fail_close = fail_close
        self.start_calls = 0
        self.closed = False

    async def start(self) -> list[ToolDescriptor]:
        self.start_calls += 1
        if self.fail_start:
            raise ConnectionError(f"{self.provider_id} cannot start")
        return [
            ToolDescriptor(name=name, description=name, parameter_schema=ParameterSchema(), provider_id=self.provider_id)
            for name in self.tools
        ]

    async def call(self, name: str, arguments: dict[str, Any]) -> str:
        return self.tools[name](arguments)

    async def close(self) -> None:
        self.closed = True
        if self.fail_close:
            raise RuntimeError(f"{self.provider_id} close failed")


def _explode(arguments: dict[str, Any]) -> str:
    raise ZeroDivisionError("division by zero")


def test_router_resolves_tools_across_providers() -> None:
    async def scenario() -> None:
        weather = FakeProvider("weather", {"forecast": lambda args: f"sunny in {args['city']}"})
        notes = FakeProvider("notes", {"lookup": lambda args: "note text"})
        async with ToolRouter([weather, notes]) as router:
            assert [tool.name for tool in router.catalog] == ["forecast", "lookup"]
            assert await router.call_tool("forecast", {"city": "Oslo"}) == "sunny in Oslo"
            assert await router.call_tool("lookup", {}) == "note text"
            with pytest.raises(UnknownToolError):
                await router.call_tool("missing", {})
        assert weather.closed and notes.closed

    asyncio.run(scenario())


def test_failed_provider_is_skipped() -> None:
    async def scenario() -> None:
        broken = FakeProvider("broken", {"a": lambda args: "a"}, fail_start=True)
        healthy = FakeProvider("healthy", {"b": lambda args: "b"})
        router = ToolRouter([broken, healthy])

        catalog = await router.connect()

        assert [tool.name for tool in catalog] == ["b"]
        assert "broken" in router.failed_providers
        assert await router.call_tool("b", {}) == "b"
        with pytest.raises(UnknownToolError):
            await router.call_tool("a", {})
        assert await router.close() == []
        assert broken.closed is False

    asyncio.run(scenario())


def test_first_provider_wins_name_collisions() -> None:
    async def scenario() -> None:
        first = FakeProvider("first", {"search": lambda args: "from first"})
        second = FakeProvider("second", {"search": lambda args: "from second"})
        router = ToolRouter([first, second])

        catalog = await router.connect()

        assert [(tool.name, tool.provider_id) for tool in catalog] == [("search", "first")]
        assert [tool.provider_id for tool in router.shadowed_tools] == ["second"]
        assert await router.call_tool("search", {}) == "from first"
        await router.close()

    asyncio.run(scenario())


def test_connect_is_idempotent() -> None:
    async def scenario() -> None:
        provider = FakeProvider("p", {"t": lambda args: "t"})
        router = ToolRouter([provider])

        await router.connect()
        await router.connect()

        assert provider.start_calls == 1
        assert len(router.catalog) == 1

    asyncio.run(scenario())


def test_call_after_close_reports_unavailable_provider() -> None:
    async def scenario() -> None:
        router = ToolRouter([FakeProvider("p", {"t": lambda args: "t"})])
        await router.connect()
        await router.close()

        with pytest.raises(ProviderUnavailableError):
            await router.call_tool("t", {})

    asyncio.run(scenario())


def test_close_collects_errors_and_continues() -> None:
    async def scenario() -> None:
        failing = FakeProvider("failing", {"a": lambda args: "a"}, fail_close=True)
        other = FakeProvider("other", {"b": lambda args: "b"})
        router = ToolRouter([failing, other])
        await router.connect()

        errors = await router.close()

        assert len(errors) == 1
        assert isinstance(errors[0], RuntimeError)
        assert other.closed is True

    asyncio.run(scenario())


def test_provider_exceptions_become_tool_execution_errors() -> None:
    async def scenario() -> None:
        router = ToolRouter([FakeProvider("p", {"divide": _explode})])
        await router.connect()

        with pytest.raises(ToolExecutionError) as exc_info:
            await router.call_tool("divide", {})

        assert "ZeroDivisionError" in str(exc_info.value)
        assert exc_info.value.name == "divide"

    asyncio.run(scenario())


def test_registry_provider_exposes_local_tools() -> None:
    async def scenario() -> None:
        registry = ToolRegistry()
        register_retrieval_tools(registry, None)
        router = ToolRouter([RegistryToolProvider(registry)])

        catalog = await router.connect()
        output = await router.call_tool(SEARCH_TOOL_NAME, {"query": "policy"})

        assert catalog[0].provider_id == "local"
        assert catalog[0].parameter_schema.required == ("query",)
        assert '"resultsCount": 0' in output

    asyncio.run(scenario())


def test_close_runs_in_reverse_start_order() -> None:
    order: list[str] = []

    class OrderedProvider(FakeProvider):
        async def close(self) -> None:
            order.append(self.provider_id)
            await super().close()

    async def scenario() -> None:
        router = ToolRouter(
            [
                OrderedProvider("a", {"a": lambda args: "a"}),
                OrderedProvider("skipped", {}, fail_start=True),
                OrderedProvider("b", {"b": lambda args: "b"}),
            ]
        )
        await router.connect()

        assert await router.close() == []

    asyncio.run(scenario())
    assert order == ["b", "a"]

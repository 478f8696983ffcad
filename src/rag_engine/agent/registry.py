"""In-process tool registry built on Pydantic v2 models."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rag_engine.types import ParameterSchema, ToolDescriptor


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], str]
    tags: list[str] = Field(default_factory=list)

    def invoke(self, payload: dict[str, Any]) -> str:
        data = self.args_schema.model_validate(payload)
        return self.handler(data)

    def describe(self, provider_id: str) -> ToolDescriptor:
        return ToolDescriptor(
            name=self.name,
            description=self.description,
            parameter_schema=ParameterSchema.from_json_schema(
                self.args_schema.model_json_schema()
            ),
            provider_id=provider_id,
        )


class ToolRegistry:
    """Stores tool specs and executes them with argument validation.

    The registry holds no per-run state, so one instance can back the local
    provider of many concurrent runs.
    """

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def execute(self, name: str, payload: dict[str, Any]) -> str:
        spec = self._tools.get(name)
        if spec is None:
            raise KeyError(f"Unknown tool: {name}")
        return spec.invoke(payload)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

from rag_engine.errors import InvalidConversationError

Role = Literal["user", "assistant", "system", "tool"]


@dataclass(slots=True)
class ParsedDocument:
    """A parsed source document before chunking."""

    doc_id: str
    text: str
    metadata: dict[str, Any]


@dataclass(frozen=True, slots=True)
class Chunk:
    """A sentence-bounded slice of one source document."""

    text: str
    start_offset: int
    end_offset: int
    sequence_index: int


@dataclass(slots=True)
class EmbeddingRecord:
    """A stored vector with the chunk it was computed from."""

    record_id: str
    vector: list[float]
    chunk: Chunk
    document_ref: str


@dataclass(slots=True)
class ScoredChunk:
    """A retrieval hit with its unscored neighbor context."""

    record_id: str
    chunk: Chunk
    document_ref: str
    score: float
    previous: Chunk | None = None
    next: Chunk | None = None
    query: str | None = None

    def text_with_context(self, separator: str = "\n\n--- --- ---\n\n") -> str:
        parts = [c.text for c in (self.previous, self.chunk, self.next) if c is not None]
        return separator.join(parts)


# Message content is a tagged union. EmptyContent is kept distinct from
# TextContent("") so tool-call-only assistant turns round-trip unchanged.


@dataclass(frozen=True, slots=True)
class TextContent:
    text: str
    kind: Literal["text"] = "text"


@dataclass(frozen=True, slots=True)
class EmptyContent:
    kind: Literal["empty"] = "empty"


@dataclass(frozen=True, slots=True)
class ContentPart:
    type: str
    text: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PartsContent:
    parts: tuple[ContentPart, ...]
    kind: Literal["parts"] = "parts"


Content = Union[TextContent, EmptyContent, PartsContent]


def flatten_content(content: Content) -> str:
    """Collapse content into plain text, keeping only text parts."""
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, PartsContent):
        return "".join(part.text or "" for part in content.parts if part.type == "text")
    return ""


def content_from_raw(raw: Any) -> Content:
    """Build tagged content from a provider value (str, None or part list)."""
    if raw is None:
        return EmptyContent()
    if isinstance(raw, str):
        return TextContent(raw)
    if isinstance(raw, list):
        parts: list[ContentPart] = []
        for item in raw:
            if isinstance(item, str):
                parts.append(ContentPart(type="text", text=item))
            elif isinstance(item, dict):
                text = item.get("text")
                parts.append(
                    ContentPart(
                        type=str(item.get("type", "text")),
                        text=str(text) if text is not None else None,
                        data={k: v for k, v in item.items() if k not in {"type", "text"}},
                    )
                )
        return PartsContent(tuple(parts))
    return TextContent(str(raw))


@dataclass(frozen=True, slots=True)
class ToolCall:
    """A model request to run a named tool; `arguments` is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass(slots=True)
class Message:
    role: Role
    content: Content = field(default_factory=EmptyContent)
    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_call_id: str | None = None

    @classmethod
    def system(cls, text: str) -> "Message":
        return cls(role="system", content=TextContent(text))

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role="user", content=TextContent(text))

    @classmethod
    def assistant(cls, text: str | None, tool_calls: list[ToolCall] | None = None) -> "Message":
        content: Content = TextContent(text) if text is not None else EmptyContent()
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool_result(cls, tool_call_id: str, text: str) -> "Message":
        return cls(role="tool", content=TextContent(text), tool_call_id=tool_call_id)

    @property
    def text(self) -> str:
        return flatten_content(self.content)


def validate_conversation(messages: list[Message]) -> None:
    """Reject histories containing orphaned tool messages.

    A tool message must answer an id emitted by the most recent assistant
    message, with only other tool messages in between. Each id is answered once.
    """

    open_ids: set[str] = set()
    for position, message in enumerate(messages):
        if message.role == "tool":
            if message.tool_call_id is None or message.tool_call_id not in open_ids:
                raise InvalidConversationError(
                    f"tool message at position {position} does not answer a pending tool call"
                )
            open_ids.discard(message.tool_call_id)
            continue
        if message.role == "assistant":
            open_ids = {call.id for call in message.tool_calls}
        else:
            open_ids = set()


@dataclass(slots=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True, slots=True)
class ParameterSchema:
    """JSON-schema description of a tool's arguments, carried opaquely."""

    properties: dict[str, Any] = field(default_factory=dict)
    required: tuple[str, ...] = ()
    type: str = "object"

    @classmethod
    def from_json_schema(cls, schema: dict[str, Any] | None) -> "ParameterSchema":
        schema = schema or {}
        return cls(
            properties=dict(schema.get("properties") or {}),
            required=tuple(schema.get("required") or ()),
            type=str(schema.get("type") or "object"),
        )

    def to_json_schema(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "properties": self.properties,
            "required": list(self.required),
        }


@dataclass(frozen=True, slots=True)
class ToolDescriptor:
    name: str
    description: str
    parameter_schema: ParameterSchema
    provider_id: str

    def to_openai_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameter_schema.to_json_schema(),
            },
        }


@dataclass(slots=True)
class ExecutedTool:
    """One tool call executed during a run; `result` is a bounded preview."""

    id: str
    name: str
    arguments: Any
    result: str
    failed: bool = False
    latency_ms: float = 0.0


@dataclass(slots=True)
class ExecutionTrace:
    """Intermediate messages and executed tools of one orchestrator run."""

    intermediate_messages: list[Message] = field(default_factory=list)
    executed_tools: list[ExecutedTool] = field(default_factory=list)


@dataclass(slots=True)
class ChatExecutionResult:
    final_message: Message
    usage: TokenUsage | None
    executed_tools: list[ExecutedTool]
    intermediate_messages: list[Message]
    iterations: int = 0

import pytest

from rag_engine.errors import InvalidConversationError
from rag_engine.types import (
    ContentPart,
    EmptyContent,
    Message,
    PartsContent,
    TextContent,
    TokenUsage,
    ToolCall,
    content_from_raw,
    flatten_content,
    validate_conversation,
)


def test_flatten_content_keeps_text_parts_only() -> None:
    parts = PartsContent(
        (
            ContentPart(type="text", text="Hello, "),
            ContentPart(type="image_url", data={"image_url": {"url": "https://example.test/a.png"}}),
            ContentPart(type="text", text="world"),
        )
    )

    assert flatten_content(parts) == "Hello, world"
    assert flatten_content(TextContent("plain")) == "plain"
    assert flatten_content(EmptyContent()) == ""


def test_content_from_raw_distinguishes_empty_from_blank() -> None:
    assert content_from_raw(None) == EmptyContent()
    assert content_from_raw("") == TextContent("")
    parsed = content_from_raw([{"type": "text", "text": "hi"}, {"type": "image_url", "image_url": {"url": "u"}}])
    assert isinstance(parsed, PartsContent)
    assert parsed.parts[1].data == {"image_url": {"url": "u"}}
    assert Message.assistant(None, [ToolCall(id="c1", name="t")]).content == EmptyContent()


def test_valid_tool_exchange_is_accepted() -> None:
    validate_conversation(
        [
            Message.user("question"),
            Message.assistant(None, [ToolCall(id="c1", name="a"), ToolCall(id="c2", name="b")]),
            Message.tool_result("c2", "two"),
            Message.tool_result("c1", "one"),
            Message.assistant("answer"),
            Message.user("follow-up"),
        ]
    )


@pytest.mark.parametrize(
    "messages",
    [
        [Message.user("question"), Message.tool_result("c1", "orphan")],
        [
            Message.assistant(None, [ToolCall(id="c1", name="a")]),
            Message.tool_result("c1", "one"),
            Message.tool_result("c1", "again"),
        ],
        [
            Message.assistant(None, [ToolCall(id="c1", name="a")]),
            Message.user("interrupt"),
            Message.tool_result("c1", "late"),
        ],
        [Message(role="tool", content=TextContent("no id"))],
    ],
)
def test_orphaned_tool_messages_are_rejected(messages: list[Message]) -> None:
    with pytest.raises(InvalidConversationError):
        validate_conversation(messages)


def test_token_usage_adds_fieldwise() -> None:
    total = TokenUsage(10, 5, 15) + TokenUsage(1, 2, 3)

    assert total == TokenUsage(11, 7, 18)

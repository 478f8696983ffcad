import asyncio
import json

from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from rag_engine.agent.fallback import ExtractiveChatModel
from rag_engine.agent.models import LangChainChatModel, from_langchain_message, to_langchain_messages
from rag_engine.agent.tools import SEARCH_TOOL_NAME
from rag_engine.types import EmptyContent, Message, ParameterSchema, TextContent, ToolCall, ToolDescriptor

SEARCH_DESCRIPTOR = ToolDescriptor(
    name=SEARCH_TOOL_NAME,
    description="search",
    parameter_schema=ParameterSchema(),
    provider_id="local",
)


def test_messages_convert_to_langchain_roles() -> None:
    converted = to_langchain_messages(
        [
            Message.system("rules"),
            Message.user("question"),
            Message.assistant(None, [ToolCall(id="c1", name="lookup", arguments='{"q": "x"}')]),
            Message.tool_result("c1", "result"),
        ]
    )

    assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage, ToolMessage]
    assert converted[2].tool_calls[0]["args"] == {"q": "x"}
    assert converted[2].content == ""
    assert converted[3].tool_call_id == "c1"


def test_invalid_arguments_are_kept_as_invalid_tool_calls() -> None:
    converted = to_langchain_messages(
        [Message.assistant(None, [ToolCall(id="c1", name="lookup", arguments="{not json")])]
    )

    assert converted[0].tool_calls == []
    assert converted[0].invalid_tool_calls[0]["args"] == "{not json"


def test_from_langchain_message_serializes_arguments() -> None:
    message = from_langchain_message(
        AIMessage(content="", tool_calls=[{"name": "lookup", "args": {"q": "x"}, "id": "c1"}])
    )

    assert message.role == "assistant"
    assert message.tool_calls == [ToolCall(id="c1", name="lookup", arguments='{"q": "x"}')]
    assert message.content == TextContent("")


def test_langchain_model_returns_assistant_message() -> None:
    llm = GenericFakeChatModel(messages=iter([AIMessage(content="hello there")]))

    response = asyncio.run(LangChainChatModel(llm).complete([Message.user("hi")]))

    assert response.message.text == "hello there"
    assert response.message.tool_calls == []


def test_extractive_model_requests_search_then_answers() -> None:
    model = ExtractiveChatModel(top_k=2)
    history = [Message.user("encryption policy")]

    first = asyncio.run(model.complete(history, tools=[SEARCH_DESCRIPTOR]))

    call = first.message.tool_calls[0]
    assert first.message.content == EmptyContent()
    assert call.name == SEARCH_TOOL_NAME
    assert json.loads(call.arguments) == {"query": "encryption policy", "top_k": 2}

    tool_output = json.dumps({"results": [{"id": "policy-chunk-0000", "text": "Encrypt data at rest."}]})
    history += [first.message, Message.tool_result(call.id, tool_output)]
    second = asyncio.run(model.complete(history, tools=[SEARCH_DESCRIPTOR]))

    assert second.message.tool_calls == []
    assert second.message.text == "1. Encrypt data at rest. [policy-chunk-0000]"
    assert second.usage is not None and second.usage.completion_tokens > 0


def test_extractive_model_without_tools_declines() -> None:
    response = asyncio.run(ExtractiveChatModel().complete([Message.user("anything")]))

    assert response.message.text == "I could not find verifiable evidence in the indexed documents."

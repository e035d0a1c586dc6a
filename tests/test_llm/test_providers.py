"""Tests for giver.llm.providers — data model and provider adapters."""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest

from giver.llm.providers import (
    END_TURN,
    MAX_TOKENS,
    TOOL_USE,
    AnthropicProvider,
    GenerateResponse,
    Message,
    OpenAIProvider,
    Provider,
    ProviderError,
    TextBlock,
    ToolResult,
    ToolUseBlock,
    Usage,
    _messages_to_anthropic,
    _messages_to_openai,
    create_provider,
    tools_to_anthropic,
    tools_to_openai,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

SAMPLE_TOOL = {
    "name": "read_file",
    "description": "Read a file.",
    "input_schema": {
        "type": "object",
        "properties": {"path": {"type": "string", "description": "File path"}},
        "required": ["path"],
    },
}

HISTORY = [
    Message(role="user", content="Read /tmp/a"),
    Message(
        role="assistant",
        content=[
            TextBlock(text="Reading."),
            ToolUseBlock(id="call_1", name="read_file", input={"path": "/tmp/a"}),
        ],
    ),
    Message(role="user", content=[ToolResult(tool_use_id="call_1", content="1\thello")]),
]


def _make_anthropic_response(
    blocks: list[MagicMock], stop_reason: str = "end_turn", model: str = "claude-test"
) -> MagicMock:
    usage = MagicMock()
    usage.input_tokens = 10
    usage.output_tokens = 5

    resp = MagicMock()
    resp.content = blocks
    resp.stop_reason = stop_reason
    resp.usage = usage
    resp.model = model
    return resp


def _anthropic_text_block(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    return block


def _anthropic_tool_block(tool_id: str, name: str, arguments: dict[str, Any]) -> MagicMock:
    block = MagicMock()
    block.type = "tool_use"
    block.id = tool_id
    block.name = name
    block.input = arguments
    return block


def _make_openai_response(
    text: str | None = "Hello!",
    tool_calls: list[MagicMock] | None = None,
    finish_reason: str = "stop",
    with_usage: bool = True,
) -> MagicMock:
    message = MagicMock()
    message.content = text
    message.tool_calls = tool_calls

    choice = MagicMock()
    choice.message = message
    choice.finish_reason = finish_reason

    resp = MagicMock()
    resp.choices = [choice]
    resp.model = "gpt-test"
    if with_usage:
        resp.usage = MagicMock()
        resp.usage.prompt_tokens = 12
        resp.usage.completion_tokens = 7
    else:
        resp.usage = None
    return resp


def _openai_tool_call(call_id: str | None, name: str, arguments: str) -> MagicMock:
    tc = MagicMock()
    tc.id = call_id
    tc.function.name = name
    tc.function.arguments = arguments
    return tc


def _anthropic_client(response: Any = None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=response, side_effect=error)
    return client


def _openai_client(response: Any = None, error: Exception | None = None) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=response, side_effect=error)
    return client


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


class TestMessage:
    def test_dict_roundtrip_with_blocks(self) -> None:
        for msg in HISTORY:
            assert Message.from_dict(msg.to_dict()) == msg

    def test_unknown_block_type(self) -> None:
        with pytest.raises(ValueError, match="Unknown content block type"):
            Message.from_dict({"role": "user", "content": [{"type": "image"}]})

    def test_response_text_joins_text_blocks(self) -> None:
        resp = GenerateResponse(
            content=[
                TextBlock(text="a"),
                ToolUseBlock(id="1", name="t"),
                TextBlock(text="b"),
            ],
            stop_reason=TOOL_USE,
        )
        assert resp.text == "a\nb"
        assert [b.id for b in resp.tool_uses] == ["1"]

    def test_usage_add(self) -> None:
        assert Usage(1, 2) + Usage(3, 4) == Usage(4, 6)


class TestToolTranslation:
    def test_anthropic_shape(self) -> None:
        assert tools_to_anthropic([SAMPLE_TOOL]) == [SAMPLE_TOOL]

    def test_openai_shape(self) -> None:
        assert tools_to_openai([SAMPLE_TOOL]) == [
            {
                "type": "function",
                "function": {
                    "name": "read_file",
                    "description": "Read a file.",
                    "parameters": SAMPLE_TOOL["input_schema"],
                },
            }
        ]


class TestMessageTranslation:
    def test_anthropic_keeps_blocks(self) -> None:
        translated = _messages_to_anthropic(HISTORY)
        assert translated[0] == {"role": "user", "content": "Read /tmp/a"}
        assert translated[1]["content"][1] == {
            "type": "tool_use",
            "id": "call_1",
            "name": "read_file",
            "input": {"path": "/tmp/a"},
        }
        assert translated[2]["content"][0]["type"] == "tool_result"
        assert translated[2]["content"][0]["tool_use_id"] == "call_1"

    def test_anthropic_drops_empty_assistant_turn(self) -> None:
        messages = [
            Message(role="user", content="hi"),
            Message(role="assistant", content=[TextBlock(text="")]),
        ]
        assert _messages_to_anthropic(messages) == [{"role": "user", "content": "hi"}]

    def test_openai_format(self) -> None:
        translated = _messages_to_openai("be nice", HISTORY)
        assert translated[0] == {"role": "system", "content": "be nice"}
        assert translated[1] == {"role": "user", "content": "Read /tmp/a"}
        assistant = translated[2]
        assert assistant["content"] == "Reading."
        call = assistant["tool_calls"][0]
        assert call["id"] == "call_1"
        assert json.loads(call["function"]["arguments"]) == {"path": "/tmp/a"}
        assert translated[3] == {"role": "tool", "tool_call_id": "call_1", "content": "1\thello"}

    def test_openai_tool_only_turn_has_null_content(self) -> None:
        msg = Message(role="assistant", content=[ToolUseBlock(id="x", name="t")])
        assert _messages_to_openai("", [msg])[0]["content"] is None

    def test_openai_drops_empty_assistant_turn(self) -> None:
        messages = [
            Message(role="user", content="hi"),
            Message(role="assistant", content=[]),
            Message(role="assistant", content=[TextBlock(text="")]),
            Message(role="user", content="still there?"),
        ]
        assert _messages_to_openai("", messages) == [
            {"role": "user", "content": "hi"},
            {"role": "user", "content": "still there?"},
        ]


# ---------------------------------------------------------------------------
# Anthropic provider
# ---------------------------------------------------------------------------


class TestAnthropicProvider:
    @pytest.mark.asyncio
    async def test_text_response(self) -> None:
        client = _anthropic_client(_make_anthropic_response([_anthropic_text_block("Hello!")]))
        provider = AnthropicProvider(_client=client)

        resp = await provider.generate(
            model="claude-test", max_tokens=100, system="sys", tools=[], messages=HISTORY[:1]
        )

        assert resp.text == "Hello!"
        assert resp.stop_reason == END_TURN
        assert resp.usage == Usage(10, 5)
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["max_tokens"] == 100
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_tool_use_response(self) -> None:
        blocks = [
            _anthropic_text_block("Let me look."),
            _anthropic_tool_block("toolu_1", "read_file", {"path": "/x"}),
        ]
        client = _anthropic_client(_make_anthropic_response(blocks, stop_reason="tool_use"))
        provider = AnthropicProvider(_client=client)

        resp = await provider.generate(
            model="m", max_tokens=10, system="", tools=[SAMPLE_TOOL], messages=HISTORY[:1]
        )

        assert resp.stop_reason == TOOL_USE
        assert resp.tool_uses == [ToolUseBlock(id="toolu_1", name="read_file", input={"path": "/x"})]
        assert client.messages.create.call_args.kwargs["tools"] == [SAMPLE_TOOL]

    @pytest.mark.asyncio
    async def test_other_stop_reasons_map_to_end_turn(self) -> None:
        client = _anthropic_client(
            _make_anthropic_response([_anthropic_text_block("x")], stop_reason="stop_sequence")
        )
        resp = await AnthropicProvider(_client=client).generate(
            model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
        )
        assert resp.stop_reason == END_TURN

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self) -> None:
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        error = anthropic.APIConnectionError(request=request)
        provider = AnthropicProvider(_client=_anthropic_client(error=error))
        with pytest.raises(ProviderError):
            await provider.generate(
                model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
            )

    def test_satisfies_protocol(self) -> None:
        assert isinstance(AnthropicProvider(_client=MagicMock()), Provider)


# ---------------------------------------------------------------------------
# OpenAI-compatible provider
# ---------------------------------------------------------------------------


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_text_response(self) -> None:
        client = _openai_client(_make_openai_response("Hi there"))
        provider = OpenAIProvider(_client=client)

        resp = await provider.generate(
            model="gpt-test", max_tokens=50, system="sys", tools=[], messages=HISTORY[:1]
        )

        assert resp.text == "Hi there"
        assert resp.stop_reason == END_TURN
        assert resp.usage == Usage(12, 7)
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert "tools" not in kwargs

    @pytest.mark.asyncio
    async def test_tool_calls_force_tool_use(self) -> None:
        calls = [_openai_tool_call("call_9", "read_file", '{"path": "/x"}')]
        client = _openai_client(_make_openai_response(None, calls, finish_reason="stop"))

        resp = await OpenAIProvider(_client=client).generate(
            model="m", max_tokens=10, system="", tools=[SAMPLE_TOOL], messages=HISTORY[:1]
        )

        assert resp.stop_reason == TOOL_USE
        assert resp.content == [ToolUseBlock(id="call_9", name="read_file", input={"path": "/x"})]

    @pytest.mark.asyncio
    async def test_missing_call_id_generated(self) -> None:
        calls = [_openai_tool_call(None, "read_file", "{}")]
        client = _openai_client(_make_openai_response(None, calls, finish_reason="tool_calls"))
        resp = await OpenAIProvider(_client=client).generate(
            model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
        )
        assert resp.tool_uses[0].id.startswith("call_")

    @pytest.mark.asyncio
    async def test_bad_arguments_become_empty(self) -> None:
        calls = [_openai_tool_call("c", "read_file", "{not json")]
        client = _openai_client(_make_openai_response(None, calls))
        resp = await OpenAIProvider(_client=client).generate(
            model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
        )
        assert resp.tool_uses[0].input == {}

    @pytest.mark.asyncio
    async def test_length_maps_to_max_tokens(self) -> None:
        client = _openai_client(_make_openai_response("trunc", finish_reason="length"))
        resp = await OpenAIProvider(_client=client).generate(
            model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
        )
        assert resp.stop_reason == MAX_TOKENS

    @pytest.mark.asyncio
    async def test_missing_usage(self) -> None:
        client = _openai_client(_make_openai_response("x", with_usage=False))
        resp = await OpenAIProvider(_client=client).generate(
            model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
        )
        assert resp.usage == Usage(0, 0)

    @pytest.mark.asyncio
    async def test_api_error_wrapped(self) -> None:
        request = httpx.Request("POST", "http://localhost:11434/v1/chat/completions")
        error = openai.APIConnectionError(request=request)
        provider = OpenAIProvider(provider_name="ollama", _client=_openai_client(error=error))
        with pytest.raises(ProviderError, match="ollama"):
            await provider.generate(
                model="m", max_tokens=10, system="", tools=[], messages=HISTORY[:1]
            )


class TestCreateProvider:
    def test_anthropic(self) -> None:
        assert create_provider("anthropic", anthropic_api_key="sk-ant").name == "anthropic"

    def test_openai(self) -> None:
        assert create_provider("openai", openai_api_key="sk").name == "openai"

    def test_ollama(self) -> None:
        provider = create_provider("ollama")
        assert provider.name == "ollama"
        assert str(provider._client.base_url).startswith("http://localhost:11434/v1")  # type: ignore[attr-defined]

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider type"):
            create_provider("gemini-cli")

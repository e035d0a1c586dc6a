"""Conversation data model and LLM providers — Anthropic and OpenAI-compatible.

The tool loop only ever sees the neutral types defined here
(:class:`Message`, :class:`TextBlock`, :class:`ToolUseBlock`,
:class:`ToolResult`, :class:`GenerateResponse`).  Each provider translates
them to and from its own wire format, so the loop stays backend-agnostic.
The OpenAI provider also serves local Ollama models through Ollama's
OpenAI-compatible endpoint.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import anthropic
import openai

logger = logging.getLogger("giver.llm.providers")

END_TURN = "end_turn"
TOOL_USE = "tool_use"
MAX_TOKENS = "max_tokens"


class ProviderError(Exception):
    """Raised when a backend call fails at the transport or process level."""


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class TextBlock:
    """Plain text emitted by the model."""

    text: str

    def to_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ToolUseBlock:
    """A single tool call requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": "tool_use", "id": self.id, "name": self.name, "input": self.input}


ContentBlock = TextBlock | ToolUseBlock


@dataclass
class ToolResult:
    """The output of one tool call, fed back to the model."""

    tool_use_id: str
    content: str
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": "tool_result",
            "tool_use_id": self.tool_use_id,
            "content": self.content,
            "is_error": self.is_error,
        }


@dataclass
class Message:
    """One turn of the conversation.

    ``content`` is plain text, the content blocks of an assistant turn, or
    the tool results of a synthetic user turn.
    """

    role: str
    content: str | list[ContentBlock] | list[ToolResult]

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [b.to_dict() for b in self.content]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        """Deserialize from a dict produced by :meth:`to_dict`."""
        content = data["content"]
        if isinstance(content, str):
            return cls(role=data["role"], content=content)
        blocks: list[Any] = []
        for block in content:
            kind = block.get("type")
            if kind == "text":
                blocks.append(TextBlock(text=block["text"]))
            elif kind == "tool_use":
                blocks.append(
                    ToolUseBlock(id=block["id"], name=block["name"], input=block.get("input", {}))
                )
            elif kind == "tool_result":
                blocks.append(
                    ToolResult(
                        tool_use_id=block["tool_use_id"],
                        content=block["content"],
                        is_error=block.get("is_error", False),
                    )
                )
            else:
                raise ValueError(f"Unknown content block type: {kind!r}")
        return cls(role=data["role"], content=blocks)


@dataclass
class Usage:
    """Token usage for a single LLM call."""

    input_tokens: int
    output_tokens: int

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
        )


@dataclass
class GenerateResponse:
    """Normalized response from any provider."""

    content: list[ContentBlock]
    stop_reason: str
    usage: Usage = field(default_factory=lambda: Usage(input_tokens=0, output_tokens=0))
    model: str | None = None

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.content if isinstance(b, TextBlock))

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [b for b in self.content if isinstance(b, ToolUseBlock)]


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class Provider(Protocol):
    """Interface that all backends must implement."""

    @property
    def name(self) -> str: ...

    async def generate(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[Message],
    ) -> GenerateResponse: ...


# ---------------------------------------------------------------------------
# Tool schema translation
# ---------------------------------------------------------------------------


def tools_to_anthropic(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Neutral tool definitions already use Anthropic's shape."""
    return [
        {
            "name": t["name"],
            "description": t["description"],
            "input_schema": t["input_schema"],
        }
        for t in tools
    ]


def tools_to_openai(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert neutral tool definitions to OpenAI's function calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t["name"],
                "description": t["description"],
                "parameters": t["input_schema"],
            },
        }
        for t in tools
    ]


# ---------------------------------------------------------------------------
# Message format translation helpers
# ---------------------------------------------------------------------------


def _messages_to_anthropic(messages: list[Message]) -> list[dict[str, Any]]:
    """Translate neutral messages to Anthropic content-block messages.

    Empty text blocks are dropped and an assistant turn left with no
    blocks is skipped entirely, since the API rejects empty content.
    """
    translated: list[dict[str, Any]] = []
    for msg in messages:
        if isinstance(msg.content, str):
            translated.append({"role": msg.role, "content": msg.content})
            continue

        blocks: list[dict[str, Any]] = []
        for block in msg.content:
            if isinstance(block, TextBlock):
                if block.text:
                    blocks.append({"type": "text", "text": block.text})
            else:
                blocks.append(block.to_dict())
        if blocks:
            translated.append({"role": msg.role, "content": blocks})
    return translated


def _messages_to_openai(system: str, messages: list[Message]) -> list[dict[str, Any]]:
    """Translate neutral messages to OpenAI chat format.

    - The system prompt becomes a leading ``system`` message
    - Assistant tool calls → OpenAI ``tool_calls`` with JSON-encoded arguments
    - Each tool result becomes its own ``tool`` message
    - Assistant turns with neither text nor tool calls are dropped
    """
    translated: list[dict[str, Any]] = []
    if system:
        translated.append({"role": "system", "content": system})

    for msg in messages:
        if isinstance(msg.content, str):
            translated.append({"role": msg.role, "content": msg.content})
            continue

        if msg.role == "assistant":
            texts = [b.text for b in msg.content if isinstance(b, TextBlock) and b.text]
            calls = [b for b in msg.content if isinstance(b, ToolUseBlock)]
            if not texts and not calls:
                continue
            oai_msg: dict[str, Any] = {
                "role": "assistant",
                "content": "\n".join(texts) if texts else None,
            }
            if calls:
                oai_msg["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.input)},
                    }
                    for tc in calls
                ]
            translated.append(oai_msg)
        else:
            for block in msg.content:
                if isinstance(block, ToolResult):
                    translated.append({
                        "role": "tool",
                        "tool_call_id": block.tool_use_id,
                        "content": block.content,
                    })
                elif isinstance(block, TextBlock):
                    translated.append({"role": msg.role, "content": block.text})

    return translated


def _parse_openai_arguments(raw: str | None) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Discarding unparseable tool arguments: %.200s", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Anthropic provider
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """Provider using the Anthropic Messages API."""

    def __init__(self, api_key: str | None = None, *, _client: Any = None) -> None:
        if _client is not None:
            self._client = _client
        else:
            self._client = anthropic.AsyncAnthropic(api_key=api_key)

    @property
    def name(self) -> str:
        return "anthropic"

    async def generate(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[Message],
    ) -> GenerateResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": _messages_to_anthropic(messages),
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools_to_anthropic(tools)

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            raise ProviderError(f"Anthropic request failed: {exc}") from exc

        content: list[ContentBlock] = []
        for block in response.content:
            if block.type == "text":
                content.append(TextBlock(text=block.text))
            elif block.type == "tool_use":
                content.append(ToolUseBlock(id=block.id, name=block.name, input=dict(block.input)))

        stop_reason = response.stop_reason
        if stop_reason not in (TOOL_USE, MAX_TOKENS):
            stop_reason = END_TURN

        return GenerateResponse(
            content=content,
            stop_reason=stop_reason,
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
            ),
            model=response.model,
        )


# ---------------------------------------------------------------------------
# OpenAI-compatible provider
# ---------------------------------------------------------------------------


class OpenAIProvider:
    """Provider using the OpenAI Chat Completions API.

    Pass *base_url* to target any compatible server, e.g. Ollama at
    ``http://localhost:11434/v1``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        *,
        provider_name: str = "openai",
        _client: Any = None,
    ) -> None:
        self._name = provider_name
        if _client is not None:
            self._client = _client
        else:
            # Local servers ignore the key but the SDK insists on one.
            self._client = openai.AsyncOpenAI(api_key=api_key or "unused", base_url=base_url)

    @property
    def name(self) -> str:
        return self._name

    async def generate(
        self,
        *,
        model: str,
        max_tokens: int,
        system: str,
        tools: list[dict[str, Any]],
        messages: list[Message],
    ) -> GenerateResponse:
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": _messages_to_openai(system, messages),
        }
        if tools:
            kwargs["tools"] = tools_to_openai(tools)

        try:
            response = await self._client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            raise ProviderError(f"{self._name} request failed: {exc}") from exc

        choice = response.choices[0]
        message = choice.message

        content: list[ContentBlock] = []
        if message.content:
            content.append(TextBlock(text=message.content))
        for tc in message.tool_calls or []:
            content.append(
                ToolUseBlock(
                    id=tc.id or f"call_{uuid.uuid4().hex[:12]}",
                    name=tc.function.name,
                    input=_parse_openai_arguments(tc.function.arguments),
                )
            )

        # Some local servers report "stop" even when they emitted tool calls.
        if any(isinstance(b, ToolUseBlock) for b in content):
            stop_reason = TOOL_USE
        elif choice.finish_reason == "length":
            stop_reason = MAX_TOKENS
        else:
            stop_reason = END_TURN

        usage = Usage(input_tokens=0, output_tokens=0)
        if response.usage is not None:
            usage = Usage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
            )

        return GenerateResponse(
            content=content,
            stop_reason=stop_reason,
            usage=usage,
            model=response.model,
        )


def create_provider(
    provider_type: str,
    *,
    anthropic_api_key: str | None = None,
    openai_api_key: str | None = None,
    base_url: str | None = None,
) -> Provider:
    """Build the provider named by *provider_type* (``anthropic``, ``openai`` or ``ollama``)."""
    if provider_type == "anthropic":
        return AnthropicProvider(api_key=anthropic_api_key)
    if provider_type == "openai":
        return OpenAIProvider(api_key=openai_api_key, base_url=base_url)
    if provider_type == "ollama":
        return OpenAIProvider(
            base_url=base_url or "http://localhost:11434/v1", provider_name="ollama"
        )
    raise ValueError(f"Unknown provider type: {provider_type!r}")

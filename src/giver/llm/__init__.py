"""LLM integration — conversation model, providers, and tool loop."""

from giver.llm.providers import (
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
    create_provider,
)
from giver.llm.tool_loop import (
    MAX_ROUNDS_MESSAGE,
    ToolLoopEvent,
    ToolLoopEventType,
    ToolLoopResult,
    run_tool_loop,
)

__all__ = [
    "MAX_ROUNDS_MESSAGE",
    "AnthropicProvider",
    "GenerateResponse",
    "Message",
    "OpenAIProvider",
    "Provider",
    "ProviderError",
    "TextBlock",
    "ToolLoopEvent",
    "ToolLoopEventType",
    "ToolLoopResult",
    "ToolResult",
    "ToolUseBlock",
    "Usage",
    "create_provider",
    "run_tool_loop",
]

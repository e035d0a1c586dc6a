"""Agentic tool use loop — the core execution engine.

Sends the conversation + tool schemas to a provider, executes requested tool
calls one at a time in the order the model emitted them, feeds the results
back, and loops until the model stops asking for tools or the round cap is
reached.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from giver.llm.providers import TOOL_USE, Message, ToolResult, Usage

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from giver.llm.providers import Provider, ToolUseBlock
    from giver.tools.registry import ToolRegistry

logger = logging.getLogger("giver.llm.tool_loop")

MAX_TOOL_RESULT_CHARS = 50_000
MAX_ROUNDS_MESSAGE = "(Maximum tool rounds reached. Please try again with a simpler request.)"

# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class ToolLoopResult:
    """Result of a complete tool loop run."""

    content: str
    rounds: int
    tool_calls_made: int
    total_usage: Usage
    hit_max_rounds: bool = False


class ToolLoopEventType(Enum):
    """Lifecycle events emitted during the tool loop."""

    LLM_CALL_START = "llm_call_start"
    LLM_CALL_COMPLETE = "llm_call_complete"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_COMPLETE = "tool_call_complete"
    LOOP_COMPLETE = "loop_complete"


@dataclass
class ToolLoopEvent:
    """Event payload for tool loop lifecycle callbacks."""

    type: ToolLoopEventType
    round: int
    tool_name: str | None = None
    tool_input: dict[str, Any] | None = None
    is_error: bool = False
    usage_delta: Usage | None = None
    total_usage: Usage | None = None
    tool_calls_made: int = 0
    content_preview: str | None = None


async def _fire_event(
    on_event: Callable[[ToolLoopEvent], Awaitable[None]] | None,
    event: ToolLoopEvent,
) -> None:
    """Fire an event callback, swallowing any errors."""
    if on_event is None:
        return
    try:
        await on_event(event)
    except Exception:
        logger.warning("on_event callback error for %s", event.type, exc_info=True)


# ---------------------------------------------------------------------------
# Tool execution
# ---------------------------------------------------------------------------


async def execute_tool_call(tools: ToolRegistry, block: ToolUseBlock) -> ToolResult:
    """Run one tool call and wrap the outcome as a :class:`ToolResult`.

    Any exception, including an unknown tool name, becomes an error result
    so the model can react to it.
    """
    logger.info("Tool %s(%.80s)", block.name, json.dumps(block.input, default=str))
    try:
        output = await tools.execute(block.name, block.input)
    except Exception as exc:
        message = str(exc) or type(exc).__name__
        logger.warning("Tool %s failed: %s", block.name, message)
        return ToolResult(tool_use_id=block.id, content=f"Error: {message}", is_error=True)
    return ToolResult(tool_use_id=block.id, content=output[:MAX_TOOL_RESULT_CHARS])


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------


async def run_tool_loop(
    provider: Provider,
    history: list[Message],
    tools: ToolRegistry,
    system_prompt: str,
    model: str,
    max_tokens: int,
    max_rounds: int = 20,
    on_event: Callable[[ToolLoopEvent], Awaitable[None]] | None = None,
) -> ToolLoopResult:
    """Run the agentic tool use loop.

    Parameters
    ----------
    provider:
        The backend to call.
    history:
        Conversation so far, ending with the new user message.  Mutated in
        place: each completed assistant turn and each batch of tool results
        is appended as soon as it exists.
    tools:
        Registry used both for the tool schemas and for dispatch.
    max_rounds:
        Maximum number of provider calls before giving up with
        :data:`MAX_ROUNDS_MESSAGE`.
    on_event:
        Optional async callback for lifecycle events.

    Provider exceptions propagate; the assistant turn being generated is
    never appended when the call fails.
    """
    tool_schemas = tools.to_tool_definitions()
    total_usage = Usage(input_tokens=0, output_tokens=0)
    total_tool_calls = 0

    for round_num in range(1, max_rounds + 1):
        await _fire_event(
            on_event,
            ToolLoopEvent(
                type=ToolLoopEventType.LLM_CALL_START,
                round=round_num,
                tool_calls_made=total_tool_calls,
                total_usage=total_usage,
            ),
        )

        response = await provider.generate(
            model=model,
            max_tokens=max_tokens,
            system=system_prompt,
            tools=tool_schemas,
            messages=list(history),
        )
        total_usage = total_usage + response.usage

        await _fire_event(
            on_event,
            ToolLoopEvent(
                type=ToolLoopEventType.LLM_CALL_COMPLETE,
                round=round_num,
                usage_delta=response.usage,
                total_usage=total_usage,
                tool_calls_made=total_tool_calls,
            ),
        )

        history.append(Message(role="assistant", content=list(response.content)))

        tool_uses = response.tool_uses
        if response.stop_reason != TOOL_USE or not tool_uses:
            text = response.text
            await _fire_event(
                on_event,
                ToolLoopEvent(
                    type=ToolLoopEventType.LOOP_COMPLETE,
                    round=round_num,
                    total_usage=total_usage,
                    tool_calls_made=total_tool_calls,
                    content_preview=text[:200],
                ),
            )
            return ToolLoopResult(
                content=text,
                rounds=round_num,
                tool_calls_made=total_tool_calls,
                total_usage=total_usage,
            )

        # Strictly sequential, in emission order
        results: list[ToolResult] = []
        for block in tool_uses:
            await _fire_event(
                on_event,
                ToolLoopEvent(
                    type=ToolLoopEventType.TOOL_CALL_START,
                    round=round_num,
                    tool_name=block.name,
                    tool_input=block.input,
                    tool_calls_made=total_tool_calls,
                    total_usage=total_usage,
                ),
            )
            result = await execute_tool_call(tools, block)
            results.append(result)
            total_tool_calls += 1
            await _fire_event(
                on_event,
                ToolLoopEvent(
                    type=ToolLoopEventType.TOOL_CALL_COMPLETE,
                    round=round_num,
                    tool_name=block.name,
                    is_error=result.is_error,
                    tool_calls_made=total_tool_calls,
                    total_usage=total_usage,
                ),
            )

        history.append(Message(role="user", content=results))

    # Reached max rounds
    logger.warning("Stopped after %d rounds (%d tool calls)", max_rounds, total_tool_calls)
    await _fire_event(
        on_event,
        ToolLoopEvent(
            type=ToolLoopEventType.LOOP_COMPLETE,
            round=max_rounds,
            total_usage=total_usage,
            tool_calls_made=total_tool_calls,
            content_preview=MAX_ROUNDS_MESSAGE,
        ),
    )
    return ToolLoopResult(
        content=MAX_ROUNDS_MESSAGE,
        rounds=max_rounds,
        tool_calls_made=total_tool_calls,
        total_usage=total_usage,
        hit_max_rounds=True,
    )

"""The Agent — owns the conversation and drives the tool loop."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from giver.llm.providers import Message
from giver.llm.tool_loop import run_tool_loop

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from giver.config import GiverConfig
    from giver.llm.providers import Provider
    from giver.llm.tool_loop import ToolLoopEvent
    from giver.tools.registry import ToolRegistry

logger = logging.getLogger("giver.agent")

DEFAULT_SYSTEM_PROMPT = (
    "You are Giver, a helpful assistant running on the user's own machine. "
    "You can read, write and edit files, list directories, run shell commands "
    "and search the web using the tools provided. Access outside the allowed "
    "directories needs the user's approval, so only ask for it when the task "
    "requires it. Prefer small, verifiable steps and report what you changed."
)


class Agent:
    """A single conversation with a model that can call tools.

    History, provider and system prompt belong to the Agent and can be
    swapped at runtime.  :meth:`chat` is serialized, so several channels
    may share one instance.
    """

    def __init__(
        self,
        provider: Provider,
        registry: ToolRegistry,
        *,
        model: str,
        max_tokens: int = 8192,
        max_tool_rounds: int = 20,
        system_prompt: str | None = None,
        on_event: Callable[[ToolLoopEvent], Awaitable[None]] | None = None,
    ) -> None:
        self._provider = provider
        self._registry = registry
        self.model = model
        self.max_tokens = max_tokens
        self.max_tool_rounds = max_tool_rounds
        self._system_prompt = system_prompt or DEFAULT_SYSTEM_PROMPT
        self.on_event = on_event
        self._history: list[Message] = []
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        provider: Provider,
        registry: ToolRegistry,
        config: GiverConfig,
        system_prompt: str | None = None,
    ) -> Agent:
        return cls(
            provider,
            registry,
            model=config.provider.model,
            max_tokens=config.max_tokens,
            max_tool_rounds=config.max_tool_rounds,
            system_prompt=system_prompt,
        )

    # -- State ---------------------------------------------------------------

    @property
    def provider(self) -> Provider:
        return self._provider

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    @property
    def history(self) -> Sequence[Message]:
        """Read-only view of the conversation so far."""
        return tuple(self._history)

    def set_provider(self, provider: Provider, model: str | None = None) -> None:
        """Switch backend (and optionally model) for subsequent calls."""
        self._provider = provider
        if model is not None:
            self.model = model
        logger.info("Provider set to %s (model %s)", provider.name, self.model)

    def set_system_prompt(self, prompt: str) -> None:
        self._system_prompt = prompt

    def clear_history(self) -> None:
        self._history = []
        logger.info("Conversation history cleared")

    def load_history(self, history: Iterable[Message | dict[str, Any]]) -> None:
        """Replace the conversation wholesale.

        Accepts :class:`Message` objects or their ``to_dict()`` form.
        """
        self._history = [
            m if isinstance(m, Message) else Message.from_dict(m) for m in history
        ]

    # -- Conversation --------------------------------------------------------

    async def chat(
        self,
        user_message: str,
        on_event: Callable[[ToolLoopEvent], Awaitable[None]] | None = None,
        on_start: Callable[[], None] | None = None,
    ) -> str:
        """Send *user_message* and return the model's final text reply.

        *on_start* is called once this turn holds the conversation, before
        the provider is contacted.

        Tool failures are reported back to the model, not raised.  Provider
        failures propagate; the user message stays in history but the
        assistant turn that failed is not recorded.
        """
        async with self._lock:
            if on_start is not None:
                on_start()
            history = self._history
            history.append(Message(role="user", content=user_message))
            result = await run_tool_loop(
                provider=self._provider,
                history=history,
                tools=self._registry,
                system_prompt=self._system_prompt,
                model=self.model,
                max_tokens=self.max_tokens,
                max_rounds=self.max_tool_rounds,
                on_event=on_event or self.on_event,
            )
            logger.info(
                "Chat turn finished: %d round(s), %d tool call(s), %d/%d tokens",
                result.rounds,
                result.tool_calls_made,
                result.total_usage.input_tokens,
                result.total_usage.output_tokens,
            )
            return result.content

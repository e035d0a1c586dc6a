"""Terminal channel — an interactive REPL plus the terminal access prompter."""

from __future__ import annotations

import asyncio
import logging
import sys
import threading
from typing import TYPE_CHECKING, TextIO

from giver.llm.tool_loop import ToolLoopEvent, ToolLoopEventType
from giver.permissions.path_guard import DEFAULT_APPROVAL_TIMEOUT, DENIED, PermissionGrant

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from giver.agent import Agent

logger = logging.getLogger("giver.channels.cli")

QUIT_COMMANDS = frozenset({"/quit", "/exit"})

HELP_TEXT = (
    "Commands:\n"
    "  /model [type model]  show or switch the provider\n"
    "  /clear               forget the conversation\n"
    "  /quit, /exit         leave\n"
)


class TerminalIO:
    """Line-oriented terminal access shared by the REPL and the prompter.

    A single daemon thread reads stdin and hands lines to the event loop, so
    whoever awaits :meth:`readline` next gets the next line and a pending
    read never blocks interpreter shutdown.
    """

    def __init__(self, stdin: TextIO | None = None, stdout: TextIO | None = None) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._lines: asyncio.Queue[str | None] | None = None
        self._reader: threading.Thread | None = None

    def write(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    async def readline(self, prompt: str = "") -> str | None:
        """Return the next input line without its newline, or None at EOF."""
        if prompt:
            self.write(prompt)
        if self._lines is None:
            self._start_reader()
        assert self._lines is not None
        line = await self._lines.get()
        if line is None:
            # Keep reporting EOF to later readers
            self._lines.put_nowait(None)
        return line

    def _start_reader(self) -> None:
        loop = asyncio.get_running_loop()
        self._lines = asyncio.Queue()
        lines = self._lines

        def pump() -> None:
            while True:
                line = self._stdin.readline()
                try:
                    if not line:
                        loop.call_soon_threadsafe(lines.put_nowait, None)
                        return
                    loop.call_soon_threadsafe(lines.put_nowait, line.rstrip("\r\n"))
                except RuntimeError:
                    # Event loop closed
                    return

        self._reader = threading.Thread(target=pump, name="giver-stdin", daemon=True)
        self._reader.start()


class TerminalPrompter:
    """Asks the person at the terminal whether a path may be accessed.

    Answers: ``s`` allow for this session, ``p`` allow permanently, ``d``
    deny.  Anything else, EOF or no answer within *timeout* denies.
    """

    def __init__(self, io: TerminalIO, timeout: float = DEFAULT_APPROVAL_TIMEOUT) -> None:
        self._io = io
        self._timeout = timeout

    async def request_approval(self, path: str) -> PermissionGrant:
        self._io.write(
            f"\n[access] Giver wants to access: {path}\n"
            "  [s] allow for this session  [p] allow permanently  [d] deny\n"
        )
        try:
            answer = await asyncio.wait_for(self._io.readline("Choice (s/p/d): "), self._timeout)
        except TimeoutError:
            self._io.write("\nNo answer, access denied.\n")
            return DENIED

        choice = (answer or "").strip().lower()
        if choice == "s":
            return PermissionGrant(granted=True, persistent=False)
        if choice == "p":
            return PermissionGrant(granted=True, persistent=True)
        return DENIED


class CliChannel:
    """Read-eval-print loop driving :meth:`Agent.chat`.

    *switch_model* handles ``/model <type> <model>`` and returns a line to
    show the user; without it the command only reports the current model.
    """

    def __init__(
        self,
        agent: Agent,
        io: TerminalIO | None = None,
        switch_model: Callable[[str, str], Awaitable[str]] | None = None,
    ) -> None:
        self.agent = agent
        self.io = io if io is not None else TerminalIO()
        self._switch_model = switch_model

    async def _show_event(self, event: ToolLoopEvent) -> None:
        if event.type is ToolLoopEventType.TOOL_CALL_START:
            args = ", ".join(f"{k}={v!r}" for k, v in (event.tool_input or {}).items())
            if len(args) > 80:
                args = args[:77] + "..."
            self.io.write(f"  ⚙ {event.tool_name}({args})\n")
        elif event.type is ToolLoopEventType.TOOL_CALL_COMPLETE and event.is_error:
            self.io.write(f"  ✗ {event.tool_name} failed\n")

    async def handle_line(self, line: str) -> bool:
        """Process one input line. Returns False when the user wants to quit."""
        text = line.strip()
        if not text:
            return True

        if text in QUIT_COMMANDS:
            self.io.write("\nGoodbye!\n")
            return False

        if text == "/clear":
            self.agent.clear_history()
            self.io.write("Conversation cleared.\n\n")
            return True

        if text == "/help":
            self.io.write(HELP_TEXT)
            return True

        if text == "/model" or text.startswith("/model "):
            await self._handle_model(text.split()[1:])
            return True

        self.io.write("  thinking...\n")
        try:
            response = await self.agent.chat(text, on_event=self._show_event)
        except Exception as exc:
            logger.warning("Chat failed: %s", exc, exc_info=True)
            self.io.write(f"\nError: {exc}\n\n")
            return True

        self.io.write(f"\nGiver: {response}\n\n")
        return True

    async def _handle_model(self, args: list[str]) -> None:
        if not args:
            self.io.write(f"Provider: {self.agent.provider.name} ({self.agent.model})\n")
            return
        if len(args) != 2:
            self.io.write("Usage: /model <anthropic|openai|ollama> <model>\n")
            return
        if self._switch_model is None:
            self.io.write("Switching models is not available here.\n")
            return
        try:
            self.io.write(await self._switch_model(args[0], args[1]) + "\n")
        except ValueError as exc:
            self.io.write(f"Error: {exc}\n")

    async def run(self) -> None:
        """Run until ``/quit``, ``/exit`` or end of input."""
        self.io.write("\nGiver, your local assistant\nType /help for commands.\n\n")
        while True:
            line = await self.io.readline("You: ")
            if line is None:
                self.io.write("\n")
                return
            if not await self.handle_line(line):
                return

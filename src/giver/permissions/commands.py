"""Shell command denylist — case-insensitive substring matching.

This is not a shell parser.  A blocked word inside harmless text is still
blocked (``echo sudoku`` contains ``sudo``) and an obfuscated command can
slip through.  Both are known limitations.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger("giver.permissions.commands")


class CommandBlockedError(Exception):
    """Raised when a command contains a blocked pattern."""

    def __init__(self, command: str, pattern: str) -> None:
        self.command = command
        self.pattern = pattern
        super().__init__(
            f"Command blocked: {command!r} contains prohibited pattern {pattern!r}"
        )


class Permissions:
    """Blocked-command filter and read access to the base allow-list.

    Both lists are copied once at construction; later config edits need a
    new instance.
    """

    def __init__(self, blocked_commands: Iterable[str], allowed_paths: Iterable[str]) -> None:
        self._blocked: list[str] = []
        for pattern in blocked_commands:
            if pattern and pattern not in self._blocked:
                self._blocked.append(pattern)
        self._allowed_paths = list(allowed_paths)

    @property
    def blocked_commands(self) -> list[str]:
        return list(self._blocked)

    def validate_command(self, command: str) -> None:
        """Raise :exc:`CommandBlockedError` if *command* contains a blocked pattern."""
        normalized = command.strip().lower()
        for pattern in self._blocked:
            if pattern.lower() in normalized:
                logger.info("Blocked command %r (pattern %r)", command, pattern)
                raise CommandBlockedError(command, pattern)

    def get_allowed_paths(self) -> list[str]:
        """Return the configured base allow-list, first entry is the default cwd."""
        return list(self._allowed_paths)

"""Tool registry — central catalog of all tools available to the agent."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from giver.config import GiverConfig
    from giver.permissions.commands import Permissions
    from giver.permissions.path_guard import PathGuard

logger = logging.getLogger("giver.tools.registry")


class UnknownToolError(LookupError):
    """Raised when the model names a tool that is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


@dataclass
class ToolDefinition:
    """Metadata and handler for a single tool.

    The handler receives the model-supplied input as keyword arguments.
    Dependencies such as the PathGuard are bound into the handler when the
    tool is wired up, never passed by the model.
    """

    name: str
    description: str
    parameters: dict[str, Any]  # JSON Schema
    handler: Callable[..., Awaitable[Any]]

    async def execute(self, arguments: dict[str, Any]) -> str:
        """Run the handler and normalize its result to text."""
        result = await self.handler(**arguments)
        if isinstance(result, str):
            return result
        if hasattr(result, "to_dict"):
            return json.dumps(result.to_dict())
        return json.dumps(result)

    def to_schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.parameters,
        }


class ToolRegistry:
    """Stores, describes and dispatches tools by name."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, tool: ToolDefinition) -> None:
        """Add *tool*, replacing any tool already registered under its name."""
        if tool.name in self._tools:
            logger.info("Replacing tool %s", tool.name)
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def list_all(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def to_tool_definitions(self) -> list[dict[str, Any]]:
        """Project the catalogue to provider-agnostic tool schemas."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """Run tool *name*. The tool's own exceptions propagate unchanged."""
        tool = self._tools.get(name)
        if tool is None:
            raise UnknownToolError(name)
        return await tool.execute(arguments)


def register_tool(
    registry: ToolRegistry,
    name: str,
    description: str,
    parameters: dict[str, Any],
    handler: Callable[..., Awaitable[Any]],
) -> ToolDefinition:
    """Register a host-supplied tool and return its definition.

    This is the extension point for tools that are not built in; calling it
    again with the same *name* hot-replaces the earlier tool.
    """
    if parameters.get("type") != "object":
        raise ValueError(f"Tool {name!r} parameters must be a JSON Schema object")
    tool = ToolDefinition(
        name=name, description=description, parameters=parameters, handler=handler
    )
    registry.register(tool)
    return tool


def create_default_registry(
    path_guard: PathGuard,
    permissions: Permissions,
    config: GiverConfig | None = None,
) -> ToolRegistry:
    """Build a registry with the built-in tools, sharing one sandbox."""
    from functools import partial

    from giver.config import GiverConfig
    from giver.tools.file_ops import edit_file, list_directory, read_file, write_file
    from giver.tools.shell import execute_command
    from giver.tools.web_search import web_search

    if config is None:
        config = GiverConfig()
    registry = ToolRegistry()

    # -- File tools ------------------------------------------------------------

    registry.register(
        ToolDefinition(
            name="read_file",
            description=(
                "Read a text file and return its contents with line numbers. "
                "Supports optional offset and limit for large files."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The file path to read (absolute paths recommended)",
                    },
                    "offset": {
                        "type": "integer",
                        "description": "1-based line number to start from",
                    },
                    "limit": {
                        "type": "integer",
                        "description": "Number of lines to return",
                    },
                },
                "required": ["path"],
            },
            handler=partial(read_file, path_guard),
        )
    )

    registry.register(
        ToolDefinition(
            name="write_file",
            description=(
                "Write content to a file. Creates the file if it doesn't exist, "
                "overwrites it if it does. Intermediate directories are created."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The file path to write to",
                    },
                    "content": {
                        "type": "string",
                        "description": "The content to write (UTF-8)",
                    },
                },
                "required": ["path", "content"],
            },
            handler=partial(write_file, path_guard),
        )
    )

    registry.register(
        ToolDefinition(
            name="edit_file",
            description=(
                "Replace exactly one occurrence of a string in a file. "
                "Fails if the string is not found or appears more than once."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The file path to edit",
                    },
                    "old_str": {
                        "type": "string",
                        "description": "Exact string to find (must be unique)",
                    },
                    "new_str": {
                        "type": "string",
                        "description": "Replacement string",
                    },
                },
                "required": ["path", "old_str", "new_str"],
            },
            handler=partial(edit_file, path_guard),
        )
    )

    registry.register(
        ToolDefinition(
            name="list_directory",
            description=(
                "List files and directories at the given path. "
                "Returns names with [DIR] or [FILE] prefix."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "path": {
                        "type": "string",
                        "description": "The directory path to list",
                    },
                },
                "required": ["path"],
            },
            handler=partial(list_directory, path_guard),
        )
    )

    # -- Shell -----------------------------------------------------------------

    registry.register(
        ToolDefinition(
            name="execute_command",
            description=(
                "Execute a shell command. Runs inside the allowed paths; "
                "dangerous commands are blocked."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "command": {
                        "type": "string",
                        "description": "The shell command to execute",
                    },
                    "cwd": {
                        "type": "string",
                        "description": (
                            "Working directory (must be within allowed paths). "
                            "Defaults to the first allowed path."
                        ),
                    },
                },
                "required": ["command"],
            },
            handler=partial(
                execute_command, path_guard, permissions, timeout=float(config.shell_timeout)
            ),
        )
    )

    # -- Web search ------------------------------------------------------------

    registry.register(
        ToolDefinition(
            name="web_search",
            description=(
                "Search the web through a local SearXNG instance. "
                "Returns titles, URLs and snippets."
            ),
            parameters={
                "type": "object",
                "properties": {
                    "query": {
                        "type": "string",
                        "description": "The search query",
                    },
                    "max_results": {
                        "type": "integer",
                        "description": "Maximum number of results (default 5, max 20)",
                    },
                },
                "required": ["query"],
            },
            handler=partial(web_search, searxng_url=config.searxng_url),
        )
    )

    logger.info("Registered %d built-in tools", len(registry.list_all()))
    return registry

"""Sandbox — path allow-listing, command denylisting and access prompts."""

from giver.permissions.commands import CommandBlockedError, Permissions
from giver.permissions.path_guard import (
    DENIED,
    AccessDeniedError,
    MissingParentDirectoryError,
    PathGuard,
    PermissionGrant,
    PermissionPrompter,
)

__all__ = [
    "DENIED",
    "AccessDeniedError",
    "CommandBlockedError",
    "MissingParentDirectoryError",
    "PathGuard",
    "PermissionGrant",
    "PermissionPrompter",
    "Permissions",
]

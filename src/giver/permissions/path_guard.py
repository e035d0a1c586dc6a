"""Filesystem sandbox authority.

Every file-touching tool resolves its target through :meth:`PathGuard.validate`.
A path is allowed when its real location (symlinks resolved) is one of the
allowed roots or lies underneath one.  Anything else is escalated to a human
through a :class:`PermissionPrompter`, who can grant the containing directory
for the rest of the session or permanently.

Allowed roots come from three places:

- base paths, loaded from ``allowed_paths`` in the persisted config;
- session paths, granted at runtime and forgotten on restart;
- permanent grants, appended to the base paths and written back to the
  config file before :meth:`PathGuard.validate` returns.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from giver.config import ConfigStore

logger = logging.getLogger("giver.permissions.path_guard")

DEFAULT_APPROVAL_TIMEOUT = 60.0

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class AccessDeniedError(PermissionError):
    """Raised when a path is outside the sandbox and no grant was obtained."""


class MissingParentDirectoryError(FileNotFoundError):
    """Raised when neither the target nor its parent directory exists."""


# ---------------------------------------------------------------------------
# Prompter contract
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PermissionGrant:
    """A human's answer to an access request."""

    granted: bool
    persistent: bool = False


DENIED = PermissionGrant(granted=False)


@runtime_checkable
class PermissionPrompter(Protocol):
    """Asks a human whether a path outside the sandbox may be accessed.

    Implementations offer exactly three outcomes (allow for this session,
    allow permanently, deny) and must default to denial when nobody answers.
    """

    async def request_approval(self, path: str) -> PermissionGrant: ...


# ---------------------------------------------------------------------------
# Root list helpers
# ---------------------------------------------------------------------------


def _resolve_root(path: str) -> str:
    return str(Path(path).expanduser().resolve())


def _is_under(path: str, root: str) -> bool:
    """True if *path* is *root* or a descendant (``/a/b`` does not own ``/a/bc``)."""
    if path == root:
        return True
    return path.startswith(root.rstrip(os.sep) + os.sep)


def merge_root(roots: list[str], new_root: str) -> list[str]:
    """Return *roots* with *new_root* added, without redundant entries.

    A root already covered by an existing entry is not added.  Existing
    entries covered by the new root are dropped in its favour.
    """
    if any(_is_under(new_root, root) for root in roots):
        return list(roots)
    kept = [root for root in roots if not _is_under(root, new_root)]
    kept.append(new_root)
    return kept


# ---------------------------------------------------------------------------
# PathGuard
# ---------------------------------------------------------------------------


class PathGuard:
    """Authorizes filesystem access by canonical path.

    One instance is built at startup and handed to every tool that
    touches the filesystem.

    Parameters
    ----------
    store:
        Config store whose ``allowed_paths`` seed the base roots and
        receive permanent grants.
    prompter:
        Optional human-in-the-loop approver.  Without one, paths outside
        the sandbox are denied outright.
    approval_timeout:
        Seconds to wait for the prompter before treating the request as
        denied.
    """

    def __init__(
        self,
        store: ConfigStore,
        prompter: PermissionPrompter | None = None,
        approval_timeout: float = DEFAULT_APPROVAL_TIMEOUT,
    ) -> None:
        self._store = store
        self._prompter = prompter
        self._approval_timeout = approval_timeout
        self._base_paths: list[str] = []
        for raw in store.config.allowed_paths:
            self._base_paths = merge_root(self._base_paths, _resolve_root(raw))
        self._session_paths: list[str] = []
        self._grant_lock = asyncio.Lock()

    # -- Introspection -------------------------------------------------------

    @property
    def base_paths(self) -> list[str]:
        return list(self._base_paths)

    @property
    def session_paths(self) -> list[str]:
        return list(self._session_paths)

    @property
    def allowed_paths(self) -> list[str]:
        """Base roots followed by session roots."""
        return self._base_paths + [p for p in self._session_paths if p not in self._base_paths]

    @property
    def prompter(self) -> PermissionPrompter | None:
        return self._prompter

    def set_prompter(self, prompter: PermissionPrompter | None) -> None:
        self._prompter = prompter

    def is_allowed(self, real_path: str) -> bool:
        return any(_is_under(real_path, root) for root in self.allowed_paths)

    # -- Validation ----------------------------------------------------------

    async def validate(self, target_path: str) -> str:
        """Return the real path of *target_path* if access is permitted.

        Raises
        ------
        MissingParentDirectoryError
            If the target does not exist and neither does its parent.
        AccessDeniedError
            If the path is outside the sandbox and no grant was obtained.
        """
        resolved = os.path.abspath(os.path.expanduser(target_path))
        real_path = self._real_path(resolved)

        if self.is_allowed(real_path):
            return real_path

        async with self._grant_lock:
            # Another request may have granted a covering root while we waited.
            if self.is_allowed(real_path):
                return real_path

            prompter = self._prompter
            if prompter is None:
                logger.info("Denied %s (no prompter configured)", real_path)
                raise self._denied(target_path)

            # The human approves the real location, never the symlink
            grant = await self._ask(prompter, real_path)
            if not grant.granted:
                logger.info("User denied access to %s", real_path)
                raise self._denied(target_path)

            grant_dir = real_path if os.path.isdir(real_path) else os.path.dirname(real_path)
            if grant.persistent:
                self._grant_permanent(grant_dir)
            else:
                self._session_paths = merge_root(self._session_paths, grant_dir)
                logger.info("Granted %s for this session", grant_dir)

        if not self.is_allowed(real_path):
            # Only reachable if the grant directory failed to cover the target.
            raise self._denied(target_path)
        return real_path

    def _real_path(self, resolved: str) -> str:
        try:
            return str(Path(resolved).resolve(strict=True))
        except FileNotFoundError:
            pass
        if os.path.islink(resolved):
            # Dangling symlink: judge it by where it points
            resolved = str(Path(resolved).resolve())
        parent = os.path.dirname(resolved)
        try:
            real_parent = Path(parent).resolve(strict=True)
        except OSError:
            raise MissingParentDirectoryError(
                f"Parent directory does not exist: {parent}"
            ) from None
        return os.path.join(str(real_parent), os.path.basename(resolved))

    async def _ask(self, prompter: PermissionPrompter, path: str) -> PermissionGrant:
        logger.info("Requesting approval for %s", path)
        try:
            return await asyncio.wait_for(
                prompter.request_approval(path), timeout=self._approval_timeout
            )
        except TimeoutError:
            logger.info("Approval request for %s timed out after %.0fs", path, self._approval_timeout)
            return DENIED

    def _grant_permanent(self, grant_dir: str) -> None:
        persisted = [_resolve_root(p) for p in self._store.config.allowed_paths]
        updated = merge_root(persisted, grant_dir)
        if updated != persisted:
            self._store.set_allowed_paths(updated)
        self._base_paths = merge_root(self._base_paths, grant_dir)
        logger.info("Granted %s permanently", grant_dir)

    def _denied(self, target_path: str) -> AccessDeniedError:
        return AccessDeniedError(
            f"Access denied: {target_path} is outside allowed paths. "
            f"Allowed: {', '.join(self.allowed_paths)}"
        )

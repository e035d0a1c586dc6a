"""File tools — read, write, edit and list, all routed through the PathGuard.

Every handler takes the shared :class:`~giver.permissions.path_guard.PathGuard`
as its first argument (bound at registration time) and only touches the real
path the guard returns.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from giver.permissions.path_guard import PathGuard

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class StringNotFoundError(Exception):
    """Raised when edit_file cannot find the target string."""


class AmbiguousMatchError(Exception):
    """Raised when edit_file finds the target string more than once."""


class BinaryFileError(Exception):
    """Raised when attempting to read a binary file."""


# ---------------------------------------------------------------------------
# read_file
# ---------------------------------------------------------------------------

_BINARY_CHECK_SIZE = 8192


async def read_file(
    path_guard: PathGuard,
    path: str,
    offset: int | None = None,
    limit: int | None = None,
) -> str:
    """Return a file's contents with line numbers.

    Parameters
    ----------
    offset:
        1-based line number to start from (default: 1).
    limit:
        Number of lines to return (default: all).
    """
    resolved = Path(await path_guard.validate(path))

    if not resolved.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if resolved.is_dir():
        return _listing(resolved)

    raw = resolved.read_bytes()
    if b"\x00" in raw[:_BINARY_CHECK_SIZE]:
        raise BinaryFileError(f"File appears to be binary: {path}")

    lines = raw.decode("utf-8", errors="replace").splitlines()
    if not lines:
        return "(empty file)"

    start = max(0, (offset - 1) if offset is not None else 0)
    end = start + limit if limit is not None else len(lines)
    selected = lines[start:end]
    return "\n".join(f"{start + i + 1}\t{line}" for i, line in enumerate(selected))


# ---------------------------------------------------------------------------
# write_file
# ---------------------------------------------------------------------------


async def write_file(path_guard: PathGuard, path: str, content: str) -> str:
    """Create (or overwrite) a file, creating intermediate directories.

    Missing directories are only created under an ancestor the guard has
    already approved.
    """
    parent = Path(os.path.abspath(os.path.expanduser(path))).parent
    if not parent.exists():
        ancestor = parent
        while not ancestor.exists():
            ancestor = ancestor.parent
        await path_guard.validate(str(ancestor))
        parent.mkdir(parents=True, exist_ok=True)

    resolved = Path(await path_guard.validate(path))
    resolved.write_text(content, encoding="utf-8")
    return f"File written: {resolved}"


# ---------------------------------------------------------------------------
# edit_file
# ---------------------------------------------------------------------------

_CONTEXT_LINES = 3


async def edit_file(path_guard: PathGuard, path: str, old_str: str, new_str: str) -> str:
    """Replace exactly one occurrence of *old_str* with *new_str* in a file."""
    resolved = Path(await path_guard.validate(path))

    if not resolved.is_file():
        raise FileNotFoundError(f"File not found: {path}")

    content = resolved.read_text(encoding="utf-8")
    count = content.count(old_str)

    if count == 0:
        raise StringNotFoundError(f"String not found in {path}: {old_str!r}")
    if count > 1:
        raise AmbiguousMatchError(f"String appears {count} times in {path}, must be unique")

    original_mode = resolved.stat().st_mode
    new_content = content.replace(old_str, new_str, 1)
    resolved.write_text(new_content, encoding="utf-8")
    resolved.chmod(original_mode)

    return f"Edited {resolved}:\n{_context_around(new_content, new_str)}"


def _context_around(content: str, target: str) -> str:
    """Return lines around the first occurrence of *target* with line numbers."""
    lines = content.splitlines()
    target_line = None
    for i, line in enumerate(lines):
        if target and target in line:
            target_line = i
            break

    if target_line is None:
        # target spans lines or is empty, show the top of the file
        start = 0
        end = min(len(lines), _CONTEXT_LINES * 2 + 1)
    else:
        start = max(0, target_line - _CONTEXT_LINES)
        end = min(len(lines), target_line + _CONTEXT_LINES + 1)

    return "\n".join(f"{i + 1}\t{lines[i]}" for i in range(start, end))


# ---------------------------------------------------------------------------
# list_directory
# ---------------------------------------------------------------------------


async def list_directory(path_guard: PathGuard, path: str) -> str:
    """List a directory's entries with ``[DIR]`` / ``[FILE]`` prefixes."""
    resolved = Path(await path_guard.validate(path))
    if not resolved.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")
    return _listing(resolved)


def _listing(directory: Path) -> str:
    entries = sorted(directory.iterdir(), key=lambda p: p.name)
    lines = [f"[DIR]  {p.name}" if p.is_dir() else f"[FILE] {p.name}" for p in entries]
    return "\n".join(lines) if lines else "(empty directory)"

"""Shell command execution inside the sandbox.

Commands pass the :class:`~giver.permissions.commands.Permissions` denylist
first, then run as subprocesses whose working directory has been validated
by the PathGuard (or defaults to the first allowed path).  This is path and
command filtering only, not process isolation.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from giver.llm.tool_loop import MAX_TOOL_RESULT_CHARS
from giver.permissions.path_guard import AccessDeniedError

if TYPE_CHECKING:
    from giver.permissions.commands import Permissions
    from giver.permissions.path_guard import PathGuard

logger = logging.getLogger("giver.tools.shell")

_DEFAULT_TIMEOUT_SECONDS = 30.0
_DEFAULT_SIGTERM_GRACE_SECONDS = 5.0
_MAX_OUTPUT_LEN = MAX_TOOL_RESULT_CHARS


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class ShellResult:
    """Structured result from a command execution."""

    command: str
    exit_code: int | None
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: int
    truncated: bool = False

    def to_text(self) -> str:
        """Render the result the way the model sees it."""
        if self.timed_out:
            return f"Error (timed out after {self.duration_ms} ms): {self.command}"
        if self.exit_code != 0:
            detail = self.stderr.strip() or self.stdout.strip() or "command failed"
            return f"Error (exit {self.exit_code}): {detail}"
        output = "\n".join(part for part in (self.stdout, self.stderr) if part)
        return output or "(no output)"


# ---------------------------------------------------------------------------
# Output truncation
# ---------------------------------------------------------------------------


def _truncate_output(output: str, max_len: int) -> tuple[str, bool]:
    """Truncate *output* to at most *max_len* chars, keeping the tail.

    The truncation notice counts towards *max_len*.  Returns
    ``(output, truncated)`` where *truncated* is True if the output was
    shortened.
    """
    if len(output) <= max_len:
        return output, False
    header = f"[Output truncated: showing the end of {len(output)} chars]\n"
    keep = max_len - len(header)
    if keep <= 0:
        return output[-max_len:], True
    return header + output[-keep:], True


# ---------------------------------------------------------------------------
# Core execution
# ---------------------------------------------------------------------------


def _signal_process_group(process: asyncio.subprocess.Process, sig: signal.Signals) -> None:
    """Send *sig* to the whole process group started for *process*."""
    with contextlib.suppress(ProcessLookupError, PermissionError):
        os.killpg(process.pid, sig)


async def _resolve_cwd(
    path_guard: PathGuard, permissions: Permissions, cwd: str | None
) -> Path:
    if cwd:
        resolved = Path(await path_guard.validate(cwd))
        if not resolved.is_dir():
            raise NotADirectoryError(f"Working directory is not a directory: {cwd}")
        return resolved
    allowed = permissions.get_allowed_paths()
    if not allowed:
        raise AccessDeniedError("No allowed paths configured for command execution")
    return Path(allowed[0]).expanduser().resolve()


async def run_command(
    path_guard: PathGuard,
    permissions: Permissions,
    command: str,
    cwd: str | None = None,
    timeout: float = _DEFAULT_TIMEOUT_SECONDS,
    max_output_len: int = _MAX_OUTPUT_LEN,
    sigterm_grace: float = _DEFAULT_SIGTERM_GRACE_SECONDS,
) -> ShellResult:
    """Execute *command* and return a :class:`ShellResult`.

    Raises
    ------
    CommandBlockedError
        If the command matches the denylist.
    AccessDeniedError
        If *cwd* is outside the sandbox and no grant was obtained.
    """
    # 1. Denylist check (unconditional)
    permissions.validate_command(command)

    # 2. Working directory
    exec_cwd = await _resolve_cwd(path_guard, permissions, cwd)

    # 3. Execute in its own process group so a timeout reaches every child
    logger.info("Running %r in %s", command, exec_cwd)
    start = time.monotonic()
    process = await asyncio.create_subprocess_shell(
        command,
        cwd=exec_cwd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=True,
    )

    try:
        raw_stdout, raw_stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        # Graceful shutdown: SIGTERM first
        _signal_process_group(process, signal.SIGTERM)
        try:
            await asyncio.wait_for(process.communicate(), timeout=sigterm_grace)
        except TimeoutError:
            _signal_process_group(process, signal.SIGKILL)
            # Reap the process; a child that escaped the group may hold the pipes
            with contextlib.suppress(Exception):
                await asyncio.wait_for(process.communicate(), timeout=sigterm_grace)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.warning("Command timed out after %.0fs: %r", timeout, command)
        return ShellResult(
            command=command,
            exit_code=process.returncode,
            stdout="",
            stderr="",
            timed_out=True,
            duration_ms=elapsed_ms,
        )

    elapsed_ms = int((time.monotonic() - start) * 1000)

    # 4. Decode output (binary-safe)
    stdout = raw_stdout.decode("utf-8", errors="replace")
    stderr = raw_stderr.decode("utf-8", errors="replace")

    # 5. Truncate if needed
    stdout, stdout_trunc = _truncate_output(stdout, max_output_len)
    stderr, stderr_trunc = _truncate_output(stderr, max_output_len)

    return ShellResult(
        command=command,
        exit_code=process.returncode,
        stdout=stdout,
        stderr=stderr,
        timed_out=False,
        duration_ms=elapsed_ms,
        truncated=stdout_trunc or stderr_trunc,
    )


async def execute_command(
    path_guard: PathGuard,
    permissions: Permissions,
    command: str,
    cwd: str | None = None,
    timeout: float = _DEFAULT_TIMEOUT_SECONDS,
) -> str:
    """Tool handler: run *command* and return its rendered output."""
    result = await run_command(path_guard, permissions, command, cwd=cwd, timeout=timeout)
    text, _ = _truncate_output(result.to_text(), _MAX_OUTPUT_LEN)
    return text

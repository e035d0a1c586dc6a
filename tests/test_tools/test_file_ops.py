"""Tests for giver.tools.file_ops — sandboxed file tools."""

from __future__ import annotations

import stat
from typing import TYPE_CHECKING

import pytest

from giver.permissions.path_guard import AccessDeniedError
from giver.tools.file_ops import (
    AmbiguousMatchError,
    BinaryFileError,
    StringNotFoundError,
    edit_file,
    list_directory,
    read_file,
    write_file,
)

if TYPE_CHECKING:
    from pathlib import Path

    from giver.permissions import PathGuard


# ---------------------------------------------------------------------------
# read_file
# ---------------------------------------------------------------------------


class TestReadFile:
    @pytest.mark.asyncio
    async def test_reads_with_line_numbers(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "a.txt").write_text("one\ntwo\nthree\n")
        assert await read_file(path_guard, str(sandbox / "a.txt")) == "1\tone\n2\ttwo\n3\tthree"

    @pytest.mark.asyncio
    async def test_offset_and_limit(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "a.txt").write_text("\n".join(f"line{i}" for i in range(1, 11)))
        result = await read_file(path_guard, str(sandbox / "a.txt"), offset=4, limit=2)
        assert result == "4\tline4\n5\tline5"

    @pytest.mark.asyncio
    async def test_empty_file(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "empty.txt").write_text("")
        assert await read_file(path_guard, str(sandbox / "empty.txt")) == "(empty file)"

    @pytest.mark.asyncio
    async def test_missing_file(self, path_guard: PathGuard, sandbox: Path) -> None:
        with pytest.raises(FileNotFoundError, match="File not found"):
            await read_file(path_guard, str(sandbox / "nope.txt"))

    @pytest.mark.asyncio
    async def test_binary_file(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "bin").write_bytes(b"\x00\x01\x02")
        with pytest.raises(BinaryFileError):
            await read_file(path_guard, str(sandbox / "bin"))

    @pytest.mark.asyncio
    async def test_directory_returns_listing(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "f.txt").write_text("x")
        assert await read_file(path_guard, str(sandbox)) == "[FILE] f.txt"

    @pytest.mark.asyncio
    async def test_outside_sandbox_denied(self, path_guard: PathGuard, outside: Path) -> None:
        (outside / "secret.txt").write_text("s")
        with pytest.raises(AccessDeniedError):
            await read_file(path_guard, str(outside / "secret.txt"))


# ---------------------------------------------------------------------------
# write_file
# ---------------------------------------------------------------------------


class TestWriteFile:
    @pytest.mark.asyncio
    async def test_creates_file(self, path_guard: PathGuard, sandbox: Path) -> None:
        result = await write_file(path_guard, str(sandbox / "new.txt"), "hello")
        assert (sandbox / "new.txt").read_text() == "hello"
        assert result == f"File written: {sandbox / 'new.txt'}"

    @pytest.mark.asyncio
    async def test_overwrites(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "a.txt").write_text("old")
        await write_file(path_guard, str(sandbox / "a.txt"), "new")
        assert (sandbox / "a.txt").read_text() == "new"

    @pytest.mark.asyncio
    async def test_creates_intermediate_directories(
        self, path_guard: PathGuard, sandbox: Path
    ) -> None:
        await write_file(path_guard, str(sandbox / "a" / "b" / "c.txt"), "x")
        assert (sandbox / "a" / "b" / "c.txt").read_text() == "x"

    @pytest.mark.asyncio
    async def test_no_directories_created_outside_sandbox(
        self, path_guard: PathGuard, outside: Path
    ) -> None:
        with pytest.raises(AccessDeniedError):
            await write_file(path_guard, str(outside / "a" / "b.txt"), "x")
        assert not (outside / "a").exists()

    @pytest.mark.asyncio
    async def test_outside_sandbox_denied(self, path_guard: PathGuard, outside: Path) -> None:
        with pytest.raises(AccessDeniedError):
            await write_file(path_guard, str(outside / "x.txt"), "x")
        assert not (outside / "x.txt").exists()


# ---------------------------------------------------------------------------
# edit_file
# ---------------------------------------------------------------------------


class TestEditFile:
    @pytest.mark.asyncio
    async def test_replaces_single_occurrence(self, path_guard: PathGuard, sandbox: Path) -> None:
        target = sandbox / "code.py"
        target.write_text("a = 1\nb = 2\nc = 3\n")
        result = await edit_file(path_guard, str(target), "b = 2", "b = 20")
        assert target.read_text() == "a = 1\nb = 20\nc = 3\n"
        assert result.startswith(f"Edited {target}:")
        assert "2\tb = 20" in result

    @pytest.mark.asyncio
    async def test_not_found(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "a.txt").write_text("hello")
        with pytest.raises(StringNotFoundError):
            await edit_file(path_guard, str(sandbox / "a.txt"), "bye", "x")

    @pytest.mark.asyncio
    async def test_ambiguous(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "a.txt").write_text("x x")
        with pytest.raises(AmbiguousMatchError, match="2 times"):
            await edit_file(path_guard, str(sandbox / "a.txt"), "x", "y")
        assert (sandbox / "a.txt").read_text() == "x x"

    @pytest.mark.asyncio
    async def test_preserves_mode(self, path_guard: PathGuard, sandbox: Path) -> None:
        target = sandbox / "run.sh"
        target.write_text("echo hi\n")
        target.chmod(0o755)
        await edit_file(path_guard, str(target), "hi", "there")
        assert stat.S_IMODE(target.stat().st_mode) == 0o755

    @pytest.mark.asyncio
    async def test_missing_file(self, path_guard: PathGuard, sandbox: Path) -> None:
        with pytest.raises(FileNotFoundError):
            await edit_file(path_guard, str(sandbox / "nope.txt"), "a", "b")


# ---------------------------------------------------------------------------
# list_directory
# ---------------------------------------------------------------------------


class TestListDirectory:
    @pytest.mark.asyncio
    async def test_lists_sorted_with_prefixes(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "b.txt").write_text("b")
        (sandbox / "a_dir").mkdir()
        assert await list_directory(path_guard, str(sandbox)) == "[DIR]  a_dir\n[FILE] b.txt"

    @pytest.mark.asyncio
    async def test_empty_directory(self, path_guard: PathGuard, sandbox: Path) -> None:
        assert await list_directory(path_guard, str(sandbox)) == "(empty directory)"

    @pytest.mark.asyncio
    async def test_not_a_directory(self, path_guard: PathGuard, sandbox: Path) -> None:
        (sandbox / "f.txt").write_text("x")
        with pytest.raises(NotADirectoryError):
            await list_directory(path_guard, str(sandbox / "f.txt"))

    @pytest.mark.asyncio
    async def test_outside_sandbox_denied(self, path_guard: PathGuard, outside: Path) -> None:
        with pytest.raises(AccessDeniedError):
            await list_directory(path_guard, str(outside))

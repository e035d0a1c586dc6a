"""Shared test fixtures for Giver."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from giver.config import CONFIG_FILENAME, ConfigStore, GiverConfig
from giver.permissions import PathGuard, Permissions

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def tmp_giver_home(tmp_path: Path) -> Path:
    """Create a temporary ~/.giver directory."""
    home = tmp_path / "giver-home"
    home.mkdir()
    return home


@pytest.fixture
def sandbox(tmp_path: Path) -> Path:
    """A directory that is allowed by default. Resolved, so symlinked tmp dirs compare equal."""
    root = tmp_path / "sandbox"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def outside(tmp_path: Path) -> Path:
    """A directory next to the sandbox, not covered by it."""
    root = tmp_path / "outside"
    root.mkdir()
    return root.resolve()


@pytest.fixture
def config_store(tmp_giver_home: Path, sandbox: Path) -> ConfigStore:
    """A persisted config whose only allowed path is the sandbox."""
    path = tmp_giver_home / CONFIG_FILENAME
    config = GiverConfig(allowed_paths=[str(sandbox)])
    config.save(path)
    return ConfigStore(path, config)


@pytest.fixture
def permissions(config_store: ConfigStore) -> Permissions:
    return Permissions(config_store.config.blocked_commands, config_store.config.allowed_paths)


@pytest.fixture
def path_guard(config_store: ConfigStore) -> PathGuard:
    """A PathGuard with no prompter: anything outside the sandbox is denied."""
    return PathGuard(config_store)

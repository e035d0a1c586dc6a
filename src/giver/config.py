"""Giver configuration — environment secrets plus a persisted JSON file."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

logger = logging.getLogger("giver.config")

CONFIG_FILENAME = "giver.config.json"

DEFAULT_BLOCKED_COMMANDS: list[str] = [
    "sudo",
    "rm -rf /",
    "mkfs",
    "dd if=",
    ":(){ :|:& };:",
    "chmod -R 777 /",
    "shutdown",
    "reboot",
    "halt",
    "poweroff",
]


@dataclass(frozen=True)
class EnvConfig:
    """Secrets and locations read from the environment. Construct via ``from_env()``."""

    giver_home: Path = field(default_factory=lambda: Path.home() / ".giver")
    anthropic_api_key: str | None = None
    openai_api_key: str | None = None
    discord_token: str | None = None

    @property
    def config_path(self) -> Path:
        return self.giver_home / CONFIG_FILENAME

    @classmethod
    def from_env(cls) -> EnvConfig:
        """Build config from ``os.environ``. Every variable is optional."""
        raw_home = os.environ.get("GIVER_HOME", "").strip()
        giver_home = Path(raw_home).expanduser().resolve() if raw_home else Path.home() / ".giver"

        config = cls(
            giver_home=giver_home,
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY", "").strip() or None,
            openai_api_key=os.environ.get("OPENAI_API_KEY", "").strip() or None,
            discord_token=os.environ.get("DISCORD_TOKEN", "").strip() or None,
        )
        logger.info("Environment loaded — giver_home=%s", giver_home)
        return config


@dataclass
class ProviderConfig:
    """Which backend to talk to and with which model."""

    type: str = "ollama"
    model: str = "qwen3-coder:30b"
    base_url: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderConfig:
        defaults = cls()
        return cls(
            type=data.get("type", defaults.type),
            model=data.get("model", defaults.model),
            base_url=data.get("base_url", defaults.base_url),
        )


@dataclass
class GiverConfig:
    """Persisted settings stored in ``giver.config.json``."""

    allowed_paths: list[str] = field(default_factory=lambda: [str(Path.cwd())])
    blocked_commands: list[str] = field(default_factory=lambda: list(DEFAULT_BLOCKED_COMMANDS))
    max_tokens: int = 8192
    max_tool_rounds: int = 20
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    discord_allowed_users: list[int] = field(default_factory=list)
    shell_timeout: int = 30
    searxng_url: str = "http://localhost:8080"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GiverConfig:
        """Merge *data* over the defaults. Unknown keys are ignored."""
        defaults = cls()
        return cls(
            allowed_paths=list(data.get("allowed_paths", defaults.allowed_paths)),
            blocked_commands=list(data.get("blocked_commands", defaults.blocked_commands)),
            max_tokens=data.get("max_tokens", defaults.max_tokens),
            max_tool_rounds=data.get("max_tool_rounds", defaults.max_tool_rounds),
            provider=ProviderConfig.from_dict(data.get("provider", {})),
            discord_allowed_users=list(data.get("discord_allowed_users", [])),
            shell_timeout=data.get("shell_timeout", defaults.shell_timeout),
            searxng_url=data.get("searxng_url", defaults.searxng_url),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def load(cls, path: Path) -> GiverConfig:
        """Load from *path*, creating a default file if it doesn't exist."""
        if path.exists():
            return cls.from_dict(json.loads(path.read_text(encoding="utf-8")))
        cfg = cls()
        cfg.save(path)
        logger.info("Wrote default config to %s", path)
        return cfg

    def save(self, path: Path) -> None:
        """Persist to *path* as JSON via tmp-file + rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        tmp.replace(path)


class ConfigStore:
    """The loaded :class:`GiverConfig` together with the file it came from.

    Components that mutate persisted settings (PathGuard on permanent grants)
    go through the store so the whole structure is rewritten in one piece.
    """

    def __init__(self, path: Path, config: GiverConfig | None = None) -> None:
        self.path = path
        self.config = config if config is not None else GiverConfig.load(path)

    def reload(self) -> GiverConfig:
        self.config = GiverConfig.load(self.path)
        return self.config

    def save(self) -> None:
        self.config.save(self.path)

    def set_allowed_paths(self, paths: list[str]) -> None:
        """Replace the persisted allow-list and write the file immediately."""
        self.config.allowed_paths = list(paths)
        self.save()
        logger.info("Persisted %d allowed path(s) to %s", len(paths), self.path)

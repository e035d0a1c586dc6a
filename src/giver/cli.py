"""Command-line entrypoint for Giver."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from giver.agent import Agent
from giver.channels.cli import CliChannel, TerminalIO, TerminalPrompter
from giver.config import ConfigStore, EnvConfig, ProviderConfig
from giver.llm.providers import create_provider
from giver.permissions import PathGuard, Permissions
from giver.tools.registry import create_default_registry

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger("giver.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="giver", description="Local AI assistant.")
    parser.add_argument(
        "--discord",
        action="store_true",
        help="also serve the conversation over Discord (needs DISCORD_TOKEN)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def _log_bot_exit(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Discord bot stopped: %s", exc, exc_info=exc)


async def run(env: EnvConfig, use_discord: bool = False) -> None:
    """Wire the sandbox, tools, provider and agent, then serve the channels."""
    store = ConfigStore(env.config_path)
    config = store.config

    permissions = Permissions(config.blocked_commands, config.allowed_paths)
    path_guard = PathGuard(store)
    registry = create_default_registry(path_guard, permissions, config)

    provider = create_provider(
        config.provider.type,
        anthropic_api_key=env.anthropic_api_key,
        openai_api_key=env.openai_api_key,
        base_url=config.provider.base_url,
    )
    agent = Agent.from_config(provider, registry, config)
    logger.info("Provider: %s (%s)", provider.name, config.provider.model)

    async def switch_model(provider_type: str, model: str) -> str:
        base_url = config.provider.base_url if provider_type == config.provider.type else None
        new_provider = create_provider(
            provider_type,
            anthropic_api_key=env.anthropic_api_key,
            openai_api_key=env.openai_api_key,
            base_url=base_url,
        )
        agent.set_provider(new_provider, model)
        config.provider = ProviderConfig(type=provider_type, model=model, base_url=base_url)
        store.save()
        return f"Provider: {new_provider.name} ({model})"

    io = TerminalIO()
    cli = CliChannel(agent, io, switch_model=switch_model)

    if not use_discord:
        path_guard.set_prompter(TerminalPrompter(io))
        await cli.run()
        return

    if not env.discord_token:
        raise SystemExit("DISCORD_TOKEN is not set")

    from giver.channels.discord_bot import GiverBot

    # Both channels share the agent; access prompts go to Discord.
    bot = GiverBot(agent, config.discord_allowed_users)
    path_guard.set_prompter(bot.make_prompter())
    bot_task = asyncio.create_task(bot.start(env.discord_token))
    bot_task.add_done_callback(_log_bot_exit)
    try:
        await cli.run()
    finally:
        await bot.close()


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point: load env, configure logging, run the channels."""
    args = build_parser().parse_args(argv)
    load_dotenv()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)
    env = EnvConfig.from_env()
    try:
        asyncio.run(run(env, use_discord=args.discord))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")

"""Discord channel — forwards messages from allowed users to the shared Agent."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from giver.permissions.ask_ui import DiscordPrompter

if TYPE_CHECKING:
    from giver.agent import Agent

logger = logging.getLogger("giver.channels.discord_bot")

DISCORD_MESSAGE_LIMIT = 2000


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    """Split *text* into chunks Discord will accept, preferring line breaks."""
    if not text:
        return ["(empty response)"]
    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(text[:cut])
        text = text[cut:].lstrip("\n")
    if text:
        chunks.append(text)
    return chunks


class GiverBot(commands.Bot):
    """Discord bot sharing one :class:`~giver.agent.Agent` with the terminal.

    *allowed_users* restricts who may talk to the agent; an empty list lets
    everyone in, which is only meant for first-time setup.
    """

    def __init__(self, agent: Agent, allowed_users: list[int] | None = None) -> None:
        self.agent = agent
        self.allowed_users = set(allowed_users or [])
        self._last_target: tuple[discord.abc.Messageable, int] | None = None

        intents = discord.Intents.default()
        intents.guild_messages = True
        intents.dm_messages = True
        intents.message_content = True
        intents.presences = False
        intents.members = False

        super().__init__(command_prefix="!", intents=intents)

    # -- Access prompts ------------------------------------------------------

    def last_target(self) -> tuple[discord.abc.Messageable, int] | None:
        """Channel and user of the conversation most recently served."""
        return self._last_target

    def make_prompter(self) -> DiscordPrompter:
        return DiscordPrompter(self.last_target)

    def is_allowed_user(self, user_id: int) -> bool:
        return not self.allowed_users or user_id in self.allowed_users

    # -- Lifecycle -----------------------------------------------------------

    async def setup_hook(self) -> None:
        await self.add_cog(GiverCog(self))

    async def on_ready(self) -> None:
        assert self.user is not None
        logger.info("Logged in as %s (id=%s) | guilds=%d", self.user.name, self.user.id, len(self.guilds))
        await self.tree.sync()
        logger.info("Commands synced globally")

    async def on_message(self, message: discord.Message) -> None:
        if message.author == self.user or message.author.bot:
            return
        if not message.content.strip():
            return

        if not self.is_allowed_user(message.author.id):
            logger.warning("Denied Discord access for user %s", message.author.id)
            await message.channel.send(
                "Access denied. Your user ID is not in the allowed list.\n"
                f"Your ID: {message.author.id}"
            )
            return

        logger.info("Discord %s: %.50s", message.author.id, message.content)
        target = (message.channel, message.author.id)

        def claim_prompts() -> None:
            # Runs under the agent lock; a queued message must not redirect
            # the prompts of the turn in progress
            self._last_target = target

        try:
            async with message.channel.typing():
                response = await self.agent.chat(message.content, on_start=claim_prompts)
        except Exception as exc:
            logger.warning("Chat failed for Discord user %s: %s", message.author.id, exc)
            await message.channel.send(f"Error: {exc}"[:DISCORD_MESSAGE_LIMIT])
            return

        for i, chunk in enumerate(split_message(response)):
            await message.channel.send(chunk, reference=message if i == 0 else None)


class GiverCog(commands.Cog):
    """Slash commands for the Discord channel."""

    def __init__(self, bot: GiverBot) -> None:
        self.bot = bot

    @app_commands.command(name="clear", description="Clear the conversation history")
    async def clear_command(self, interaction: discord.Interaction) -> None:
        if not self.bot.is_allowed_user(interaction.user.id):
            await interaction.response.send_message("Access denied.", ephemeral=True)
            return
        self.bot.agent.clear_history()
        await interaction.response.send_message("Conversation history cleared.")

    @app_commands.command(name="id", description="Show your Discord user ID")
    async def id_command(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(
            f"Your Discord user ID: {interaction.user.id}", ephemeral=True
        )

"""Discord UI for sandbox access prompts.

When :class:`~giver.permissions.path_guard.PathGuard` needs a human decision,
:class:`DiscordPrompter` posts an embed with three buttons (Allow session /
Allow always / Deny) and suspends the tool call via ``view.wait()`` until the
user responds or the view times out.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from giver.permissions.path_guard import DEFAULT_APPROVAL_TIMEOUT, DENIED, PermissionGrant

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("giver.permissions.ask_ui")


class PermissionAskView(discord.ui.View):
    """A three-button view for sandbox access prompts.

    Parameters
    ----------
    requester_id:
        The Discord user ID allowed to interact with the buttons.
    timeout:
        Seconds before the view auto-expires.  Timeout = deny.
    """

    def __init__(self, requester_id: int, timeout: float = DEFAULT_APPROVAL_TIMEOUT) -> None:
        super().__init__(timeout=timeout)
        self.requester_id = requester_id
        self.value: PermissionGrant | None = None  # None = timed out

    async def interaction_check(self, interaction: discord.Interaction) -> bool:
        """Only the user who triggered the agent can respond."""
        return interaction.user.id == self.requester_id

    @discord.ui.button(label="Allow session", style=discord.ButtonStyle.green)
    async def allow_session(
        self, interaction: discord.Interaction, button: discord.ui.Button[PermissionAskView]
    ) -> None:
        await interaction.response.send_message("Allowed for this session.", ephemeral=True)
        self.value = PermissionGrant(granted=True, persistent=False)
        self.stop()

    @discord.ui.button(label="Allow always", style=discord.ButtonStyle.blurple)
    async def allow_always(
        self, interaction: discord.Interaction, button: discord.ui.Button[PermissionAskView]
    ) -> None:
        await interaction.response.send_message("Allowed permanently.", ephemeral=True)
        self.value = PermissionGrant(granted=True, persistent=True)
        self.stop()

    @discord.ui.button(label="Deny", style=discord.ButtonStyle.red)
    async def deny(
        self, interaction: discord.Interaction, button: discord.ui.Button[PermissionAskView]
    ) -> None:
        await interaction.response.send_message("Denied.", ephemeral=True)
        self.value = DENIED
        self.stop()

    async def on_timeout(self) -> None:
        """Disable buttons when the view times out."""
        for child in self.children:
            child.disabled = True  # type: ignore[attr-defined]


async def ask_user_permission(
    channel: discord.abc.Messageable,
    requester_id: int,
    path: str,
    timeout: float = DEFAULT_APPROVAL_TIMEOUT,
) -> PermissionGrant:
    """Send an access prompt for *path* to *channel* and wait for a response.

    Returns :data:`DENIED` on timeout.
    """
    embed = discord.Embed(
        title="Access Requested",
        description=f"`{path}`",
        color=discord.Color.yellow(),
    )
    embed.add_field(
        name="Outside the sandbox",
        value="Allow access to this path's directory?",
        inline=False,
    )

    view = PermissionAskView(requester_id=requester_id, timeout=timeout)
    msg = await channel.send(embed=embed, view=view)

    try:
        timed_out = await view.wait()
    finally:
        # Disable buttons even when the caller gives up waiting first
        view.stop()
        for child in view.children:
            child.disabled = True  # type: ignore[attr-defined]
        await msg.edit(view=view)

    if timed_out or view.value is None:
        return DENIED
    return view.value


class DiscordPrompter:
    """:class:`~giver.permissions.path_guard.PermissionPrompter` backed by Discord.

    *get_target* returns the ``(channel, requester_id)`` of the conversation
    currently being served, or ``None`` when no Discord user is active.
    """

    def __init__(
        self,
        get_target: Callable[[], tuple[discord.abc.Messageable, int] | None],
        timeout: float = DEFAULT_APPROVAL_TIMEOUT,
    ) -> None:
        self._get_target = get_target
        self._timeout = timeout

    async def request_approval(self, path: str) -> PermissionGrant:
        target = self._get_target()
        if target is None:
            logger.info("No active Discord conversation to ask about %s, denying", path)
            return DENIED
        channel, requester_id = target
        return await ask_user_permission(channel, requester_id, path, timeout=self._timeout)

"""
cogs/setup.py — Scrim Setup Commands
------------------------------------
/start runs the ready check, map vote, draft and launch on one message that
is edited as the setup moves through its phases. /readylist shows who is
ready during the ready check.
"""

from __future__ import annotations

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from services.errors import ValidationError
from services.setup_orchestrator import SetupStatus
from services.status_enums import Phase
from ui.setup_views import ConnectView, build_setup_view, player_from_user

log = logging.getLogger(__name__)


class SetupCog(commands.Cog):
    """Chat surface of the setup orchestrator."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.setup_message: Optional[discord.Message] = None

    async def cog_load(self):
        self.bot.setup_orchestrator.set_listener(self.publish_status)

    async def cog_unload(self):
        self.bot.setup_orchestrator.set_listener(None)

    @property
    def orchestrator(self):
        return self.bot.setup_orchestrator

    # ------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------

    @app_commands.command(name="start", description="Start scrim setup")
    @app_commands.guild_only()
    async def start(self, interaction: discord.Interaction):
        try:
            status = await self.orchestrator.start(player_from_user(interaction.user))
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        await interaction.response.send_message(
            status.text, view=build_setup_view(self.orchestrator, status)
        )
        self.setup_message = await interaction.original_response()
        log.info(f"[SETUP] Setup message posted in #{interaction.channel}")

    @app_commands.command(name="readylist", description="Show who is ready")
    @app_commands.guild_only()
    async def readylist(self, interaction: discord.Interaction):
        status = self.orchestrator.render()
        if status.phase != Phase.READY:
            return await interaction.response.send_message(
                "Ready check is not in progress.", ephemeral=True
            )
        await interaction.response.send_message(status.text, ephemeral=True)

    # ------------------------------------------------------------
    # Orchestrator listener
    # ------------------------------------------------------------

    async def publish_status(self, status: SetupStatus) -> None:
        """Redraw the setup message for a driver-side transition."""
        message = self.setup_message
        if message is None:
            log.warning(f"[SETUP] No setup message to update ({status.phase.value})")
            return

        view = build_setup_view(self.orchestrator, status)
        try:
            message = await message.edit(content=status.text, view=view)
        except discord.HTTPException as e:
            log.warning(f"[SETUP] Could not edit setup message, reposting: {e}")
            message = await message.channel.send(status.text, view=view)
        self.setup_message = message

        if isinstance(view, ConnectView):
            view.message = message

        if status.finished:
            self.setup_message = None
            if status.connection and self.bot.config.post_setup_msg:
                await message.channel.send(self.bot.config.post_setup_msg)


async def setup(bot: commands.Bot):
    await bot.add_cog(SetupCog(bot))

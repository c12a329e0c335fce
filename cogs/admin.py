"""
cogs/admin.py — Scrim Admin Commands
------------------------------------
/admin map add|remove, /admin queue kick|clear, /admin setup cancel,
/admin server info. Admin-only via default permissions.
"""

from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from services.errors import DathostAPIError, NotStarted, ValidationError
from ui.brand import Colors, create_embed, error_embed

log = logging.getLogger(__name__)


class AdminCog(commands.Cog):
    """Scrim administration."""

    admin = app_commands.Group(
        name="admin",
        description="Scrim admin commands",
        default_permissions=discord.Permissions(administrator=True),
        guild_only=True,
    )
    admin_map = app_commands.Group(name="map", description="Manage the map pool", parent=admin)
    admin_queue = app_commands.Group(name="queue", description="Manage the queue", parent=admin)
    admin_setup = app_commands.Group(name="setup", description="Manage the running setup", parent=admin)
    admin_server = app_commands.Group(name="server", description="Game server", parent=admin)

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    # ------------------------------------------------------------
    # Map pool
    # ------------------------------------------------------------

    @admin_map.command(name="add", description="Add a map to the map pool")
    @app_commands.describe(map_name="Map name, e.g. de_mirage")
    async def map_add(self, interaction: discord.Interaction, map_name: str):
        try:
            await self.bot.map_pool_service.add(map_name)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)
        await interaction.response.send_message(f"Added map: `{map_name.strip()}`", ephemeral=True)

    @admin_map.command(name="remove", description="Remove a map from the map pool")
    @app_commands.describe(map_name="Map to remove")
    async def map_remove(self, interaction: discord.Interaction, map_name: str):
        try:
            await self.bot.map_pool_service.remove(map_name)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)
        await interaction.response.send_message(f"Removed map: `{map_name.strip()}`", ephemeral=True)

    @map_remove.autocomplete("map_name")
    async def map_remove_autocomplete(self, interaction: discord.Interaction, current: str):
        return [
            app_commands.Choice(name=m, value=m)
            for m in self.bot.map_pool_service.list()
            if current.lower() in m.lower()
        ][:25]

    # ------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------

    @admin_queue.command(name="kick", description="Remove a player from the queue")
    @app_commands.describe(user="Player to remove")
    async def queue_kick(self, interaction: discord.Interaction, user: discord.Member):
        try:
            size = await self.bot.queue_service.kick(user.id)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        log.info(f"[ADMIN] {interaction.user.id} kicked {user.id} from the queue")
        await interaction.response.send_message(
            f"{user.mention} has been kicked. Queue size: {size}/{self.bot.queue_service.capacity}"
        )

    @admin_queue.command(name="clear", description="Clear the queue")
    async def queue_clear(self, interaction: discord.Interaction):
        try:
            await self.bot.setup_orchestrator.cancel()
            log.info(f"[ADMIN] Queue clear by {interaction.user.id} cancelled the running setup")
        except NotStarted:
            pass

        await self.bot.queue_service.clear()
        log.info(f"[ADMIN] {interaction.user.id} cleared the queue")
        await interaction.response.send_message("Queue cleared", ephemeral=True)

    # ------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------

    @admin_setup.command(name="cancel", description="Cancel the running scrim setup")
    async def setup_cancel(self, interaction: discord.Interaction):
        try:
            await self.bot.setup_orchestrator.cancel()
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        log.info(f"[ADMIN] {interaction.user.id} cancelled the setup")
        await interaction.response.send_message("Setup canceled")

    # ------------------------------------------------------------
    # Server
    # ------------------------------------------------------------

    @admin_server.command(name="info", description="Show the game server's connection details")
    async def server_info(self, interaction: discord.Interaction):
        client = self.bot.dathost_client
        if client is None:
            return await interaction.response.send_message(
                "❌ DatHost is not configured.", ephemeral=True
            )

        await interaction.response.defer(ephemeral=True)
        try:
            server = await client.get_server(self.bot.config.dathost_server_id)
        except DathostAPIError as e:
            log.error(f"[ADMIN] Server info failed: {e}")
            return await interaction.followup.send(
                embed=error_embed("Game Server", f"Could not fetch server info ({e.status})."),
                ephemeral=True,
            )

        embed = create_embed("Game Server", color=Colors.INFO)
        embed.add_field(name="Host", value=f"`{server.host}`", inline=False)
        embed.add_field(name="Game", value=f"`connect {server.host}:{server.game_port}`", inline=False)
        embed.add_field(name="GOTV", value=f"`connect {server.host}:{server.gotv_port}`", inline=False)
        if server.location:
            embed.add_field(name="Location", value=server.location, inline=True)
        await interaction.followup.send(embed=embed, ephemeral=True)


async def setup(bot: commands.Bot):
    await bot.add_cog(AdminCog(bot))

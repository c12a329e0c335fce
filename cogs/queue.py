"""
cogs/queue.py — Scrim Queue Commands
------------------------------------
/queue join [message], /queue leave, /queue list, plus the daily auto-clear.
"""

from __future__ import annotations

import datetime
import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands, tasks

from services.errors import NotStarted, ValidationError
from services.setup_state import Player
from ui.setup_views import player_from_user
from utils.scrim_format import format_queue

log = logging.getLogger(__name__)


class QueueCog(commands.Cog):
    """Join/leave the scrim queue."""

    queue_group = app_commands.Group(
        name="queue",
        description="Scrim queue",
        guild_only=True,
    )

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    async def cog_load(self):
        self.bot.queue_service.role_assigner = self.assign_queue_role

        hour = self.bot.config.autoclear_hour
        if hour is not None:
            local_tz = datetime.datetime.now().astimezone().tzinfo
            self.autoclear.change_interval(time=datetime.time(hour=hour, tzinfo=local_tz))
            self.autoclear.start()
            log.info(f"[QUEUE] Daily auto-clear scheduled at {hour:02d}:00")

    async def cog_unload(self):
        self.autoclear.cancel()
        self.bot.queue_service.role_assigner = None

    # ------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------

    @queue_group.command(name="join", description="Join the scrim queue")
    @app_commands.describe(message="Optional note shown in the queue list (50 chars)")
    async def join(self, interaction: discord.Interaction, message: Optional[str] = None):
        player = player_from_user(interaction.user)
        try:
            size = await self.bot.queue_service.join(player, message)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        capacity = self.bot.queue_service.capacity
        await interaction.response.send_message(
            f"{player.mention} has been added to the queue. Queue size: {size}/{capacity}"
        )

    @queue_group.command(name="leave", description="Leave the scrim queue")
    async def leave(self, interaction: discord.Interaction):
        try:
            size = await self.bot.queue_service.leave(interaction.user.id)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        capacity = self.bot.queue_service.capacity
        await interaction.response.send_message(
            f"{interaction.user.mention} has left the queue. Queue size: {size}/{capacity}"
        )

    @queue_group.command(name="list", description="Show the scrim queue")
    async def list_queue(self, interaction: discord.Interaction):
        service = self.bot.queue_service
        await interaction.response.send_message(
            format_queue(service.list(), service.capacity),
            allowed_mentions=discord.AllowedMentions.none(),
        )

    # ------------------------------------------------------------
    # Role assignment
    # ------------------------------------------------------------

    async def assign_queue_role(self, player: Player) -> None:
        """Give the configured queue role to a player who just joined."""
        role_id = self.bot.config.assign_role_id
        if not role_id:
            return

        for guild in self.bot.guilds:
            role = guild.get_role(role_id)
            if role is None:
                continue
            member = guild.get_member(player.user_id) or await guild.fetch_member(player.user_id)
            if role not in member.roles:
                await member.add_roles(role, reason="Joined the scrim queue")
                log.info(f"[QUEUE] Gave role {role.name} to {player.user_id}")
            return

    # ------------------------------------------------------------
    # Daily auto-clear
    # ------------------------------------------------------------

    @tasks.loop(hours=24)
    async def autoclear(self):
        try:
            await self.bot.setup_orchestrator.cancel()
            log.info("[QUEUE] Auto-clear cancelled a running setup")
        except NotStarted:
            pass

        await self.bot.queue_service.clear()
        log.info("[QUEUE] Daily auto-clear complete")

    @autoclear.before_loop
    async def before_autoclear(self):
        await self.bot.wait_until_ready()


async def setup(bot: commands.Bot):
    await bot.add_cog(QueueCog(bot))

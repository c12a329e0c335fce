"""
cogs/profile.py — Player Identity Commands
------------------------------------------
/steamid, /teamname and /maps.
"""

from __future__ import annotations

import logging

import discord
from discord import app_commands
from discord.ext import commands

from services.errors import ValidationError
from utils.scrim_format import format_map_pool
from utils.steam import profile_url

log = logging.getLogger(__name__)


class ProfileCog(commands.Cog):
    """SteamID and team name registration."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="steamid", description="Set your SteamID (STEAM_X:Y:Z)")
    @app_commands.describe(steam_id="Your SteamID, e.g. STEAM_0:1:12345678")
    async def steamid(self, interaction: discord.Interaction, steam_id: str):
        steam_id = steam_id.strip()
        try:
            await self.bot.identity_service.set_steam_id(interaction.user.id, steam_id)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        await interaction.response.send_message(
            f"Your SteamID has been set to `{steam_id}`: <{profile_url(steam_id)}>",
            ephemeral=True,
        )

    @app_commands.command(name="teamname", description="Set a custom team name used when you are captain")
    @app_commands.describe(name="Team name (max 20 characters)")
    async def teamname(self, interaction: discord.Interaction, name: str):
        try:
            await self.bot.identity_service.set_team_name(interaction.user.id, name)
        except ValidationError as e:
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        await interaction.response.send_message(
            f"Your team name has been set to `{name.strip()}`", ephemeral=True
        )

    @app_commands.command(name="maps", description="Show the map pool")
    async def maps(self, interaction: discord.Interaction):
        await interaction.response.send_message(
            format_map_pool(self.bot.map_pool_service.list()), ephemeral=True
        )


async def setup(bot: commands.Bot):
    await bot.add_cog(ProfileCog(bot))

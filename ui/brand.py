"""
ui/brand.py — Scrim Bot Brand Kit
=================================
Shared colors and embed helpers for every scrim message.
"""

import discord

from version import BOT_VERSION

FOOTER_TEXT = f"Scrim Bot v{BOT_VERSION}"

# -----------------------------------------------------------------------------
# COLOR PALETTE
# -----------------------------------------------------------------------------

PRIMARY_BLUE = 0x2A6FDB
SUCCESS_GREEN = 0x3BA55D
WARNING_YELLOW = 0xFAA61A
ERROR_RED = 0xED4245


class Colors:
    """Discord Color objects for embeds."""

    PRIMARY = discord.Color(PRIMARY_BLUE)
    SUCCESS = discord.Color(SUCCESS_GREEN)
    WARNING = discord.Color(WARNING_YELLOW)
    ERROR = discord.Color(ERROR_RED)

    INFO = PRIMARY


# -----------------------------------------------------------------------------
# EMBED HELPERS
# -----------------------------------------------------------------------------


def create_embed(
    title: str,
    description: str = None,
    color: discord.Color = None,
    include_footer: bool = True,
) -> discord.Embed:
    """
    Create a brand-compliant embed.

    Args:
        title: Embed title
        description: Body text
        color: Embed color (defaults to PRIMARY)
        include_footer: Whether to include the standard footer
    """
    embed = discord.Embed(
        title=title,
        description=description,
        color=color or Colors.PRIMARY,
    )

    if include_footer:
        embed.set_footer(text=FOOTER_TEXT)

    return embed


def error_embed(title: str, description: str = None) -> discord.Embed:
    return create_embed(title, description, Colors.ERROR)


"""
Helpers for SteamID handling.

Players register legacy-format SteamIDs (STEAM_X:Y:Z). The stats API keys
players by the STEAM_1 universe and DatHost wants 64-bit community ids.
"""

import re

STEAM_ID_PATTERN = re.compile(r"^STEAM_[0-5]:[01]:\d+$")

# Offset between account ids and 64-bit individual-account community ids
STEAM_ID64_BASE = 76561197960265728


def is_valid_steam_id(steam_id: str) -> bool:
    return bool(STEAM_ID_PATTERN.match(steam_id))


def normalize_steam_id(steam_id: str) -> str:
    """Rewrite the universe digit to 1 (STEAM_0:1:123 -> STEAM_1:1:123)."""
    if not is_valid_steam_id(steam_id):
        raise ValueError(f"Invalid SteamID: {steam_id}")
    return f"STEAM_1{steam_id[7:]}"


def steam_id_to_64(steam_id: str) -> int:
    """
    Convert STEAM_X:Y:Z to its 64-bit community id.

    id64 = Z * 2 + Y + 76561197960265728
    """
    if not is_valid_steam_id(steam_id):
        raise ValueError(f"Invalid SteamID: {steam_id}")
    _, y, z = steam_id.split(":")
    return int(z) * 2 + int(y) + STEAM_ID64_BASE


def profile_url(steam_id: str) -> str:
    return f"https://steamcommunity.com/profiles/{steam_id_to_64(steam_id)}"

"""
services/identity_service.py — SteamID & Team Name Registry
------------------------------------------------------------
Keeps the Discord user -> SteamID and Discord user -> team name mappings in
memory and writes every change through to SQLite.

The setup engine only reads from here; users change their own entries
through /steamid and /teamname.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import aiosqlite

from services.errors import ValidationError
from utils.steam import is_valid_steam_id

log = logging.getLogger(__name__)

TEAM_NAME_MAX_LENGTH = 20


class IdentityService:
    """
    Registry of game identities and team names.

    Provides:
    - load: Read both tables into memory at startup
    - set_steam_id / get_steam_id
    - set_team_name / get_team_name
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db
        self.steam_ids: Dict[int, str] = {}
        self.team_names: Dict[int, str] = {}

    async def load(self) -> None:
        async with self.db.execute("SELECT user_id, steam_id FROM steam_ids") as cursor:
            self.steam_ids = {int(row[0]): row[1] for row in await cursor.fetchall()}
        async with self.db.execute("SELECT user_id, team_name FROM team_names") as cursor:
            self.team_names = {int(row[0]): row[1] for row in await cursor.fetchall()}
        log.info(
            f"[IDENTITY] Loaded {len(self.steam_ids)} steam ids, {len(self.team_names)} team names"
        )

    # -------------------------------------------------------------------------
    # SteamIDs
    # -------------------------------------------------------------------------

    def get_steam_id(self, user_id: int) -> Optional[str]:
        return self.steam_ids.get(user_id)

    def has_steam_id(self, user_id: int) -> bool:
        return user_id in self.steam_ids

    async def set_steam_id(self, user_id: int, steam_id: str) -> None:
        steam_id = steam_id.strip()
        if not is_valid_steam_id(steam_id):
            raise ValidationError(
                "Invalid SteamID formatting. Please follow this example: `/steamid STEAM_0:1:12345678`"
            )
        await self.db.execute(
            """
            INSERT INTO steam_ids (user_id, steam_id, updated_at)
            VALUES (?, ?, strftime('%s', 'now'))
            ON CONFLICT(user_id) DO UPDATE SET
                steam_id = excluded.steam_id,
                updated_at = excluded.updated_at
            """,
            (user_id, steam_id),
        )
        await self.db.commit()
        self.steam_ids[user_id] = steam_id
        log.info(f"[IDENTITY] SteamID for {user_id} set to {steam_id}")

    # -------------------------------------------------------------------------
    # Team names
    # -------------------------------------------------------------------------

    def get_team_name(self, user_id: int) -> Optional[str]:
        return self.team_names.get(user_id)

    async def set_team_name(self, user_id: int, team_name: str) -> None:
        team_name = team_name.strip()
        if not team_name:
            raise ValidationError("Team name cannot be empty.")
        if len(team_name) > TEAM_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Team name is over the character limit ({len(team_name)}/{TEAM_NAME_MAX_LENGTH})."
            )
        await self.db.execute(
            """
            INSERT INTO team_names (user_id, team_name, updated_at)
            VALUES (?, ?, strftime('%s', 'now'))
            ON CONFLICT(user_id) DO UPDATE SET
                team_name = excluded.team_name,
                updated_at = excluded.updated_at
            """,
            (user_id, team_name),
        )
        await self.db.commit()
        self.team_names[user_id] = team_name
        log.info(f"[IDENTITY] Team name for {user_id} set to {team_name!r}")

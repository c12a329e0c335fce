"""
services/map_pool_service.py — Map Pool
---------------------------------------
Ordered list of maps offered in the map vote, persisted to SQLite.
"""

from __future__ import annotations

import logging
from typing import List

import aiosqlite

from services.errors import ValidationError

log = logging.getLogger(__name__)

# Discord select menus accept at most 25 options
MAX_MAPS = 25


class MapPoolService:
    """Service for the map pool (list/add/remove)."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db
        self.maps: List[str] = []

    async def load(self) -> None:
        async with self.db.execute(
            "SELECT name FROM map_pool ORDER BY position"
        ) as cursor:
            self.maps = [row[0] for row in await cursor.fetchall()]
        log.info(f"[MAPS] Loaded {len(self.maps)} maps")

    def list(self) -> List[str]:
        return list(self.maps)

    async def add(self, map_name: str) -> None:
        map_name = map_name.strip()
        if not map_name:
            raise ValidationError("Map name cannot be empty.")
        if len(self.maps) >= MAX_MAPS:
            raise ValidationError("Unable to add map, max amount reached.")
        if map_name in self.maps:
            raise ValidationError("Unable to add map, already exists.")
        self.maps.append(map_name)
        await self._save()
        log.info(f"[MAPS] Added {map_name}")

    async def remove(self, map_name: str) -> None:
        map_name = map_name.strip()
        if map_name not in self.maps:
            raise ValidationError(f"Map `{map_name}` is not in the map pool.")
        self.maps.remove(map_name)
        await self._save()
        log.info(f"[MAPS] Removed {map_name}")

    async def _save(self) -> None:
        """Rewrite the whole pool in one transaction."""
        await self.db.execute("DELETE FROM map_pool")
        await self.db.executemany(
            "INSERT INTO map_pool (position, name) VALUES (?, ?)",
            list(enumerate(self.maps)),
        )
        await self.db.commit()

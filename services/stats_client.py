"""
services/stats_client.py — Async HTTP Client for the Scrimbot Stats API

Queries per-player performance stats, best performer first.
Used by auto-draft to rank the queued players.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional

import aiohttp

from services.errors import StatsAPIError

log = logging.getLogger(__name__)


@dataclass
class PlayerStats:
    """One row of the /stats response."""

    steam_id: str
    kd_ratio: float = 0.0
    adr: float = 0.0
    rws: float = 0.0
    rating: float = 0.0
    hs: float = 0.0
    win_percentage: float = 0.0
    play_count: int = 0
    map: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerStats":
        return cls(
            steam_id=data["steamId"],
            kd_ratio=float(data.get("kdRatio") or 0.0),
            adr=float(data.get("adr") or 0.0),
            rws=float(data.get("rws") or 0.0),
            rating=float(data.get("rating") or 0.0),
            hs=float(data.get("hs") or 0.0),
            win_percentage=float(data.get("winPercentage") or 0.0),
            play_count=int(data.get("playCount") or 0),
            map=data.get("map") or "",
        )


class StatsClient:
    """Async HTTP client for the scrimbot stats API.

    All requests use HTTP Basic auth with the configured API user.
    """

    def __init__(
        self,
        base_url: str,
        username: str,
        password: str,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """Initialize the stats client.

        Args:
            base_url: Base URL of the stats API (e.g., "https://scrims.example.com/api")
            username: API user for Basic auth
            password: API password for Basic auth
            session: Optional shared aiohttp session (created if not provided)
        """
        self.base_url = base_url.rstrip("/")
        self.auth = aiohttp.BasicAuth(username, password)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession()
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if we own it."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
            log.info("[STATS] Session closed")

    async def _get(self, endpoint: str, params: dict[str, str]) -> Any:
        """Make an authenticated GET request.

        Raises:
            StatsAPIError: If the API returns an error status or is unreachable
        """
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"

        try:
            async with session.get(url, params=params, auth=self.auth) as resp:
                body = await resp.text()

                if resp.status != 200:
                    log.warning(f"[STATS] GET {endpoint} {params} -> {resp.status}: {body}")
                    raise StatsAPIError(resp.status, body)

                if not body:
                    return []

                try:
                    return json.loads(body)
                except ValueError:
                    log.warning(f"[STATS] GET {endpoint} returned invalid JSON: {body[:200]}")
                    raise StatsAPIError(502, "Invalid JSON from stats API")

        except aiohttp.ClientError as e:
            log.error(f"[STATS] Network error: {e}")
            raise StatsAPIError(503, f"Network error: {e}")

    async def get_player_rankings(self, steam_ids: Iterable[str]) -> List[PlayerStats]:
        """Stats for the given SteamIDs (STEAM_1 form), best performer first.

        Raises:
            StatsAPIError: unreachable, error status, or a response that is
                not a list of stat rows
        """
        steam_id_csv = ",".join(steam_ids)
        data = await self._get(
            "/stats", {"steamids": steam_id_csv, "option": "players"}
        )
        if not isinstance(data, list):
            raise StatsAPIError(502, f"Unexpected stats payload: {type(data).__name__}")
        try:
            return [PlayerStats.from_dict(row) for row in data]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            log.warning(f"[STATS] Malformed stats row: {e}")
            raise StatsAPIError(502, f"Malformed stats row: {e}")

"""
services/dathost_client.py — Async HTTP Client for the DatHost API

Starts CS2 matches and reads game-server connection details.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from services.errors import DathostAPIError

log = logging.getLogger(__name__)

DATHOST_API_URL = "https://dathost.net/api/0.1"


@dataclass
class ServerInfo:
    """Subset of the game-server resource needed to connect."""

    id: str
    ip: str
    game_port: int
    gotv_port: int
    custom_domain: Optional[str] = None
    location: Optional[str] = None

    @property
    def host(self) -> str:
        return self.custom_domain or self.ip

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerInfo":
        ports = data.get("ports") or {}
        return cls(
            id=str(data.get("id", "")),
            ip=data.get("ip", ""),
            game_port=int(ports.get("game") or 0),
            gotv_port=int(ports.get("gotv") or 0),
            custom_domain=data.get("custom_domain") or None,
            location=data.get("location"),
        )


class DathostClient:
    """Async HTTP client for DatHost.

    All requests use HTTP Basic auth with the account credentials.
    """

    def __init__(
        self,
        username: str,
        password: str,
        base_url: str = DATHOST_API_URL,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.auth = aiohttp.BasicAuth(username, password)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=60 * 10)
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if we own it."""
        if self._session and self._owns_session:
            await self._session.close()
            self._session = None
            log.info("[DATHOST] Session closed")

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Make an authenticated request to DatHost.

        Raises:
            DathostAPIError: If the API returns an error status or is unreachable
        """
        session = await self._get_session()
        url = f"{self.base_url}{endpoint}"

        try:
            async with session.request(method, url, json=json, auth=self.auth) as resp:
                body = await resp.text()

                if resp.status >= 300:
                    log.warning(f"[DATHOST] {method} {endpoint} -> {resp.status}: {body}")
                    raise DathostAPIError(resp.status, body)

                if resp.status == 204 or not body:
                    return {}

                return await resp.json(content_type=None)

        except aiohttp.ClientError as e:
            log.error(f"[DATHOST] Network error: {e}")
            raise DathostAPIError(503, f"Network error: {e}")

    async def start_match(self, body: dict[str, Any]) -> dict[str, Any]:
        """POST /cs2-matches. Returns the created match resource."""
        return await self._request("POST", "/cs2-matches", json=body)

    async def get_server(self, server_id: str) -> ServerInfo:
        """GET /game-servers/{id}."""
        data = await self._request("GET", f"/game-servers/{server_id}")
        return ServerInfo.from_dict(data)

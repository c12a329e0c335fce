"""
services/launch_service.py — Match Launch on DatHost
----------------------------------------------------
Turns a finished draft into a DatHost CS2 match and returns the connection
details for the chat layer.

Slot mapping:
    team1 is the team starting T, team2 the team starting CT.
    Team B's chosen side decides which draft team lands in which slot.

Team names:
    The captain's registered /teamname, otherwise "Team <captain name>".

Post-launch, members are moved to the configured team voice channels.
Each move is independent; failures are logged and skipped.
"""

from __future__ import annotations

import base64
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import aiohttp

from services.dathost_client import DathostClient
from services.errors import DathostAPIError, LaunchError, ProviderRejected
from services.identity_service import IdentityService
from services.setup_state import Draft, Player
from services.status_enums import Side
from utils.steam import steam_id_to_64

log = logging.getLogger(__name__)

TINYURL_API = "https://tinyurl.com/api-create.php"

# (user_id, voice_channel_id) -> moves the member, raises on failure
MemberMover = Callable[[int, int], Awaitable[None]]


@dataclass
class LaunchSettings:
    """Static launch configuration (from ScrimConfig)."""

    server_id: str
    match_end_url: str = ""
    webhook_authorization: str = ""
    connect_time: int = 300
    match_begin_countdown: int = 15
    team_a_channel_id: Optional[int] = None
    team_b_channel_id: Optional[int] = None


@dataclass
class ConnectionInfo:
    """Where players and spectators connect once the match is up."""

    host: str
    game_port: int
    gotv_port: int
    password: str = ""
    match_id: Optional[str] = None
    game_link: str = ""
    gotv_link: str = ""

    @property
    def game_address(self) -> str:
        return f"{self.host}:{self.game_port}"

    @property
    def gotv_address(self) -> str:
        return f"{self.host}:{self.gotv_port}"

    @property
    def steam_game_link(self) -> str:
        if self.password:
            return f"steam://connect/{self.game_address}/{self.password}"
        return f"steam://connect/{self.game_address}"

    @property
    def steam_gotv_link(self) -> str:
        return f"steam://connect/{self.gotv_address}"

    @property
    def console_command(self) -> str:
        if self.password:
            return f"connect {self.game_address}; password {self.password}"
        return f"connect {self.game_address}"

    @property
    def gotv_console_command(self) -> str:
        return f"connect {self.gotv_address}"


def basic_auth_header(username: str, password: str) -> str:
    """HTTP Basic authorization header value for the match-end webhook."""
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return f"Basic {token}"


def generate_password(length: int = 6) -> str:
    return "".join(random.choice("0123456789") for _ in range(length))


def team_name_for(identities: IdentityService, captain: Optional[Player]) -> str:
    if captain is None:
        return "Team"
    return identities.get_team_name(captain.user_id) or f"Team {captain.display_name}"


class ServerLaunchCoordinator:
    """Builds the start-match request, sends it and reports connection info."""

    def __init__(
        self,
        dathost: DathostClient,
        identities: IdentityService,
        settings: LaunchSettings,
        member_mover: Optional[MemberMover] = None,
        shorten_links: bool = True,
    ):
        self.dathost = dathost
        self.identities = identities
        self.settings = settings
        self.member_mover = member_mover
        self.shorten_links = shorten_links

    # -------------------------------------------------------------------------
    # Request building
    # -------------------------------------------------------------------------

    def build_match_request(
        self,
        draft: Draft,
        password: str,
    ) -> Dict[str, Any]:
        """
        Build the POST /cs2-matches body.

        Raises LaunchError if a rostered player has no usable SteamID.
        """
        if draft.team_b_start_side == Side.CT.value:
            t_team, t_captain = draft.team_a, draft.captain_a
            ct_team, ct_captain = draft.team_b, draft.captain_b
        else:
            t_team, t_captain = draft.team_b, draft.captain_b
            ct_team, ct_captain = draft.team_a, draft.captain_a

        players: List[Dict[str, Any]] = []
        for slot, team in (("team1", t_team), ("team2", ct_team)):
            for player in team:
                players.append({"steam_id_64": self._steam_id_64(player), "team": slot})

        return {
            "game_server_id": self.settings.server_id,
            "team1": {"name": team_name_for(self.identities, t_captain)},
            "team2": {"name": team_name_for(self.identities, ct_captain)},
            "players": players,
            "settings": {
                "map": draft.selected_map,
                "password": password,
                "connect_time": self.settings.connect_time,
                "match_begin_countdown": self.settings.match_begin_countdown,
            },
            "webhooks": {
                "match_end_url": self.settings.match_end_url,
                "authorization_header": self.settings.webhook_authorization,
            },
        }

    def _steam_id_64(self, player: Player) -> str:
        steam_id = self.identities.get_steam_id(player.user_id)
        if not steam_id:
            raise LaunchError(f"No SteamID registered for {player.display_name or player.user_id}")
        try:
            return str(steam_id_to_64(steam_id))
        except ValueError:
            raise LaunchError(f"Invalid SteamID registered for {player.display_name or player.user_id}")

    # -------------------------------------------------------------------------
    # Launch
    # -------------------------------------------------------------------------

    async def launch(self, draft: Draft, queue: Sequence[Player]) -> ConnectionInfo:
        """
        Start the match and return connection details.

        Raises:
            ProviderRejected: DatHost refused the start-match request
            LaunchError: anything else that prevents a usable server
        """
        missing = [p for p in queue if not draft.is_assigned(p.user_id)]
        if missing:
            log.warning(f"[LAUNCH] {len(missing)} queued players are not on a team")

        password = generate_password()
        body = self.build_match_request(draft, password)
        log.info(
            f"[LAUNCH] Starting match on {self.settings.server_id}: map={draft.selected_map} "
            f"team1={body['team1']['name']} team2={body['team2']['name']}"
        )

        try:
            match = await self.dathost.start_match(body)
        except DathostAPIError as e:
            raise ProviderRejected(e.status, e.message)

        try:
            server = await self.dathost.get_server(self.settings.server_id)
        except DathostAPIError as e:
            raise LaunchError(f"Match started but server info could not be retrieved ({e.status})")

        info = ConnectionInfo(
            host=server.host,
            game_port=server.game_port,
            gotv_port=server.gotv_port,
            password=password,
            match_id=match.get("id"),
        )
        info.game_link = await self._link(info.steam_game_link)
        info.gotv_link = await self._link(info.steam_gotv_link)
        log.info(f"[LAUNCH] Match {info.match_id} up at {info.game_address}")

        await self.move_teams(draft)
        return info

    async def _link(self, steam_link: str) -> str:
        """Link buttons only accept http(s) URLs, so steam:// links go through tinyurl."""
        if not self.shorten_links:
            return steam_link
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(TINYURL_API, params={"url": steam_link}) as resp:
                    if resp.status == 200:
                        return (await resp.text()).strip()
                    log.warning(f"[LAUNCH] tinyurl returned {resp.status}")
        except aiohttp.ClientError as e:
            log.warning(f"[LAUNCH] Could not shorten {steam_link}: {e}")
        return steam_link

    async def move_teams(self, draft: Draft) -> int:
        """Move both rosters to their voice channels. Returns the number moved."""
        if self.member_mover is None:
            return 0

        moved = 0
        for team, channel_id in (
            (draft.team_a, self.settings.team_a_channel_id),
            (draft.team_b, self.settings.team_b_channel_id),
        ):
            if not channel_id:
                continue
            for player in team:
                try:
                    await self.member_mover(player.user_id, channel_id)
                    moved += 1
                except Exception as e:
                    log.warning(f"[LAUNCH] Cannot move {player.user_id} to {channel_id}: {e}")
        return moved

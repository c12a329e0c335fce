"""
tests/conftest.py — Shared fixtures for the scrim bot test suite.

Uses real DB operations with in-memory SQLite and fake HTTP clients for
the stats API and DatHost.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import aiosqlite

from database import create_tables
from services.dathost_client import ServerInfo
from services.draft_service import DraftAssignmentEngine
from services.errors import DathostAPIError
from services.identity_service import IdentityService
from services.launch_service import LaunchSettings, ServerLaunchCoordinator
from services.map_pool_service import MapPoolService
from services.queue_service import QueueService
from services.setup_orchestrator import MatchSetupOrchestrator, SetupTimeouts
from services.setup_state import Player, SetupState
from services.stats_client import PlayerStats
from services.status_enums import Phase

# NOTE: With `asyncio_mode = auto` in pyproject.toml, pytest-asyncio manages
# the event loop automatically. Do NOT define a custom event_loop fixture here.

MAPS = ["de_mirage", "de_inferno", "de_nuke", "de_ancient"]


def make_player(i: int) -> Player:
    return Player(1000 + i, f"player{i}")


def steam_id_for(i: int) -> str:
    return f"STEAM_0:{i % 2}:{50000 + i}"


def stats_id_for(i: int) -> str:
    """Same id as the stats API reports it (universe 1)."""
    return f"STEAM_1:{i % 2}:{50000 + i}"


# -----------------------------------------------------------------------------
# Fakes
# -----------------------------------------------------------------------------


class FakeStatsClient:
    """Returns stats for the configured steam ids, in the configured order."""

    def __init__(self, ranking: Optional[List[str]] = None, error: Optional[Exception] = None):
        self.ranking = ranking or []
        self.error = error
        self.requests: List[List[str]] = []

    async def get_player_rankings(self, steam_ids: Iterable[str]) -> List[PlayerStats]:
        requested = list(steam_ids)
        self.requests.append(requested)
        if self.error is not None:
            raise self.error
        return [PlayerStats(steam_id=s, rating=1.0) for s in self.ranking if s in requested]


class FakeDathostClient:
    """Records match requests; fails the start when start_status is set."""

    def __init__(self, start_status: Optional[int] = None, custom_domain: Optional[str] = None):
        self.start_status = start_status
        self.custom_domain = custom_domain
        self.started: List[Dict[str, Any]] = []

    async def start_match(self, body: Dict[str, Any]) -> Dict[str, Any]:
        self.started.append(body)
        if self.start_status is not None:
            raise DathostAPIError(self.start_status, "rejected")
        return {"id": "match-1", "game_server_id": body["game_server_id"]}

    async def get_server(self, server_id: str) -> ServerInfo:
        return ServerInfo(
            id=server_id,
            ip="203.0.113.10",
            game_port=27015,
            gotv_port=27020,
            custom_domain=self.custom_domain,
        )


class RecordingMover:
    def __init__(self, fail_for: Iterable[int] = ()):
        self.fail_for = set(fail_for)
        self.moves: List[tuple] = []

    async def __call__(self, user_id: int, channel_id: int) -> None:
        if user_id in self.fail_for:
            raise RuntimeError("member not connected to voice")
        self.moves.append((user_id, channel_id))


async def wait_for_phase(state: SetupState, phase: Phase, timeout: float = 2.0) -> None:
    async def _poll():
        while state.phase != phase:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
async def test_db():
    """Create an in-memory test database with the scrim schema."""
    db = await aiosqlite.connect(":memory:")
    await create_tables(db)

    yield db

    await db.close()


@pytest.fixture
async def identities(test_db):
    service = IdentityService(test_db)
    await service.load()
    return service


@pytest.fixture
async def map_pool(test_db):
    service = MapPoolService(test_db)
    await service.load()
    for name in MAPS:
        await service.add(name)
    return service


@pytest.fixture
def state():
    return SetupState()


@pytest.fixture
def queue_service(test_db, state, identities):
    return QueueService(test_db, state, identities)


@pytest.fixture
def players() -> List[Player]:
    return [make_player(i) for i in range(10)]


@pytest.fixture
async def full_queue(identities, queue_service, players):
    """Ten players with SteamIDs, all queued in order."""
    for i, player in enumerate(players):
        await identities.set_steam_id(player.user_id, steam_id_for(i))
        await queue_service.join(player)
    return players


@pytest.fixture
def stats_client():
    return FakeStatsClient()


@pytest.fixture
def dathost():
    return FakeDathostClient()


@pytest.fixture
def mover():
    return RecordingMover()


@pytest.fixture
def launcher(dathost, identities, mover):
    return ServerLaunchCoordinator(
        dathost,
        identities,
        LaunchSettings(
            server_id="server-1",
            match_end_url="https://scrims.example.com/match-end",
            webhook_authorization="Basic dXNlcjpwYXNz",
            team_a_channel_id=111,
            team_b_channel_id=222,
        ),
        member_mover=mover,
        shorten_links=False,
    )


@pytest.fixture
async def make_orchestrator(state, queue_service, map_pool, identities, stats_client, launcher):
    """Factory so tests can pick their own timeouts."""
    created: List[MatchSetupOrchestrator] = []

    def _make(timeouts: Optional[SetupTimeouts] = None, **overrides) -> MatchSetupOrchestrator:
        kwargs = dict(
            state=state,
            queue=queue_service,
            maps=map_pool,
            identities=identities,
            drafts=DraftAssignmentEngine(identities, overrides.pop("stats", stats_client)),
            launcher=overrides.pop("launcher", launcher),
            timeouts=timeouts or SetupTimeouts(ready=5, map_vote=5, draft=5),
        )
        kwargs.update(overrides)
        orchestrator = MatchSetupOrchestrator(**kwargs)
        created.append(orchestrator)
        return orchestrator

    yield _make

    # Drivers must not outlive the test's event loop
    for orchestrator in created:
        await orchestrator.shutdown()

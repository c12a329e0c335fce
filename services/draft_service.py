"""
services/draft_service.py — Team Draft Engine
---------------------------------------------
Resolves two captains and two rosters out of the queued players.

Manual draft:
    Players volunteer as captain (first volunteer is captain A and picks
    first), then captains alternate picks until every queued player is on
    a team.

Auto draft:
    The stats API ranks the queued players' SteamIDs best-first. Rank 0 and
    rank 1 become captain A and captain B. Captain B is the current picker
    when the snake pass begins, so rank 2 goes to team B, rank 3 to team A,
    and so on, flipping the picker after every assignment. Players without
    stats are left unassigned and the draft continues manually from the
    picker the snake pass stopped at.

All mutating methods expect the caller to hold the SetupState lock.
fetch_ranking() does network I/O and must be called without it.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from services.errors import (
    AlreadyCaptain,
    AlreadyPicked,
    AutoDraftUnavailable,
    InsufficientStats,
    InvalidChoice,
    NoStats,
    NotQueued,
    NotYourTurn,
    StatsAPIError,
)
from services.identity_service import IdentityService
from services.setup_state import Draft, Player
from services.stats_client import StatsClient
from utils.steam import normalize_steam_id

log = logging.getLogger(__name__)


class DraftAssignmentEngine:
    """Captain selection, alternating picks and skill-ranked auto-assignment."""

    def __init__(
        self,
        identities: IdentityService,
        stats_client: Optional[StatsClient] = None,
    ):
        self.identities = identities
        self.stats_client = stats_client

    @staticmethod
    def is_complete(draft: Draft, queue: Sequence[Player]) -> bool:
        """True once every queued player is on a team."""
        return draft.picked_count == len(queue)

    @staticmethod
    def captains_set(draft: Draft) -> bool:
        return draft.captain_a is not None and draft.captain_b is not None

    # -------------------------------------------------------------------------
    # Manual draft
    # -------------------------------------------------------------------------

    def volunteer_captain(self, draft: Draft, player: Player) -> str:
        """
        Make `player` a captain.

        Returns "a" or "b" for the slot taken.
        Raises AlreadyCaptain if the player already holds a slot.
        """
        if draft.is_captain(player.user_id):
            raise AlreadyCaptain()

        if draft.captain_a is None:
            draft.captain_a = player
            draft.team_a.append(player)
            draft.current_picker = player
            log.info(f"[DRAFT] {player.user_id} is captain A")
            return "a"

        if draft.captain_b is None:
            draft.captain_b = player
            draft.team_b.append(player)
            log.info(f"[DRAFT] {player.user_id} is captain B")
            return "b"

        raise InvalidChoice("Both captains have already been chosen.")

    def pick(
        self,
        draft: Draft,
        queue: Sequence[Player],
        picker: Player,
        target_id: int,
    ) -> Player:
        """
        Current picker adds `target_id` to their team and hands the turn over.

        Raises NotYourTurn, NotQueued (target not in the queue) or AlreadyPicked.
        """
        if draft.current_picker is None or draft.current_picker != picker:
            raise NotYourTurn()

        target = next((p for p in queue if p.user_id == target_id), None)
        if target is None:
            raise NotQueued("That player is not in the queue.")
        if draft.is_assigned(target_id):
            raise AlreadyPicked()

        self._assign_to_picker(draft, target)
        log.info(f"[DRAFT] {picker.user_id} picked {target_id} ({draft.picked_count}/{len(queue)})")
        return target

    def _assign_to_picker(self, draft: Draft, player: Player) -> None:
        if draft.current_picker == draft.captain_a:
            draft.team_a.append(player)
            draft.current_picker = draft.captain_b
        else:
            draft.team_b.append(player)
            draft.current_picker = draft.captain_a

    # -------------------------------------------------------------------------
    # Auto draft
    # -------------------------------------------------------------------------

    async def fetch_ranking(self, queue: Sequence[Player]) -> List[Player]:
        """
        Ask the stats API to rank the queued players, best first.

        Players without stats are missing from the result. Ranked SteamIDs
        that do not belong to a queued player are ignored.

        Raises:
            AutoDraftUnavailable: stats API not configured or failed
            NoStats: nobody in the queue has stats
            InsufficientStats: only one player has stats
        """
        if self.stats_client is None:
            raise AutoDraftUnavailable(AutoDraftUnavailable.NOT_CONFIGURED)

        by_steam_id: Dict[str, Player] = {}
        for player in queue:
            steam_id = self.identities.get_steam_id(player.user_id)
            if not steam_id:
                continue
            try:
                by_steam_id[normalize_steam_id(steam_id)] = player
            except ValueError:
                log.warning(f"[DRAFT] Ignoring malformed SteamID for {player.user_id}: {steam_id}")

        if not by_steam_id:
            raise NoStats()

        try:
            rows = await self.stats_client.get_player_rankings(by_steam_id.keys())
        except StatsAPIError as e:
            log.error(f"[DRAFT] Stats lookup failed: {e}")
            raise AutoDraftUnavailable(AutoDraftUnavailable.SERVICE_ERROR)

        ranked: List[Player] = []
        for row in rows:
            try:
                player = by_steam_id.get(normalize_steam_id(row.steam_id))
            except ValueError:
                player = None
            if player is not None and player not in ranked:
                ranked.append(player)

        if not ranked:
            raise NoStats()
        if len(ranked) < 2:
            raise InsufficientStats()

        log.info(f"[DRAFT] Stats found for {len(ranked)}/{len(queue)} players")
        return ranked

    def apply_ranking(
        self,
        draft: Draft,
        ranked: Sequence[Player],
        queue: Sequence[Player],
    ) -> List[Player]:
        """
        Build both rosters from a best-first ranking.

        Keeps draft.selected_map. Returns the queued players left unassigned
        (empty when the ranking covered everyone).
        """
        ranked = [p for p in ranked if p in queue]
        if len(ranked) < 2:
            raise InsufficientStats()

        selected_map = draft.selected_map
        draft.reset()
        draft.selected_map = selected_map

        draft.captain_a = ranked[0]
        draft.team_a.append(ranked[0])
        draft.captain_b = ranked[1]
        draft.team_b.append(ranked[1])
        draft.current_picker = draft.captain_b

        for player in ranked[2:]:
            self._assign_to_picker(draft, player)

        remaining = draft.remaining(list(queue))
        log.info(
            f"[DRAFT] Autodraft assigned {draft.picked_count}/{len(queue)}, "
            f"{len(remaining)} left to pick"
        )
        return remaining

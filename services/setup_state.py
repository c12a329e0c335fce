"""
services/setup_state.py — Shared Scrim State
--------------------------------------------
Typed container for everything the queue and the setup orchestrator share:
queue, ready list, map votes, draft and phase. One asyncio.Lock guards it;
every validate-and-mutate step runs inside `async with state.lock`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from services.status_enums import Phase

QUEUE_CAPACITY = 10


@dataclass(frozen=True)
class Player:
    """Chat identity of a queued player. Equality is by user_id only."""

    user_id: int
    display_name: str = field(default="", compare=False)

    @property
    def mention(self) -> str:
        return f"<@{self.user_id}>"


@dataclass
class Draft:
    """In-progress or completed team assignment."""

    captain_a: Optional[Player] = None
    captain_b: Optional[Player] = None
    team_a: List[Player] = field(default_factory=list)
    team_b: List[Player] = field(default_factory=list)
    current_picker: Optional[Player] = None
    selected_map: str = ""
    team_b_start_side: str = ""

    def reset(self) -> None:
        self.captain_a = None
        self.captain_b = None
        self.team_a = []
        self.team_b = []
        self.current_picker = None
        self.selected_map = ""
        self.team_b_start_side = ""

    def copy(self) -> "Draft":
        return Draft(
            captain_a=self.captain_a,
            captain_b=self.captain_b,
            team_a=list(self.team_a),
            team_b=list(self.team_b),
            current_picker=self.current_picker,
            selected_map=self.selected_map,
            team_b_start_side=self.team_b_start_side,
        )

    @property
    def picked_count(self) -> int:
        return len(self.team_a) + len(self.team_b)

    def is_captain(self, user_id: int) -> bool:
        return any(
            c is not None and c.user_id == user_id
            for c in (self.captain_a, self.captain_b)
        )

    def is_assigned(self, user_id: int) -> bool:
        return any(p.user_id == user_id for p in self.team_a + self.team_b)

    def remaining(self, queue: List[Player]) -> List[Player]:
        """Queued players not yet on a team, in queue order."""
        return [p for p in queue if not self.is_assigned(p.user_id)]


@dataclass
class SetupState:
    """Everything mutable about the single scrim this bot runs."""

    capacity: int = QUEUE_CAPACITY
    queue: List[Player] = field(default_factory=list)
    queue_messages: Dict[int, str] = field(default_factory=dict)
    ready: List[Player] = field(default_factory=list)
    map_votes: Dict[int, List[str]] = field(default_factory=dict)
    draft: Draft = field(default_factory=Draft)
    phase: Phase = Phase.QUEUE
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def find_queued(self, user_id: int) -> Optional[Player]:
        for player in self.queue:
            if player.user_id == user_id:
                return player
        return None

    def is_queued(self, user_id: int) -> bool:
        return self.find_queued(user_id) is not None

    def is_ready(self, user_id: int) -> bool:
        return any(p.user_id == user_id for p in self.ready)

    def reset_setup(self) -> None:
        """Back to QUEUE without touching the queue itself."""
        self.ready.clear()
        self.map_votes.clear()
        self.draft.reset()
        self.phase = Phase.QUEUE

    def clear_queue(self) -> None:
        self.queue.clear()
        self.queue_messages.clear()

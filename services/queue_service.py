"""
services/queue_service.py — Scrim Queue
---------------------------------------
The roster of players waiting to play. Capacity is fixed (10); members are
unique by Discord id and must have a SteamID registered.

Every mutation runs under the shared SetupState lock and rewrites the
queue_entries snapshot so the queue survives restarts.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, List, Optional, Tuple

import aiosqlite

from services.errors import (
    AlreadyQueued,
    MissingIdentity,
    NotQueued,
    QueueFull,
    WrongPhase,
)
from services.identity_service import IdentityService
from services.setup_state import Player, SetupState
from services.status_enums import Phase

log = logging.getLogger(__name__)

QUEUE_MESSAGE_MAX_LENGTH = 50

RoleAssigner = Callable[[Player], Awaitable[None]]


class QueueService:
    """
    Service for the scrim queue.

    Provides:
    - join/leave/kick: Membership changes with phase and capacity checks
    - clear: Unconditional wipe (admin command and daily auto-clear)
    - list: Snapshot of members with their join messages
    - restore: Reload the persisted snapshot at startup
    """

    def __init__(
        self,
        db: aiosqlite.Connection,
        state: SetupState,
        identities: IdentityService,
        role_assigner: Optional[RoleAssigner] = None,
    ):
        self.db = db
        self.state = state
        self.identities = identities
        self.role_assigner = role_assigner

    @property
    def capacity(self) -> int:
        return self.state.capacity

    async def restore(self) -> int:
        """Load the persisted queue into memory. Returns the number of players."""
        async with self.db.execute(
            "SELECT user_id, display_name, message FROM queue_entries ORDER BY position"
        ) as cursor:
            rows = await cursor.fetchall()

        async with self.state.lock:
            self.state.clear_queue()
            for user_id, display_name, message in rows[: self.capacity]:
                self.state.queue.append(Player(int(user_id), display_name or ""))
                if message:
                    self.state.queue_messages[int(user_id)] = message

        log.info(f"[QUEUE] Restored {len(self.state.queue)} queued players")
        return len(self.state.queue)

    async def join(self, player: Player, message: Optional[str] = None) -> int:
        """
        Add a player to the queue.

        Returns the new queue size. Raises MissingIdentity, AlreadyQueued, QueueFull,
        or WrongPhase while a setup is running.
        """
        async with self.state.lock:
            if not self.identities.has_steam_id(player.user_id):
                raise MissingIdentity()
            if self.state.is_queued(player.user_id):
                raise AlreadyQueued()
            if len(self.state.queue) >= self.capacity:
                raise QueueFull()
            if self.state.phase != Phase.QUEUE:
                raise WrongPhase("A setup is in progress, wait for it to finish before joining.")

            self.state.queue.append(player)
            if message:
                trimmed = message[:QUEUE_MESSAGE_MAX_LENGTH].strip()
                if trimmed:
                    self.state.queue_messages[player.user_id] = trimmed
            await self._save()
            size = len(self.state.queue)

        log.info(f"[QUEUE] {player.user_id} joined ({size}/{self.capacity})")

        if self.role_assigner is not None:
            try:
                await self.role_assigner(player)
            except Exception as e:
                log.warning(f"[QUEUE] Could not assign queue role to {player.user_id}: {e}")

        return size

    async def leave(self, user_id: int) -> int:
        """Remove yourself from the queue. Only allowed before /start."""
        async with self.state.lock:
            if self.state.phase != Phase.QUEUE:
                raise WrongPhase("Cannot `/leave` the queue after `/start`.")
            size = await self._remove(user_id)
        log.info(f"[QUEUE] {user_id} left ({size}/{self.capacity})")
        return size

    async def kick(self, user_id: int) -> int:
        """Admin removal. Rejected during setup to keep draft sizes stable."""
        async with self.state.lock:
            if self.state.phase != Phase.QUEUE:
                raise WrongPhase(
                    "Cannot `/kick` a user after `/start`, use `/cancel` to start over if needed."
                )
            size = await self._remove(user_id)
        log.info(f"[QUEUE] {user_id} kicked ({size}/{self.capacity})")
        return size

    async def clear(self) -> None:
        """Empty the queue and drop all join messages."""
        async with self.state.lock:
            await self.clear_locked()
        log.info("[QUEUE] Queue cleared")

    async def clear_locked(self) -> None:
        """clear() for callers already holding state.lock."""
        self.state.clear_queue()
        await self._save()

    def list(self) -> List[Tuple[Player, Optional[str]]]:
        return [
            (player, self.state.queue_messages.get(player.user_id))
            for player in self.state.queue
        ]

    # -------------------------------------------------------------------------
    # Internals (caller holds the lock)
    # -------------------------------------------------------------------------

    async def _remove(self, user_id: int) -> int:
        player = self.state.find_queued(user_id)
        if player is None:
            raise NotQueued()
        self.state.queue.remove(player)
        self.state.queue_messages.pop(user_id, None)
        await self._save()
        return len(self.state.queue)

    async def _save(self) -> None:
        """Rewrite the queue snapshot in one transaction."""
        await self.db.execute("DELETE FROM queue_entries")
        await self.db.executemany(
            """
            INSERT INTO queue_entries (position, user_id, display_name, message)
            VALUES (?, ?, ?, ?)
            """,
            [
                (
                    position,
                    player.user_id,
                    player.display_name,
                    self.state.queue_messages.get(player.user_id),
                )
                for position, player in enumerate(self.state.queue)
            ],
        )
        await self.db.commit()

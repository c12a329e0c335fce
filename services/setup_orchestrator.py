"""
services/setup_orchestrator.py — Match Setup State Machine
----------------------------------------------------------
Drives one scrim from a full queue to a launched server:

    QUEUE -> READY -> MAP_PICK -> DRAFT_TYPE_PICK -> (CAPTAIN_PICK -> DRAFT)
          -> SIDE_PICK -> launch -> QUEUE

Two kinds of callers touch the state:

- Players, through handle(SetupAction). Each action validates and mutates
  under SetupState.lock in one critical section, then wakes the driver.
- The driver task started by start(). It waits for the phase to move on
  (or for its deadline) without holding the lock, pushes a SetupStatus to
  the registered listener after each transition, and runs the launch.

Timeouts:
    READY               3 minutes of inactivity
    MAP_PICK            60 seconds, fixed; on expiry the votes so far decide
    DRAFT_TYPE_PICK..   10 minutes of inactivity across the draft phases
    SIDE_PICK

Any timeout (other than the map vote deadline with votes cast) resets the
setup back to QUEUE. The queue itself is kept. A successful or failed
launch resets the setup and clears the queue.

cancel() bumps the setup generation so the running driver exits without
launching.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from services.draft_service import DraftAssignmentEngine
from services.errors import (
    AlreadyStarted,
    AutoDraftUnavailable,
    Busy,
    InvalidChoice,
    LaunchError,
    NoVotes,
    NotCaptain,
    NotQueued,
    NotStarted,
    QueueNotFull,
    ValidationError,
    WrongPhase,
)
from services.identity_service import IdentityService
from services.launch_service import ConnectionInfo, ServerLaunchCoordinator
from services.map_pool_service import MapPoolService
from services.map_vote import resolve as resolve_map_vote
from services.queue_service import QueueService
from services.setup_state import Player, SetupState
from services.status_enums import ActionKind, Phase, Side
from utils.scrim_format import (
    format_player_list,
    format_ready_list,
    format_teams,
)

log = logging.getLogger(__name__)


# =============================================================================
# TYPES
# =============================================================================


@dataclass
class SetupTimeouts:
    """Phase deadlines in seconds."""

    ready: float = 180.0
    map_vote: float = 60.0
    draft: float = 600.0


@dataclass
class SetupAction:
    """One interaction delivered by the chat layer."""

    kind: ActionKind
    user: Player
    values: List[str] = field(default_factory=list)

    @property
    def value(self) -> Optional[str]:
        return self.values[0] if self.values else None


@dataclass
class SetupStatus:
    """Renderable snapshot of the setup.

    options are (value, label) pairs for the phase's select menu:
    map names during MAP_PICK, remaining players during DRAFT.
    """

    phase: Phase
    text: str
    options: List[Tuple[str, str]] = field(default_factory=list)
    connection: Optional[ConnectionInfo] = None
    finished: bool = False
    ready_count: int = 0


@dataclass
class ActionResult:
    """Outcome of a handled action: a reply for the actor plus the new status."""

    message: str
    status: SetupStatus


StatusListener = Callable[[SetupStatus], Awaitable[None]]

# Driver outcomes
_ADVANCED = "advanced"
_CANCELLED = "cancelled"
_TIMED_OUT = "timed_out"

# Which phase each action belongs to
_ACTION_PHASES = {
    ActionKind.READY: Phase.READY,
    ActionKind.UNREADY: Phase.READY,
    ActionKind.MAP_VOTE: Phase.MAP_PICK,
    ActionKind.AUTODRAFT: Phase.DRAFT_TYPE_PICK,
    ActionKind.MANUALDRAFT: Phase.DRAFT_TYPE_PICK,
    ActionKind.CAPTAIN: Phase.CAPTAIN_PICK,
    ActionKind.PICK: Phase.DRAFT,
    ActionKind.SIDE: Phase.SIDE_PICK,
}

READY_TIMEOUT_TEXT = (
    "Start process timed out. Start again when all users are present using `/start`"
)
NO_VOTES_TEXT = "No map votes were submitted, setup cancelled. Use `/start` to try again."
DRAFT_TIMEOUT_TEXT = "Setup timed out due to inactivity. Use `/start` to try again."


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class MatchSetupOrchestrator:
    """
    The single scrim setup for this bot.

    Created once at startup and shared by the cogs.
    """

    def __init__(
        self,
        state: SetupState,
        queue: QueueService,
        maps: MapPoolService,
        identities: IdentityService,
        drafts: DraftAssignmentEngine,
        launcher: Optional[ServerLaunchCoordinator] = None,
        timeouts: Optional[SetupTimeouts] = None,
        rng: Optional[random.Random] = None,
    ):
        self.state = state
        self.queue = queue
        self.maps = maps
        self.identities = identities
        self.drafts = drafts
        self.launcher = launcher
        self.timeouts = timeouts or SetupTimeouts()
        self.rng = rng

        self._listener: Optional[StatusListener] = None
        self._wake = asyncio.Event()
        self._generation = 0
        self._busy = False
        self._driver: Optional[asyncio.Task] = None

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def set_listener(self, listener: Optional[StatusListener]) -> None:
        """Register the coroutine that publishes driver-side status updates."""
        self._listener = listener

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def start(self, player: Player) -> SetupStatus:
        """
        Begin the ready check.

        Raises NotQueued, QueueNotFull, AlreadyStarted or ValidationError
        (empty map pool).
        """
        async with self.state.lock:
            if not self.state.is_queued(player.user_id):
                raise NotQueued()
            if len(self.state.queue) < self.state.capacity:
                raise QueueNotFull()
            if self.state.phase != Phase.QUEUE:
                raise AlreadyStarted()
            if not self.maps.list():
                raise ValidationError(
                    "The map pool is empty, an admin must add maps with `/admin map add`."
                )

            self.state.reset_setup()
            self.state.phase = Phase.READY
            self._generation += 1
            self._busy = False
            generation = self._generation
            status = self._render_locked()

        log.info(f"[SETUP] Setup #{generation} started by {player.user_id}")
        self._driver = asyncio.create_task(self._drive(generation))
        return status

    async def cancel(self) -> None:
        """Abort the running setup. Raises NotStarted when nothing is running."""
        async with self.state.lock:
            if self.state.phase == Phase.QUEUE:
                raise NotStarted()
            self._generation += 1
            self._busy = False
            self.state.reset_setup()
            self._wake.set()
        log.info("[SETUP] Setup cancelled")

    async def handle(self, action: SetupAction) -> ActionResult:
        """
        Apply one player interaction.

        Raises a ValidationError subclass when the action is rejected; the
        state is untouched in that case.
        """
        if action.kind == ActionKind.AUTODRAFT:
            return await self._autodraft(action.user)

        async with self.state.lock:
            self._check_actor_locked(action)
            handler = {
                ActionKind.READY: self._ready_locked,
                ActionKind.UNREADY: self._unready_locked,
                ActionKind.MAP_VOTE: self._map_vote_locked,
                ActionKind.MANUALDRAFT: self._manualdraft_locked,
                ActionKind.CAPTAIN: self._captain_locked,
                ActionKind.PICK: self._pick_locked,
                ActionKind.SIDE: self._side_locked,
            }[action.kind]
            message = handler(action)
            self._wake.set()
            return ActionResult(message, self._render_locked())

    def render(self) -> SetupStatus:
        """Current status. Reads without the lock; callers only display it."""
        return self._render_locked()

    async def wait_until_idle(self) -> None:
        """Wait for the running driver (if any) to finish."""
        if self._driver is not None:
            await asyncio.gather(self._driver, return_exceptions=True)

    async def shutdown(self) -> None:
        if self._driver is not None and not self._driver.done():
            self._driver.cancel()
            await asyncio.gather(self._driver, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Action handlers (caller holds the lock)
    # -------------------------------------------------------------------------

    def _check_actor_locked(self, action: SetupAction) -> None:
        if self.state.phase == Phase.QUEUE:
            raise NotStarted()
        if self.state.phase != _ACTION_PHASES[action.kind]:
            raise WrongPhase()
        if not self.state.is_queued(action.user.user_id):
            raise NotQueued()

    def _ready_locked(self, action: SetupAction) -> str:
        player = self.state.find_queued(action.user.user_id)
        if not self.state.is_ready(player.user_id):
            self.state.ready.append(player)

        if len(self.state.queue) == self.state.capacity and all(
            self.state.is_ready(p.user_id) for p in self.state.queue
        ):
            self.state.phase = Phase.MAP_PICK
            log.info("[SETUP] Everyone is ready, map vote starting")
            return "Everyone is ready!"
        return "You are ready."

    def _unready_locked(self, action: SetupAction) -> str:
        self.state.ready = [p for p in self.state.ready if p.user_id != action.user.user_id]
        return "You are no longer ready."

    def _map_vote_locked(self, action: SetupAction) -> str:
        pool = self.maps.list()
        selection = list(dict.fromkeys(action.values))
        if not selection:
            raise InvalidChoice("Select at least one map.")
        unknown = [m for m in selection if m not in pool]
        if unknown:
            raise InvalidChoice(f"`{unknown[0]}` is not in the map pool.")

        self.state.map_votes[action.user.user_id] = selection
        voted = sum(1 for p in self.state.queue if p.user_id in self.state.map_votes)
        log.info(f"[SETUP] {action.user.user_id} voted {selection} ({voted}/{len(self.state.queue)})")

        if voted == len(self.state.queue):
            self._resolve_map_locked()
        return f"Your vote: {', '.join(f'`{m}`' for m in selection)}"

    def _manualdraft_locked(self, action: SetupAction) -> str:
        if self._busy:
            raise Busy()
        self.state.phase = Phase.CAPTAIN_PICK
        log.info(f"[SETUP] Manual draft selected by {action.user.user_id}")
        return "Manual draft selected."

    def _captain_locked(self, action: SetupAction) -> str:
        player = self.state.find_queued(action.user.user_id)
        draft = self.state.draft
        self.drafts.volunteer_captain(draft, player)

        if self.drafts.captains_set(draft):
            if self.drafts.is_complete(draft, self.state.queue):
                self.state.phase = Phase.SIDE_PICK
            else:
                self.state.phase = Phase.DRAFT
        return "You are a captain."

    def _pick_locked(self, action: SetupAction) -> str:
        try:
            target_id = int(action.value or "")
        except ValueError:
            raise InvalidChoice("Select a player to pick.")

        picker = self.state.find_queued(action.user.user_id)
        target = self.drafts.pick(self.state.draft, self.state.queue, picker, target_id)

        if self.drafts.is_complete(self.state.draft, self.state.queue):
            self.state.phase = Phase.SIDE_PICK
        return f"You picked {target.mention}."

    def _side_locked(self, action: SetupAction) -> str:
        draft = self.state.draft
        if draft.team_b_start_side:
            raise WrongPhase("The starting side has already been chosen.")
        if draft.captain_b is None or draft.captain_b.user_id != action.user.user_id:
            raise NotCaptain()
        try:
            side = Side((action.value or "").lower())
        except ValueError:
            raise InvalidChoice("Choose `ct` or `t`.")

        draft.team_b_start_side = side.value
        log.info(f"[SETUP] Captain B chose to start {side.value.upper()}")
        return f"Team B starts {side.value.upper()}."

    async def _autodraft(self, user: Player) -> ActionResult:
        async with self.state.lock:
            self._check_actor_locked(SetupAction(ActionKind.AUTODRAFT, user))
            if self._busy:
                raise Busy()
            self._busy = True
            generation = self._generation
            queue = list(self.state.queue)
            self._wake.set()

        log.info(f"[SETUP] Autodraft requested by {user.user_id}")
        ranked = None
        try:
            ranked = await self.drafts.fetch_ranking(queue)
        except AutoDraftUnavailable as e:
            log.info(f"[SETUP] Autodraft unavailable: {e.reason}")
            raise ValidationError(e.message) from e
        finally:
            if ranked is None:
                async with self.state.lock:
                    if generation == self._generation:
                        self._busy = False
                        self._wake.set()

        async with self.state.lock:
            if generation != self._generation or self.state.phase != Phase.DRAFT_TYPE_PICK:
                raise WrongPhase("The setup changed while stats were loading.")
            self._busy = False
            remaining = self.drafts.apply_ranking(self.state.draft, ranked, self.state.queue)
            self.state.phase = Phase.DRAFT if remaining else Phase.SIDE_PICK
            self._wake.set()
            if remaining:
                message = (
                    f"Stats found for {len(ranked)} players, "
                    f"{len(remaining)} still need to be picked."
                )
            else:
                message = "Autodraft complete."
            return ActionResult(message, self._render_locked())

    # -------------------------------------------------------------------------
    # Transitions run by the driver (caller holds the lock)
    # -------------------------------------------------------------------------

    def _resolve_map_locked(self) -> bool:
        """Close the map vote. Returns False (and resets) if nobody voted."""
        votes = {
            uid: names
            for uid, names in self.state.map_votes.items()
            if self.state.is_queued(uid)
        }
        try:
            selected = resolve_map_vote(votes, self.rng)
        except NoVotes:
            log.warning("[SETUP] Map vote closed without votes, resetting")
            self.state.reset_setup()
            return False

        self.state.draft.selected_map = selected
        self.state.phase = Phase.DRAFT_TYPE_PICK
        log.info(f"[SETUP] Map vote concluded: {selected}")
        return True

    def _expire_locked(self) -> Tuple[str, str]:
        phase = self.state.phase
        if phase == Phase.MAP_PICK:
            if self._resolve_map_locked():
                return _ADVANCED, ""
            return _TIMED_OUT, NO_VOTES_TEXT

        log.info(f"[SETUP] {phase.value} timed out, resetting")
        self.state.reset_setup()
        if phase == Phase.READY:
            return _TIMED_OUT, READY_TIMEOUT_TEXT
        return _TIMED_OUT, DRAFT_TIMEOUT_TEXT

    def _stage(self) -> Tuple[Phase, bool]:
        return self.state.phase, bool(self.state.draft.team_b_start_side)

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def _timeout_for(self, phase: Phase) -> Tuple[float, bool]:
        """(seconds, rolling) for the phase's deadline."""
        if phase == Phase.READY:
            return self.timeouts.ready, True
        if phase == Phase.MAP_PICK:
            return self.timeouts.map_vote, False
        return self.timeouts.draft, True

    async def _await_transition(
        self,
        generation: int,
        stage: Tuple[Phase, bool],
    ) -> Tuple[str, str]:
        """
        Wait until the stage changes, the setup is cancelled or the deadline passes.

        Rolling deadlines restart on every accepted action.
        """
        timeout, rolling = self._timeout_for(stage[0])
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        expired = False

        while True:
            async with self.state.lock:
                if generation != self._generation:
                    return _CANCELLED, ""
                if self._stage() != stage:
                    return _ADVANCED, ""
                if expired:
                    if self._busy:
                        # autodraft in flight counts as activity
                        expired = False
                        deadline = loop.time() + timeout
                    else:
                        return self._expire_locked()
                self._wake.clear()

            try:
                await asyncio.wait_for(
                    self._wake.wait(), timeout=max(0.0, deadline - loop.time())
                )
            except asyncio.TimeoutError:
                expired = True
            else:
                if rolling:
                    deadline = loop.time() + timeout

    async def _drive(self, generation: int) -> None:
        try:
            first = True
            while True:
                async with self.state.lock:
                    if generation != self._generation:
                        return
                    stage = self._stage()
                    status = self._render_locked()

                if stage[0] == Phase.SIDE_PICK and stage[1]:
                    break
                if not first:
                    await self._notify(status)
                first = False

                outcome, text = await self._await_transition(generation, stage)
                if outcome == _CANCELLED:
                    log.info(f"[SETUP] Driver #{generation} stopped by cancel")
                    return
                if outcome == _TIMED_OUT:
                    await self._notify(SetupStatus(Phase.QUEUE, text, finished=True))
                    return

            await self._launch(generation)

        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception(f"[SETUP] Driver #{generation} crashed, resetting")
            async with self.state.lock:
                if generation == self._generation:
                    self.state.reset_setup()
            await self._notify(
                SetupStatus(Phase.QUEUE, "Something went wrong, setup cancelled.", finished=True)
            )

    async def _launch(self, generation: int) -> None:
        async with self.state.lock:
            draft = self.state.draft.copy()
            queue = list(self.state.queue)
            teams = format_teams(draft, self.identities.get_team_name)

        await self._notify(
            SetupStatus(Phase.SIDE_PICK, f"{teams}\n\nMap: `{draft.selected_map}`\n\nStarting server...")
        )

        connection: Optional[ConnectionInfo] = None
        error: Optional[str] = None
        try:
            if self.launcher is None:
                raise LaunchError("Server launching is not configured.")
            connection = await self.launcher.launch(draft, queue)
        except LaunchError as e:
            log.error(f"[SETUP] Launch failed: {e.message}")
            error = e.message
        finally:
            async with self.state.lock:
                if generation == self._generation:
                    self.state.reset_setup()
                    await self.queue.clear_locked()
                    log.info("[SETUP] Setup finished, queue cleared")
                else:
                    log.info("[SETUP] Setup was cancelled during launch")

        text = f"{teams}\n\nMap: `{draft.selected_map}`"
        if error:
            text += f"\n\n{error}"
        await self._notify(
            SetupStatus(Phase.QUEUE, text, connection=connection, finished=True)
        )

    async def _notify(self, status: SetupStatus) -> None:
        if self._listener is None:
            return
        try:
            await self._listener(status)
        except Exception:
            log.exception("[SETUP] Status listener failed")

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _render_locked(self) -> SetupStatus:
        state = self.state
        draft = state.draft
        phase = state.phase
        team_names = self.identities.get_team_name

        if phase == Phase.QUEUE:
            return SetupStatus(phase, "No setup in progress.")

        if phase == Phase.READY:
            return SetupStatus(
                phase,
                format_ready_list(state.queue, state.ready),
                ready_count=len(state.ready),
            )

        if phase == Phase.MAP_PICK:
            voted = sum(1 for p in state.queue if p.user_id in state.map_votes)
            return SetupStatus(
                phase,
                f"Map vote phase: vote for 1 or more maps ({voted}/{len(state.queue)} voted)",
                options=[(m, m) for m in self.maps.list()],
            )

        if phase == Phase.DRAFT_TYPE_PICK:
            return SetupStatus(
                phase,
                f"Map vote has concluded. `{draft.selected_map}` will be played.\n\n"
                "Select draft option:",
            )

        if phase == Phase.CAPTAIN_PICK:
            if draft.captain_a is None:
                text = "Manual draft selected, 2 players must volunteer to be captains:"
            else:
                text = f"{draft.captain_a.mention} is a captain, 1 more player must volunteer to be captain:"
            return SetupStatus(phase, text)

        if phase == Phase.DRAFT:
            remaining = draft.remaining(state.queue)
            picker = draft.current_picker.mention if draft.current_picker else "?"
            text = (
                f"{format_teams(draft, team_names)}\n\n"
                f"**Remaining:**\n{format_player_list(remaining)}\n\n"
                f"It is {picker} turn to pick:"
            )
            return SetupStatus(
                phase,
                text,
                options=[(str(p.user_id), p.display_name or str(p.user_id)) for p in remaining],
            )

        # SIDE_PICK
        captain_b = draft.captain_b.mention if draft.captain_b else "Captain B"
        text = (
            f"{format_teams(draft, team_names)}\n\n"
            f"{captain_b} select starting side on `{draft.selected_map}`"
        )
        return SetupStatus(phase, text, options=[(s.value, s.value.upper()) for s in Side])

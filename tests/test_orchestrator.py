"""
tests/test_orchestrator.py — Match setup state machine.

Covers phase gating, timeouts, cancel, auto-draft, launch outcomes and the
full queue-to-launch flow. Timeouts are shrunk to fractions of a second.
"""

import asyncio
import random

import pytest

from services.errors import (
    AlreadyCaptain,
    AlreadyStarted,
    Busy,
    InvalidChoice,
    NotCaptain,
    NotQueued,
    NotStarted,
    NotYourTurn,
    QueueNotFull,
    ValidationError,
    WrongPhase,
)
from services.setup_orchestrator import (
    DRAFT_TIMEOUT_TEXT,
    NO_VOTES_TEXT,
    READY_TIMEOUT_TEXT,
    SetupAction,
    SetupTimeouts,
)
from services.status_enums import ActionKind, Phase
from conftest import (
    FakeDathostClient,
    make_player,
    stats_id_for,
    steam_id_for,
    wait_for_phase,
)

FAST = SetupTimeouts(ready=0.2, map_vote=0.2, draft=0.2)


def act(kind, player, *values):
    return SetupAction(kind, player, list(values))


async def ready_all(orchestrator, players):
    for player in players:
        await orchestrator.handle(act(ActionKind.READY, player))


async def vote_all(orchestrator, players, map_name="de_mirage"):
    for player in players:
        await orchestrator.handle(act(ActionKind.MAP_VOTE, player, map_name))


async def to_draft_type_pick(orchestrator, players):
    await orchestrator.start(players[0])
    await ready_all(orchestrator, players)
    await vote_all(orchestrator, players)


def collect(orchestrator):
    statuses = []

    async def listener(status):
        statuses.append(status)

    orchestrator.set_listener(listener)
    return statuses


class TestStart:
    @pytest.mark.asyncio
    async def test_start_requires_full_queue(self, make_orchestrator, identities, queue_service):
        orchestrator = make_orchestrator()
        player = make_player(0)
        await identities.set_steam_id(player.user_id, "STEAM_0:0:1")
        await queue_service.join(player)

        with pytest.raises(QueueNotFull):
            await orchestrator.start(player)
        assert orchestrator.phase == Phase.QUEUE

    @pytest.mark.asyncio
    async def test_start_requires_queued_player(self, make_orchestrator, full_queue):
        orchestrator = make_orchestrator()
        with pytest.raises(NotQueued):
            await orchestrator.start(make_player(50))
        assert orchestrator.phase == Phase.QUEUE

    @pytest.mark.asyncio
    async def test_second_start_rejected(self, make_orchestrator, full_queue):
        orchestrator = make_orchestrator()
        status = await orchestrator.start(full_queue[0])
        assert status.phase == Phase.READY

        with pytest.raises(AlreadyStarted):
            await orchestrator.start(full_queue[1])
        assert orchestrator.phase == Phase.READY

    @pytest.mark.asyncio
    async def test_actions_before_start_rejected(self, make_orchestrator, full_queue):
        orchestrator = make_orchestrator()
        with pytest.raises(NotStarted):
            await orchestrator.handle(act(ActionKind.READY, full_queue[0]))


class TestReadyCheck:
    @pytest.mark.asyncio
    async def test_all_ready_advances_to_map_pick(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])

        await ready_all(orchestrator, full_queue[:9])
        await orchestrator.handle(act(ActionKind.UNREADY, full_queue[3]))
        assert orchestrator.phase == Phase.READY

        await orchestrator.handle(act(ActionKind.READY, full_queue[3]))
        result = await orchestrator.handle(act(ActionKind.READY, full_queue[9]))

        assert result.status.phase == Phase.MAP_PICK
        assert sorted(p.user_id for p in state.ready) == sorted(p.user_id for p in full_queue)

    @pytest.mark.asyncio
    async def test_ready_twice_counts_once(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])

        await orchestrator.handle(act(ActionKind.READY, full_queue[0]))
        await orchestrator.handle(act(ActionKind.READY, full_queue[0]))
        assert len(state.ready) == 1

    @pytest.mark.asyncio
    async def test_outsider_cannot_ready(self, make_orchestrator, full_queue):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])

        with pytest.raises(NotQueued):
            await orchestrator.handle(act(ActionKind.READY, make_player(77)))

    @pytest.mark.asyncio
    async def test_inactivity_resets_but_keeps_queue(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator(FAST)
        statuses = collect(orchestrator)
        await orchestrator.start(full_queue[0])
        await orchestrator.handle(act(ActionKind.READY, full_queue[0]))

        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert state.ready == []
        assert len(state.queue) == 10
        assert statuses[-1].finished
        assert statuses[-1].text == READY_TIMEOUT_TEXT


class TestMapVote:
    @pytest.mark.asyncio
    async def test_tied_vote_picks_one_of_the_tied_maps(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator(rng=random.Random(7))
        await orchestrator.start(full_queue[0])
        await ready_all(orchestrator, full_queue)

        for i, player in enumerate(full_queue):
            await orchestrator.handle(
                act(ActionKind.MAP_VOTE, player, "de_mirage" if i < 5 else "de_inferno")
            )

        assert state.phase == Phase.DRAFT_TYPE_PICK
        assert state.draft.selected_map in ("de_mirage", "de_inferno")

    @pytest.mark.asyncio
    async def test_revote_replaces_previous_vote(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])
        await ready_all(orchestrator, full_queue)

        await orchestrator.handle(act(ActionKind.MAP_VOTE, full_queue[0], "de_nuke"))
        await orchestrator.handle(act(ActionKind.MAP_VOTE, full_queue[0], "de_mirage", "de_ancient"))

        assert state.map_votes[full_queue[0].user_id] == ["de_mirage", "de_ancient"]

    @pytest.mark.asyncio
    async def test_unknown_map_rejected(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])
        await ready_all(orchestrator, full_queue)

        with pytest.raises(InvalidChoice):
            await orchestrator.handle(act(ActionKind.MAP_VOTE, full_queue[0], "de_cache"))
        with pytest.raises(InvalidChoice):
            await orchestrator.handle(act(ActionKind.MAP_VOTE, full_queue[0]))
        assert state.map_votes == {}

    @pytest.mark.asyncio
    async def test_deadline_uses_votes_so_far(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator(SetupTimeouts(ready=5, map_vote=0.2, draft=5))
        await orchestrator.start(full_queue[0])
        await ready_all(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.MAP_VOTE, full_queue[4], "de_nuke"))

        await wait_for_phase(state, Phase.DRAFT_TYPE_PICK)
        assert state.draft.selected_map == "de_nuke"

    @pytest.mark.asyncio
    async def test_deadline_without_votes_aborts(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator(SetupTimeouts(ready=5, map_vote=0.2, draft=5))
        statuses = collect(orchestrator)
        await orchestrator.start(full_queue[0])
        await ready_all(orchestrator, full_queue)

        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert len(state.queue) == 10
        assert statuses[-1].text == NO_VOTES_TEXT


class TestManualDraftFlow:
    @pytest.mark.asyncio
    async def test_captains_then_alternating_picks(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[5]))
        assert state.phase == Phase.CAPTAIN_PICK

        await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[2]))
        with pytest.raises(AlreadyCaptain):
            await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[2]))
        await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[6]))
        assert state.phase == Phase.DRAFT

        with pytest.raises(NotYourTurn):
            await orchestrator.handle(act(ActionKind.PICK, full_queue[6], str(full_queue[0].user_id)))

        result = await orchestrator.handle(act(ActionKind.PICK, full_queue[2], str(full_queue[0].user_id)))
        assert (str(full_queue[0].user_id), "player0") not in result.status.options
        assert state.draft.current_picker == full_queue[6]

    @pytest.mark.asyncio
    async def test_concurrent_captain_volunteers(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[0]))

        results = await asyncio.gather(
            orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[1])),
            orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[1])),
            return_exceptions=True,
        )

        assert sum(isinstance(r, AlreadyCaptain) for r in results) == 1
        assert state.draft.captain_a == full_queue[1]
        assert state.draft.captain_b is None

    @pytest.mark.asyncio
    async def test_only_captain_b_picks_side(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[0]))
        await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[0]))
        await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[1]))

        picker, other = full_queue[0], full_queue[1]
        for target in full_queue[2:]:
            await orchestrator.handle(act(ActionKind.PICK, picker, str(target.user_id)))
            picker, other = other, picker
        assert state.phase == Phase.SIDE_PICK

        with pytest.raises(NotCaptain):
            await orchestrator.handle(act(ActionKind.SIDE, full_queue[0], "ct"))
        with pytest.raises(InvalidChoice):
            await orchestrator.handle(act(ActionKind.SIDE, full_queue[1], "spectator"))
        assert state.draft.team_b_start_side == ""

    @pytest.mark.asyncio
    async def test_wrong_phase_action(self, make_orchestrator, full_queue):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])
        with pytest.raises(WrongPhase):
            await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[0]))

    @pytest.mark.asyncio
    async def test_draft_inactivity_resets(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator(SetupTimeouts(ready=5, map_vote=5, draft=0.2))
        statuses = collect(orchestrator)
        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[0]))
        await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[0]))

        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert state.draft.captain_a is None
        assert state.ready == []
        assert len(state.queue) == 10
        assert statuses[-1].text == DRAFT_TIMEOUT_TEXT


class TestAutoDraftFlow:
    @pytest.mark.asyncio
    async def test_full_ranking_goes_to_side_pick(self, make_orchestrator, full_queue, state, stats_client):
        stats_client.ranking = [stats_id_for(i) for i in range(10)]
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)

        result = await orchestrator.handle(act(ActionKind.AUTODRAFT, full_queue[3]))

        p = full_queue
        assert result.status.phase == Phase.SIDE_PICK
        assert state.draft.team_a == [p[0], p[3], p[5], p[7], p[9]]
        assert state.draft.team_b == [p[1], p[2], p[4], p[6], p[8]]

    @pytest.mark.asyncio
    async def test_partial_ranking_continues_manually(self, make_orchestrator, full_queue, state, stats_client):
        stats_client.ranking = [stats_id_for(i) for i in (9, 8, 7, 6, 5)]
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)

        result = await orchestrator.handle(act(ActionKind.AUTODRAFT, full_queue[0]))

        assert state.phase == Phase.DRAFT
        remaining_ids = {int(value) for value, _ in result.status.options}
        assert remaining_ids == {p.user_id for p in full_queue[:5]}
        # five ranked: B got rank 2 and 4, A got rank 3, so A picks next
        assert state.draft.current_picker == full_queue[9]

    @pytest.mark.asyncio
    async def test_no_stats_leaves_manual_option(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)

        with pytest.raises(ValidationError) as exc_info:
            await orchestrator.handle(act(ActionKind.AUTODRAFT, full_queue[0]))
        assert "No statistics found" in exc_info.value.message
        assert state.phase == Phase.DRAFT_TYPE_PICK

        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[0]))
        assert state.phase == Phase.CAPTAIN_PICK

    @pytest.mark.asyncio
    async def test_manual_choice_blocked_while_autodraft_in_flight(self, make_orchestrator, full_queue, state):
        gate = asyncio.Event()

        class SlowStats:
            async def get_player_rankings(self, steam_ids):
                await gate.wait()
                return []

        orchestrator = make_orchestrator(stats=SlowStats())
        await to_draft_type_pick(orchestrator, full_queue)

        pending = asyncio.create_task(orchestrator.handle(act(ActionKind.AUTODRAFT, full_queue[0])))
        await asyncio.sleep(0.05)

        with pytest.raises(Busy):
            await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[1]))

        gate.set()
        with pytest.raises(ValidationError):
            await pending
        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[1]))
        assert state.phase == Phase.CAPTAIN_PICK


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_in_queue_phase_rejected(self, make_orchestrator, full_queue):
        orchestrator = make_orchestrator()
        with pytest.raises(NotStarted):
            await orchestrator.cancel()

    @pytest.mark.asyncio
    async def test_cancel_mid_draft_resets(self, make_orchestrator, full_queue, state, dathost):
        orchestrator = make_orchestrator()
        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[0]))
        await orchestrator.handle(act(ActionKind.CAPTAIN, full_queue[0]))

        await orchestrator.cancel()
        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert state.draft.captain_a is None
        assert state.draft.selected_map == ""
        assert state.ready == []
        assert dathost.started == []

        # a new setup can start straight away
        status = await orchestrator.start(full_queue[0])
        assert status.phase == Phase.READY


class TestQueueClearedMidSetup:
    @pytest.mark.asyncio
    async def test_newcomers_cannot_join_a_running_setup(
        self, make_orchestrator, full_queue, state, identities, queue_service, dathost
    ):
        orchestrator = make_orchestrator(FAST)
        await orchestrator.start(full_queue[0])
        await queue_service.clear()

        for i in (20, 21):
            newcomer = make_player(i)
            await identities.set_steam_id(newcomer.user_id, steam_id_for(i))
            with pytest.raises(WrongPhase):
                await queue_service.join(newcomer)

        await orchestrator.wait_until_idle()
        assert state.phase == Phase.QUEUE
        assert state.queue == []
        assert dathost.started == []

    @pytest.mark.asyncio
    async def test_short_roster_never_passes_ready_check(self, make_orchestrator, full_queue, state):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])
        state.queue = state.queue[:2]

        await ready_all(orchestrator, full_queue[:2])

        assert state.phase == Phase.READY

    @pytest.mark.asyncio
    async def test_cancel_then_clear_allows_a_fresh_queue(
        self, make_orchestrator, full_queue, state, identities, queue_service
    ):
        orchestrator = make_orchestrator()
        await orchestrator.start(full_queue[0])

        await orchestrator.cancel()
        await queue_service.clear()
        await orchestrator.wait_until_idle()
        assert state.phase == Phase.QUEUE

        newcomers = [make_player(i) for i in range(20, 30)]
        for i, player in zip(range(20, 30), newcomers):
            await identities.set_steam_id(player.user_id, steam_id_for(i))
            await queue_service.join(player)

        status = await orchestrator.start(newcomers[0])
        assert status.phase == Phase.READY


class TestLaunch:
    @pytest.mark.asyncio
    async def test_end_to_end(self, make_orchestrator, full_queue, state, dathost, mover):
        orchestrator = make_orchestrator(rng=random.Random(3))
        statuses = collect(orchestrator)

        await orchestrator.start(full_queue[4])
        await ready_all(orchestrator, full_queue)
        for i, player in enumerate(full_queue):
            await orchestrator.handle(
                act(ActionKind.MAP_VOTE, player, "de_mirage" if i % 2 else "de_nuke")
            )
        selected_map = state.draft.selected_map
        assert selected_map in ("de_mirage", "de_nuke")

        await orchestrator.handle(act(ActionKind.MANUALDRAFT, full_queue[4]))
        captain_a, captain_b = full_queue[8], full_queue[2]
        await orchestrator.handle(act(ActionKind.CAPTAIN, captain_a))
        await orchestrator.handle(act(ActionKind.CAPTAIN, captain_b))

        picker, other = captain_a, captain_b
        for target in [p for p in full_queue if p not in (captain_a, captain_b)]:
            await orchestrator.handle(act(ActionKind.PICK, picker, str(target.user_id)))
            picker, other = other, picker
        assert state.phase == Phase.SIDE_PICK
        assert len(state.draft.team_a) == len(state.draft.team_b) == 5

        await orchestrator.handle(act(ActionKind.SIDE, captain_b, "ct"))
        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert state.queue == []
        assert state.ready == []
        assert state.draft.captain_a is None

        body = dathost.started[0]
        assert body["settings"]["map"] == selected_map
        assert body["team2"]["name"] == f"Team {captain_b.display_name}"
        assert len(mover.moves) == 10

        final = statuses[-1]
        assert final.finished
        assert final.connection is not None
        assert final.connection.game_address == "203.0.113.10:27015"

    @pytest.mark.asyncio
    async def test_rejected_launch_still_resets(self, make_orchestrator, full_queue, state, identities, stats_client):
        from services.launch_service import LaunchSettings, ServerLaunchCoordinator

        launcher = ServerLaunchCoordinator(
            FakeDathostClient(start_status=400),
            identities,
            LaunchSettings(server_id="s"),
            shorten_links=False,
        )
        stats_client.ranking = [stats_id_for(i) for i in range(10)]
        orchestrator = make_orchestrator(launcher=launcher)
        statuses = collect(orchestrator)

        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.AUTODRAFT, full_queue[0]))
        await orchestrator.handle(act(ActionKind.SIDE, full_queue[1], "t"))
        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert state.queue == []
        assert state.ready == []
        final = statuses[-1]
        assert final.finished
        assert final.connection is None
        assert "response code: 400" in final.text

    @pytest.mark.asyncio
    async def test_launch_not_configured_resets(self, make_orchestrator, full_queue, state, stats_client):
        stats_client.ranking = [stats_id_for(i) for i in range(10)]
        orchestrator = make_orchestrator(launcher=None)
        statuses = collect(orchestrator)

        await to_draft_type_pick(orchestrator, full_queue)
        await orchestrator.handle(act(ActionKind.AUTODRAFT, full_queue[0]))
        await orchestrator.handle(act(ActionKind.SIDE, full_queue[1], "ct"))
        await orchestrator.wait_until_idle()

        assert state.phase == Phase.QUEUE
        assert state.queue == []
        assert "not configured" in statuses[-1].text

"""
ui/setup_views.py — Scrim Setup Components
==========================================
One view per setup phase. Every component resolves its click into a
SetupAction and hands it to the orchestrator; no state lives here.
"""

import logging
from typing import List, Optional

import discord

from services.errors import ValidationError
from services.launch_service import ConnectionInfo
from services.setup_orchestrator import MatchSetupOrchestrator, SetupAction, SetupStatus
from services.setup_state import Player
from services.status_enums import ActionKind, Phase, Side

log = logging.getLogger(__name__)

# Discord select menus accept at most 25 options
SELECT_LIMIT = 25


def player_from_user(user: discord.abc.User) -> Player:
    return Player(user.id, getattr(user, "display_name", None) or user.name)


# -----------------------------------------------------------------------------
# BASE
# -----------------------------------------------------------------------------


class SetupPhaseView(discord.ui.View):
    """Common dispatch for all setup phase views."""

    def __init__(self, orchestrator: MatchSetupOrchestrator):
        super().__init__(timeout=None)
        self.orchestrator = orchestrator

    async def dispatch(
        self,
        interaction: discord.Interaction,
        kind: ActionKind,
        values: Optional[List[str]] = None,
        confirm: bool = False,
    ):
        """Send the action to the orchestrator and redraw the setup message."""
        action = SetupAction(kind, player_from_user(interaction.user), list(values or []))

        # Stats lookups can take longer than the 3s interaction window
        deferred = kind == ActionKind.AUTODRAFT
        if deferred:
            await interaction.response.defer()

        try:
            result = await self.orchestrator.handle(action)
        except ValidationError as e:
            if deferred:
                return await interaction.followup.send(f"❌ {e.message}", ephemeral=True)
            return await interaction.response.send_message(f"❌ {e.message}", ephemeral=True)

        view = build_setup_view(self.orchestrator, result.status)
        if deferred:
            await interaction.edit_original_response(content=result.status.text, view=view)
        else:
            await interaction.response.edit_message(content=result.status.text, view=view)

        if confirm or deferred:
            await interaction.followup.send(result.message, ephemeral=True)


# -----------------------------------------------------------------------------
# PHASE VIEWS
# -----------------------------------------------------------------------------


class ReadyCheckView(SetupPhaseView):
    @discord.ui.button(label="Ready", style=discord.ButtonStyle.success, custom_id=ActionKind.READY.value, emoji="✔")
    async def ready(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.READY)

    @discord.ui.button(label="Unready", style=discord.ButtonStyle.danger, custom_id=ActionKind.UNREADY.value)
    async def unready(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.UNREADY)


class MapSelect(discord.ui.Select):
    def __init__(self, maps: List[str]):
        maps = maps[:SELECT_LIMIT]
        super().__init__(
            custom_id=ActionKind.MAP_VOTE.value,
            placeholder="Select maps",
            min_values=1,
            max_values=max(1, len(maps)),
            options=[discord.SelectOption(label=m, value=m) for m in maps],
        )

    async def callback(self, interaction: discord.Interaction):
        await self.view.dispatch(interaction, ActionKind.MAP_VOTE, self.values, confirm=True)


class MapVoteView(SetupPhaseView):
    def __init__(self, orchestrator: MatchSetupOrchestrator, maps: List[str]):
        super().__init__(orchestrator)
        self.add_item(MapSelect(maps))


class DraftTypeView(SetupPhaseView):
    @discord.ui.button(label="Autodraft", style=discord.ButtonStyle.primary, custom_id=ActionKind.AUTODRAFT.value)
    async def autodraft(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.AUTODRAFT)

    @discord.ui.button(label="Manual Draft", style=discord.ButtonStyle.secondary, custom_id=ActionKind.MANUALDRAFT.value)
    async def manualdraft(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.MANUALDRAFT)


class CaptainView(SetupPhaseView):
    @discord.ui.button(label="Become Captain", style=discord.ButtonStyle.success, custom_id=ActionKind.CAPTAIN.value)
    async def captain(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.CAPTAIN)


class PlayerSelect(discord.ui.Select):
    def __init__(self, options: List[tuple]):
        super().__init__(
            custom_id=ActionKind.PICK.value,
            placeholder="Select a player",
            min_values=1,
            max_values=1,
            options=[
                discord.SelectOption(label=label[:100], value=value)
                for value, label in options[:SELECT_LIMIT]
            ],
        )

    async def callback(self, interaction: discord.Interaction):
        await self.view.dispatch(interaction, ActionKind.PICK, self.values)


class PlayerPickView(SetupPhaseView):
    def __init__(self, orchestrator: MatchSetupOrchestrator, options: List[tuple]):
        super().__init__(orchestrator)
        if options:
            self.add_item(PlayerSelect(options))


class SidePickView(SetupPhaseView):
    @discord.ui.button(label="CT", style=discord.ButtonStyle.primary, custom_id="side:ct")
    async def ct(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.SIDE, [Side.CT.value])

    @discord.ui.button(label="T", style=discord.ButtonStyle.danger, custom_id="side:t")
    async def t(self, interaction: discord.Interaction, button: discord.ui.Button):
        await self.dispatch(interaction, ActionKind.SIDE, [Side.T.value])


def build_setup_view(
    orchestrator: MatchSetupOrchestrator,
    status: SetupStatus,
) -> Optional[discord.ui.View]:
    """Components for the status's phase, or None when nothing is selectable."""
    if status.finished:
        return ConnectView(status.connection) if status.connection else None

    phase = status.phase
    if phase == Phase.READY:
        return ReadyCheckView(orchestrator)
    if phase == Phase.MAP_PICK:
        return MapVoteView(orchestrator, [value for value, _ in status.options])
    if phase == Phase.DRAFT_TYPE_PICK:
        return DraftTypeView(orchestrator)
    if phase == Phase.CAPTAIN_PICK:
        return CaptainView(orchestrator)
    if phase == Phase.DRAFT:
        return PlayerPickView(orchestrator, status.options)
    if phase == Phase.SIDE_PICK and status.options:
        return SidePickView(orchestrator)
    return None


# -----------------------------------------------------------------------------
# CONNECT
# -----------------------------------------------------------------------------


class ConsoleCommandsButton(discord.ui.Button):
    def __init__(self, connection: ConnectionInfo):
        super().__init__(
            label="Console Cmds",
            style=discord.ButtonStyle.secondary,
            custom_id="console",
            emoji="🧾",
        )
        self.connection = connection

    async def callback(self, interaction: discord.Interaction):
        await interaction.response.send_message(
            f"Console: ||`{self.connection.console_command}`||\n"
            f"GOTV: ||`{self.connection.gotv_console_command}`||",
            ephemeral=True,
        )


class ConnectView(discord.ui.View):
    """Connect/GOTV link buttons plus a console-commands button for 5 minutes."""

    def __init__(self, connection: ConnectionInfo):
        super().__init__(timeout=60 * 5)
        self.connection = connection
        self.message: Optional[discord.Message] = None

        # Link buttons only accept http(s) URLs
        if connection.game_link.startswith("http"):
            self.add_item(discord.ui.Button(label="Connect", url=connection.game_link, emoji="▶"))
        if connection.gotv_link.startswith("http"):
            self.add_item(discord.ui.Button(label="GOTV", url=connection.gotv_link, emoji="📺"))
        self.console_button = ConsoleCommandsButton(connection)
        self.add_item(self.console_button)

    async def on_timeout(self):
        self.remove_item(self.console_button)
        if self.message is not None:
            try:
                await self.message.edit(view=self if self.children else None)
            except discord.HTTPException as e:
                log.warning(f"[SETUP-UI] Could not remove console button: {e}")

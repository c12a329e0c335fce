"""
ui/ — Discord UI components for the Scrim Bot
=============================================
Contains:
- View and Select classes for each setup phase
- Embed/brand helpers
- No database access or business logic
"""

from ui.setup_views import (
    SetupPhaseView,
    ReadyCheckView,
    MapVoteView,
    DraftTypeView,
    CaptainView,
    PlayerPickView,
    SidePickView,
    ConnectView,
    build_setup_view,
    player_from_user,
)

__all__ = [
    "SetupPhaseView",
    "ReadyCheckView",
    "MapVoteView",
    "DraftTypeView",
    "CaptainView",
    "PlayerPickView",
    "SidePickView",
    "ConnectView",
    "build_setup_view",
    "player_from_user",
]

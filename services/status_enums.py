"""
Status Enums for the Scrim Setup Engine

Canonical definitions for setup phases and interaction kinds.
All cogs and services should import from here.
"""

from enum import Enum


class Phase(str, Enum):
    """Setup lifecycle phases. QUEUE is both the initial and the reset state."""

    QUEUE = "queue"  # Players joining/leaving, no setup running
    READY = "ready"  # Ready check after /start
    MAP_PICK = "map_pick"  # Map vote
    DRAFT_TYPE_PICK = "draft_type_pick"  # Auto or manual draft choice
    CAPTAIN_PICK = "captain_pick"  # Manual draft: captains volunteering
    DRAFT = "draft"  # Alternating picks
    SIDE_PICK = "side_pick"  # Captain B chooses starting side


class Side(str, Enum):
    """Starting side for team B."""

    CT = "ct"
    T = "t"


class ActionKind(str, Enum):
    """Closed set of interactions the chat layer can deliver to the orchestrator.

    Values double as component custom_ids.
    """

    READY = "ready"
    UNREADY = "unready"
    MAP_VOTE = "map_select"
    AUTODRAFT = "autodraft"
    MANUALDRAFT = "manualdraft"
    CAPTAIN = "captain"
    PICK = "user_select"
    SIDE = "side"

"""
Plain-text formatting for scrim messages (queue, ready check, teams).

Pure functions, no Discord objects, so services and tests can use them.
"""

from typing import Callable, List, Optional, Sequence, Tuple

from services.setup_state import Draft, Player

TeamNameLookup = Callable[[int], Optional[str]]


def format_queue(entries: Sequence[Tuple[Player, Optional[str]]], capacity: int) -> str:
    """Numbered queue listing with each player's join message."""
    if not entries:
        return f"Queue is empty (0/{capacity})."

    lines = [f"**Queue ({len(entries)}/{capacity}):**"]
    for i, (player, message) in enumerate(entries, 1):
        line = f"{i}. {player.mention}"
        if message:
            line += f": `{message}`"
        lines.append(line)
    return "\n".join(lines)


def format_ready_list(queue: Sequence[Player], ready: Sequence[Player]) -> str:
    lines = ["Ready check:"]
    for player in queue:
        mark = "✔" if player in ready else "❌"
        lines.append(f"{mark} {player.mention}")
    return "\n".join(lines)


def display_team_name(captain: Optional[Player], team_names: Optional[TeamNameLookup] = None) -> str:
    if captain is None:
        return "TBD"
    if team_names is not None:
        custom = team_names(captain.user_id)
        if custom:
            return custom
    return captain.display_name or captain.mention


def format_teams(draft: Draft, team_names: Optional[TeamNameLookup] = None) -> str:
    lines: List[str] = []
    for captain, team in (
        (draft.captain_a, draft.team_a),
        (draft.captain_b, draft.team_b),
    ):
        lines.append(f"**Team {display_team_name(captain, team_names)}:**")
        lines.extend(f"- {p.mention}" for p in team)
        lines.append("")
    return "\n".join(lines).rstrip()


def format_player_list(players: Sequence[Player]) -> str:
    return "\n".join(f"- {p.mention}" for p in players)


def format_map_pool(maps: Sequence[str]) -> str:
    if not maps:
        return "The map pool is empty. Admins can add maps with `/admin map add`."
    return "**Map pool:**\n" + "\n".join(f"- `{m}`" for m in maps)

"""
services/map_vote.py — Map Vote Tally
-------------------------------------
Folds per-player map selections into counts and picks the winner.
Each voter adds one to every map they selected; ties are broken uniformly
at random among the maps sharing the top count.
"""

from __future__ import annotations

import random
from typing import Dict, Iterable, List, Mapping, Optional

from services.errors import NoVotes


def tally(votes: Mapping[int, Iterable[str]]) -> Dict[str, int]:
    """Count how many voters selected each map."""
    counts: Dict[str, int] = {}
    for selection in votes.values():
        for map_name in dict.fromkeys(selection):
            counts[map_name] = counts.get(map_name, 0) + 1
    return counts


def leading_maps(counts: Mapping[str, int]) -> List[str]:
    """Maps with the highest count, in first-seen order."""
    if not counts:
        return []
    top = max(counts.values())
    return [name for name, count in counts.items() if count == top]


def resolve(
    votes: Mapping[int, Iterable[str]],
    rng: Optional[random.Random] = None,
) -> str:
    """
    Pick the winning map.

    Raises NoVotes if nobody voted.
    """
    leaders = leading_maps(tally(votes))
    if not leaders:
        raise NoVotes()
    if len(leaders) == 1:
        return leaders[0]
    return (rng or random).choice(leaders)

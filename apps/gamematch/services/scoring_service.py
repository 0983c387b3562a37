"""
Skill scoring for team balancing.

The gender weight is a deliberate simplification that keeps mixed teams
comparable; it is not a claim about individual players.
"""

from typing import Optional

from gamematch.models.schemas import Gender, Player, Rank
from gamematch.utils.constants import (
    DEFAULT_RANK_SCORE,
    GENDER_MULTIPLIERS,
    NEUTRAL_GENDER_MULTIPLIER,
    RANK_SCORES,
)


def rank_value(rank: Optional[Rank]) -> float:
    """S..F map to 7..1, a missing rank to the midpoint."""
    if rank is None:
        return DEFAULT_RANK_SCORE
    return float(RANK_SCORES[Rank(rank).value])


def gender_multiplier(gender: Optional[Gender]) -> float:
    if gender is None:
        return NEUTRAL_GENDER_MULTIPLIER
    return GENDER_MULTIPLIERS.get(Gender(gender).value, NEUTRAL_GENDER_MULTIPLIER)


def score(player: Player) -> float:
    """Comparable skill value for a participant."""
    return rank_value(player.rank) * gender_multiplier(player.gender)

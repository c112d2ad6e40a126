"""
Per-player objective values by contest type.

'projection' maximizes mean points. Cash games use 'floor', GPPs 'ceiling',
and 'contrarian' discounts heavily owned players. Players without floor or
ceiling data fall back to their projection.
"""

from ..errors import ValidationError
from ..types import Player, OBJECTIVES

# Share of the value taken from floor/ceiling (the rest is projection)
FLOOR_WEIGHT = 0.5
CEILING_WEIGHT = 0.6

# Ownership (percent) above which contrarian value is discounted
OWNERSHIP_PIVOT = 15.0

# Fractional discount per ownership point over the pivot, and its cap
OWNERSHIP_FADE = 0.02
MAX_FADE = 0.5

# Fractional boost per ownership point under the pivot
OWNERSHIP_BOOST = 0.01


def validate_objective(objective: str):
    if objective not in OBJECTIVES:
        raise ValidationError(f"unknown objective '{objective}', expected one of {OBJECTIVES}")


def player_value(player: Player, objective: str) -> float:
    """Points a player is worth under the objective."""
    if objective == 'floor' and player.floor > 0:
        return FLOOR_WEIGHT * player.floor + (1.0 - FLOOR_WEIGHT) * player.projection
    if objective == 'ceiling' and player.ceiling > 0:
        return CEILING_WEIGHT * player.ceiling + (1.0 - CEILING_WEIGHT) * player.projection
    if objective == 'contrarian' and player.ownership > 0:
        gap = player.ownership - OWNERSHIP_PIVOT
        if gap > 0:
            return player.projection * (1.0 - min(gap * OWNERSHIP_FADE, MAX_FADE))
        return player.projection * (1.0 - gap * OWNERSHIP_BOOST)
    return player.projection

"""
Exposure tracking across a lineup batch.
"""

import math
from typing import Dict, List, Optional, Sequence

from ..types import Lineup, Player

# Tolerance for floating-point exposure * lineup count products
EXPOSURE_EPS = 1e-9


class ExposureTracker:
    """
    Appearance counts and exposure bounds for one optimization batch.

    Max exposure is a hard cap of floor(max * N) appearances plus a soft
    penalty once a player's running fraction exceeds its max. Min exposure
    requires ceil(min * N) appearances; a player is forced into a lineup once
    its remaining need equals the lineups left to build.

    Team max exposure caps the lineups using any player of a team at
    floor(max * N).
    """

    def __init__(
        self,
        num_lineups: int,
        min_exposure: Dict[str, float],
        max_exposure: Dict[str, float],
        team_max_exposure: Optional[Dict[str, float]] = None
    ):
        self.num_lineups = num_lineups
        self.counts: Dict[str, int] = {}
        self.team_counts: Dict[str, int] = {}
        self.team_caps = {
            team: int(math.floor(frac * num_lineups + EXPOSURE_EPS))
            for team, frac in (team_max_exposure or {}).items()
        }
        self.accepted = 0
        self.max_exposure = dict(max_exposure)
        self.caps = {
            pid: int(math.floor(frac * num_lineups + EXPOSURE_EPS))
            for pid, frac in max_exposure.items()
        }
        self.needs = {
            pid: int(math.ceil(frac * num_lineups - EXPOSURE_EPS))
            for pid, frac in min_exposure.items()
        }

    def count(self, player_id: str) -> int:
        return self.counts.get(player_id, 0)

    def record(self, lineup: Lineup):
        for pid in lineup.player_ids:
            self.counts[pid] = self.counts.get(pid, 0) + 1
        for team in {p.team for p in lineup.players}:
            self.team_counts[team] = self.team_counts.get(team, 0) + 1
        self.accepted += 1

    def is_capped(self, player_id: str) -> bool:
        cap = self.caps.get(player_id)
        return cap is not None and self.count(player_id) >= cap

    def capped_ids(self) -> List[str]:
        return sorted(pid for pid in self.caps if self.is_capped(pid))

    def capped_teams(self) -> List[str]:
        return sorted(
            team for team, cap in self.team_caps.items() if self.team_counts.get(team, 0) >= cap
        )

    def penalty(self, player: Player) -> float:
        """Points removed from a player's score for overuse relative to max exposure."""
        limit = self.max_exposure.get(player.id)
        if limit is None or self.accepted == 0:
            return 0.0
        overuse = self.count(player.id) / self.accepted - limit
        return max(overuse, 0.0) * max(player.projection, 0.0)

    def forced_ids(self) -> List[str]:
        """Players that must appear in the next lineup to reach their minimum."""
        remaining = self.num_lineups - self.accepted
        return sorted(
            pid for pid, need in self.needs.items()
            if need - self.count(pid) >= remaining > 0
        )

    def unmet(self) -> Dict[str, int]:
        """player_id -> appearances still missing."""
        return {
            pid: need - self.count(pid)
            for pid, need in sorted(self.needs.items())
            if self.count(pid) < need
        }


def exposure_report(lineups: Sequence[Lineup]) -> Dict[str, float]:
    """
    Fraction of lineups each player appears in.

    Sorted by exposure (highest first), ties by player id.
    """
    if not lineups:
        return {}
    counts: Dict[str, int] = {}
    for lineup in lineups:
        for pid in lineup.player_ids:
            counts[pid] = counts.get(pid, 0) + 1
    n = len(lineups)
    return {
        pid: counts[pid] / n
        for pid in sorted(counts, key=lambda k: (-counts[k], k))
    }


def team_exposure_report(lineups: Sequence[Lineup]) -> Dict[str, float]:
    """Fraction of lineups using at least one player of each team, ordered like exposure_report."""
    if not lineups:
        return {}
    counts: Dict[str, int] = {}
    for lineup in lineups:
        for team in {p.team for p in lineup.players}:
            counts[team] = counts.get(team, 0) + 1
    n = len(lineups)
    return {
        team: counts[team] / n
        for team in sorted(counts, key=lambda k: (-counts[k], k))
    }

"""
Shared fixtures: a seeded synthetic NFL slate, DK roster and a small GPP.
"""

import numpy as np
import pytest

from dfs_sim.config import ROSTER_PRESETS, SALARY_CAPS
from dfs_sim.types import Player, PayoutTier, OptimizationConfig

GAMES = [('BUF', 'KC'), ('PHI', 'DAL'), ('SF', 'SEA'), ('CIN', 'BAL'), ('DET', 'GB')]

# position -> (count per team, salary range, points per $1k)
TEAM_TEMPLATE = {
    'QB': (2, (5000, 8200), 2.6),
    'RB': (4, (4000, 9000), 2.3),
    'WR': (5, (3000, 9000), 2.2),
    'TE': (2, (2500, 7000), 2.0),
    'DST': (2, (2000, 4000), 2.4),
}


def make_pool(seed: int = 7):
    """150 players: 5 games, 10 teams, 15 players per team."""
    rng = np.random.default_rng(seed)
    players = []
    for away, home in GAMES:
        game = f"{away}@{home}"
        for team, opp in ((away, home), (home, away)):
            for pos, (count, (lo, hi), rate) in TEAM_TEMPLATE.items():
                for k in range(count):
                    salary = int(rng.integers(lo // 100, hi // 100 + 1)) * 100
                    projection = round(salary / 1000 * rate * rng.uniform(0.8, 1.2), 2)
                    players.append(Player(
                        id=f"{team}-{pos}{k + 1}",
                        name=f"{team} {pos} {k + 1}",
                        position=pos,
                        team=team,
                        game=game,
                        salary=salary,
                        projection=projection,
                        floor=round(projection * 0.4, 2),
                        ceiling=round(projection * 2.0, 2),
                        opponent=opp,
                    ))
    return players


@pytest.fixture(scope="session")
def pool():
    return make_pool()


@pytest.fixture
def dk_slots():
    return list(ROSTER_PRESETS['dk_nfl'])


@pytest.fixture
def opt_config(dk_slots):
    def _build(**overrides):
        params = dict(salary_cap=SALARY_CAPS['dk_nfl'], slots=dk_slots, timeout_seconds=60.0)
        params.update(overrides)
        return OptimizationConfig(**params)
    return _build


@pytest.fixture
def gpp_tiers():
    return [
        PayoutTier(1, 1, 500.0),
        PayoutTier(2, 3, 150.0),
        PayoutTier(4, 10, 50.0),
        PayoutTier(11, 25, 20.0),
    ]

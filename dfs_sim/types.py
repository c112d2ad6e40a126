"""
Core data structures for the DFS lineup optimizer and contest simulator.

Players, lineups, optimization/simulation configuration and results.
"""

from dataclasses import dataclass, field
from typing import List, Dict, Optional, FrozenSet
import numpy as np


# Percentiles reported for every simulated lineup
RESULT_PERCENTILES = (25, 50, 75, 90, 95)

# Optimizer objectives: mean, cash (floor), GPP (ceiling), low-ownership GPP
OBJECTIVES = ("projection", "floor", "ceiling", "contrarian")


@dataclass(frozen=True)
class Player:
    """
    A player available for lineups.

    Attributes:
        id: Platform player ID
        name: Player name
        position: Position string, slash-separated when multi-eligible (e.g. 'PG/SG')
        team: Team abbreviation (golf: tee-time group)
        game: Game/matchup identifier (e.g. 'BUF@KC')
        salary: Salary in integer currency units
        projection: Projected fantasy points (mean)
        floor: Low-outcome projection
        ceiling: High-outcome projection
        ownership: Projected ownership percentage (0-100)
        opponent: Opponent team abbreviation
        tee_time: Golf tee time (ISO string) if applicable
    """
    id: str
    name: str
    position: str
    team: str
    game: str
    salary: int
    projection: float
    floor: float = 0.0
    ceiling: float = 0.0
    ownership: float = 0.0
    opponent: str = ""
    tee_time: str = ""

    @property
    def positions(self) -> FrozenSet[str]:
        """All positions this player is eligible for."""
        return frozenset(p.strip().upper() for p in self.position.split('/') if p.strip())


@dataclass(frozen=True)
class PositionSlot:
    """A roster slot and the positions allowed to fill it."""
    name: str
    allowed_positions: FrozenSet[str]

    def accepts(self, player: Player) -> bool:
        return bool(player.positions & self.allowed_positions)


@dataclass
class StackingRule:
    """
    Grouping constraint on a lineup.

    kind:
        'team'     - players from one team. With `teams`, every named team must
                     have between min and max players; without, at least one
                     team must reach min and no team may exceed max.
        'game'     - same as 'team' but grouped by game.
        'position' - every rostered player at one of `positions` must have
                     between min and max same-team teammates at one of
                     `partner_positions` (QB + WR/TE stacks).
    """
    kind: str
    min_players: int = 0
    max_players: int = 99
    teams: List[str] = field(default_factory=list)
    games: List[str] = field(default_factory=list)
    positions: List[str] = field(default_factory=list)
    partner_positions: List[str] = field(default_factory=list)


@dataclass
class OptimizationConfig:
    """
    Lineup optimizer configuration.

    Attributes:
        salary_cap: Maximum total salary
        slots: Required roster slots
        num_lineups: Number of lineups requested (N)
        min_different_players: Minimum players that differ between any two lineups (D)
        correlation_weight: Weight alpha in [0, 1] on the correlation bonus
        stacking_rules: Grouping constraints
        locked_player_ids: Players forced into every lineup
        excluded_player_ids: Players removed from the pool
        min_exposure: player_id -> minimum fraction of lineups (0-1)
        max_exposure: player_id -> maximum fraction of lineups (0-1)
        min_salary: Minimum total salary (0 = no floor)
        team_max_exposure: team -> maximum fraction of lineups using any of its players
        objective: Per-player value the search maximizes, one of OBJECTIVES
        max_attempts_per_lineup: Regeneration attempts before giving up on a lineup
        timeout_seconds: Deadline for the whole batch (None = no deadline)
    """
    salary_cap: int
    slots: List[PositionSlot]
    num_lineups: int = 1
    min_different_players: int = 1
    correlation_weight: float = 0.0
    stacking_rules: List[StackingRule] = field(default_factory=list)
    locked_player_ids: List[str] = field(default_factory=list)
    excluded_player_ids: List[str] = field(default_factory=list)
    min_exposure: Dict[str, float] = field(default_factory=dict)
    max_exposure: Dict[str, float] = field(default_factory=dict)
    min_salary: int = 0
    team_max_exposure: Dict[str, float] = field(default_factory=dict)
    objective: str = 'projection'
    max_attempts_per_lineup: int = 60
    timeout_seconds: Optional[float] = 30.0

    @property
    def roster_size(self) -> int:
        return len(self.slots)


@dataclass
class Lineup:
    """
    A valid lineup: players in slot order.

    Attributes:
        players: Players, one per slot, in slot order
        slot_names: Slot name for each player
        salary: Total salary used
        projection: Total projected points
        correlation_score: Sum over player pairs of rho * sqrt(proj_i * proj_j)
    """
    players: List[Player]
    slot_names: List[str]
    salary: int
    projection: float
    correlation_score: float = 0.0

    @property
    def player_ids(self) -> List[str]:
        return [p.id for p in self.players]

    @property
    def stack_description(self) -> str:
        """Team groups of 2+ players, largest first (e.g. 'KC x3, BUF x2')."""
        counts: Dict[str, int] = {}
        for p in self.players:
            counts[p.team] = counts.get(p.team, 0) + 1
        stacks = sorted(
            ((team, n) for team, n in counts.items() if n >= 2),
            key=lambda item: (-item[1], item[0])
        )
        return ", ".join(f"{team} x{n}" for team, n in stacks)

    def to_dict(self) -> Dict:
        """Convert to serializable dict."""
        return {
            'players': [
                {'slot': slot, 'id': p.id, 'name': p.name, 'team': p.team,
                 'position': p.position, 'salary': p.salary,
                 'projection': p.projection}
                for slot, p in zip(self.slot_names, self.players)
            ],
            'salary': self.salary,
            'projection': round(self.projection, 3),
            'correlation_score': round(self.correlation_score, 3),
            'stack': self.stack_description,
        }


@dataclass
class LineupArrays:
    """
    Vectorized lineup representation for fast scoring.

    membership[i, j] = 1 when lineup i rosters player j of `player_ids`.
    """
    player_ids: List[str]
    membership: np.ndarray  # [n_lineups, n_players] float64

    def __len__(self) -> int:
        return self.membership.shape[0]

    @classmethod
    def from_lineups(cls, lineups: List[Lineup]) -> 'LineupArrays':
        """Collect the union of rostered players and build the membership matrix."""
        player_ids: List[str] = []
        index: Dict[str, int] = {}
        for lineup in lineups:
            for pid in lineup.player_ids:
                if pid not in index:
                    index[pid] = len(player_ids)
                    player_ids.append(pid)

        membership = np.zeros((len(lineups), len(player_ids)), dtype=np.float64)
        for i, lineup in enumerate(lineups):
            for pid in lineup.player_ids:
                membership[i, index[pid]] = 1.0

        return cls(player_ids=player_ids, membership=membership)


@dataclass
class PayoutTier:
    """A payout tier covering a range of ranks."""
    start_rank: int
    end_rank: int
    payout: float


@dataclass
class SimulationConfig:
    """
    Monte Carlo simulation configuration.

    Attributes:
        num_simulations: Number of trials
        workers: Worker threads; trials are split into disjoint slices
        contest_size: Number of simulated opposing entries (0 = no contest)
        payout_tiers: Rank -> payout tiers
        entry_fee: Cost per entry
        use_correlations: Sample through the copula instead of independently
        seed: Root seed; worker streams are spawned from it
        batch_size: Trials per batch (progress and cancellation granularity)
        copula_type: 'gaussian' or 't'
        copula_df: Degrees of freedom for the t-copula
        field_strength: Field mean as a fraction of the lineups' mean projection
        timeout_seconds: Deadline for the whole run (None = no deadline)
    """
    num_simulations: int = 10000
    workers: int = 4
    contest_size: int = 0
    payout_tiers: List[PayoutTier] = field(default_factory=list)
    entry_fee: float = 0.0
    use_correlations: bool = True
    seed: Optional[int] = None
    batch_size: int = 1000
    copula_type: str = "gaussian"
    copula_df: int = 5
    field_strength: float = 0.92
    timeout_seconds: Optional[float] = None

    @property
    def has_contest(self) -> bool:
        return self.contest_size > 0 and len(self.payout_tiers) > 0


@dataclass
class Progress:
    """Simulation progress message."""
    completed: int
    total: int


@dataclass
class SimulationResult:
    """
    Per-lineup simulation summary.

    Attributes:
        lineup_index: Position of the lineup in the simulated batch
        num_simulations: Trials aggregated
        mean, std, min, max: Score statistics
        percentiles: {25, 50, 75, 90, 95} -> score
        cash_probability: % of trials with payout >= entry fee
        win_probability: % of trials ranked first
        roi: Expected ROI in percent
        expected_payout: Mean payout per trial
        top_finishes: {'top_1', 'top_10', 'top_20', 'top_50'} -> % of trials
    """
    lineup_index: int
    num_simulations: int
    mean: float
    std: float
    min: float
    max: float
    percentiles: Dict[int, float]
    cash_probability: float = 0.0
    win_probability: float = 0.0
    roi: float = 0.0
    expected_payout: float = 0.0
    top_finishes: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        """Convert to serializable dict."""
        return {
            'lineup_index': self.lineup_index,
            'num_simulations': self.num_simulations,
            'mean': self.mean,
            'std': self.std,
            'min': self.min,
            'max': self.max,
            'percentiles': {str(k): v for k, v in self.percentiles.items()},
            'cash_probability': self.cash_probability,
            'win_probability': self.win_probability,
            'roi': self.roi,
            'expected_payout': self.expected_payout,
            'top_finishes': dict(self.top_finishes),
        }


DISTRIBUTION_FAMILIES = ("normal", "lognormal", "beta", "gamma")


@dataclass
class SportConfig:
    """
    Per-sport distribution settings.

    Spread is expressed as a variance ratio: stddev / projection.

    Attributes:
        sport: Sport key ('nfl', 'nba', ...)
        default_variance_ratio: Spread for positions without an override
        position_variance: position -> variance ratio
        default_family: Distribution family for positions without an override
        position_family: position -> family ('normal', 'lognormal', 'beta', 'gamma')
        beta_scale_ratio: Upper bound of Beta outcomes as a multiple of projection
            (used when the player has no ceiling)
    """
    sport: str
    default_variance_ratio: float = 0.25
    position_variance: Dict[str, float] = field(default_factory=dict)
    default_family: str = "normal"
    position_family: Dict[str, str] = field(default_factory=dict)
    beta_scale_ratio: float = 2.5

    def __post_init__(self) -> None:
        families = set(self.position_family.values()) | {self.default_family}
        unknown = families - set(DISTRIBUTION_FAMILIES)
        if unknown:
            raise ValueError(
                f"SportConfig.{self.sport}: unknown distribution families {sorted(unknown)}"
            )
        if self.default_variance_ratio <= 0:
            raise ValueError("SportConfig.default_variance_ratio must be positive")

    def variance_ratio(self, positions: FrozenSet[str]) -> float:
        """Largest configured ratio among the player's positions."""
        ratios = [self.position_variance[p] for p in positions if p in self.position_variance]
        return max(ratios) if ratios else self.default_variance_ratio

    def family(self, positions: FrozenSet[str]) -> str:
        for pos in sorted(positions):
            if pos in self.position_family:
                return self.position_family[pos]
        return self.default_family

"""
Correlation matrix handling for player outcome simulation.

Supports sport-specific teammate/opponent correlations, golf tee-time groups
and situational adjustments (blowouts, adverse weather).
"""

import logging
import math
from datetime import datetime
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Tuple, Iterator

import numpy as np

from ..types import Player

logger = logging.getLogger(__name__)


# =============================================================================
# Position-Pair Tables
# =============================================================================

TEAMMATE_CORRELATIONS: Dict[str, Dict[str, Dict[str, float]]] = {
    # QB stacks are key
    'nfl': {
        'QB':  {'QB': 0.0, 'RB': 0.10, 'WR': 0.50, 'TE': 0.40, 'DST': -0.20, 'K': 0.20},
        'RB':  {'QB': 0.10, 'RB': -0.30, 'WR': -0.10, 'TE': -0.05, 'DST': 0.15, 'K': 0.10},
        'WR':  {'QB': 0.50, 'RB': -0.10, 'WR': 0.25, 'TE': 0.10, 'DST': -0.10, 'K': 0.10},
        'TE':  {'QB': 0.40, 'RB': -0.05, 'WR': 0.10, 'TE': 0.0, 'DST': -0.05, 'K': 0.10},
        'DST': {'QB': -0.20, 'RB': 0.15, 'WR': -0.10, 'TE': -0.05, 'DST': 0.0, 'K': 0.10},
        'K':   {'QB': 0.20, 'RB': 0.10, 'WR': 0.10, 'TE': 0.10, 'DST': 0.10, 'K': -0.50},
    },
    'nba': {
        'PG': {'PG': 0.0, 'SG': 0.35, 'SF': 0.25, 'PF': 0.20, 'C': 0.30},
        'SG': {'PG': 0.35, 'SG': 0.0, 'SF': 0.20, 'PF': 0.15, 'C': 0.25},
        'SF': {'PG': 0.25, 'SG': 0.20, 'SF': 0.0, 'PF': 0.20, 'C': 0.20},
        'PF': {'PG': 0.20, 'SG': 0.15, 'SF': 0.20, 'PF': 0.0, 'C': 0.35},
        'C':  {'PG': 0.30, 'SG': 0.25, 'SF': 0.20, 'PF': 0.35, 'C': 0.0},
    },
    # Batting order matters
    'mlb': {
        'P':  {'P': -0.50, 'C': 0.20, '1B': 0.0, '2B': 0.0, '3B': 0.0, 'SS': 0.0, 'OF': 0.0},
        'C':  {'P': 0.20, 'C': 0.0, '1B': 0.10, '2B': 0.10, '3B': 0.10, 'SS': 0.10, 'OF': 0.10},
        '1B': {'P': 0.0, 'C': 0.10, '1B': 0.0, '2B': 0.25, '3B': 0.20, 'SS': 0.20, 'OF': 0.30},
        '2B': {'P': 0.0, 'C': 0.10, '1B': 0.25, '2B': 0.0, '3B': 0.25, 'SS': 0.30, 'OF': 0.25},
        '3B': {'P': 0.0, 'C': 0.10, '1B': 0.20, '2B': 0.25, '3B': 0.0, 'SS': 0.25, 'OF': 0.25},
        'SS': {'P': 0.0, 'C': 0.10, '1B': 0.20, '2B': 0.30, '3B': 0.25, 'SS': 0.0, 'OF': 0.25},
        'OF': {'P': 0.0, 'C': 0.10, '1B': 0.30, '2B': 0.25, '3B': 0.25, 'SS': 0.25, 'OF': 0.35},
    },
    # Line mates are key
    'nhl': {
        'C': {'C': 0.20, 'W': 0.45, 'D': 0.25, 'G': 0.30},
        'W': {'C': 0.45, 'W': 0.40, 'D': 0.20, 'G': 0.30},
        'D': {'C': 0.25, 'W': 0.20, 'D': 0.35, 'G': 0.35},
        'G': {'C': 0.30, 'W': 0.30, 'D': 0.35, 'G': 0.0},
    },
}

DEFAULT_TEAMMATE_CORRELATION: Dict[str, float] = {
    'nfl': 0.10, 'nba': 0.20, 'mlb': 0.15, 'nhl': 0.20,
}

# Position aliases folded onto table keys
POSITION_ALIASES: Dict[str, str] = {
    'DEF': 'DST', 'D/ST': 'DST', 'SP': 'P', 'RP': 'P', 'LW': 'W', 'RW': 'W',
}

# Golf: groups share course conditions
GOLF_SAME_TEE_TIME = 0.15
GOLF_SAME_WAVE = 0.05

# Situational adjustments
BLOWOUT_BACKUP_CORRELATION = -0.30
ADVERSE_WEATHER_RUSHING_BOOST = 0.15
RUSHING_POSITIONS = frozenset({'RB'})


@dataclass
class CorrelationContext:
    """
    Situational context applied on top of the base tables.

    Attributes:
        blowout_games: Games expected to be lopsided; starters and their
            same-position backups compete for the same touches
        adverse_weather_games: Games with wind/precipitation; both running
            games benefit from the same low-scoring script
        backups: starter player_id -> backup player_ids
    """
    blowout_games: List[str] = field(default_factory=list)
    adverse_weather_games: List[str] = field(default_factory=list)
    backups: Dict[str, List[str]] = field(default_factory=dict)


class CorrelationMatrix:
    """
    Sparse symmetric player correlation matrix.

    Each unordered pair is stored once under (min_id, max_id); only non-zero
    coefficients are kept. The diagonal is implicitly 1.0.
    """

    def __init__(self, player_ids: Optional[List[str]] = None):
        self.player_ids: List[str] = list(player_ids or [])
        self._values: Dict[Tuple[str, str], float] = {}

    @staticmethod
    def _key(a: str, b: str) -> Tuple[str, str]:
        return (a, b) if a <= b else (b, a)

    def set(self, a: str, b: str, value: float):
        if a == b:
            raise ValueError(f"Cannot set self-correlation for player {a}")
        if not -1.0 <= value <= 1.0:
            raise ValueError(f"Correlation {value} for ({a}, {b}) outside [-1, 1]")
        key = self._key(a, b)
        if value == 0.0:
            self._values.pop(key, None)
        else:
            self._values[key] = value

    def get(self, a: str, b: str) -> float:
        if a == b:
            return 1.0
        return self._values.get(self._key(a, b), 0.0)

    def __len__(self) -> int:
        return len(self._values)

    def items(self) -> Iterator[Tuple[Tuple[str, str], float]]:
        return iter(self._values.items())

    def to_dense(self, player_ids: List[str], repair: bool = True) -> np.ndarray:
        """
        Dense [n, n] matrix for the given player order.

        With repair=True, applies nearest-PSD projection (Higham) when the
        matrix is not positive semi-definite so it can drive a copula.
        """
        n = len(player_ids)
        matrix = np.eye(n, dtype=np.float64)
        index = {pid: i for i, pid in enumerate(player_ids)}

        for (a, b), value in self._values.items():
            i = index.get(a)
            j = index.get(b)
            if i is None or j is None:
                continue
            matrix[i, j] = value
            matrix[j, i] = value

        if repair and n > 1:
            eigenvalues = np.linalg.eigvalsh(matrix)
            if eigenvalues.min() < -1e-10:
                logger.warning(
                    "Correlation matrix not PSD (min eigenvalue=%.6e), "
                    "applying nearest-PSD projection (Higham)",
                    eigenvalues.min()
                )
                matrix = _nearest_psd_higham(matrix)

        return matrix


def build_correlation_matrix(
    players: List[Player],
    context: Optional[CorrelationContext] = None,
    sport: str = 'nfl'
) -> CorrelationMatrix:
    """
    Build the pairwise correlation matrix for a player pool.

    Deterministic for identical inputs. Teammates in the same game use the
    sport's teammate table, opponents in the same game share game-total
    variance, everyone else is uncorrelated. Golf groups by tee time.

    Args:
        players: Player pool
        context: Optional situational adjustments
        sport: 'nfl', 'nba', 'mlb', 'nhl' or 'golf'
    """
    context = context or CorrelationContext()
    sport = sport.lower()
    matrix = CorrelationMatrix([p.id for p in players])

    backup_pairs = set()
    for starter, backups in context.backups.items():
        for backup in backups:
            backup_pairs.add(CorrelationMatrix._key(starter, backup))
    blowouts = set(context.blowout_games)
    weather = set(context.adverse_weather_games)

    waves = [_tee_wave(p.tee_time) for p in players] if sport == 'golf' else []

    n = len(players)
    for i in range(n):
        p1 = players[i]
        for j in range(i + 1, n):
            p2 = players[j]

            if sport == 'golf':
                corr = _golf_correlation(p1, p2, waves[i], waves[j])
            else:
                corr = _pair_correlation(p1, p2, sport)

                same_game = bool(p1.game) and p1.game == p2.game
                if (same_game and p1.game in blowouts and p1.team == p2.team
                        and _primary_position(p1) == _primary_position(p2)
                        and CorrelationMatrix._key(p1.id, p2.id) in backup_pairs):
                    corr = min(corr, 0.0) + BLOWOUT_BACKUP_CORRELATION

                if (same_game and p1.game in weather and p1.team != p2.team
                        and _primary_position(p1) in RUSHING_POSITIONS
                        and _primary_position(p2) in RUSHING_POSITIONS):
                    corr += ADVERSE_WEATHER_RUSHING_BOOST

            corr = max(-1.0, min(1.0, corr))
            if corr != 0.0:
                matrix.set(p1.id, p2.id, corr)

    logger.info(
        "Correlation matrix built: %d players, %d non-zero pairs (%s)",
        n, len(matrix), sport
    )
    return matrix


def lineup_correlation_score(players: List[Player], matrix: CorrelationMatrix) -> float:
    """
    Correlation score in points: sum over pairs of rho * sqrt(proj_i * proj_j).
    """
    total = 0.0
    for i in range(len(players)):
        for j in range(i + 1, len(players)):
            rho = matrix.get(players[i].id, players[j].id)
            if rho != 0.0:
                total += rho * pair_scale(players[i], players[j])
    return total


def pair_scale(p1: Player, p2: Player) -> float:
    return math.sqrt(max(p1.projection, 0.0) * max(p2.projection, 0.0))


def _primary_position(player: Player) -> str:
    pos = player.position.split('/')[0].strip().upper()
    return POSITION_ALIASES.get(pos, pos)


def _pair_correlation(p1: Player, p2: Player, sport: str) -> float:
    same_team = bool(p1.team) and p1.team == p2.team
    same_game = bool(p1.game) and p1.game == p2.game

    if same_team and (same_game or not p1.game):
        return _teammate_correlation(_primary_position(p1), _primary_position(p2), sport)
    if same_game and not same_team:
        return _opponent_correlation(_primary_position(p1), _primary_position(p2), sport)
    return 0.0


def _teammate_correlation(pos1: str, pos2: str, sport: str) -> float:
    table = TEAMMATE_CORRELATIONS.get(sport)
    if table is None:
        return 0.2
    if pos1 in table and pos2 in table[pos1]:
        return table[pos1][pos2]
    return DEFAULT_TEAMMATE_CORRELATION.get(sport, 0.2)


def _opponent_correlation(pos1: str, pos2: str, sport: str) -> float:
    if sport == 'nfl':
        # QB vs opposing pass catchers
        if {pos1, pos2} in ({'QB', 'WR'}, {'QB', 'TE'}):
            return 0.25
        if {pos1, pos2} == {'RB', 'DST'}:
            return -0.30
        if 'DST' in (pos1, pos2):
            return -0.20
        return 0.10
    if sport == 'nba':
        return 0.15
    if sport == 'mlb':
        # Pitcher vs opposing hitters
        if pos1 == 'P' or pos2 == 'P':
            return -0.25
        return 0.10
    if sport == 'nhl':
        if pos1 == 'G' or pos2 == 'G':
            return -0.20
        return 0.15
    return 0.05


def _golf_correlation(p1: Player, p2: Player, wave1: Optional[str], wave2: Optional[str]) -> float:
    if p1.tee_time and p1.tee_time == p2.tee_time:
        return GOLF_SAME_TEE_TIME
    if wave1 is not None and wave1 == wave2:
        return GOLF_SAME_WAVE
    return 0.0


def _tee_wave(tee_time: str) -> Optional[str]:
    """Morning ('AM') or afternoon ('PM') wave for an ISO or HH:MM tee time."""
    if not tee_time:
        return None
    for parse in (datetime.fromisoformat, lambda s: datetime.strptime(s, '%H:%M')):
        try:
            return 'AM' if parse(tee_time.strip()).hour < 12 else 'PM'
        except ValueError:
            continue
    logger.debug("Unrecognized tee time %r", tee_time)
    return None


def _nearest_psd_higham(matrix: np.ndarray, max_iter: int = 100, tol: float = 1e-8) -> np.ndarray:
    """
    Nearest correlation matrix via Higham's alternating projections.

    Projects onto the intersection of:
    - S_U: symmetric matrices with unit diagonal
    - S_PSD: positive semi-definite matrices

    Args:
        matrix: Input symmetric matrix
        max_iter: Maximum iterations
        tol: Convergence tolerance

    Returns:
        Nearest PSD correlation matrix
    """
    Y = matrix.copy()
    dS = np.zeros_like(matrix)

    for _ in range(max_iter):
        R = Y - dS

        eigenvalues, eigenvectors = np.linalg.eigh(R)
        eigenvalues = np.maximum(eigenvalues, 0.0)
        X = eigenvectors @ np.diag(eigenvalues) @ eigenvectors.T

        # Dykstra correction
        dS = X - R

        Y_new = X.copy()
        np.fill_diagonal(Y_new, 1.0)
        Y_new = (Y_new + Y_new.T) / 2.0

        if np.linalg.norm(Y_new - Y, 'fro') < tol:
            Y = Y_new
            break
        Y = Y_new

    # Clamp residual negative eigenvalues
    eigenvalues = np.linalg.eigvalsh(Y)
    if eigenvalues.min() < 0:
        eigenvalues_full, eigenvectors = np.linalg.eigh(Y)
        eigenvalues_full = np.maximum(eigenvalues_full, 0.0)
        Y = eigenvectors @ np.diag(eigenvalues_full) @ eigenvectors.T
        np.fill_diagonal(Y, 1.0)
        Y = (Y + Y.T) / 2.0

    return Y

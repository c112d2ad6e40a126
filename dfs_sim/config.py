"""
Configuration management for the DFS lineup optimizer and simulator.

Roster/contest presets, per-sport distribution settings, cache TTL policy
and JSON loading utilities.
"""

import json
from dataclasses import dataclass
from typing import Dict, List, Any

from .types import (
    PositionSlot, PayoutTier, SimulationConfig, OptimizationConfig,
    StackingRule, SportConfig
)
from .data.correlations import CorrelationContext


def _slot(name: str, *positions: str) -> PositionSlot:
    return PositionSlot(name=name, allowed_positions=frozenset(positions or (name,)))


# =============================================================================
# Roster Presets
# =============================================================================

ROSTER_PRESETS: Dict[str, List[PositionSlot]] = {
    'dk_nfl': [
        _slot('QB'), _slot('RB'), _slot('RB'),
        _slot('WR'), _slot('WR'), _slot('WR'),
        _slot('TE'), _slot('FLEX', 'RB', 'WR', 'TE'), _slot('DST', 'DST', 'DEF'),
    ],
    'fd_nfl': [
        _slot('QB'), _slot('RB'), _slot('RB'),
        _slot('WR'), _slot('WR'), _slot('WR'),
        _slot('TE'), _slot('FLEX', 'RB', 'WR', 'TE'), _slot('DEF', 'DST', 'DEF'),
    ],
    'dk_nba': [
        _slot('PG'), _slot('SG'), _slot('SF'), _slot('PF'), _slot('C'),
        _slot('G', 'PG', 'SG'), _slot('F', 'SF', 'PF'),
        _slot('UTIL', 'PG', 'SG', 'SF', 'PF', 'C'),
    ],
    'fd_nba': [
        _slot('PG'), _slot('PG'), _slot('SG'), _slot('SG'),
        _slot('SF'), _slot('SF'), _slot('PF'), _slot('PF'), _slot('C'),
    ],
    'dk_mlb': [
        _slot('P', 'P', 'SP', 'RP'), _slot('P', 'P', 'SP', 'RP'),
        _slot('C'), _slot('1B'), _slot('2B'), _slot('3B'), _slot('SS'),
        _slot('OF'), _slot('OF'), _slot('OF'),
    ],
    'fd_mlb': [
        _slot('P', 'P', 'SP'), _slot('C/1B', 'C', '1B'),
        _slot('2B'), _slot('3B'), _slot('SS'),
        _slot('OF'), _slot('OF'), _slot('OF'),
        _slot('UTIL', 'C', '1B', '2B', '3B', 'SS', 'OF'),
    ],
    'dk_nhl': [
        _slot('C'), _slot('C'), _slot('W'), _slot('W'), _slot('W'),
        _slot('D'), _slot('D'), _slot('G'),
        _slot('UTIL', 'C', 'W', 'D'),
    ],
    'fd_nhl': [
        _slot('C'), _slot('C'), _slot('W'), _slot('W'),
        _slot('D'), _slot('D'),
        _slot('UTIL', 'C', 'W', 'D'), _slot('UTIL', 'C', 'W', 'D'),
        _slot('G'),
    ],
    'dk_golf': [_slot('G') for _ in range(6)],
}

SALARY_CAPS: Dict[str, int] = {
    'dk_nfl': 50000,
    'fd_nfl': 60000,
    'dk_nba': 50000,
    'fd_nba': 60000,
    'dk_mlb': 50000,
    'fd_mlb': 35000,
    'dk_nhl': 50000,
    'fd_nhl': 55000,
    'dk_golf': 50000,
}


def sport_for_preset(preset: str) -> str:
    """'dk_nfl' -> 'nfl'."""
    return preset.split('_', 1)[-1]


# =============================================================================
# Sport Distribution Settings
# =============================================================================

SPORT_CONFIGS: Dict[str, SportConfig] = {
    # Skill positions are boom/bust; defenses and kickers sit nearer their mean
    'nfl': SportConfig(
        sport='nfl',
        default_variance_ratio=0.25,
        position_variance={'QB': 0.25, 'RB': 0.35, 'WR': 0.40, 'TE': 0.45, 'DST': 0.55, 'K': 0.35},
        default_family='normal',
        position_family={'RB': 'lognormal', 'WR': 'lognormal', 'TE': 'lognormal', 'DST': 'gamma'},
    ),
    'nba': SportConfig(
        sport='nba',
        default_variance_ratio=0.22,
        position_variance={'PG': 0.22, 'SG': 0.25, 'SF': 0.25, 'PF': 0.25, 'C': 0.23},
        default_family='normal',
    ),
    'mlb': SportConfig(
        sport='mlb',
        default_variance_ratio=0.60,
        position_variance={'P': 0.40, 'SP': 0.40, 'RP': 0.50},
        default_family='gamma',
        position_family={'P': 'normal', 'SP': 'normal'},
    ),
    'nhl': SportConfig(
        sport='nhl',
        default_variance_ratio=0.50,
        position_variance={'G': 0.45},
        default_family='gamma',
        position_family={'G': 'normal'},
    ),
    # Outcomes bounded by the ceiling; cut risk leaves mass near zero
    'golf': SportConfig(
        sport='golf',
        default_variance_ratio=0.35,
        default_family='beta',
        beta_scale_ratio=2.5,
    ),
}


# =============================================================================
# Contest Presets
# =============================================================================

CONTEST_PRESETS: Dict[str, SimulationConfig] = {
    'cash_double_up': SimulationConfig(
        # $10 x 100 entries = $1,000 fees. Top 45 paid $18 (81%).
        num_simulations=10000,
        contest_size=99,
        entry_fee=10.0,
        payout_tiers=[PayoutTier(1, 45, 18.0)],
        field_strength=0.95,
    ),
    'gpp_small': SimulationConfig(
        # $20 x 1000 entries = $20,000 fees. Payout = $16,950 (84.8%). Cash line = 200 (20%).
        num_simulations=10000,
        contest_size=999,
        entry_fee=20.0,
        payout_tiers=[
            PayoutTier(1, 1, 3000.0),
            PayoutTier(2, 2, 1500.0),
            PayoutTier(3, 3, 1000.0),
            PayoutTier(4, 5, 600.0),
            PayoutTier(6, 10, 300.0),
            PayoutTier(11, 25, 150.0),
            PayoutTier(26, 50, 80.0),
            PayoutTier(51, 100, 50.0),
            PayoutTier(101, 200, 20.0),
        ],
        field_strength=0.92,
    ),
}

# Default optimizer objective per contest preset
CONTEST_OBJECTIVES: Dict[str, str] = {
    'cash_double_up': 'floor',
    'gpp_small': 'ceiling',
}


# =============================================================================
# Cache TTL Policy
# =============================================================================

CONTEST_STATES = ('live', 'scheduled', 'completed')


@dataclass
class CacheTTLPolicy:
    """
    Time-to-live (seconds) for cached results by contest state.

    Live contests change every few seconds; completed contests are immutable.
    """
    live: float = 30.0
    scheduled: float = 3600.0
    completed: float = 86400.0

    def __post_init__(self):
        for name in CONTEST_STATES:
            if getattr(self, name) <= 0:
                raise ValueError(f"CacheTTLPolicy.{name} must be positive")

    def ttl_for(self, contest_state: str) -> float:
        if contest_state not in CONTEST_STATES:
            raise ValueError(
                f"Unknown contest state '{contest_state}', expected one of {CONTEST_STATES}"
            )
        return getattr(self, contest_state)


DEFAULT_TTL_POLICY = CacheTTLPolicy()


# =============================================================================
# JSON Loading Utilities
# =============================================================================

def _tiers_from_json(raw: List[Dict[str, Any]]) -> List[PayoutTier]:
    return [
        PayoutTier(
            start_rank=tier['start_rank'],
            end_rank=tier['end_rank'],
            payout=tier['payout']
        )
        for tier in raw
    ]


def load_simulation_config_from_json(path: str) -> SimulationConfig:
    """
    Load simulation configuration from JSON file.

    Expected format:
    {
        "num_simulations": 10000,
        "workers": 4,
        "contest_size": 999,
        "entry_fee": 20.0,
        "seed": 42,
        "copula_type": "gaussian",
        "payout_tiers": [
            {"start_rank": 1, "end_rank": 1, "payout": 3000.0},
            ...
        ]
    }
    """
    with open(path, 'r') as f:
        data = json.load(f)

    defaults = SimulationConfig()
    return SimulationConfig(
        num_simulations=data.get('num_simulations', defaults.num_simulations),
        workers=data.get('workers', defaults.workers),
        contest_size=data.get('contest_size', 0),
        payout_tiers=_tiers_from_json(data.get('payout_tiers', [])),
        entry_fee=data.get('entry_fee', 0.0),
        use_correlations=data.get('use_correlations', True),
        seed=data.get('seed'),
        batch_size=data.get('batch_size', defaults.batch_size),
        copula_type=data.get('copula_type', 'gaussian'),
        copula_df=data.get('copula_df', 5),
        field_strength=data.get('field_strength', defaults.field_strength),
        timeout_seconds=data.get('timeout_seconds'),
    )


def save_simulation_config_to_json(config: SimulationConfig, path: str):
    """Save simulation configuration to JSON file."""
    data = {
        'num_simulations': config.num_simulations,
        'workers': config.workers,
        'contest_size': config.contest_size,
        'entry_fee': config.entry_fee,
        'use_correlations': config.use_correlations,
        'seed': config.seed,
        'batch_size': config.batch_size,
        'copula_type': config.copula_type,
        'copula_df': config.copula_df,
        'field_strength': config.field_strength,
        'timeout_seconds': config.timeout_seconds,
        'payout_tiers': [
            {
                'start_rank': tier.start_rank,
                'end_rank': tier.end_rank,
                'payout': tier.payout
            }
            for tier in config.payout_tiers
        ]
    }

    with open(path, 'w') as f:
        json.dump(data, f, indent=2)


def load_optimization_config_from_json(path: str) -> OptimizationConfig:
    """
    Load optimizer configuration from JSON file.

    Expected format:
    {
        "roster": "dk_nfl",
        "salary_cap": 50000,
        "num_lineups": 20,
        "min_different_players": 3,
        "correlation_weight": 0.3,
        "stacking_rules": [
            {"kind": "position", "positions": ["QB"], "partner_positions": ["WR", "TE"],
             "min_players": 1}
        ],
        "locked_player_ids": ["123"],
        "excluded_player_ids": [],
        "min_exposure": {"456": 0.2},
        "max_exposure": {"789": 0.5},
        "team_max_exposure": {"KC": 0.6},
        "objective": "ceiling"
    }

    "roster" is a ROSTER_PRESETS key or a list of
    {"name": "FLEX", "positions": ["RB", "WR", "TE"]} slots. salary_cap
    defaults to the preset's cap.
    """
    with open(path, 'r') as f:
        data = json.load(f)

    roster = data.get('roster', 'dk_nfl')
    if isinstance(roster, str):
        if roster not in ROSTER_PRESETS:
            raise ValueError(f"Unknown roster preset '{roster}'")
        slots = list(ROSTER_PRESETS[roster])
        default_cap = SALARY_CAPS[roster]
    else:
        slots = [_slot(s['name'], *s.get('positions', [])) for s in roster]
        default_cap = None

    salary_cap = data.get('salary_cap', default_cap)
    if salary_cap is None:
        raise ValueError("salary_cap is required for a custom roster")

    defaults = OptimizationConfig(salary_cap=salary_cap, slots=slots)
    return OptimizationConfig(
        salary_cap=int(salary_cap),
        slots=slots,
        num_lineups=data.get('num_lineups', 1),
        min_different_players=data.get('min_different_players', 1),
        correlation_weight=data.get('correlation_weight', 0.0),
        stacking_rules=[StackingRule(**rule) for rule in data.get('stacking_rules', [])],
        locked_player_ids=[str(pid) for pid in data.get('locked_player_ids', [])],
        excluded_player_ids=[str(pid) for pid in data.get('excluded_player_ids', [])],
        min_exposure={str(k): float(v) for k, v in data.get('min_exposure', {}).items()},
        max_exposure={str(k): float(v) for k, v in data.get('max_exposure', {}).items()},
        min_salary=data.get('min_salary', 0),
        team_max_exposure={str(k): float(v) for k, v in data.get('team_max_exposure', {}).items()},
        objective=data.get('objective', defaults.objective),
        max_attempts_per_lineup=data.get('max_attempts_per_lineup', defaults.max_attempts_per_lineup),
        timeout_seconds=data.get('timeout_seconds', defaults.timeout_seconds),
    )


def load_correlation_context_from_json(path: str) -> CorrelationContext:
    """
    Load situational correlation context from JSON file.

    Expected format:
    {
        "blowout_games": ["BUF@KC"],
        "adverse_weather_games": ["GB@CHI"],
        "backups": {"starter_id": ["backup_id", ...]}
    }
    """
    with open(path, 'r') as f:
        data = json.load(f)

    return CorrelationContext(
        blowout_games=list(data.get('blowout_games', [])),
        adverse_weather_games=list(data.get('adverse_weather_games', [])),
        backups={
            str(starter): [str(b) for b in backups]
            for starter, backups in data.get('backups', {}).items()
        },
    )

"""
Full pipeline orchestration: correlations -> distributions -> optimize ->
simulate -> cache.
"""

import logging
import time
from typing import List, Dict, Optional, Any

from .cache import ResultCache, make_cache_key
from .config import SPORT_CONFIGS, CacheTTLPolicy, DEFAULT_TTL_POLICY
from .data.correlations import CorrelationContext, build_correlation_matrix
from .errors import PartialFailure
from .optimizer import optimize, exposure_report, team_exposure_report
from .simulation import build_distributions, simulate
from .types import Player, OptimizationConfig, SimulationConfig

logger = logging.getLogger(__name__)


def run_pipeline(
    players: List[Player],
    opt_config: OptimizationConfig,
    sim_config: Optional[SimulationConfig] = None,
    sport: str = 'nfl',
    context: Optional[CorrelationContext] = None,
    cache: Optional[ResultCache] = None,
    contest_state: str = 'scheduled',
    ttl_policy: CacheTTLPolicy = DEFAULT_TTL_POLICY,
    progress: Optional[Any] = None
) -> Dict:
    """
    Optimize lineups and (optionally) simulate them.

    Steps:
    1. Build the correlation matrix over the pool (minus exclusions)
    2. Fit one distribution per player
    3. Optimize lineups
    4. Simulate them when a SimulationConfig is given
    5. Cache the result under a fingerprint of the whole request

    A PartialFailure from the optimizer does not stop the pipeline; the
    lineups that were built are simulated and the reason is kept in
    'warnings'.

    Args:
        players: Player pool
        opt_config: Optimizer configuration
        sim_config: Simulation configuration (None = optimize only)
        sport: Sport key for correlation tables and distributions
        context: Situational correlation adjustments
        cache: Result cache; None disables caching
        contest_state: 'live', 'scheduled' or 'completed' (selects the TTL)
        ttl_policy: TTL per contest state
        progress: Optional queue for simulation Progress messages

    Returns:
        Dict with lineups, simulation results, exposures, warnings,
        cache_key and metadata
    """
    if sport not in SPORT_CONFIGS:
        raise ValueError(f"Unknown sport '{sport}', expected one of {sorted(SPORT_CONFIGS)}")
    ttl = ttl_policy.ttl_for(contest_state)

    key = make_cache_key(
        players=players,
        opt_config=opt_config,
        sim_config=sim_config,
        sport=sport,
        context=context,
    )

    def _compute() -> Dict:
        return _run(players, opt_config, sim_config, sport, context, progress, key)

    if cache is None:
        return _compute()
    return cache.get_or_compute(key, _compute, ttl)


def _run(
    players: List[Player],
    opt_config: OptimizationConfig,
    sim_config: Optional[SimulationConfig],
    sport: str,
    context: Optional[CorrelationContext],
    progress: Optional[Any],
    key: str
) -> Dict:
    start = time.time()

    # === BUILD CORRELATION MATRIX ===
    excluded = set(opt_config.excluded_player_ids)
    pool = [p for p in players if p.id not in excluded]
    matrix = build_correlation_matrix(pool, context, sport)

    # === OPTIMIZE ===
    warnings: List[str] = []
    try:
        lineups = optimize(players, opt_config, matrix=matrix, sport=sport)
    except PartialFailure as exc:
        logger.warning("%s", exc)
        warnings.append(str(exc))
        lineups = exc.lineups

    # === SIMULATE ===
    results = []
    if sim_config is not None:
        distributions = build_distributions(pool, SPORT_CONFIGS[sport])
        ownership = {p.id: p.ownership for p in pool if p.ownership > 0}
        results = simulate(
            lineups, matrix, distributions, sim_config, progress=progress, ownership=ownership
        )

    elapsed = time.time() - start
    logger.info(
        "Pipeline complete: %d lineups, %d simulated, %.2fs",
        len(lineups), len(results), elapsed
    )

    return {
        'lineups': lineups,
        'results': results,
        'exposures': exposure_report(lineups),
        'team_exposures': team_exposure_report(lineups),
        'warnings': warnings,
        'cache_key': key,
        'metadata': {
            'sport': sport,
            'n_players': len(pool),
            'objective': opt_config.objective,
            'n_lineups_requested': opt_config.num_lineups,
            'n_lineups': len(lineups),
            'n_simulations': sim_config.num_simulations if sim_config else 0,
            'correlated_pairs': len(matrix),
            'elapsed_seconds': elapsed,
        },
    }

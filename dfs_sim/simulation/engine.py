"""
Correlated player score sampling.

Generates correlated uniforms with a copula model, then maps each player's
uniforms through that player's marginal inverse CDF. Supports Gaussian
copula (default) and Student-t copula for tail dependence.
"""

import numpy as np
from scipy import stats
from typing import List, Optional, Literal
import logging

from .distributions import Distribution

logger = logging.getLogger(__name__)


CopulaType = Literal["gaussian", "t"]
COPULA_TYPES = ("gaussian", "t")

# Keep uniforms off the endpoints where inverse CDFs diverge
UNIFORM_EPS = 1e-10


def sample_scores(
    distributions: List[Distribution],
    n_sims: int,
    rng: np.random.Generator,
    correlation_matrix: Optional[np.ndarray] = None,
    copula_type: CopulaType = "gaussian",
    copula_df: int = 5
) -> np.ndarray:
    """
    Draw correlated scores for a batch of trials.

    Args:
        distributions: Marginal distribution per player
        n_sims: Number of trials in this batch
        rng: Caller-owned generator (one per worker)
        correlation_matrix: Optional dense [n, n] correlation matrix in the same
            player order. If None, players are sampled independently.
        copula_type: "gaussian" or "t"
        copula_df: Degrees of freedom for the t-copula

    Returns:
        scores: [n_players, n_sims] float64
    """
    n_players = len(distributions)

    if n_players == 0:
        return np.zeros((0, n_sims), dtype=np.float64)

    uniform_samples = generate_correlated_uniforms(
        n_players, n_sims, correlation_matrix,
        copula_type=copula_type, copula_df=copula_df, rng=rng
    )

    scores = np.empty((n_players, n_sims), dtype=np.float64)
    for i, dist in enumerate(distributions):
        scores[i, :] = dist.ppf(uniform_samples[i, :])

    return scores


def generate_correlated_uniforms(
    n_players: int,
    n_sims: int,
    correlation_matrix: Optional[np.ndarray] = None,
    copula_type: CopulaType = "gaussian",
    copula_df: int = 5,
    rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """
    Generate correlated uniform samples using the specified copula.

    Returns:
        [n_players, n_sims] uniform samples in (0, 1)
    """
    if rng is None:
        rng = np.random.default_rng()

    if correlation_matrix is None:
        u = rng.uniform(0, 1, (n_players, n_sims))
        return np.clip(u, UNIFORM_EPS, 1 - UNIFORM_EPS)

    if copula_type == "t":
        return _generate_correlated_uniforms_t(n_players, n_sims, correlation_matrix, copula_df, rng)

    return _generate_correlated_uniforms_gaussian(n_players, n_sims, correlation_matrix, rng)


def _generate_correlated_uniforms_gaussian(
    n_players: int,
    n_sims: int,
    corr: np.ndarray,
    rng: np.random.Generator
) -> np.ndarray:
    """Generate correlated uniforms using Gaussian copula."""
    mean = np.zeros(n_players)
    z = rng.multivariate_normal(mean, corr, size=n_sims).T  # [n_players, n_sims]

    u = stats.norm.cdf(z)

    return np.clip(u, UNIFORM_EPS, 1 - UNIFORM_EPS)


def _generate_correlated_uniforms_t(
    n_players: int,
    n_sims: int,
    corr: np.ndarray,
    df: int,
    rng: np.random.Generator
) -> np.ndarray:
    """
    Generate correlated uniforms using Student-t copula.

    The t-copula captures tail dependence: when one player booms,
    correlated players are more likely to also boom (and vice versa for busts).
    Lower df = heavier tails = more extreme joint outcomes.

    Sampling: t = z / sqrt(s / df), where z ~ N(0, corr), s ~ chi2(df)
    Then u = t_cdf(t, df) to get uniforms.
    """
    mean = np.zeros(n_players)

    z = rng.multivariate_normal(mean, corr, size=n_sims).T  # [n_players, n_sims]

    # Shared across all players in a given sim (this is what creates tail dependence)
    s = rng.chisquare(df, size=n_sims)  # [n_sims]

    scaling = np.sqrt(s / df)
    t_samples = z / scaling[np.newaxis, :]

    u = stats.t.cdf(t_samples, df=df)

    return np.clip(u, UNIFORM_EPS, 1 - UNIFORM_EPS)

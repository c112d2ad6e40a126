"""
Parametric score distributions per player.

Each distribution is fit so its mean equals the player's projection and its
standard deviation is projection * variance ratio. Distributions are frozen
scipy.stats objects and hold no random state; callers pass their own
numpy Generator, so one distribution set can be shared across workers.
"""

import logging
import math
from typing import Dict, List, Optional, Union

import numpy as np
from scipy import stats

from ..types import Player, SportConfig

logger = logging.getLogger(__name__)

# Stddev used when a projection is zero or negative
MIN_STD = 1e-6


class Distribution:
    """Base class: a frozen scipy.stats distribution bound to one player."""

    family = "base"

    def __init__(self, frozen):
        self._dist = frozen

    def generate(self, rng: np.random.Generator) -> float:
        """One draw."""
        return float(self._dist.ppf(rng.random()))

    def sample(self, rng: np.random.Generator, size: int) -> np.ndarray:
        return self._dist.ppf(rng.random(size))

    def cdf(self, x: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        return self._dist.cdf(x)

    def ppf(self, u: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Inverse CDF, used by the copula transform."""
        return self._dist.ppf(u)

    @property
    def mean(self) -> float:
        return float(self._dist.mean())

    @property
    def std(self) -> float:
        return float(self._dist.std())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(mean={self.mean:.3f}, std={self.std:.3f})"


class Normal(Distribution):
    family = "normal"

    def __init__(self, mean: float, std: float):
        if std <= 0:
            raise ValueError(f"Normal std must be positive, got {std}")
        super().__init__(stats.norm(loc=mean, scale=std))
        self.mu = mean
        self.sigma = std


class LogNormal(Distribution):
    """
    Log-normal with parameters (mu, sigma) of the underlying normal.

    Built from the target mean/std via from_moments.
    """
    family = "lognormal"

    def __init__(self, mu: float, sigma: float):
        if sigma <= 0:
            raise ValueError(f"LogNormal sigma must be positive, got {sigma}")
        super().__init__(stats.lognorm(s=sigma, scale=math.exp(mu)))
        self.mu = mu
        self.sigma = sigma

    @classmethod
    def from_moments(cls, mean: float, std: float) -> 'LogNormal':
        sigma2 = math.log(1.0 + (std / mean) ** 2)
        return cls(mu=math.log(mean) - sigma2 / 2.0, sigma=math.sqrt(sigma2))


class Gamma(Distribution):
    """Gamma with shape k and scale theta (mean = k * theta)."""
    family = "gamma"

    def __init__(self, k: float, theta: float):
        if k <= 0 or theta <= 0:
            raise ValueError(f"Gamma parameters must be positive, got k={k}, theta={theta}")
        super().__init__(stats.gamma(a=k, scale=theta))
        self.k = k
        self.theta = theta

    @classmethod
    def from_moments(cls, mean: float, std: float) -> 'Gamma':
        return cls(k=(mean / std) ** 2, theta=std ** 2 / mean)


class Beta(Distribution):
    """
    Beta(alpha, beta) scaled to [0, upper].

    For bounded outcomes; golf uses it with the ceiling as the upper bound,
    leaving mass near zero for missed cuts.
    """
    family = "beta"

    def __init__(self, alpha: float, beta: float, upper: float = 1.0):
        if alpha <= 0 or beta <= 0 or upper <= 0:
            raise ValueError(
                f"Beta parameters must be positive, got alpha={alpha}, beta={beta}, upper={upper}"
            )
        super().__init__(stats.beta(a=alpha, b=beta, loc=0.0, scale=upper))
        self.alpha = alpha
        self.beta = beta
        self.upper = upper

    @classmethod
    def from_moments(cls, mean: float, std: float, upper: float) -> 'Beta':
        """
        Method-of-moments fit on [0, upper].

        The mean is always reproduced. When the requested spread exceeds what a
        Beta on [0, upper] allows, variance is capped at 90% of the maximum.
        """
        m = mean / upper
        v = (std / upper) ** 2
        max_v = m * (1.0 - m)
        if v >= max_v:
            v = 0.9 * max_v
        common = max_v / v - 1.0
        return cls(alpha=m * common, beta=(1.0 - m) * common, upper=upper)


def distribution_for_player(
    player: Player,
    sport_config: SportConfig,
    variance_ratio: Optional[float] = None
) -> Distribution:
    """
    Build the distribution for one player.

    Family and variance ratio come from the sport config by position. Skewed
    families need a positive projection; players projecting zero or less get
    a Normal with a negligible spread.

    Args:
        player: Player to model
        sport_config: Per-sport family and spread settings
        variance_ratio: Override for stddev / projection
    """
    mean = player.projection
    ratio = variance_ratio if variance_ratio is not None else sport_config.variance_ratio(player.positions)
    std = abs(mean) * ratio

    if mean <= 0 or std <= 0:
        return Normal(mean, max(std, MIN_STD))

    family = sport_config.family(player.positions)

    if family == "lognormal":
        return LogNormal.from_moments(mean, std)
    if family == "gamma":
        return Gamma.from_moments(mean, std)
    if family == "beta":
        upper = player.ceiling if player.ceiling > mean else mean * sport_config.beta_scale_ratio
        return Beta.from_moments(mean, std, upper)
    return Normal(mean, std)


def build_distributions(
    players: List[Player],
    sport_config: SportConfig
) -> Dict[str, Distribution]:
    """player_id -> Distribution for a whole pool."""
    distributions = {p.id: distribution_for_player(p, sport_config) for p in players}

    families: Dict[str, int] = {}
    for dist in distributions.values():
        families[dist.family] = families.get(dist.family, 0) + 1
    logger.info(
        "Built %d distributions (%s)",
        len(distributions),
        ", ".join(f"{k}={v}" for k, v in sorted(families.items()))
    )
    return distributions

"""Monte Carlo simulation engine."""

from .distributions import (
    Distribution, Normal, LogNormal, Beta, Gamma,
    distribution_for_player, build_distributions
)
from .engine import sample_scores
from .simulator import simulate

__all__ = [
    "Distribution",
    "Normal",
    "LogNormal",
    "Beta",
    "Gamma",
    "distribution_for_player",
    "build_distributions",
    "sample_scores",
    "simulate",
]

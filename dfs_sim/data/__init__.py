"""Data loading and correlation handling."""

from .loader import load_players
from .correlations import (
    CorrelationMatrix,
    CorrelationContext,
    build_correlation_matrix,
    lineup_correlation_score,
)

__all__ = [
    "load_players",
    "CorrelationMatrix",
    "CorrelationContext",
    "build_correlation_matrix",
    "lineup_correlation_score",
]

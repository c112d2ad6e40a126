"""DFS lineup optimizer and correlation-aware contest simulator."""

from .types import (
    Player, PositionSlot, StackingRule, OptimizationConfig, Lineup,
    PayoutTier, SimulationConfig, SimulationResult, Progress, SportConfig
)
from .errors import (
    DFSSimError, ValidationError, InfeasibleError, PartialFailure, DeadlineExceededError
)
from .data import load_players, CorrelationMatrix, CorrelationContext, build_correlation_matrix
from .simulation import build_distributions, simulate
from .optimizer import optimize, exposure_report, team_exposure_report
from .cache import ResultCache, make_cache_key
from .pipeline import run_pipeline

__all__ = [
    "Player",
    "PositionSlot",
    "StackingRule",
    "OptimizationConfig",
    "Lineup",
    "PayoutTier",
    "SimulationConfig",
    "SimulationResult",
    "Progress",
    "SportConfig",
    "DFSSimError",
    "ValidationError",
    "InfeasibleError",
    "PartialFailure",
    "DeadlineExceededError",
    "load_players",
    "CorrelationMatrix",
    "CorrelationContext",
    "build_correlation_matrix",
    "build_distributions",
    "simulate",
    "optimize",
    "exposure_report",
    "team_exposure_report",
    "ResultCache",
    "make_cache_key",
    "run_pipeline",
]

"""Lineup optimizer: slot matching, stacking, exposure and search."""

from .search import optimize, validate_optimization
from .exposure import ExposureTracker, exposure_report, team_exposure_report
from .objectives import player_value
from .slots import assign_slots, fits_slots, order_by_slot, min_completion_cost
from .stacking import rule_satisfied, stack_cores, combined_cores

__all__ = [
    "optimize",
    "validate_optimization",
    "ExposureTracker",
    "exposure_report",
    "team_exposure_report",
    "player_value",
    "assign_slots",
    "fits_slots",
    "order_by_slot",
    "min_completion_cost",
    "rule_satisfied",
    "stack_cores",
    "combined_cores",
]

"""
Error taxonomy for optimization and simulation requests.

Validation and infeasibility mean the request must change; a deadline error
means the system ran out of time and a larger budget may succeed.
"""

from typing import List, Optional, Any


class DFSSimError(Exception):
    """Base class for all optimizer/simulator errors."""


class ValidationError(DFSSimError, ValueError):
    """Malformed or infeasible configuration, raised before any work starts."""

    def __init__(self, reason: str):
        super().__init__(f"Invalid request: {reason}")
        self.reason = reason


class InfeasibleError(DFSSimError):
    """Constraints are individually valid but no lineup satisfies all of them."""

    def __init__(self, reason: str):
        super().__init__(f"Your constraints cannot be satisfied: {reason}")
        self.reason = reason
        self.lineups: List[Any] = []


class PartialFailure(DFSSimError):
    """Fewer lineups than requested, or a full batch that misses minimum exposures."""

    def __init__(self, reason: str, lineups: List[Any], requested: int):
        if len(lineups) < requested:
            message = f"Only {len(lineups)} of {requested} lineups could be built: {reason}"
        else:
            message = f"All {requested} lineups were built, but {reason}"
        super().__init__(message)
        self.reason = reason
        self.lineups = lineups
        self.requested = requested


class DeadlineExceededError(DFSSimError, TimeoutError):
    """
    The request did not finish within its time budget.

    `partial` holds whatever is meaningful to return: simulation results
    aggregated from completed trial batches, or an empty list for the optimizer.
    """

    def __init__(
        self,
        reason: str,
        partial: Optional[List[Any]] = None,
        completed: int = 0,
        total: int = 0
    ):
        super().__init__(f"The system could not finish in time: {reason}")
        self.reason = reason
        self.partial = partial if partial is not None else []
        self.completed = completed
        self.total = total

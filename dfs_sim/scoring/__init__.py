"""Contest payout lookup."""

from .payout import PayoutLookup

__all__ = ["PayoutLookup"]

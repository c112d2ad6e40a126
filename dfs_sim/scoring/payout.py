"""
Payout lookup with prefix sums for O(1) tie-splitting.

Maps a finishing rank (and number of entries tied there) to a payout.
"""

import numpy as np
from dataclasses import dataclass
from typing import List

from ..types import PayoutTier


@dataclass
class PayoutLookup:
    """
    Pre-computed payout lookup for O(1) tie-splitting.

    Uses prefix sums: tie_pool = prefix[end] - prefix[start-1]
    """
    payout_by_rank: np.ndarray   # [total_entries + 2] float64
    prefix_payout: np.ndarray    # [total_entries + 2] float64
    total_entries: int

    @classmethod
    def from_tiers(cls, tiers: List[PayoutTier], total_entries: int) -> 'PayoutLookup':
        """
        Build payout lookup from rank tiers.

        Args:
            tiers: Payout tiers (1-indexed, inclusive rank ranges)
            total_entries: Entries in the contest; ranks beyond it pay nothing
        """
        n = total_entries

        # 1-indexed, so size n+2 for safety
        payout_by_rank = np.zeros(n + 2, dtype=np.float64)

        for tier in tiers:
            for r in range(max(tier.start_rank, 1), min(tier.end_rank + 1, n + 1)):
                payout_by_rank[r] = tier.payout

        prefix_payout = np.cumsum(payout_by_rank)

        return cls(
            payout_by_rank=payout_by_rank,
            prefix_payout=prefix_payout,
            total_entries=n
        )

    @property
    def paid_places(self) -> int:
        return int(np.count_nonzero(self.payout_by_rank))

    @property
    def total_payout(self) -> float:
        return float(self.prefix_payout[-1])

    def get_payout(self, rank: int, n_tied: int = 1) -> float:
        """
        Get payout for a single entry.

        Tie-splitting: sum payouts from rank to rank+n_tied-1, divide by n_tied.
        """
        if rank > self.total_entries:
            return 0.0

        if n_tied <= 0:
            n_tied = 1

        end_rank = min(rank + n_tied - 1, self.total_entries)
        start_idx = max(rank - 1, 0)

        tie_pool = self.prefix_payout[end_rank] - self.prefix_payout[start_idx]

        return tie_pool / n_tied

    def batch_get_payout(
        self,
        ranks: np.ndarray,
        n_tied: np.ndarray
    ) -> np.ndarray:
        """
        Vectorized payout with tie-splitting.

        payout = (prefix[end] - prefix[start-1]) / n_tied

        Args:
            ranks: int ranks (1-indexed), any shape
            n_tied: number of ties at each rank, same shape

        Returns:
            payouts: float64 payout amounts
        """
        ranks = np.asarray(ranks)
        if ranks.size == 0:
            return np.zeros(ranks.shape, dtype=np.float64)

        n_tied = np.maximum(np.asarray(n_tied), 1)

        end_ranks = np.minimum(ranks + n_tied - 1, self.total_entries)
        start_idx = np.clip(ranks - 1, 0, self.total_entries)

        # Valid = actually cashes (rank <= total_entries)
        valid = ranks <= self.total_entries

        tie_pool = np.where(
            valid,
            self.prefix_payout[np.maximum(end_ranks, 0)] - self.prefix_payout[start_idx],
            0.0
        )

        return tie_pool / n_tied

"""
Roster slot assignment.

Players may be eligible for several positions and slots may accept several
positions (FLEX, UTIL, G, F), so a set of players fits a roster exactly when a
bipartite matching covers every player.
"""

from typing import List, Optional, Sequence, Set, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import maximum_bipartite_matching

from ..types import Player, PositionSlot


def slot_order(slots: Sequence[PositionSlot]) -> List[int]:
    """Slot indices, most restrictive first (flex slots last)."""
    return sorted(range(len(slots)), key=lambda i: (len(slots[i].allowed_positions), i))


def assign_slots(
    players: Sequence[Player],
    slots: Sequence[PositionSlot]
) -> Optional[List[int]]:
    """
    Match players to slots.

    Maximum bipartite matching over a players x slots eligibility matrix.
    Columns are laid out most restrictive first.

    Returns:
        slot index per player, or None if some player cannot be placed
    """
    if len(players) > len(slots):
        return None
    if not players:
        return []

    order = slot_order(slots)
    eligible = np.zeros((len(players), len(slots)), dtype=np.int8)
    for p_idx, player in enumerate(players):
        for col, s_idx in enumerate(order):
            if slots[s_idx].accepts(player):
                eligible[p_idx, col] = 1

    matched = maximum_bipartite_matching(csr_matrix(eligible), perm_type='column')
    if np.any(matched < 0):
        return None
    return [order[int(col)] for col in matched]


def fits_slots(players: Sequence[Player], slots: Sequence[PositionSlot]) -> bool:
    return assign_slots(players, slots) is not None


def order_by_slot(
    players: Sequence[Player],
    slots: Sequence[PositionSlot]
) -> Tuple[List[Player], List[str]]:
    """Players in slot order with their slot names. Requires a full, valid roster."""
    assignment = assign_slots(players, slots)
    if assignment is None or len(players) != len(slots):
        raise ValueError("Players do not form a complete roster for these slots")

    by_slot: List[Optional[Player]] = [None] * len(slots)
    for p_idx, s_idx in enumerate(assignment):
        by_slot[s_idx] = players[p_idx]
    return list(by_slot), [s.name for s in slots]


def min_completion_cost(
    fixed: Sequence[Player],
    slots: Sequence[PositionSlot],
    pool_by_salary: Sequence[Player],
    unavailable: Set[str]
) -> Optional[int]:
    """
    Cheapest extra salary that completes a roster around the fixed players.

    Solved as an assignment problem over every slot. Fixed players carry a
    large negative cost so they are always placed. An optimal completion only
    uses, for each slot, one of its r cheapest eligible players (r = open slot
    count), so candidates are shortlisted to those.

    Args:
        fixed: Players already in the lineup
        slots: All roster slots
        pool_by_salary: Candidate players sorted by (salary, id)
        unavailable: Player ids that cannot be added

    Returns:
        Minimum extra salary, or None if no completion exists
    """
    r = len(slots) - len(fixed)
    if r < 0:
        return None
    if r == 0:
        return 0 if fits_slots(fixed, slots) else None

    fixed_ids = {p.id for p in fixed}
    shortlist: List[Player] = []
    seen: Set[str] = set()
    for slot in slots:
        found = 0
        for p in pool_by_salary:
            if p.id in unavailable or p.id in fixed_ids or not slot.accepts(p):
                continue
            if p.id not in seen:
                seen.add(p.id)
                shortlist.append(p)
            found += 1
            if found >= r:
                break

    if len(shortlist) < r:
        return None

    columns = list(fixed) + shortlist
    big = float(sum(p.salary for p in columns) + 1) * 10.0
    anchor = -big * len(slots)

    cost = np.full((len(slots), len(columns)), big)
    for i, slot in enumerate(slots):
        for j, p in enumerate(columns):
            if slot.accepts(p):
                cost[i, j] = anchor if j < len(fixed) else p.salary

    rows, cols = linear_sum_assignment(cost)
    chosen = cost[rows, cols]
    if np.any(chosen >= big) or int(np.sum(cols < len(fixed))) != len(fixed):
        return None
    return int(round(chosen[chosen > anchor / 2].sum()))

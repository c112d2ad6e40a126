"""
Lineup search: greedy construction with local-swap refinement.

Each lineup is seeded by filling slots (most restrictive first) with the best
value-per-dollar player, where value is the player's objective value plus the
weighted correlation bonus against players already chosen. A budget check keeps every
partial lineup completable under the cap. The seed is then refined with
1-for-1 swaps that raise the objective:

    objective = sum(value) + alpha * sum_{i<j} rho_ij * sqrt(p_i * p_j)

where value is the projection, or its floor, ceiling or ownership-adjusted
variant (see objectives.py). Lineups that share more than (slots - D) players
with an accepted lineup, or all of them, are rejected; the most-used
overlapping player is banned and the lineup rebuilt.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..data.correlations import (
    CorrelationMatrix, build_correlation_matrix, lineup_correlation_score, pair_scale
)
from ..errors import ValidationError, InfeasibleError, PartialFailure, DeadlineExceededError
from ..types import Player, Lineup, OptimizationConfig
from .exposure import ExposureTracker
from .objectives import player_value, validate_objective
from .slots import assign_slots, fits_slots, slot_order, order_by_slot, min_completion_cost
from .stacking import validate_rule, count_violations, exceeds_max, combined_cores

logger = logging.getLogger(__name__)

# Minimum objective gain for a swap to count as an improvement
SWAP_EPS = 1e-9

# Upper bound on refinement passes per lineup
MAX_SWAP_ROUNDS = 200


def optimize(
    players: List[Player],
    config: OptimizationConfig,
    matrix: Optional[CorrelationMatrix] = None,
    sport: str = 'nfl'
) -> List[Lineup]:
    """
    Build config.num_lineups distinct, valid lineups.

    Args:
        players: Player pool (not modified)
        config: Optimization configuration
        matrix: Correlation matrix; built from the pool when omitted and
            correlation_weight > 0
        sport: Sport used when building the matrix

    Returns:
        Lineups ordered by objective (highest first)

    Raises:
        ValidationError: Bad configuration, before any search
        InfeasibleError: Not a single lineup satisfies the constraints
        PartialFailure: Fewer than requested lineups (or unmet minimum
            exposure); .lineups holds what was built
        DeadlineExceededError: Deadline reached; no lineups are returned
    """
    validate_optimization(players, config)

    if matrix is None:
        excluded = set(config.excluded_player_ids)
        pool = [p for p in players if p.id not in excluded]
        matrix = (
            build_correlation_matrix(pool, sport=sport)
            if config.correlation_weight > 0 else CorrelationMatrix()
        )

    return _LineupSearch(players, config, matrix).run()


def validate_optimization(players: List[Player], config: OptimizationConfig):
    """Reject malformed or provably infeasible configurations."""
    slots = config.slots
    n_slots = len(slots)

    if config.salary_cap <= 0:
        raise ValidationError(f"salary_cap must be positive, got {config.salary_cap}")
    if not slots:
        raise ValidationError("at least one roster slot is required")
    if config.num_lineups < 1:
        raise ValidationError(f"num_lineups must be at least 1, got {config.num_lineups}")
    if not 0.0 <= config.correlation_weight <= 1.0:
        raise ValidationError(
            f"correlation_weight must be in [0, 1], got {config.correlation_weight}"
        )
    if not 0 <= config.min_different_players <= n_slots:
        raise ValidationError(
            f"min_different_players must be in [0, {n_slots}], got {config.min_different_players}"
        )
    if config.min_salary < 0 or config.min_salary > config.salary_cap:
        raise ValidationError(
            f"min_salary must be in [0, {config.salary_cap}], got {config.min_salary}"
        )
    if config.max_attempts_per_lineup < 1:
        raise ValidationError("max_attempts_per_lineup must be at least 1")
    if config.timeout_seconds is not None and config.timeout_seconds <= 0:
        raise ValidationError("timeout_seconds must be positive when set")
    validate_objective(config.objective)
    for team, frac in config.team_max_exposure.items():
        if not 0.0 <= frac <= 1.0:
            raise ValidationError(f"team_max_exposure for {team} must be in [0, 1], got {frac}")

    ids = [p.id for p in players]
    if len(set(ids)) != len(ids):
        raise ValidationError("player pool contains duplicate ids")
    by_id = {p.id: p for p in players}

    for rule in config.stacking_rules:
        validate_rule(rule, n_slots)

    for name, bounds in (('min_exposure', config.min_exposure), ('max_exposure', config.max_exposure)):
        for pid, frac in bounds.items():
            if not 0.0 <= frac <= 1.0:
                raise ValidationError(f"{name} for {pid} must be in [0, 1], got {frac}")
            if pid not in by_id:
                raise ValidationError(f"{name} references unknown player {pid}")

    tracker = ExposureTracker(
        config.num_lineups, config.min_exposure, config.max_exposure, config.team_max_exposure
    )
    excluded = set(config.excluded_player_ids)
    for pid, frac in config.min_exposure.items():
        hi = config.max_exposure.get(pid, 1.0)
        if frac > hi:
            raise ValidationError(f"min_exposure {frac} exceeds max_exposure {hi} for {pid}")
        if pid in tracker.caps and tracker.needs[pid] > tracker.caps[pid]:
            raise ValidationError(
                f"exposure bounds for {pid} cannot both be met with {config.num_lineups} lineups"
            )
        if pid in excluded and tracker.needs[pid] > 0:
            raise ValidationError(f"player {pid} is excluded but has a minimum exposure")
        team = by_id[pid].team
        if tracker.needs[pid] > tracker.team_caps.get(team, config.num_lineups):
            raise ValidationError(
                f"min_exposure for {pid} exceeds team_max_exposure for {team}"
            )

    locked_ids = list(config.locked_player_ids)
    if len(set(locked_ids)) != len(locked_ids):
        raise ValidationError("locked_player_ids contains duplicates")
    overlap = sorted(set(locked_ids) & excluded)
    if overlap:
        raise ValidationError(f"players both locked and excluded: {overlap}")
    unknown = sorted(pid for pid in locked_ids if pid not in by_id)
    if unknown:
        raise ValidationError(f"locked players not in pool: {unknown}")
    for pid in locked_ids:
        if config.max_exposure.get(pid, 1.0) < 1.0:
            raise ValidationError(
                f"locked player {pid} has max_exposure {config.max_exposure[pid]} < 1"
            )
        team = by_id[pid].team
        if tracker.team_caps.get(team, config.num_lineups) < config.num_lineups:
            raise ValidationError(
                f"locked player {pid} plays for {team}, which has team_max_exposure < 1"
            )
    if len(locked_ids) > n_slots:
        raise ValidationError(f"{len(locked_ids)} locked players exceed {n_slots} roster slots")
    min_different = max(config.min_different_players, 1)
    if config.num_lineups > 1 and len(locked_ids) > n_slots - min_different:
        raise ValidationError(
            f"{len(locked_ids)} locked players leave fewer than "
            f"{min_different} players free to differ between lineups"
        )

    locked = [by_id[pid] for pid in locked_ids]
    locked_salary = sum(p.salary for p in locked)
    if locked_salary > config.salary_cap:
        raise ValidationError(
            f"locked players cost {locked_salary}, over the salary cap of {config.salary_cap}"
        )
    if locked and not fits_slots(locked, slots):
        raise ValidationError("locked players cannot all be placed in the roster slots")

    if locked:
        pool_by_salary = sorted(
            (p for p in players if p.id not in excluded), key=lambda p: (p.salary, p.id)
        )
        zero_teams = {team for team, cap in tracker.team_caps.items() if cap == 0}
        unavailable = {pid for pid, cap in tracker.caps.items() if cap == 0}
        unavailable |= {p.id for p in players if p.team in zero_teams}
        extra = min_completion_cost(locked, slots, pool_by_salary, unavailable)
        if extra is None:
            raise ValidationError("no players available to fill the slots around the locked players")
        if locked_salary + extra > config.salary_cap:
            raise ValidationError(
                f"locked players cost {locked_salary} and the cheapest completion "
                f"{extra}, over the salary cap of {config.salary_cap}"
            )


class _LineupSearch:
    """Search state for one optimize() call."""

    def __init__(self, players: List[Player], config: OptimizationConfig, matrix: CorrelationMatrix):
        self.config = config
        self.matrix = matrix
        self.slots = list(config.slots)
        self.alpha = config.correlation_weight
        self.rules = list(config.stacking_rules)

        excluded = set(config.excluded_player_ids)
        self.pool = sorted((p for p in players if p.id not in excluded), key=lambda p: p.id)
        self.by_id = {p.id: p for p in self.pool}
        self.pool_by_salary = sorted(self.pool, key=lambda p: (p.salary, p.id))
        self.locked_ids = list(config.locked_player_ids)

        self.values = {p.id: player_value(p, config.objective) for p in self.pool}
        self.team_players: Dict[str, Set[str]] = {}
        for p in self.pool:
            self.team_players.setdefault(p.team, set()).add(p.id)

        self.tracker = ExposureTracker(
            config.num_lineups, config.min_exposure, config.max_exposure, config.team_max_exposure
        )
        # Two lineups always differ by at least one player
        self.max_shared = min(len(self.slots) - config.min_different_players, len(self.slots) - 1)
        self.deadline = (
            time.monotonic() + config.timeout_seconds
            if config.timeout_seconds is not None else None
        )
        self.accepted: List[Lineup] = []
        self.accepted_ids: List[Set[str]] = []
        self.failure_reason = ""

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------

    def run(self) -> List[Lineup]:
        n = self.config.num_lineups
        start = time.time()

        for k in range(n):
            lineup = self._next_lineup()
            if lineup is None:
                logger.warning(
                    "Stopped after %d/%d lineups: %s", len(self.accepted), n, self.failure_reason
                )
                break
            self.accepted.append(lineup)
            self.accepted_ids.append(set(lineup.player_ids))
            self.tracker.record(lineup)
            logger.debug(
                "Lineup %d: proj=%.2f corr=%.2f salary=%d [%s]",
                k + 1, lineup.projection, lineup.correlation_score, lineup.salary,
                lineup.stack_description
            )

        lineups = sorted(
            self.accepted,
            key=lambda lu: (-self._objective(lu), lu.salary, sorted(lu.player_ids))
        )
        logger.info(
            "Built %d/%d lineups in %.2fs", len(lineups), n, time.time() - start
        )

        if not lineups:
            raise InfeasibleError(self.failure_reason or "no lineup satisfies every constraint")
        if len(lineups) < n:
            raise PartialFailure(self.failure_reason, lineups, n)
        unmet = self.tracker.unmet()
        if unmet:
            raise PartialFailure(
                "minimum exposure not reached for "
                + ", ".join(f"{pid} (short {short})" for pid, short in unmet.items()),
                lineups, n
            )
        return lineups

    def _next_lineup(self) -> Optional[Lineup]:
        """Build the next lineup, regenerating on diversity conflicts."""
        forced_ids = list(dict.fromkeys(self.locked_ids + self.tracker.forced_ids()))
        forced = [self.by_id[pid] for pid in forced_ids]
        fixed = set(forced_ids)
        banned: Set[str] = set()
        core_failures = 0

        for attempt in range(self.config.max_attempts_per_lineup):
            self._check_deadline()

            unavailable = (banned | self._capped()) - fixed
            cores = self._cores(unavailable)
            if cores is not None and not cores:
                self.failure_reason = "no group of players can satisfy the stacking rules"
                return None
            if cores and core_failures >= len(cores):
                self.failure_reason = "every stack core failed to produce a valid lineup"
                return None

            seed = list(forced)
            if cores:
                core = cores[core_failures % len(cores)]
                seed += [p for p in core if p.id not in fixed]

            players = self._construct(seed, unavailable)
            if players is not None:
                players = self._raise_salary(players, fixed, unavailable)
                players = self._refine(players, fixed, unavailable)
            if players is None or not self._valid(players, fixed, unavailable):
                if not cores:
                    self.failure_reason = (
                        "no lineup fits the salary cap, slots and stacking rules"
                        if not self.accepted else
                        "remaining players cannot form another valid lineup"
                    )
                    return None
                core_failures += 1
                continue

            ids = {p.id for p in players}
            conflict = self._conflict(ids)
            if conflict is None:
                return self._make_lineup(players)

            overlap = (ids & conflict) - fixed
            if not overlap:
                self.failure_reason = "locked and forced players alone break the diversity limit"
                return None
            ban = min(
                overlap,
                key=lambda pid: (-self.tracker.count(pid), self.by_id[pid].projection, pid)
            )
            banned.add(ban)
            logger.debug("Attempt %d shares %d players; banning %s", attempt + 1, len(ids & conflict), ban)

        self.failure_reason = (
            f"no lineup differing by {self.config.min_different_players} players "
            f"found in {self.config.max_attempts_per_lineup} attempts"
        )
        return None

    def _check_deadline(self):
        if self.deadline is not None and time.monotonic() > self.deadline:
            logger.warning(
                "Optimization deadline of %.2fs reached with %d/%d lineups",
                self.config.timeout_seconds, len(self.accepted), self.config.num_lineups
            )
            raise DeadlineExceededError(
                f"optimization exceeded {self.config.timeout_seconds}s "
                f"after {len(self.accepted)} of {self.config.num_lineups} lineups",
                partial=[],
                completed=len(self.accepted),
                total=self.config.num_lineups,
            )

    def _capped(self) -> Set[str]:
        """Players at their own or their team's exposure cap."""
        capped = set(self.tracker.capped_ids())
        for team in self.tracker.capped_teams():
            capped |= self.team_players.get(team, set())
        return capped

    def _conflict(self, ids: Set[str]) -> Optional[Set[str]]:
        for other in self.accepted_ids:
            if len(ids & other) > self.max_shared:
                return other
        return None

    def _cores(self, unavailable: Set[str]) -> Optional[List[List[Player]]]:
        """Groups meeting every stacking minimum, or None when no rule has one."""
        if not any(rule.min_players > 0 for rule in self.rules):
            return None
        return combined_cores(self.rules, self.pool, self.slots, unavailable)

    # -------------------------------------------------------------------------
    # Scoring
    # -------------------------------------------------------------------------

    def _contribution(self, player: Player, others: Sequence[Player]) -> float:
        if self.alpha == 0.0:
            return 0.0
        total = 0.0
        for other in others:
            if other.id != player.id:
                rho = self.matrix.get(player.id, other.id)
                if rho != 0.0:
                    total += rho * pair_scale(player, other)
        return total

    def _objective(self, lineup: Lineup) -> float:
        return sum(self.values[pid] for pid in lineup.player_ids) + self.alpha * lineup.correlation_score

    def _score(self, player: Player, others: Sequence[Player]) -> float:
        return (
            self.values[player.id]
            + self.alpha * self._contribution(player, others)
            - self.tracker.penalty(player)
        )

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    def _fits_budget(self, players: List[Player], unavailable: Set[str]) -> bool:
        salary = sum(p.salary for p in players)
        if salary > self.config.salary_cap:
            return False
        extra = min_completion_cost(players, self.slots, self.pool_by_salary, unavailable)
        return extra is not None and salary + extra <= self.config.salary_cap

    def _construct(self, seed: List[Player], unavailable: Set[str]) -> Optional[List[Player]]:
        """Greedy value-per-dollar fill around the seed players."""
        lineup = list(seed)
        if not fits_slots(lineup, self.slots) or exceeds_max(self.rules, lineup):
            return None
        if not self._fits_budget(lineup, unavailable):
            return None

        order = slot_order(self.slots)
        while len(lineup) < len(self.slots):
            assignment = assign_slots(lineup, self.slots)
            used = set(assignment)
            slot = self.slots[next(i for i in order if i not in used)]
            taken = {p.id for p in lineup}

            candidates: List[Tuple[float, int, str, Player]] = []
            for p in self.pool:
                if p.id in taken or p.id in unavailable or not slot.accepts(p):
                    continue
                value = self._score(p, lineup) / max(p.salary, 1)
                candidates.append((-value, p.salary, p.id, p))
            candidates.sort(key=lambda c: c[:3])

            chosen = None
            for _, _, _, p in candidates:
                trial = lineup + [p]
                if exceeds_max(self.rules, trial):
                    continue
                if self._fits_budget(trial, unavailable):
                    chosen = p
                    break
            if chosen is None:
                return None
            lineup.append(chosen)

        return lineup

    def _raise_salary(self, lineup: List[Player], fixed: Set[str], unavailable: Set[str]) -> List[Player]:
        """
        Swap players for pricier ones until the lineup reaches min_salary.

        Each step takes the swap losing the least score per dollar added.
        Leaves the lineup as is when no swap helps; validation rejects it then.
        """
        cap = self.config.salary_cap
        for _ in range(MAX_SWAP_ROUNDS):
            salary = sum(p.salary for p in lineup)
            if salary >= self.config.min_salary:
                return lineup
            violations = count_violations(self.rules, lineup)
            taken = {p.id for p in lineup}

            moves = []
            for out in lineup:
                if out.id in fixed:
                    continue
                rest = [p for p in lineup if p.id != out.id]
                out_score = self._score(out, rest)
                for c in self.pool:
                    gain = c.salary - out.salary
                    if c.id in taken or c.id in unavailable or gain <= 0 or salary + gain > cap:
                        continue
                    loss = (out_score - self._score(c, rest)) / gain
                    moves.append((loss, -gain, c.id, out.id, rest, c))

            moves.sort(key=lambda m: m[:4])
            for move in moves:
                candidate = move[4] + [move[5]]
                if not fits_slots(candidate, self.slots):
                    continue
                if count_violations(self.rules, candidate) > violations:
                    continue
                lineup = candidate
                break
            else:
                return lineup

        return lineup

    def _refine(self, lineup: List[Player], fixed: Set[str], unavailable: Set[str]) -> List[Player]:
        """Steepest-ascent 1-for-1 swaps while the objective improves."""
        cap = self.config.salary_cap
        for _ in range(MAX_SWAP_ROUNDS):
            salary = sum(p.salary for p in lineup)
            violations = count_violations(self.rules, lineup)
            taken = {p.id for p in lineup}

            # contribution of each bench player against the full lineup
            full = {}
            if self.alpha > 0.0:
                full = {
                    c.id: self._contribution(c, lineup)
                    for c in self.pool if c.id not in taken and c.id not in unavailable
                }

            moves = []
            for out in lineup:
                if out.id in fixed:
                    continue
                rest = [p for p in lineup if p.id != out.id]
                out_score = self._score(out, rest)
                budget = cap - salary + out.salary
                for c in self.pool:
                    if c.id in taken or c.id in unavailable or c.salary > budget:
                        continue
                    if self.alpha > 0.0:
                        rho = self.matrix.get(c.id, out.id)
                        contrib = full[c.id] - (rho * pair_scale(c, out) if rho else 0.0)
                        in_score = self.values[c.id] + self.alpha * contrib - self.tracker.penalty(c)
                    else:
                        in_score = self.values[c.id] - self.tracker.penalty(c)
                    delta = in_score - out_score
                    if delta > SWAP_EPS:
                        moves.append((-delta, c.salary, c.id, out.id, rest, c))

            moves.sort(key=lambda m: m[:4])
            floor = self.config.min_salary if salary >= self.config.min_salary else 0
            for move in moves:
                candidate = move[4] + [move[5]]
                if salary - self.by_id[move[3]].salary + move[1] < floor:
                    continue
                if not fits_slots(candidate, self.slots):
                    continue
                if count_violations(self.rules, candidate) > violations:
                    continue
                lineup = candidate
                break
            else:
                return lineup

        return lineup

    def _valid(self, players: List[Player], fixed: Set[str], unavailable: Set[str]) -> bool:
        ids = [p.id for p in players]
        salary = sum(p.salary for p in players)
        return (
            len(players) == len(self.slots)
            and len(set(ids)) == len(ids)
            and fixed.issubset(ids)
            and not unavailable.intersection(ids)
            and self.config.min_salary <= salary <= self.config.salary_cap
            and fits_slots(players, self.slots)
            and count_violations(self.rules, players) == 0
        )

    def _make_lineup(self, players: List[Player]) -> Lineup:
        ordered, slot_names = order_by_slot(players, self.slots)
        return Lineup(
            players=ordered,
            slot_names=slot_names,
            salary=sum(p.salary for p in ordered),
            projection=sum(p.projection for p in ordered),
            correlation_score=lineup_correlation_score(ordered, self.matrix),
        )

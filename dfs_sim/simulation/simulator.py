"""
Monte Carlo contest simulator.

Trials are split into disjoint slices, one per worker thread. Each worker owns
a generator spawned from the root seed, draws correlated player scores in
batches, totals them per lineup and (when a contest is configured) ranks each
lineup against a simulated field. Workers return partial aggregates that the
calling thread merges in worker order after the join.
"""

import logging
import math
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, Future
from dataclasses import dataclass, field
from typing import List, Dict, Optional, Any

import numpy as np
from scipy import stats

from ..data.correlations import CorrelationMatrix
from ..errors import ValidationError, DeadlineExceededError
from ..scoring.payout import PayoutLookup
from ..types import (
    Lineup, LineupArrays, SimulationConfig, SimulationResult, Progress,
    RESULT_PERCENTILES
)
from .distributions import Distribution
from .engine import sample_scores, COPULA_TYPES

logger = logging.getLogger(__name__)


# Top-finish buckets reported per lineup (fraction of the field)
TOP_FINISH_BUCKETS = {'top_1': 0.01, 'top_10': 0.10, 'top_20': 0.20, 'top_50': 0.50}

# Seconds the calling thread waits for a worker message before re-checking the deadline
POLL_INTERVAL = 0.05


@dataclass
class FieldModel:
    """
    Simulated opposing field.

    Per trial, the slate's realised scoring level (simulated pool total over
    projected pool total) scales a Normal field score distribution. With
    ownership, the field mean instead follows the ownership-weighted realised
    scores, so chalk that busts lowers the field. The number of opponents
    beating a lineup is Binomial(contest_size, P(field > lineup)).
    """
    contest_size: int
    mean: float
    std: float
    slate_projection: float
    payout: PayoutLookup
    rank_thresholds: Dict[str, int]
    weights: Optional[np.ndarray] = None

    @classmethod
    def build(
        cls,
        config: SimulationConfig,
        lineup_means: np.ndarray,
        lineup_stds: np.ndarray,
        slate_projection: float,
        ownership: Optional[np.ndarray] = None,
        roster_size: int = 0
    ) -> 'FieldModel':
        """
        Args:
            ownership: [n_players] ownership percentages aligned with the
                simulated players; ignored when None or all zero
            roster_size: Players per lineup, used to scale ownership weights
        """
        total_entries = config.contest_size + 1
        thresholds = {
            name: max(1, int(math.ceil(frac * total_entries)))
            for name, frac in TOP_FINISH_BUCKETS.items()
        }
        weights = None
        if ownership is not None and roster_size > 0:
            owned = np.clip(np.asarray(ownership, dtype=float), 0.0, None)
            if owned.sum() > 0:
                # Expected field lineup: roster_size players drawn by ownership share
                weights = config.field_strength * roster_size * owned / owned.sum()
        return cls(
            contest_size=config.contest_size,
            mean=config.field_strength * float(np.mean(lineup_means)),
            std=max(float(np.mean(lineup_stds)), 1e-6),
            slate_projection=slate_projection,
            payout=PayoutLookup.from_tiers(config.payout_tiers, total_entries),
            rank_thresholds=thresholds,
            weights=weights,
        )

    def rank(self, totals: np.ndarray, scores: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        """
        Rank each lineup in each trial.

        Args:
            totals: [n_lineups, n_sims] lineup scores
            scores: [n_players, n_sims] all simulated player scores

        Returns:
            ranks: [n_lineups, n_sims] int64, 1 = first place
        """
        if self.weights is not None:
            field_mean = (self.weights @ scores)[np.newaxis, :]
        else:
            if self.slate_projection > 0:
                slate_factor = scores.sum(axis=0) / self.slate_projection  # [n_sims]
            else:
                slate_factor = np.ones(scores.shape[1])
            field_mean = self.mean * slate_factor[np.newaxis, :]
        p_beat = stats.norm.sf((totals - field_mean) / self.std)
        n_above = rng.binomial(self.contest_size, p_beat)
        return 1 + n_above


@dataclass
class _Partial:
    """Per-worker aggregate over the trials it completed."""
    n_lineups: int
    trials: int = 0
    total: Optional[np.ndarray] = None
    total_sq: Optional[np.ndarray] = None
    samples: List[np.ndarray] = field(default_factory=list)
    payout: Optional[np.ndarray] = None
    cashes: Optional[np.ndarray] = None
    wins: Optional[np.ndarray] = None
    top: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        n = self.n_lineups
        self.total = np.zeros(n)
        self.total_sq = np.zeros(n)
        self.payout = np.zeros(n)
        self.cashes = np.zeros(n, dtype=np.int64)
        self.wins = np.zeros(n, dtype=np.int64)
        self.top = {name: np.zeros(n, dtype=np.int64) for name in TOP_FINISH_BUCKETS}

    def add(
        self,
        totals: np.ndarray,
        ranks: Optional[np.ndarray],
        field_model: Optional[FieldModel],
        entry_fee: float
    ):
        self.trials += totals.shape[1]
        self.total += totals.sum(axis=1)
        self.total_sq += (totals ** 2).sum(axis=1)
        self.samples.append(totals)

        if ranks is None:
            return

        payouts = field_model.payout.batch_get_payout(ranks, np.ones_like(ranks))
        self.payout += payouts.sum(axis=1)
        self.cashes += ((payouts > 0) & (payouts >= entry_fee)).sum(axis=1)
        self.wins += (ranks == 1).sum(axis=1)
        for name, threshold in field_model.rank_thresholds.items():
            self.top[name] += (ranks <= threshold).sum(axis=1)


@dataclass
class _WorkerTask:
    worker_id: int
    n_trials: int
    seed: np.random.SeedSequence


def simulate(
    lineups: List[Lineup],
    matrix: Optional[CorrelationMatrix],
    distributions: Dict[str, Distribution],
    config: SimulationConfig,
    progress: Optional[Any] = None,
    ownership: Optional[Dict[str, float]] = None
) -> List[SimulationResult]:
    """
    Simulate lineups and summarize each one.

    Args:
        lineups: Lineups to evaluate
        matrix: Correlation matrix (ignored when config.use_correlations is False)
        distributions: player_id -> Distribution; must cover every rostered
            player. With a contest configured, every player here contributes
            to the slate scoring level.
        config: Simulation configuration
        progress: Optional queue (anything with put()) receiving Progress
            messages with non-decreasing completed counts
        ownership: player_id -> projected ownership percentage. With a
            contest configured, the field follows the ownership-weighted
            scores of the simulated players

    Returns:
        One SimulationResult per lineup, in input order

    Raises:
        ValidationError: Bad configuration, raised before any trial runs
        DeadlineExceededError: Deadline passed; .partial holds results
            aggregated over completed batches
    """
    _validate(lineups, distributions, config)

    arrays = LineupArrays.from_lineups(lineups)
    player_ids = list(arrays.player_ids)
    membership = arrays.membership
    if config.has_contest:
        rostered = set(arrays.player_ids)
        extra = [pid for pid in distributions if pid not in rostered]
        player_ids.extend(extra)
        membership = np.hstack([membership, np.zeros((len(lineups), len(extra)))])

    dists = [distributions[pid] for pid in player_ids]

    corr = None
    if config.use_correlations and matrix is not None and len(matrix) > 0:
        corr = matrix.to_dense(player_ids)

    field_model = None
    if config.has_contest:
        means = np.array([d.mean for d in dists])
        variances = np.array([d.std ** 2 for d in dists])
        field_model = FieldModel.build(
            config,
            lineup_means=membership @ means,
            lineup_stds=np.sqrt(membership @ variances),
            slate_projection=float(means.sum()),
            ownership=(
                np.array([ownership.get(pid, 0.0) for pid in player_ids])
                if ownership else None
            ),
            roster_size=len(lineups[0].players),
        )

    tasks = _partition(config)
    logger.info(
        "Simulating %d lineups x %d trials on %d workers (%d players, copula=%s)",
        len(lineups), config.num_simulations, len(tasks), len(player_ids),
        config.copula_type if corr is not None else 'independent'
    )

    start = time.time()
    cancel = threading.Event()
    updates: queue.Queue = queue.Queue()
    deadline = (
        time.monotonic() + config.timeout_seconds
        if config.timeout_seconds is not None else None
    )
    timed_out = False

    with ThreadPoolExecutor(max_workers=len(tasks)) as executor:
        futures: List[Future] = [
            executor.submit(
                _run_worker, task, dists, membership, corr, config,
                field_model, cancel, updates
            )
            for task in tasks
        ]

        completed = 0
        while True:
            # Workers post before returning, so a done future's updates are already queued
            all_done = all(f.done() for f in futures)
            try:
                if all_done:
                    batch = updates.get_nowait()
                else:
                    batch = updates.get(timeout=POLL_INTERVAL)
            except queue.Empty:
                if all_done:
                    break
                batch = 0

            if batch:
                completed += batch
                _emit(progress, completed, config.num_simulations)

            if any(f.done() and f.exception() is not None for f in futures):
                cancel.set()
            if deadline is not None and not cancel.is_set() and time.monotonic() > deadline:
                logger.warning(
                    "Simulation deadline of %.2fs reached after %d/%d trials, cancelling workers",
                    config.timeout_seconds, completed, config.num_simulations
                )
                timed_out = True
                cancel.set()

        partials = [f.result() for f in futures]

    results = _merge(partials, len(lineups), config)
    elapsed = time.time() - start

    if timed_out and completed < config.num_simulations:
        raise DeadlineExceededError(
            f"simulation stopped after {completed} of {config.num_simulations} trials",
            partial=results,
            completed=completed,
            total=config.num_simulations,
        )

    logger.info(
        "Simulation complete: %d trials in %.2fs (%.0f trials/s)",
        config.num_simulations, elapsed, config.num_simulations / max(elapsed, 1e-9)
    )
    return results


def _validate(
    lineups: List[Lineup],
    distributions: Dict[str, Distribution],
    config: SimulationConfig
):
    if config.num_simulations <= 0:
        raise ValidationError(
            f"num_simulations must be positive, got {config.num_simulations}"
        )
    if config.workers < 1:
        raise ValidationError(f"workers must be at least 1, got {config.workers}")
    if config.batch_size < 1:
        raise ValidationError(f"batch_size must be at least 1, got {config.batch_size}")
    if not lineups:
        raise ValidationError("no lineups to simulate")
    if config.contest_size < 0:
        raise ValidationError(f"contest_size cannot be negative, got {config.contest_size}")
    if config.entry_fee < 0:
        raise ValidationError(f"entry_fee cannot be negative, got {config.entry_fee}")
    if config.copula_type not in COPULA_TYPES:
        raise ValidationError(
            f"copula_type must be one of {COPULA_TYPES}, got '{config.copula_type}'"
        )
    if config.copula_type == 't' and config.copula_df <= 0:
        raise ValidationError("copula_df must be positive for the t-copula")
    if config.field_strength <= 0:
        raise ValidationError("field_strength must be positive")
    if config.timeout_seconds is not None and config.timeout_seconds <= 0:
        raise ValidationError("timeout_seconds must be positive when set")
    for tier in config.payout_tiers:
        if tier.start_rank < 1 or tier.end_rank < tier.start_rank or tier.payout < 0:
            raise ValidationError(
                f"invalid payout tier {tier.start_rank}-{tier.end_rank}: {tier.payout}"
            )

    missing = sorted({
        pid for lineup in lineups for pid in lineup.player_ids
        if pid not in distributions
    })
    if missing:
        raise ValidationError(f"no distribution for players {missing[:10]}")


def _partition(config: SimulationConfig) -> List[_WorkerTask]:
    """Split trials into disjoint per-worker slices with spawned seeds."""
    n_workers = min(config.workers, config.num_simulations)
    base, remainder = divmod(config.num_simulations, n_workers)
    seeds = np.random.SeedSequence(config.seed).spawn(n_workers)
    return [
        _WorkerTask(
            worker_id=i,
            n_trials=base + (1 if i < remainder else 0),
            seed=seeds[i],
        )
        for i in range(n_workers)
    ]


def _run_worker(
    task: _WorkerTask,
    dists: List[Distribution],
    membership: np.ndarray,
    corr: Optional[np.ndarray],
    config: SimulationConfig,
    field_model: Optional[FieldModel],
    cancel: threading.Event,
    updates: queue.Queue
) -> _Partial:
    """Run one slice of trials, checking for cancellation between batches."""
    rng = np.random.default_rng(task.seed)
    partial = _Partial(n_lineups=membership.shape[0])

    remaining = task.n_trials
    while remaining > 0:
        if cancel.is_set():
            logger.debug("Worker %d cancelled with %d trials left", task.worker_id, remaining)
            break

        size = min(config.batch_size, remaining)
        scores = sample_scores(
            dists, size, rng,
            correlation_matrix=corr,
            copula_type=config.copula_type,
            copula_df=config.copula_df
        )
        totals = membership @ scores  # [n_lineups, size]

        ranks = field_model.rank(totals, scores, rng) if field_model is not None else None
        partial.add(totals, ranks, field_model, config.entry_fee)

        remaining -= size
        updates.put(size)

    return partial


def _emit(progress: Optional[Any], completed: int, total: int):
    if progress is not None:
        progress.put(Progress(completed=completed, total=total))


def _merge(partials: List[_Partial], n_lineups: int, config: SimulationConfig) -> List[SimulationResult]:
    """Combine worker aggregates in worker order. Empty when no trial finished."""
    trials = sum(p.trials for p in partials)
    if trials == 0:
        return []

    used = [p for p in partials if p.trials > 0]
    total = np.sum([p.total for p in used], axis=0)
    total_sq = np.sum([p.total_sq for p in used], axis=0)
    samples = np.concatenate([s for p in used for s in p.samples], axis=1)  # [n_lineups, trials]
    samples.sort(axis=1)

    mean = total / trials
    variance = np.maximum(total_sq / trials - mean ** 2, 0.0)
    pct_values = np.percentile(samples, RESULT_PERCENTILES, axis=1)  # [n_pcts, n_lineups]

    if config.has_contest:
        payout = np.sum([p.payout for p in used], axis=0)
        cashes = np.sum([p.cashes for p in used], axis=0)
        wins = np.sum([p.wins for p in used], axis=0)
        top = {
            name: np.sum([p.top[name] for p in used], axis=0)
            for name in TOP_FINISH_BUCKETS
        }

    results = []
    for i in range(n_lineups):
        result = SimulationResult(
            lineup_index=i,
            num_simulations=trials,
            mean=float(mean[i]),
            std=float(math.sqrt(variance[i])),
            min=float(samples[i, 0]),
            max=float(samples[i, -1]),
            percentiles={
                pct: float(pct_values[k, i]) for k, pct in enumerate(RESULT_PERCENTILES)
            },
        )
        if config.has_contest:
            expected = float(payout[i] / trials)
            result.expected_payout = expected
            result.cash_probability = float(cashes[i] / trials * 100.0)
            result.win_probability = float(wins[i] / trials * 100.0)
            result.top_finishes = {
                name: float(top[name][i] / trials * 100.0) for name in TOP_FINISH_BUCKETS
            }
            if config.entry_fee > 0:
                result.roi = (expected - config.entry_fee) / config.entry_fee * 100.0
        results.append(result)

    return results

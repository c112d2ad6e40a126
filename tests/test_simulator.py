import queue

import numpy as np
import pytest

from dfs_sim.config import SPORT_CONFIGS, CONTEST_PRESETS, ROSTER_PRESETS
from dfs_sim.data.correlations import build_correlation_matrix
from dfs_sim.errors import ValidationError, DeadlineExceededError
from dfs_sim.optimizer import optimize
from dfs_sim.scoring import PayoutLookup
from dfs_sim.simulation import build_distributions, simulate
from dfs_sim.simulation.simulator import FieldModel
from dfs_sim.types import OptimizationConfig, SimulationConfig, PayoutTier, Progress


@pytest.fixture(scope="module")
def slate(pool):
    players = pool
    config = OptimizationConfig(
        salary_cap=50000,
        slots=list(ROSTER_PRESETS['dk_nfl']),
        num_lineups=3,
        min_different_players=3,
        correlation_weight=0.3,
        timeout_seconds=60.0,
    )
    matrix = build_correlation_matrix(players, sport='nfl')
    lineups = optimize(players, config, matrix=matrix)
    distributions = build_distributions(players, SPORT_CONFIGS['nfl'])
    return lineups, matrix, distributions


def test_zero_simulations_rejected(slate):
    lineups, matrix, dists = slate
    with pytest.raises(ValidationError):
        simulate(lineups, matrix, dists, SimulationConfig(num_simulations=0))


@pytest.mark.parametrize("overrides", [
    {'workers': 0},
    {'batch_size': 0},
    {'copula_type': 'clayton'},
    {'entry_fee': -1.0},
    {'payout_tiers': [PayoutTier(5, 2, 10.0)]},
])
def test_invalid_config_rejected(slate, overrides):
    lineups, matrix, dists = slate
    with pytest.raises(ValidationError):
        simulate(lineups, matrix, dists, SimulationConfig(num_simulations=100, **overrides))


def test_missing_distribution_rejected(slate):
    lineups, matrix, dists = slate
    partial = dict(dists)
    partial.pop(lineups[0].player_ids[0])
    with pytest.raises(ValidationError):
        simulate(lineups, matrix, partial, SimulationConfig(num_simulations=100))


def test_percentiles_ordered(slate):
    lineups, matrix, dists = slate
    results = simulate(lineups, matrix, dists, SimulationConfig(num_simulations=3000, seed=11))

    assert len(results) == len(lineups)
    for r in results:
        p = r.percentiles
        assert r.min <= p[25] <= p[50] <= p[75] <= p[90] <= p[95] <= r.max
        assert r.num_simulations == 3000


def test_mean_tracks_projection(slate):
    lineups, matrix, dists = slate
    results = simulate(lineups, matrix, dists, SimulationConfig(num_simulations=20000, seed=3))

    for lineup, r in zip(lineups, results):
        assert r.mean == pytest.approx(lineup.projection, rel=0.03)


def test_single_trial_has_zero_std(slate):
    lineups, matrix, dists = slate
    results = simulate(lineups, matrix, dists, SimulationConfig(num_simulations=1, seed=1))

    for r in results:
        assert r.std == 0.0
        assert r.min == r.max == r.mean == r.percentiles[50]


@pytest.mark.parametrize("copula_type", ["gaussian", "t"])
def test_same_seed_is_deterministic(slate, copula_type):
    lineups, matrix, dists = slate
    config = SimulationConfig(num_simulations=2500, workers=3, batch_size=400, seed=99,
                              copula_type=copula_type, contest_size=200,
                              payout_tiers=[PayoutTier(1, 20, 30.0)], entry_fee=10.0)

    first = [r.to_dict() for r in simulate(lineups, matrix, dists, config)]
    second = [r.to_dict() for r in simulate(lineups, matrix, dists, config)]

    assert first == second


def test_progress_is_monotonic(slate):
    lineups, matrix, dists = slate
    updates = queue.Queue()
    simulate(lineups, matrix, dists,
             SimulationConfig(num_simulations=5000, workers=4, batch_size=250, seed=2),
             progress=updates)

    seen = []
    while not updates.empty():
        msg = updates.get_nowait()
        assert isinstance(msg, Progress)
        assert msg.total == 5000
        seen.append(msg.completed)

    assert seen
    assert seen == sorted(seen)
    assert len(set(seen)) == len(seen)
    assert seen[-1] == 5000


def test_contest_statistics(slate, gpp_tiers):
    lineups, matrix, dists = slate
    config = SimulationConfig(num_simulations=4000, seed=5, contest_size=99,
                              payout_tiers=gpp_tiers, entry_fee=20.0)
    results = simulate(lineups, matrix, dists, config)

    for r in results:
        assert 0.0 <= r.win_probability <= r.top_finishes['top_1'] <= 100.0
        assert r.top_finishes['top_1'] <= r.top_finishes['top_10'] <= r.top_finishes['top_20']
        assert r.top_finishes['top_20'] <= r.top_finishes['top_50']
        assert 0.0 <= r.cash_probability <= 100.0
        assert r.roi == pytest.approx((r.expected_payout - 20.0) / 20.0 * 100.0)


def test_weaker_field_pays_more(slate):
    lineups, matrix, dists = slate
    base = CONTEST_PRESETS['cash_double_up']

    def run(strength):
        config = SimulationConfig(num_simulations=3000, seed=8, contest_size=base.contest_size,
                                  payout_tiers=base.payout_tiers, entry_fee=base.entry_fee,
                                  field_strength=strength)
        return simulate(lineups, matrix, dists, config)

    weak, strong = run(0.8), run(1.15)
    for w, s in zip(weak, strong):
        assert w.cash_probability >= s.cash_probability
        assert w.expected_payout >= s.expected_payout


def test_no_contest_leaves_contest_fields_empty(slate):
    lineups, matrix, dists = slate
    results = simulate(lineups, matrix, dists, SimulationConfig(num_simulations=500, seed=4))
    for r in results:
        assert r.top_finishes == {}
        assert r.expected_payout == 0.0


def test_deadline_returns_partial(slate):
    lineups, matrix, dists = slate
    config = SimulationConfig(num_simulations=2_000_000, workers=2, batch_size=500,
                              seed=1, timeout_seconds=0.01)

    with pytest.raises(DeadlineExceededError) as info:
        simulate(lineups, matrix, dists, config)

    err = info.value
    assert err.total == 2_000_000
    assert err.completed < err.total
    if err.completed:
        assert err.partial[0].num_simulations == err.completed
    else:
        assert err.partial == []


def test_payout_lookup_tie_split():
    lookup = PayoutLookup.from_tiers([PayoutTier(1, 1, 100.0), PayoutTier(2, 3, 40.0)], 10)

    assert lookup.get_payout(1) == 100.0
    assert lookup.get_payout(1, n_tied=2) == pytest.approx(70.0)
    assert lookup.get_payout(11) == 0.0
    assert lookup.paid_places == 3
    assert lookup.total_payout == pytest.approx(180.0)

    ranks = np.array([[1, 2], [4, 12]])
    assert np.allclose(lookup.batch_get_payout(ranks, np.ones_like(ranks)), [[100.0, 40.0], [0.0, 0.0]])


def test_field_follows_ownership_weighted_scores():
    config = SimulationConfig(contest_size=999, payout_tiers=[PayoutTier(1, 1, 100.0)], entry_fee=1.0)
    # player 0 scores nothing, player 1 scores 30 in both trials
    scores = np.array([[0.0, 0.0], [30.0, 30.0]])
    totals = np.array([[20.0, 20.0]])

    def ranks(ownership):
        model = FieldModel.build(config, np.array([20.0]), np.array([5.0]), slate_projection=40.0,
                                 ownership=ownership, roster_size=1)
        return model, model.rank(totals, scores, np.random.default_rng(0))

    chalk_busts, busted = ranks(np.array([90.0, 10.0]))
    chalk_hits, beaten = ranks(np.array([10.0, 90.0]))

    assert chalk_busts.weights.sum() == pytest.approx(config.field_strength)
    assert busted.mean() < 50
    assert beaten.mean() > 500


def test_field_without_ownership_uses_slate_level():
    config = SimulationConfig(contest_size=99, payout_tiers=[PayoutTier(1, 1, 100.0)])
    model = FieldModel.build(config, np.array([20.0]), np.array([5.0]), slate_projection=40.0,
                             ownership=np.zeros(2), roster_size=1)
    assert model.weights is None


def test_simulate_with_ownership(slate, gpp_tiers):
    lineups, matrix, dists = slate
    ownership = {pid: 10.0 for pid in dists}
    config = SimulationConfig(num_simulations=1000, seed=2, contest_size=99,
                              payout_tiers=gpp_tiers, entry_fee=20.0)
    results = simulate(lineups, matrix, dists, config, ownership=ownership)

    assert len(results) == len(lineups)
    for r in results:
        assert 0.0 <= r.cash_probability <= 100.0
        assert r.top_finishes['top_1'] <= r.top_finishes['top_50']

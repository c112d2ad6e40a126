import numpy as np
import pytest

from dfs_sim.config import SPORT_CONFIGS
from dfs_sim.simulation import (
    Normal, LogNormal, Gamma, Beta, distribution_for_player, build_distributions
)
from dfs_sim.simulation.engine import sample_scores, generate_correlated_uniforms
from dfs_sim.types import Player, SportConfig


def _player(pos, proj, ceiling=0.0):
    return Player(id=f"{pos}-{proj}", name=pos, position=pos, team='KC', game='BUF@KC',
                  salary=5000, projection=proj, ceiling=ceiling)


def test_normal_sample_fidelity():
    dist = Normal(45.0, 11.25)
    samples = dist.sample(np.random.default_rng(2024), 10000)

    assert abs(samples.mean() - 45.0) <= 0.5
    assert abs(samples.std() - 11.25) <= 0.5


def test_generate_single_draw():
    dist = Normal(10.0, 2.0)
    value = dist.generate(np.random.default_rng(1))
    assert isinstance(value, float)


@pytest.mark.parametrize("dist", [
    LogNormal.from_moments(20.0, 8.0),
    Gamma.from_moments(9.0, 4.5),
    Beta.from_moments(50.0, 15.0, upper=120.0),
])
def test_skewed_families_reproduce_moments(dist):
    target_mean = {'lognormal': 20.0, 'gamma': 9.0, 'beta': 50.0}[dist.family]
    target_std = {'lognormal': 8.0, 'gamma': 4.5, 'beta': 15.0}[dist.family]

    assert dist.mean == pytest.approx(target_mean, rel=1e-9)
    assert dist.std == pytest.approx(target_std, rel=1e-9)


def test_beta_caps_variance_but_keeps_mean():
    dist = Beta.from_moments(50.0, 80.0, upper=100.0)

    assert dist.mean == pytest.approx(50.0)
    assert dist.std < 50.0
    assert dist.ppf(0.999) <= 100.0


def test_cdf_inverts_ppf():
    dist = LogNormal.from_moments(15.0, 6.0)
    u = np.array([0.05, 0.3, 0.5, 0.9])
    assert np.allclose(dist.cdf(dist.ppf(u)), u)


def test_families_chosen_by_position():
    nfl = SPORT_CONFIGS['nfl']

    assert isinstance(distribution_for_player(_player('QB', 20.0), nfl), Normal)
    assert isinstance(distribution_for_player(_player('WR', 14.0), nfl), LogNormal)
    assert isinstance(distribution_for_player(_player('DST', 7.0), nfl), Gamma)

    wr = distribution_for_player(_player('WR', 14.0), nfl)
    assert wr.std == pytest.approx(14.0 * nfl.position_variance['WR'])


def test_zero_projection_gets_degenerate_normal():
    dist = distribution_for_player(_player('WR', 0.0), SPORT_CONFIGS['nfl'])
    assert isinstance(dist, Normal)
    assert dist.mean == 0.0
    assert dist.std < 1e-3


def test_golf_beta_uses_ceiling():
    golf = SPORT_CONFIGS['golf']
    with_ceiling = distribution_for_player(_player('G', 60.0, ceiling=110.0), golf)
    without = distribution_for_player(_player('G', 60.0), golf)

    assert isinstance(with_ceiling, Beta)
    assert with_ceiling.upper == 110.0
    assert without.upper == pytest.approx(60.0 * golf.beta_scale_ratio)
    assert with_ceiling.mean == pytest.approx(60.0)


def test_sport_config_rejects_unknown_family():
    with pytest.raises(ValueError):
        SportConfig(sport='x', default_family='cauchy')


def test_build_distributions_covers_pool(pool):
    dists = build_distributions(pool, SPORT_CONFIGS['nfl'])
    assert set(dists) == {p.id for p in pool}


def test_sample_scores_shape_and_correlation():
    dists = [Normal(20.0, 5.0), Normal(15.0, 4.0)]
    corr = np.array([[1.0, 0.8], [0.8, 1.0]])

    scores = sample_scores(dists, 20000, np.random.default_rng(3), correlation_matrix=corr)

    assert scores.shape == (2, 20000)
    assert np.corrcoef(scores)[0, 1] == pytest.approx(0.8, abs=0.03)


def test_t_copula_uniforms_in_open_interval():
    corr = np.array([[1.0, 0.5], [0.5, 1.0]])
    u = generate_correlated_uniforms(2, 5000, corr, copula_type='t', copula_df=4,
                                     rng=np.random.default_rng(5))
    assert u.min() > 0.0 and u.max() < 1.0

import numpy as np
import pytest

from dfs_sim.data.correlations import (
    CorrelationMatrix, CorrelationContext, build_correlation_matrix,
    lineup_correlation_score, GOLF_SAME_TEE_TIME, GOLF_SAME_WAVE,
    BLOWOUT_BACKUP_CORRELATION, ADVERSE_WEATHER_RUSHING_BOOST
)
from dfs_sim.types import Player


def _player(pid, pos, team, game, proj=10.0, **kw):
    return Player(id=pid, name=pid, position=pos, team=team, game=game,
                  salary=5000, projection=proj, **kw)


def test_matrix_symmetric_and_bounded(pool):
    matrix = build_correlation_matrix(pool, sport='nfl')
    ids = [p.id for p in pool]

    assert len(matrix) > 0
    for (a, b), value in matrix.items():
        assert a < b
        assert -1.0 <= value <= 1.0
        assert matrix.get(a, b) == matrix.get(b, a)

    dense = matrix.to_dense(ids)
    assert np.allclose(dense, dense.T)
    assert np.allclose(np.diag(dense), 1.0)


def test_builder_is_deterministic(pool):
    context = CorrelationContext(blowout_games=['BUF@KC'], adverse_weather_games=['SF@SEA'])
    first = build_correlation_matrix(pool, context, 'nfl')
    second = build_correlation_matrix(pool, context, 'nfl')
    shuffled = build_correlation_matrix(list(reversed(pool)), context, 'nfl')

    assert list(first.items()) == list(second.items())
    assert sorted(first.items()) == sorted(shuffled.items())


def test_teammates_opponents_and_other_games():
    qb = _player('qb', 'QB', 'KC', 'BUF@KC')
    wr = _player('wr', 'WR', 'KC', 'BUF@KC')
    opp_wr = _player('owr', 'WR', 'BUF', 'BUF@KC')
    elsewhere = _player('x', 'WR', 'DAL', 'PHI@DAL')

    matrix = build_correlation_matrix([qb, wr, opp_wr, elsewhere], sport='nfl')

    assert matrix.get('qb', 'wr') == pytest.approx(0.50)
    assert matrix.get('qb', 'owr') == pytest.approx(0.25)
    assert matrix.get('qb', 'x') == 0.0
    assert matrix.get('qb', 'qb') == 1.0


def test_set_validates_and_drops_zeros():
    matrix = CorrelationMatrix(['a', 'b'])
    matrix.set('b', 'a', 0.4)
    assert matrix.get('a', 'b') == 0.4
    assert len(matrix) == 1

    matrix.set('a', 'b', 0.0)
    assert len(matrix) == 0

    with pytest.raises(ValueError):
        matrix.set('a', 'b', 1.5)
    with pytest.raises(ValueError):
        matrix.set('a', 'a', 0.5)


def test_golf_tee_times():
    a = _player('a', 'G', '', '', tee_time='2025-04-10T08:10')
    b = _player('b', 'G', '', '', tee_time='2025-04-10T08:10')
    c = _player('c', 'G', '', '', tee_time='2025-04-10T09:40')
    d = _player('d', 'G', '', '', tee_time='13:20')

    matrix = build_correlation_matrix([a, b, c, d], sport='golf')

    assert matrix.get('a', 'b') == pytest.approx(GOLF_SAME_TEE_TIME)
    assert matrix.get('a', 'c') == pytest.approx(GOLF_SAME_WAVE)
    assert matrix.get('a', 'd') == 0.0


def test_blowout_and_weather_context():
    starter = _player('rb1', 'RB', 'KC', 'BUF@KC')
    backup = _player('rb2', 'RB', 'KC', 'BUF@KC')
    opp_rb = _player('rb3', 'RB', 'BUF', 'BUF@KC')
    players = [starter, backup, opp_rb]

    base = build_correlation_matrix(players, sport='nfl')
    context = CorrelationContext(
        blowout_games=['BUF@KC'],
        adverse_weather_games=['BUF@KC'],
        backups={'rb1': ['rb2']},
    )
    adjusted = build_correlation_matrix(players, context, sport='nfl')

    assert adjusted.get('rb1', 'rb2') == pytest.approx(
        min(base.get('rb1', 'rb2'), 0.0) + BLOWOUT_BACKUP_CORRELATION
    )
    assert adjusted.get('rb1', 'rb3') == pytest.approx(
        base.get('rb1', 'rb3') + ADVERSE_WEATHER_RUSHING_BOOST
    )


def test_non_psd_matrix_is_repaired():
    matrix = CorrelationMatrix(['a', 'b', 'c'])
    matrix.set('a', 'b', 0.9)
    matrix.set('b', 'c', 0.9)
    matrix.set('a', 'c', -0.9)

    raw = matrix.to_dense(['a', 'b', 'c'], repair=False)
    assert np.linalg.eigvalsh(raw).min() < 0

    repaired = matrix.to_dense(['a', 'b', 'c'])
    assert np.linalg.eigvalsh(repaired).min() > -1e-8
    assert np.allclose(np.diag(repaired), 1.0)
    assert np.allclose(repaired, repaired.T)


def test_lineup_correlation_score_in_points():
    qb = _player('qb', 'QB', 'KC', 'BUF@KC', proj=25.0)
    wr = _player('wr', 'WR', 'KC', 'BUF@KC', proj=16.0)
    matrix = build_correlation_matrix([qb, wr], sport='nfl')

    # 0.5 * sqrt(25 * 16)
    assert lineup_correlation_score([qb, wr], matrix) == pytest.approx(10.0)

import json

import click
import pandas as pd
import pytest
from click.testing import CliRunner

from dfs_sim.cli import main, parse_stack, parse_team_exposure
from dfs_sim.data import load_players
from dfs_sim.data.loader import find_player


@pytest.fixture
def pool_csv(tmp_path, pool):
    df = pd.DataFrame([
        {
            'ID': p.id,
            'Name': p.name,
            'Position': p.position,
            'TeamAbbrev': p.team,
            'Salary': p.salary,
            'Game Info': f"{p.game} 01/12/2025 08:15PM ET",
            'Projection': p.projection,
            'Ceiling': p.ceiling,
        }
        for p in pool
    ])
    path = tmp_path / "players.csv"
    df.to_csv(path, index=False)
    return str(path)


def test_load_players_from_dk_export(pool_csv, pool):
    players = load_players(pool_csv)

    assert len(players) == len(pool)
    first = players[0]
    assert first.id == pool[0].id
    assert first.game == 'BUF@KC'
    assert first.salary == pool[0].salary
    assert first.ceiling == pytest.approx(pool[0].ceiling)


def test_load_players_min_projection(pool_csv, pool):
    players = load_players(pool_csv, min_projection=15.0)
    assert 0 < len(players) < len(pool)
    assert all(p.projection >= 15.0 for p in players)


def test_load_players_missing_column(tmp_path):
    path = tmp_path / "bad.csv"
    pd.DataFrame({'Name': ['A'], 'Salary': [5000]}).to_csv(path, index=False)
    with pytest.raises(ValueError, match="Missing required columns"):
        load_players(str(path))


def test_game_built_from_team_and_opponent(tmp_path):
    path = tmp_path / "simple.csv"
    pd.DataFrame({
        'ID': ['1'], 'Name': ['A'], 'Pos': ['WR'], 'Team': ['KC'], 'Opp': ['BUF'],
        'Salary': [5000], 'Proj': [12.5],
    }).to_csv(path, index=False)

    player = load_players(str(path))[0]
    assert player.game == 'BUF@KC'
    assert player.opponent == 'BUF'


def test_find_player_case_insensitive(pool):
    assert find_player(pool, pool[3].name.upper()) == pool[3]
    assert find_player(pool, 'Nobody') is None


def test_parse_stack():
    team = parse_stack('team:3')
    assert (team.kind, team.min_players) == ('team', 3)

    game = parse_stack('game:4:6')
    assert (game.min_players, game.max_players) == (4, 6)

    qb = parse_stack('QB+WR/TE:1')
    assert qb.kind == 'position'
    assert qb.positions == ['QB']
    assert qb.partner_positions == ['WR', 'TE']


def test_cli_optimize_writes_json(pool_csv, tmp_path):
    out = tmp_path / "out.json"
    runner = CliRunner()
    result = runner.invoke(main, [
        'optimize', pool_csv, '-n', '3', '-d', '2', '-a', '0.2',
        '--stack', 'QB+WR/TE:1', '--simulate', '--n-sims', '300', '--seed', '4',
        '--quiet', '-o', str(out),
    ])

    assert result.exit_code == 0, result.output
    assert 'LINEUPS' in result.output
    data = json.loads(out.read_text())
    assert len(data['lineups']) == 3
    assert len(data['results']) == 3
    assert data['metadata']['sport'] == 'nfl'


def test_parse_team_exposure():
    assert parse_team_exposure(['KC:0.5', 'BUF:1']) == {'KC': 0.5, 'BUF': 1.0}
    with pytest.raises(click.BadParameter):
        parse_team_exposure(['KC'])
    with pytest.raises(click.BadParameter):
        parse_team_exposure([':0.5'])


def test_cli_objective_from_contest_preset(pool_csv, tmp_path):
    out = tmp_path / "out.json"
    result = CliRunner().invoke(main, [
        'optimize', pool_csv, '-n', '2', '-p', 'cash_double_up', '--n-sims', '200',
        '--team-max-exposure', 'KC:0.5', '--seed', '1', '--quiet', '-o', str(out),
    ])

    assert result.exit_code == 0, result.output
    data = json.loads(out.read_text())
    assert data['metadata']['objective'] == 'floor'
    assert data['team_exposures'].get('KC', 0.0) <= 0.5


def test_cli_unknown_lock_is_usage_error(pool_csv):
    result = CliRunner().invoke(main, ['optimize', pool_csv, '--lock', 'Nobody', '--quiet'])
    assert result.exit_code == 2


def test_cli_infeasible_request_fails_cleanly(pool_csv):
    result = CliRunner().invoke(main, ['optimize', pool_csv, '--salary-cap', '10000', '--quiet'])
    assert result.exit_code == 1
    assert 'cannot be satisfied' in result.output


def test_cli_presets():
    result = CliRunner().invoke(main, ['presets'])
    assert result.exit_code == 0
    assert 'dk_nfl' in result.output
    assert 'gpp_small' in result.output

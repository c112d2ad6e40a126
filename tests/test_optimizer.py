from collections import Counter
from itertools import combinations

import pytest

from dfs_sim.errors import ValidationError, InfeasibleError, PartialFailure, DeadlineExceededError
from dfs_sim.optimizer import (
    optimize, exposure_report, assign_slots, fits_slots, order_by_slot,
    min_completion_cost, rule_satisfied, stack_cores, combined_cores, ExposureTracker,
    player_value, team_exposure_report
)
from dfs_sim.types import Player, PositionSlot, StackingRule, OptimizationConfig


def _assert_feasible(lineup, config):
    assert lineup.salary == sum(p.salary for p in lineup.players)
    assert 0 < lineup.salary <= config.salary_cap
    assert len(lineup.players) == len(config.slots)
    assert len(set(lineup.player_ids)) == len(config.slots)
    for slot, player in zip(config.slots, lineup.players):
        assert slot.accepts(player)
    assert lineup.slot_names == [s.name for s in config.slots]


def _player(pid, pos, salary=1000, proj=10.0, team='T', game='G'):
    return Player(id=pid, name=pid, position=pos, team=team, game=game,
                  salary=salary, projection=proj)


def test_single_lineup_fills_every_slot(pool, opt_config):
    config = opt_config()
    lineups = optimize(pool, config)

    assert len(lineups) == 1
    _assert_feasible(lineups[0], config)


def test_twenty_lineups_respect_diversity(pool, opt_config):
    config = opt_config(num_lineups=20, min_different_players=3)
    lineups = optimize(pool, config)

    assert len(lineups) == 20
    max_shared = len(config.slots) - 3
    for a, b in combinations(lineups, 2):
        assert len(set(a.player_ids) & set(b.player_ids)) <= max_shared
    for lineup in lineups:
        _assert_feasible(lineup, config)


def test_lineups_sorted_by_objective(pool, opt_config):
    config = opt_config(num_lineups=5, correlation_weight=0.4)
    lineups = optimize(pool, config)

    objectives = [lu.projection + 0.4 * lu.correlation_score for lu in lineups]
    assert objectives == sorted(objectives, reverse=True)


def test_locked_player_over_cap_rejected(pool, opt_config):
    expensive = Player(id='whale', name='Whale', position='QB', team='KC', game='BUF@KC',
                       salary=60000, projection=40.0)
    config = opt_config(locked_player_ids=['whale'])

    with pytest.raises(ValidationError):
        optimize(pool + [expensive], config)


@pytest.mark.parametrize("overrides", [
    {'num_lineups': 0},
    {'correlation_weight': 1.5},
    {'min_different_players': 10},
    {'salary_cap': 0},
    {'locked_player_ids': ['nobody']},
    {'max_exposure': {'KC-QB1': 1.2}},
    {'min_exposure': {'KC-QB1': 0.6}, 'max_exposure': {'KC-QB1': 0.4}},
    {'stacking_rules': [StackingRule(kind='division', min_players=2)]},
    {'stacking_rules': [StackingRule(kind='team', min_players=12)]},
    {'objective': 'moonshot'},
    {'team_max_exposure': {'KC': 1.5}},
    {'locked_player_ids': ['KC-QB1'], 'num_lineups': 4, 'team_max_exposure': {'KC': 0.5}},
])
def test_bad_configuration_rejected(pool, opt_config, overrides):
    with pytest.raises(ValidationError):
        optimize(pool, opt_config(**overrides))


def test_locked_and_excluded(pool, opt_config):
    locked = 'BUF-WR3'
    excluded = max((p for p in pool if p.id != locked), key=lambda p: p.projection / p.salary).id
    config = opt_config(num_lineups=4, locked_player_ids=[locked], excluded_player_ids=[excluded])
    lineups = optimize(pool, config)

    for lineup in lineups:
        assert locked in lineup.player_ids
        assert excluded not in lineup.player_ids


def test_exposure_bounds(pool, opt_config):
    first = optimize(pool, opt_config())[0]
    star = first.players[0].id
    depth = 'DAL-TE2'
    n = 10
    config = opt_config(
        num_lineups=n,
        min_different_players=2,
        max_exposure={star: 0.3},
        min_exposure={depth: 0.4},
    )
    lineups = optimize(pool, config)

    counts = Counter(pid for lu in lineups for pid in lu.player_ids)
    assert counts[star] <= 3
    assert counts[depth] >= 4

    report = exposure_report(lineups)
    assert report[depth] == counts[depth] / n
    assert list(report.values()) == sorted(report.values(), reverse=True)


def test_position_stack(pool, opt_config):
    rule = StackingRule(kind='position', positions=['QB'], partner_positions=['WR', 'TE'],
                        min_players=2)
    config = opt_config(num_lineups=3, stacking_rules=[rule], correlation_weight=0.2)
    lineups = optimize(pool, config)

    for lineup in lineups:
        qb = next(p for p in lineup.players if p.position == 'QB')
        partners = [p for p in lineup.players if p.team == qb.team and p.position in ('WR', 'TE')]
        assert len(partners) >= 2


def test_team_stack_with_max(pool, opt_config):
    rules = [
        StackingRule(kind='team', min_players=4),
        StackingRule(kind='game', max_players=5),
    ]
    config = opt_config(num_lineups=2, stacking_rules=rules)
    lineups = optimize(pool, config)

    for lineup in lineups:
        teams = Counter(p.team for p in lineup.players)
        games = Counter(p.game for p in lineup.players)
        assert max(teams.values()) >= 4
        assert max(games.values()) <= 5


def test_min_salary(pool, opt_config):
    config = opt_config(num_lineups=2, min_salary=49500)
    for lineup in optimize(pool, config):
        assert 49500 <= lineup.salary <= 50000


def test_infeasible_cap(pool, opt_config):
    with pytest.raises(InfeasibleError):
        optimize(pool, opt_config(salary_cap=10000))


def test_partial_failure_keeps_built_lineups():
    players = [_player('a', 'G', proj=30.0), _player('b', 'G', proj=20.0), _player('c', 'G', proj=10.0)]
    slots = [PositionSlot('G', frozenset({'G'})), PositionSlot('G', frozenset({'G'}))]
    config = OptimizationConfig(salary_cap=100000, slots=slots, num_lineups=5)

    with pytest.raises(PartialFailure) as info:
        optimize(players, config)

    assert info.value.requested == 5
    assert 0 < len(info.value.lineups) < 5
    ids = [frozenset(lu.player_ids) for lu in info.value.lineups]
    assert len(set(ids)) == len(ids)


def test_deadline(pool, opt_config):
    with pytest.raises(DeadlineExceededError) as info:
        optimize(pool, opt_config(num_lineups=50, timeout_seconds=1e-9))
    assert info.value.partial == []


def test_multi_position_matching():
    slots = [
        PositionSlot('PG', frozenset({'PG'})),
        PositionSlot('SG', frozenset({'SG'})),
        PositionSlot('G', frozenset({'PG', 'SG'})),
    ]
    combo = _player('combo', 'PG/SG')
    pg = _player('pg', 'PG')
    sg = _player('sg', 'SG')
    c = _player('c', 'C')

    assert fits_slots([combo, pg, sg], slots)
    assert not fits_slots([combo, pg, c], slots)

    ordered, names = order_by_slot([combo, sg, pg], slots)
    assert names == ['PG', 'SG', 'G']
    assert all(slot.accepts(p) for slot, p in zip(slots, ordered))
    assert len(set(assign_slots([pg, combo], slots))) == 2


def test_min_completion_cost():
    slots = [PositionSlot('QB', frozenset({'QB'})), PositionSlot('FLEX', frozenset({'RB', 'WR'}))]
    qb = _player('qb', 'QB', salary=7000)
    rb_cheap = _player('rb1', 'RB', salary=3000)
    wr_cheap = _player('wr1', 'WR', salary=3500)
    pool = sorted([qb, rb_cheap, wr_cheap], key=lambda p: (p.salary, p.id))

    assert min_completion_cost([qb], slots, pool, set()) == 3000
    assert min_completion_cost([qb], slots, pool, {'rb1'}) == 3500
    assert min_completion_cost([], slots, pool, set()) == 10000
    assert min_completion_cost([qb], slots, pool, {'rb1', 'wr1'}) is None


def test_rule_satisfied_named_teams():
    players = [_player('a', 'QB', team='KC'), _player('b', 'WR', team='KC'),
               _player('c', 'WR', team='BUF')]
    rule = StackingRule(kind='team', teams=['KC', 'BUF'], min_players=1, max_players=2)
    assert rule_satisfied(rule, players)
    assert not rule_satisfied(StackingRule(kind='team', teams=['KC'], min_players=3), players)


def test_stack_cores_ranked(pool, dk_slots):
    rule = StackingRule(kind='position', positions=['QB'], partner_positions=['WR'], min_players=1)
    cores = stack_cores(rule, pool, dk_slots, set())

    assert cores
    totals = [sum(p.projection for p in core) for core in cores]
    assert totals == sorted(totals, reverse=True)
    for core in cores:
        assert core[0].position == 'QB'
        assert core[1].team == core[0].team


def test_exposure_tracker_forces_minimum():
    tracker = ExposureTracker(num_lineups=4, min_exposure={'x': 0.5}, max_exposure={'y': 0.25})

    assert tracker.needs['x'] == 2
    assert tracker.caps['y'] == 1
    assert tracker.forced_ids() == []

    tracker.accepted = 2
    assert tracker.forced_ids() == ['x']


@pytest.mark.parametrize("reverse", [False, True])
def test_two_minimum_stacking_rules_in_either_order(pool, opt_config, reverse):
    rules = [
        StackingRule(kind='game', min_players=4),
        StackingRule(kind='position', positions=['QB'], partner_positions=['WR', 'TE'],
                     min_players=2),
    ]
    if reverse:
        rules.reverse()
    config = opt_config(num_lineups=5, min_different_players=2, stacking_rules=rules)
    lineups = optimize(pool, config)

    assert len(lineups) == 5
    for lineup in lineups:
        _assert_feasible(lineup, config)
        for rule in rules:
            assert rule_satisfied(rule, lineup.players)


def test_combined_cores_ignore_rule_order(pool, dk_slots):
    rules = [
        StackingRule(kind='game', min_players=4),
        StackingRule(kind='position', positions=['QB'], partner_positions=['WR', 'TE'],
                     min_players=2),
    ]
    forward = combined_cores(rules, pool, dk_slots, set())
    backward = combined_cores(list(reversed(rules)), pool, dk_slots, set())

    assert forward
    assert [sorted(p.id for p in c) for c in forward] == [sorted(p.id for p in c) for c in backward]
    for core in forward:
        assert len(core) <= len(dk_slots)
        assert fits_slots(core, dk_slots)
        assert all(rule_satisfied(rule, core) for rule in rules)


def test_zero_min_different_still_distinct(pool, opt_config):
    lineups = optimize(pool, opt_config(num_lineups=3, min_different_players=0))

    assert len(lineups) == 3
    assert len({frozenset(lu.player_ids) for lu in lineups}) == 3


def test_optimize_leaves_pool_untouched(pool, opt_config):
    snapshot = list(pool)
    config = opt_config(num_lineups=3, correlation_weight=0.3,
                        excluded_player_ids=[pool[0].id], locked_player_ids=[pool[5].id])
    optimize(pool, config)

    assert pool == snapshot
    assert [id(p) for p in pool] == [id(p) for p in snapshot]


def _objective_pool():
    steady = Player(id='steady', name='steady', position='QB', team='A', game='A@B', salary=5000,
                    projection=20.0, floor=18.0, ceiling=25.0, ownership=40.0)
    boom = Player(id='boom', name='boom', position='QB', team='B', game='A@B', salary=5000,
                  projection=18.0, floor=5.0, ceiling=40.0, ownership=5.0)
    return [steady, boom]


@pytest.mark.parametrize("objective, expected", [
    ('projection', 'steady'),
    ('floor', 'steady'),
    ('ceiling', 'boom'),
    ('contrarian', 'boom'),
])
def test_objective_follows_contest_type(objective, expected):
    slots = [PositionSlot('QB', frozenset({'QB'}))]
    config = OptimizationConfig(salary_cap=10000, slots=slots, objective=objective)

    lineup = optimize(_objective_pool(), config)[0]

    assert lineup.players[0].id == expected
    # Reported projection stays the plain projection sum
    assert lineup.projection == lineup.players[0].projection


def test_player_value_falls_back_to_projection():
    bare = _player('x', 'WR', proj=12.0)
    for objective in ('projection', 'floor', 'ceiling', 'contrarian'):
        assert player_value(bare, objective) == 12.0

    steady, boom = _objective_pool()
    assert player_value(boom, 'ceiling') > player_value(steady, 'ceiling')
    assert player_value(steady, 'contrarian') < steady.projection
    assert player_value(boom, 'contrarian') > boom.projection


def test_team_max_exposure(pool, opt_config):
    teams = sorted({p.team for p in pool})
    config = opt_config(num_lineups=5, min_different_players=2,
                        team_max_exposure={team: 0.6 for team in teams})
    lineups = optimize(pool, config)

    assert len(lineups) == 5
    report = team_exposure_report(lineups)
    assert report
    assert all(frac <= 0.6 for frac in report.values())
    assert list(report.values()) == sorted(report.values(), reverse=True)


def test_exposure_tracker_team_caps(pool, opt_config):
    lineup = optimize(pool, opt_config())[0]
    team = lineup.players[0].team
    tracker = ExposureTracker(num_lineups=4, min_exposure={}, max_exposure={},
                              team_max_exposure={team: 0.25})

    assert tracker.team_caps == {team: 1}
    assert tracker.capped_teams() == []
    tracker.record(lineup)
    assert tracker.capped_teams() == [team]


def test_partial_failure_message_matches_lineup_count():
    full = PartialFailure("minimum exposure not reached for x (short 1)", ['a', 'b'], 2)
    short = PartialFailure("remaining players cannot form another valid lineup", ['a'], 2)

    assert 'Only' not in str(full)
    assert str(full).startswith('All 2 lineups were built')
    assert str(short).startswith('Only 1 of 2 lineups could be built')


def test_matching_moves_flex_player_to_open_position():
    slots = [PositionSlot('FLEX', frozenset({'RB', 'WR'})), PositionSlot('RB', frozenset({'RB'}))]
    rb = _player('rb', 'RB')
    wr = _player('wr', 'WR')

    assert assign_slots([rb, wr], slots) == [1, 0]
    assert assign_slots([rb], slots) in ([0], [1])
    assert assign_slots([wr, _player('wr2', 'WR')], slots) is None
    assert assign_slots([], slots) == []

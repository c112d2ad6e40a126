"""
Command-line interface for the DFS lineup optimizer and contest simulator.
"""

import click
import dataclasses
import json
import logging
from typing import Dict, List, Optional

from .config import (
    ROSTER_PRESETS, SALARY_CAPS, CONTEST_PRESETS, CONTEST_OBJECTIVES, SPORT_CONFIGS,
    sport_for_preset, load_optimization_config_from_json,
    load_simulation_config_from_json, load_correlation_context_from_json
)
from .data import load_players
from .data.loader import find_player
from .errors import DFSSimError, DeadlineExceededError
from .pipeline import run_pipeline
from .types import OptimizationConfig, SimulationConfig, StackingRule, Player, OBJECTIVES


def parse_stack(text: str) -> StackingRule:
    """
    Parse a --stack option.

    'team:3'        at least 3 players from one team
    'game:4:6'      4 to 6 players from one game
    'QB+WR/TE:1'    every QB with at least 1 same-team WR or TE
    """
    parts = text.split(':')
    head = parts[0].strip()
    try:
        counts = [int(x) for x in parts[1:]]
    except ValueError:
        raise click.BadParameter(f"stack counts must be integers: '{text}'", param_hint="'--stack'")
    if len(counts) > 2:
        raise click.BadParameter(f"too many ':' fields in '{text}'", param_hint="'--stack'")

    min_players = counts[0] if counts else 1
    max_players = counts[1] if len(counts) > 1 else 99

    if head.lower() in ('team', 'game'):
        if not counts:
            raise click.BadParameter(f"'{text}' needs a minimum, e.g. '{head}:3'", param_hint="'--stack'")
        return StackingRule(kind=head.lower(), min_players=min_players, max_players=max_players)

    if '+' in head:
        primary, partners = head.split('+', 1)
        return StackingRule(
            kind='position',
            min_players=min_players,
            max_players=max_players,
            positions=[p.upper() for p in primary.split('/') if p],
            partner_positions=[p.upper() for p in partners.split('/') if p],
        )

    raise click.BadParameter(f"unrecognized stack '{text}'", param_hint="'--stack'")


def parse_team_exposure(values: List[str]) -> Dict[str, float]:
    """Parse --team-max-exposure values like 'KC:0.5'."""
    limits = {}
    for text in values:
        team, _, frac = text.rpartition(':')
        try:
            value = float(frac)
        except ValueError:
            value = None
        if not team.strip() or value is None:
            raise click.BadParameter(
                f"expected TEAM:FRACTION, got '{text}'", param_hint="'--team-max-exposure'"
            )
        limits[team.strip()] = value
    return limits


def _resolve_ids(values: List[str], players: List[Player], option: str) -> List[str]:
    """Accept player ids or names."""
    ids = {p.id for p in players}
    resolved = []
    for value in values:
        if value in ids:
            resolved.append(value)
            continue
        player = find_player(players, value)
        if player is None:
            raise click.BadParameter(f"no player with id or name '{value}'", param_hint=option)
        resolved.append(player.id)
    return resolved


@click.group()
def main():
    """DFS lineup optimizer and Monte Carlo contest simulator."""


@main.command('optimize')
@click.argument('players_csv', type=click.Path(exists=True))
@click.option(
    '--roster', '-r',
    type=click.Choice(list(ROSTER_PRESETS.keys())),
    default='dk_nfl',
    help='Roster preset (default: dk_nfl)'
)
@click.option(
    '--config-file', '-c',
    type=click.Path(exists=True),
    help='Optimizer configuration JSON (overrides --roster and the options below)'
)
@click.option('--salary-cap', type=int, help='Salary cap (default: preset cap)')
@click.option('--num-lineups', '-n', type=int, default=1, help='Number of lineups (default: 1)')
@click.option(
    '--min-different', '-d',
    type=int,
    default=1,
    help='Minimum players that differ between any two lineups (default: 1)'
)
@click.option(
    '--correlation-weight', '-a',
    type=float,
    default=0.0,
    help='Weight of the correlation bonus, 0-1 (default: 0)'
)
@click.option(
    '--stack',
    multiple=True,
    help="Stacking rule: 'team:3', 'game:4:6' or 'QB+WR/TE:1' (repeatable)"
)
@click.option('--lock', multiple=True, help='Player id or name to lock (repeatable)')
@click.option('--exclude', multiple=True, help='Player id or name to exclude (repeatable)')
@click.option(
    '--max-exposure',
    type=float,
    help='Maximum exposure applied to every unlocked player (0-1)'
)
@click.option(
    '--team-max-exposure',
    multiple=True,
    help="Team exposure cap 'KC:0.5': share of lineups using any KC player (repeatable)"
)
@click.option(
    '--objective',
    type=click.Choice(list(OBJECTIVES)),
    help='Per-player value to maximize (default: from --contest-preset, else projection)'
)
@click.option('--min-salary', type=int, default=0, help='Minimum total salary (default: none)')
@click.option('--min-projection', type=float, default=0.0, help='Drop players projecting below this')
@click.option('--timeout', type=float, default=30.0, help='Optimizer deadline in seconds (default: 30)')
@click.option('--sport', type=click.Choice(list(SPORT_CONFIGS.keys())), help='Sport (default: from roster)')
@click.option(
    '--context-file',
    type=click.Path(exists=True),
    help='Correlation context JSON (blowouts, weather, backups)'
)
@click.option('--simulate/--no-simulate', default=False, help='Simulate the lineups')
@click.option(
    '--contest-preset', '-p',
    type=click.Choice(list(CONTEST_PRESETS.keys())),
    help='Contest preset for simulation'
)
@click.option(
    '--sim-config',
    type=click.Path(exists=True),
    help='Simulation configuration JSON (overrides --contest-preset)'
)
@click.option('--n-sims', '-s', type=int, help='Number of simulations (default: 10000)')
@click.option('--workers', '-w', type=int, help='Simulation worker threads (default: 4)')
@click.option('--seed', type=int, help='Random seed for reproducibility')
@click.option(
    '--copula-type',
    type=click.Choice(['gaussian', 't']),
    help='Copula type: gaussian (default) or t (Student-t for tail dependence)'
)
@click.option('--copula-df', type=int, help='Degrees of freedom for t-copula (default: 5)')
@click.option('--output', '-o', type=click.Path(), help='Output file for results JSON')
@click.option('--verbose/--quiet', '-v/-q', default=True, help='Verbose output')
def optimize_command(
    players_csv,
    roster,
    config_file,
    salary_cap,
    num_lineups,
    min_different,
    correlation_weight,
    stack,
    lock,
    exclude,
    max_exposure,
    team_max_exposure,
    objective,
    min_salary,
    min_projection,
    timeout,
    sport,
    context_file,
    simulate,
    contest_preset,
    sim_config,
    n_sims,
    workers,
    seed,
    copula_type,
    copula_df,
    output,
    verbose
):
    """
    Build lineups from a player pool and optionally simulate them.

    PLAYERS_CSV: Path to the player pool CSV
    """
    if verbose:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    try:
        players = load_players(players_csv, min_projection=min_projection)
    except ValueError as exc:
        raise click.ClickException(str(exc))

    if config_file:
        try:
            opt_config = load_optimization_config_from_json(config_file)
        except (ValueError, KeyError, TypeError) as exc:
            raise click.ClickException(f"Invalid config file {config_file}: {exc}")
    else:
        locked = _resolve_ids(list(lock), players, "'--lock'")
        exposures: Dict[str, float] = {}
        if max_exposure is not None:
            exposures = {p.id: max_exposure for p in players if p.id not in locked}
        opt_config = OptimizationConfig(
            salary_cap=salary_cap if salary_cap is not None else SALARY_CAPS[roster],
            slots=list(ROSTER_PRESETS[roster]),
            num_lineups=num_lineups,
            min_different_players=min_different,
            correlation_weight=correlation_weight,
            stacking_rules=[parse_stack(s) for s in stack],
            locked_player_ids=locked,
            excluded_player_ids=_resolve_ids(list(exclude), players, "'--exclude'"),
            max_exposure=exposures,
            team_max_exposure=parse_team_exposure(list(team_max_exposure)),
            objective=objective or CONTEST_OBJECTIVES.get(contest_preset, 'projection'),
            min_salary=min_salary,
            timeout_seconds=timeout,
        )

    sim = _build_sim_config(
        simulate or contest_preset is not None or sim_config is not None,
        contest_preset, sim_config, n_sims, workers, seed, copula_type, copula_df
    )
    sport = sport or sport_for_preset(roster)
    context = load_correlation_context_from_json(context_file) if context_file else None

    click.echo("Running optimization...")
    click.echo(f"  CSV: {players_csv} ({len(players)} players)")
    click.echo(f"  Sport: {sport}")
    click.echo(f"  Salary cap: {opt_config.salary_cap}")
    click.echo(f"  Lineups: {opt_config.num_lineups} (min different: {opt_config.min_different_players})")
    click.echo(f"  Correlation weight: {opt_config.correlation_weight}")
    click.echo(f"  Objective: {opt_config.objective}")
    if opt_config.stacking_rules:
        click.echo(f"  Stacking rules: {len(opt_config.stacking_rules)}")
    if sim is not None:
        click.echo(f"  Simulations: {sim.num_simulations} on {sim.workers} workers")
        if sim.has_contest:
            click.echo(f"  Contest: {sim.contest_size + 1} entries, ${sim.entry_fee} entry")

    try:
        results = run_pipeline(players, opt_config, sim, sport=sport, context=context)
    except DeadlineExceededError as exc:
        raise click.ClickException(f"{exc} (try a larger --timeout)")
    except DFSSimError as exc:
        raise click.ClickException(str(exc))

    _print_results(results)

    if output:
        with open(output, 'w') as f:
            json.dump(_to_json(results), f, indent=2)
        click.echo(f"\nResults saved to {output}")


def _build_sim_config(
    enabled: bool,
    contest_preset: Optional[str],
    sim_config_path: Optional[str],
    n_sims: Optional[int],
    workers: Optional[int],
    seed: Optional[int],
    copula_type: Optional[str],
    copula_df: Optional[int]
) -> Optional[SimulationConfig]:
    if not enabled:
        return None

    if sim_config_path:
        base = load_simulation_config_from_json(sim_config_path)
    elif contest_preset:
        base = CONTEST_PRESETS[contest_preset]
    else:
        base = SimulationConfig()

    overrides = {
        'num_simulations': n_sims,
        'workers': workers,
        'seed': seed,
        'copula_type': copula_type,
        'copula_df': copula_df,
    }
    return dataclasses.replace(base, **{k: v for k, v in overrides.items() if v is not None})


def _print_results(results: Dict):
    lineups = results['lineups']
    sims = results['results']

    click.echo("\n" + "=" * 60)
    click.echo("LINEUPS")
    click.echo("=" * 60)

    for i, lineup in enumerate(lineups):
        stack = f" [{lineup.stack_description}]" if lineup.stack_description else ""
        click.echo(
            f"\n{i + 1}. {lineup.projection:.2f} pts, ${lineup.salary}, "
            f"corr {lineup.correlation_score:.2f}{stack}"
        )
        for slot, player in zip(lineup.slot_names, lineup.players):
            click.echo(f"    {slot:<5} {player.name} ({player.team}) ${player.salary} {player.projection:.1f}")
        if i < len(sims):
            r = sims[i]
            line = (
                f"    sim: mean {r.mean:.2f} sd {r.std:.2f} "
                f"p25 {r.percentiles[25]:.1f} p50 {r.percentiles[50]:.1f} p95 {r.percentiles[95]:.1f}"
            )
            if r.top_finishes:
                line += (
                    f" | cash {r.cash_probability:.1f}% win {r.win_probability:.2f}% "
                    f"ROI {r.roi:.1f}%"
                )
            click.echo(line)

    for warning in results['warnings']:
        click.echo(f"\nWarning: {warning}", err=True)

    top = list(results['exposures'].items())[:10]
    if top and len(lineups) > 1:
        click.echo("\nTop exposures:")
        names = {p.id: p.name for lu in lineups for p in lu.players}
        for pid, frac in top:
            click.echo(f"  {names.get(pid, pid)}: {frac:.0%}")


def _to_json(results: Dict) -> Dict:
    return {
        'lineups': [lu.to_dict() for lu in results['lineups']],
        'results': [r.to_dict() for r in results['results']],
        'exposures': results['exposures'],
        'team_exposures': results['team_exposures'],
        'warnings': results['warnings'],
        'cache_key': results['cache_key'],
        'metadata': results['metadata'],
    }


@main.command('presets')
def presets_command():
    """List roster and contest presets."""
    click.echo("Roster presets:")
    for name, slots in ROSTER_PRESETS.items():
        slot_names = ", ".join(s.name for s in slots)
        click.echo(f"  {name:<8} ${SALARY_CAPS[name]:>6}  {slot_names}")

    click.echo("\nContest presets:")
    for name, cfg in CONTEST_PRESETS.items():
        paid = max((t.end_rank for t in cfg.payout_tiers), default=0)
        click.echo(
            f"  {name:<15} {cfg.contest_size + 1} entries, ${cfg.entry_fee} entry, "
            f"{paid} paid"
        )


if __name__ == '__main__':
    main()

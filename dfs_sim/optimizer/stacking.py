"""
Stacking rules: team, game and position grouping constraints.
"""

import logging
from typing import Dict, List, Sequence, Set

from ..errors import ValidationError
from ..types import Player, PositionSlot, StackingRule
from .slots import fits_slots

logger = logging.getLogger(__name__)

STACK_KINDS = ('team', 'game', 'position')


def validate_rule(rule: StackingRule, roster_size: int):
    if rule.kind not in STACK_KINDS:
        raise ValidationError(f"unknown stacking rule kind '{rule.kind}', expected one of {STACK_KINDS}")
    if rule.min_players < 0 or rule.max_players < 0:
        raise ValidationError(f"stacking rule counts cannot be negative ({rule.kind})")
    if rule.min_players > rule.max_players:
        raise ValidationError(
            f"stacking rule min_players {rule.min_players} exceeds max_players {rule.max_players}"
        )
    if rule.kind == 'position':
        if not rule.positions or not rule.partner_positions:
            raise ValidationError("position stacking rules need positions and partner_positions")
        if rule.min_players + 1 > roster_size:
            raise ValidationError(
                f"position stack of 1 + {rule.min_players} players exceeds roster size {roster_size}"
            )
    elif rule.min_players > roster_size:
        raise ValidationError(
            f"{rule.kind} stack of {rule.min_players} players exceeds roster size {roster_size}"
        )


def _group_key(rule: StackingRule, player: Player) -> str:
    return player.team if rule.kind == 'team' else player.game


def _named_groups(rule: StackingRule) -> List[str]:
    return list(rule.teams) if rule.kind == 'team' else list(rule.games)


def _group_counts(rule: StackingRule, players: Sequence[Player]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for p in players:
        key = _group_key(rule, p)
        if key:
            counts[key] = counts.get(key, 0) + 1
    return counts


def _is_partner(rule: StackingRule, player: Player) -> bool:
    return bool(player.positions & {p.upper() for p in rule.partner_positions})


def _is_primary(rule: StackingRule, player: Player) -> bool:
    return bool(player.positions & {p.upper() for p in rule.positions})


def _partner_count(rule: StackingRule, primary: Player, players: Sequence[Player]) -> int:
    return sum(
        1 for p in players
        if p.id != primary.id and p.team == primary.team and _is_partner(rule, p)
    )


def rule_satisfied(rule: StackingRule, players: Sequence[Player]) -> bool:
    """Check one rule against a complete lineup."""
    if rule.kind == 'position':
        for p in players:
            if _is_primary(rule, p):
                n = _partner_count(rule, p, players)
                if n < rule.min_players or n > rule.max_players:
                    return False
        return True

    counts = _group_counts(rule, players)
    named = _named_groups(rule)
    if named:
        return all(rule.min_players <= counts.get(g, 0) <= rule.max_players for g in named)

    if any(n > rule.max_players for n in counts.values()):
        return False
    if rule.min_players > 0:
        return any(n >= rule.min_players for n in counts.values())
    return True


def count_violations(rules: Sequence[StackingRule], players: Sequence[Player]) -> int:
    return sum(1 for rule in rules if not rule_satisfied(rule, players))


def exceeds_max(rules: Sequence[StackingRule], players: Sequence[Player]) -> bool:
    """
    True when a partial lineup already breaks a maximum.

    Adding players can only raise group counts, so this is final.
    """
    for rule in rules:
        if rule.kind == 'position':
            for p in players:
                if _is_primary(rule, p) and _partner_count(rule, p, players) > rule.max_players:
                    return True
            continue

        counts = _group_counts(rule, players)
        named = set(_named_groups(rule))
        for group, n in counts.items():
            if (not named or group in named) and n > rule.max_players:
                return True
    return False


def stack_cores(
    rule: StackingRule,
    pool: Sequence[Player],
    slots: Sequence[PositionSlot],
    unavailable: Set[str]
) -> List[List[Player]]:
    """
    Candidate player groups that satisfy a rule's minimum on their own.

    Each core takes the highest-projected available players for its group and
    must fit the roster slots. Cores are ranked by total projection, ties by
    the ids of their members.
    """
    available = [p for p in pool if p.id not in unavailable]
    ranked = sorted(available, key=lambda p: (-p.projection, p.salary, p.id))
    cores: List[List[Player]] = []

    if rule.min_players <= 0:
        return cores

    if rule.kind == 'position':
        for primary in ranked:
            if not _is_primary(rule, primary):
                continue
            partners = [
                p for p in ranked
                if p.id != primary.id and p.team == primary.team and _is_partner(rule, p)
            ]
            core = _fill_core([primary], partners, rule.min_players + 1, slots)
            if core:
                cores.append(core)
    else:
        groups: Dict[str, List[Player]] = {}
        for p in ranked:
            key = _group_key(rule, p)
            if key:
                groups.setdefault(key, []).append(p)

        named = _named_groups(rule)
        if named:
            core: List[Player] = []
            for group in named:
                members = _fill_core(core, groups.get(group, []), len(core) + rule.min_players, slots)
                if not members:
                    return []
                core = members
            cores.append(core)
        else:
            for group in sorted(groups):
                core = _fill_core([], groups[group], rule.min_players, slots)
                if core:
                    cores.append(core)

    cores.sort(key=lambda c: (-sum(p.projection for p in c), [p.id for p in c]))
    return cores


def extend_core(
    rule: StackingRule,
    core: List[Player],
    pool: Sequence[Player],
    slots: Sequence[PositionSlot],
    unavailable: Set[str]
) -> List[List[Player]]:
    """
    Ways to grow a core until it also meets a rule's minimum.

    Every extension keeps the core's players and adds the highest-projected
    available players that complete the rule while still fitting the slots.
    Returns [core] when the core already meets the rule.
    """
    if rule.min_players <= 0:
        return [core]

    available = [p for p in pool if p.id not in unavailable]
    ranked = sorted(available, key=lambda p: (-p.projection, p.salary, p.id))
    extensions: List[List[Player]] = []

    if rule.kind == 'position':
        primaries = [p for p in core if _is_primary(rule, p)]
        if not primaries:
            # No primary yet: attach one of the rule's own cores
            for stack in stack_cores(rule, pool, slots, unavailable):
                new = [p for p in stack if p not in core]
                merged = _fill_core(core, new, len(core) + len(new), slots)
                if merged:
                    extensions.append(merged)
            return extensions

        grown = list(core)
        for primary in primaries:
            short = rule.min_players - _partner_count(rule, primary, grown)
            if short <= 0:
                continue
            partners = [
                p for p in ranked
                if p.id != primary.id and p.team == primary.team and _is_partner(rule, p)
            ]
            grown = _fill_core(grown, partners, len(grown) + short, slots)
            if not grown:
                return []
        return [grown]

    if rule_satisfied(rule, core):
        return [core]

    groups: Dict[str, List[Player]] = {}
    for p in ranked:
        key = _group_key(rule, p)
        if key:
            groups.setdefault(key, []).append(p)
    counts = _group_counts(rule, core)

    named = _named_groups(rule)
    if named:
        grown = list(core)
        for group in named:
            short = rule.min_players - counts.get(group, 0)
            if short > 0:
                grown = _fill_core(grown, groups.get(group, []), len(grown) + short, slots)
                if not grown:
                    return []
        return [grown]

    # Groups the core already touches come first
    for group in sorted(groups, key=lambda g: (-counts.get(g, 0), g)):
        short = rule.min_players - counts.get(group, 0)
        grown = _fill_core(core, groups[group], len(core) + short, slots)
        if grown:
            extensions.append(grown)
    return extensions


def combined_cores(
    rules: Sequence[StackingRule],
    pool: Sequence[Player],
    slots: Sequence[PositionSlot],
    unavailable: Set[str]
) -> List[List[Player]]:
    """
    Player groups that meet every rule's minimum at once.

    Each minimum rule takes a turn as the lead: its cores are extended to meet
    the remaining minimums in order. Groups over the roster size or over some
    rule's maximum are dropped. Ranked like stack_cores.
    """
    leads = [rule for rule in rules if rule.min_players > 0]
    seen: Set[frozenset] = set()
    cores: List[List[Player]] = []

    for i, lead in enumerate(leads):
        others = leads[i + 1:] + leads[:i]
        partial = stack_cores(lead, pool, slots, unavailable)
        for rule in others:
            partial = [
                grown
                for core in partial
                for grown in extend_core(rule, core, pool, slots, unavailable)
                if len(grown) <= len(slots) and not exceeds_max(rules, grown)
            ]
        for core in partial:
            if count_violations(leads, core) > 0:
                continue
            ids = frozenset(p.id for p in core)
            if ids not in seen:
                seen.add(ids)
                cores.append(core)

    cores.sort(key=lambda c: (-sum(p.projection for p in c), sorted(p.id for p in c)))
    return cores


def _fill_core(
    seed: List[Player],
    candidates: Sequence[Player],
    size: int,
    slots: Sequence[PositionSlot]
) -> List[Player]:
    """Extend seed with candidates in order while the group still fits the slots."""
    core = list(seed)
    for p in candidates:
        if len(core) >= size:
            break
        if p in core:
            continue
        if fits_slots(core + [p], slots):
            core.append(p)
    return core if len(core) >= size else []

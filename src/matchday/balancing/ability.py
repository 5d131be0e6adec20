"""Ability-weighted positional balancing."""

from __future__ import annotations

import logging
import random
from statistics import fmean
from typing import Dict, List, Optional, Sequence, Tuple

from matchday.balancing.search import ProgressCallback, SearchOutcome, local_search
from matchday.config.templates import Position, TeamTemplate, position_of
from matchday.errors import MethodDisabledError, TemplateConfigError
from matchday.models import ATTRIBUTE_NAMES, DEFAULT_ATTRIBUTE_VALUE, POSITION_GROUPS, AbilityWeights, PlayerRecord


logger = logging.getLogger(__name__)


def ensure_ability_supported(size_a: int, size_b: int, min_team_size: int) -> None:
    """Raise MethodDisabledError when position groups would be too small to compare."""

    if size_a != size_b:
        raise MethodDisabledError(
            f"Ability balancing needs even teams; this pool splits {size_a}v{size_b}. "
            "Use performance or random balancing instead."
        )
    if size_a < min_team_size:
        raise MethodDisabledError(
            f"Ability balancing needs at least {min_team_size}-a-side; got {size_a}v{size_b}."
        )


def attribute_means(players: Sequence[PlayerRecord]) -> Dict[str, float]:
    if not players:
        return {name: DEFAULT_ATTRIBUTE_VALUE for name in ATTRIBUTE_NAMES}
    return {
        name: fmean(getattr(player.attributes, name) for player in players)
        for name in ATTRIBUTE_NAMES
    }


def team_units(team: Sequence[PlayerRecord], template: TeamTemplate) -> Dict[str, List[PlayerRecord]]:
    """Split a team (ordered by slot) into its position groups plus the whole team."""

    units: Dict[str, List[PlayerRecord]] = {position.value: [] for position in Position}
    for index, player in enumerate(team):
        units[position_of(index + 1, len(team), template).value].append(player)
    units["team"] = list(team)
    return units


def ability_gaps(
    team_a: Sequence[PlayerRecord],
    team_b: Sequence[PlayerRecord],
    template: TeamTemplate,
    weights: AbilityWeights,
) -> Dict[str, float]:
    units_a = team_units(team_a, template)
    units_b = team_units(team_b, template)
    gaps: Dict[str, float] = {}
    for group in POSITION_GROUPS:
        group_weights = weights.for_group(group)
        means_a = attribute_means(units_a[group])
        means_b = attribute_means(units_b[group])
        gaps[group] = sum(
            abs(means_a[name] - means_b[name]) * getattr(group_weights, name)
            for name in ATTRIBUTE_NAMES
        )
    return gaps


def draft_positions(
    players: Sequence[PlayerRecord],
    template: TeamTemplate,
) -> Tuple[List[PlayerRecord], List[PlayerRecord], List[PlayerRecord]]:
    """Assign the pool to positional draft pools covering both teams.

    Strongest defenders fill the defender pool, the best finishers among the
    rest fill the attacker pool, and everyone left plays midfield.
    """

    remaining = sorted(players, key=lambda p: (-p.attributes.defending, p.player_id))
    defender_count = template.defenders * 2
    defenders = remaining[:defender_count]
    remaining = sorted(remaining[defender_count:], key=lambda p: (-p.attributes.goalscoring, p.player_id))
    attacker_count = template.attackers * 2
    attackers = remaining[:attacker_count]
    midfielders = remaining[attacker_count:]
    return defenders, midfielders, attackers


def balance_by_ability(
    pool: Sequence[PlayerRecord],
    *,
    template: TeamTemplate,
    weights: AbilityWeights,
    rng: random.Random,
    iterations: int,
    progress: Optional[ProgressCallback] = None,
) -> Tuple[Tuple[PlayerRecord, ...], Tuple[PlayerRecord, ...], float, Dict[str, float], int]:
    if len(pool) != template.team_size * 2:
        raise TemplateConfigError(
            f"Template for {template.team_size}-a-side cannot place a pool of {len(pool)} players"
        )

    defenders, midfielders, attackers = draft_positions(pool, template)
    logger.info(
        "Ability draft pools: %s defenders, %s midfielders, %s attackers",
        len(defenders),
        len(midfielders),
        len(attackers),
    )

    def loss(groups_a: Sequence[Sequence[PlayerRecord]], groups_b: Sequence[Sequence[PlayerRecord]]) -> float:
        team_a = [player for group in groups_a for player in group]
        team_b = [player for group in groups_b for player in group]
        return sum(ability_gaps(team_a, team_b, template, weights).values())

    outcome: SearchOutcome[PlayerRecord] = local_search(
        [defenders, midfielders, attackers],
        [template.defenders, template.midfielders, template.attackers],
        loss,
        rng=rng,
        iterations=iterations,
        progress=progress,
    )
    team_a = tuple(player for group in outcome.team_a for player in group)
    team_b = tuple(player for group in outcome.team_b for player in group)
    metrics = ability_gaps(team_a, team_b, template, weights)
    return team_a, team_b, outcome.loss, metrics, outcome.evaluated

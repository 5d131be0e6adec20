"""High-level balancing entry point dispatching to the configured strategy."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from matchday.balancing.ability import ability_gaps, balance_by_ability, ensure_ability_supported
from matchday.balancing.performance import (
    balance_by_performance,
    league_scale,
    performance_metrics,
)
from matchday.balancing.random_split import random_split
from matchday.balancing.search import ProgressCallback
from matchday.config.settings import EngineSettings
from matchday.config.templates import TeamTemplate, resolve
from matchday.errors import BalanceSearchError, InputValidationError
from matchday.models import BalanceWeights, PlayerRecord


logger = logging.getLogger(__name__)


class BalanceMethod(str, Enum):
    ABILITY = "ability"
    PERFORMANCE = "performance"
    RANDOM = "random"


def split_sizes(pool_size: int) -> Tuple[int, int]:
    """Team A takes the extra player when the pool is odd."""

    size_a = (pool_size + 1) // 2
    return size_a, pool_size - size_a


@dataclass(frozen=True)
class BalanceContext:
    size_a: int
    size_b: int
    weights: BalanceWeights
    settings: EngineSettings
    rng: random.Random
    template: Optional[TeamTemplate] = None
    reference: Optional[Sequence[PlayerRecord]] = None
    progress: Optional[ProgressCallback] = None


@dataclass(frozen=True)
class BalanceResult:
    team_a: Tuple[PlayerRecord, ...]
    team_b: Tuple[PlayerRecord, ...]
    requested_method: BalanceMethod
    applied_method: BalanceMethod
    loss: Optional[float] = None
    metrics: Mapping[str, float] = field(default_factory=dict)
    degraded: bool = False
    message: Optional[str] = None
    evaluated: int = 0

    @property
    def sizes(self) -> Tuple[int, int]:
        return len(self.team_a), len(self.team_b)


Strategy = Callable[[Sequence[PlayerRecord], BalanceContext], BalanceResult]


def _run_ability(pool: Sequence[PlayerRecord], context: BalanceContext) -> BalanceResult:
    template = context.template or resolve(context.size_a)
    team_a, team_b, loss, metrics, evaluated = balance_by_ability(
        pool,
        template=template,
        weights=context.weights.ability,
        rng=context.rng,
        iterations=context.settings.search_iterations,
        progress=context.progress,
    )
    return BalanceResult(
        team_a=team_a,
        team_b=team_b,
        requested_method=BalanceMethod.ABILITY,
        applied_method=BalanceMethod.ABILITY,
        loss=loss,
        metrics=metrics,
        evaluated=evaluated,
    )


def _run_performance(pool: Sequence[PlayerRecord], context: BalanceContext) -> BalanceResult:
    team_a, team_b, loss, metrics, evaluated = balance_by_performance(
        pool,
        size_a=context.size_a,
        strategy=context.weights.normalization,
        weights=context.weights.performance,
        rng=context.rng,
        iterations=context.settings.search_iterations,
        reference=context.reference,
        progress=context.progress,
    )
    return BalanceResult(
        team_a=team_a,
        team_b=team_b,
        requested_method=BalanceMethod.PERFORMANCE,
        applied_method=BalanceMethod.PERFORMANCE,
        loss=loss,
        metrics=metrics,
        evaluated=evaluated,
    )


def _diagnostics(
    team_a: Sequence[PlayerRecord],
    team_b: Sequence[PlayerRecord],
    context: BalanceContext,
) -> Dict[str, float]:
    metrics: Dict[str, float] = {}
    if len(team_a) == len(team_b):
        try:
            template = context.template or resolve(len(team_a))
        except ValueError:
            template = None
        if template is not None and template.team_size == len(team_a):
            metrics.update(ability_gaps(team_a, team_b, template, context.weights.ability))
    players = list(team_a) + list(team_b)
    if all(player.performance is not None for player in players):
        scale = league_scale(context.reference or players, context.weights.normalization)
        metrics.update(performance_metrics(team_a, team_b, scale))
    return metrics


def _run_random(pool: Sequence[PlayerRecord], context: BalanceContext) -> BalanceResult:
    team_a, team_b = random_split(pool, context.size_a, context.rng)
    if context.progress is not None:
        context.progress(1.0)
    return BalanceResult(
        team_a=team_a,
        team_b=team_b,
        requested_method=BalanceMethod.RANDOM,
        applied_method=BalanceMethod.RANDOM,
        metrics=_diagnostics(team_a, team_b, context),
        evaluated=1,
    )


STRATEGIES: Dict[BalanceMethod, Strategy] = {
    BalanceMethod.ABILITY: _run_ability,
    BalanceMethod.PERFORMANCE: _run_performance,
    BalanceMethod.RANDOM: _run_random,
}


def _validate_pool(pool: Iterable[PlayerRecord]) -> list[PlayerRecord]:
    players = list(pool)
    if len(players) < 2:
        raise InputValidationError(f"Need at least two players to balance, got {len(players)}")
    seen: set[str] = set()
    duplicates: set[str] = set()
    for player in players:
        if player.player_id in seen:
            duplicates.add(player.player_id)
        seen.add(player.player_id)
    if duplicates:
        raise InputValidationError(f"Duplicate players in pool: {', '.join(sorted(duplicates))}")
    return players


def balance(
    pool: Iterable[PlayerRecord],
    *,
    method: BalanceMethod | str,
    template: Optional[TeamTemplate] = None,
    weights: Optional[BalanceWeights] = None,
    settings: Optional[EngineSettings] = None,
    seed: Optional[int] = None,
    rng: Optional[random.Random] = None,
    reference: Optional[Sequence[PlayerRecord]] = None,
    progress: Optional[ProgressCallback] = None,
) -> BalanceResult:
    """Split ``pool`` into two teams using ``method``.

    Structural problems (ability requested for uneven or small teams, bad
    templates) raise immediately. When the search itself cannot find a valid
    split, for example because performance composites are missing, the call
    falls back to a random split and marks the result as degraded.
    """

    try:
        method = BalanceMethod(method)
    except ValueError as exc:
        raise InputValidationError(f"Unknown balance method {method!r}") from exc
    players = _validate_pool(pool)
    settings = settings or EngineSettings()
    weights = weights or settings.apply_normalization()
    size_a, size_b = split_sizes(len(players))

    if method is BalanceMethod.ABILITY:
        ensure_ability_supported(size_a, size_b, settings.min_ability_team_size)
        template = template or resolve(size_a)

    context = BalanceContext(
        size_a=size_a,
        size_b=size_b,
        weights=weights,
        settings=settings,
        rng=rng or random.Random(seed),
        template=template,
        reference=reference,
        progress=progress,
    )

    try:
        result = STRATEGIES[method](players, context)
    except BalanceSearchError as exc:
        logger.warning("%s balancing failed (%s); falling back to random split", method.value, exc.message)
        fallback = _run_random(players, context)
        result = replace(
            fallback,
            requested_method=method,
            degraded=True,
            message=f"{method.value.capitalize()} balancing unavailable: {exc.message}. Teams were split randomly.",
        )

    logger.info(
        "Balanced %s players (%sv%s) by %s; loss=%s",
        len(players),
        size_a,
        size_b,
        result.applied_method.value,
        "n/a" if result.loss is None else f"{result.loss:.4f}",
    )
    return result

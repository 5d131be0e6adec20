"""Performance-composite balancing with league-scale normalisation."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from statistics import fmean, pstdev
from typing import Callable, Dict, Optional, Sequence, Tuple

from matchday.balancing.search import ProgressCallback, local_search
from matchday.errors import BalanceSearchError
from matchday.models import NormalizationStrategy, PerformanceWeights, PlayerRecord


logger = logging.getLogger(__name__)

PERFORMANCE_METRICS: Tuple[str, ...] = ("power_rating", "goal_threat")


def coefficient_of_variation_scale(values: Sequence[float]) -> float:
    """Standard deviation recovered through the coefficient of variation."""

    mean = fmean(values)
    deviation = pstdev(values)
    if mean == 0:
        return deviation
    return mean * (deviation / mean)


def range_scale(values: Sequence[float]) -> float:
    return max(values) - min(values)


def percentile_scale(values: Sequence[float]) -> float:
    """Spread between the 10th and 90th percentile by index."""

    ordered = sorted(values)
    count = len(ordered)
    low = ordered[int(count * 0.1)]
    high = ordered[min(count - 1, int(count * 0.9))]
    return high - low


_SCALERS: Dict[NormalizationStrategy, Callable[[Sequence[float]], float]] = {
    NormalizationStrategy.COEFFICIENT_OF_VARIATION: coefficient_of_variation_scale,
    NormalizationStrategy.RANGE: range_scale,
    NormalizationStrategy.PERCENTILE: percentile_scale,
}


@dataclass(frozen=True)
class MetricScale:
    power_rating: float = 1.0
    goal_threat: float = 1.0


def require_performance(players: Sequence[PlayerRecord]) -> None:
    missing = [player.player_id for player in players if player.performance is None]
    if missing:
        preview = ", ".join(missing[:5])
        raise BalanceSearchError(
            f"{len(missing)} player(s) have no performance composites ({preview})"
        )


def league_scale(
    players: Sequence[PlayerRecord],
    strategy: NormalizationStrategy = NormalizationStrategy.COEFFICIENT_OF_VARIATION,
) -> MetricScale:
    """Compute per-metric normalisers over ``players``.

    A degenerate spread (zero or fewer than two players) falls back to 1.0 so
    the gap for that metric stays in raw units.
    """

    strategy = NormalizationStrategy(strategy)
    rated = [player for player in players if player.performance is not None]
    scaler = _SCALERS[strategy]
    scales: Dict[str, float] = {}
    for metric in PERFORMANCE_METRICS:
        values = [getattr(player.performance, metric) for player in rated]
        scale = scaler(values) if len(values) >= 2 else 0.0
        if scale <= 0:
            logger.warning(
                "Non-positive %s scale for %s across %s players; using 1.0",
                strategy.value,
                metric,
                len(values),
            )
            scale = 1.0
        scales[metric] = scale
    return MetricScale(**scales)


def _team_gap(values_a: Sequence[float], values_b: Sequence[float]) -> float:
    if len(values_a) == len(values_b):
        return abs(sum(values_a) - sum(values_b))
    per_side = (len(values_a) + len(values_b)) / 2
    return abs(fmean(values_a) - fmean(values_b)) * per_side


def performance_gaps(
    team_a: Sequence[PlayerRecord],
    team_b: Sequence[PlayerRecord],
) -> Dict[str, float]:
    """Raw per-metric gaps. Uneven teams compare per-player means scaled to a half pool."""

    return {
        metric: _team_gap(
            [getattr(player.performance, metric) for player in team_a],
            [getattr(player.performance, metric) for player in team_b],
        )
        for metric in PERFORMANCE_METRICS
    }


def combine_gaps(
    gaps: Dict[str, float],
    scale: MetricScale,
    weights: Optional[PerformanceWeights] = None,
) -> float:
    power = gaps["power_rating"] / scale.power_rating
    goal = gaps["goal_threat"] / scale.goal_threat
    if weights is None:
        return power + goal
    return weights.power_rating * power + weights.goal_threat * goal


def performance_metrics(
    team_a: Sequence[PlayerRecord],
    team_b: Sequence[PlayerRecord],
    scale: MetricScale,
) -> Dict[str, float]:
    gaps = performance_gaps(team_a, team_b)
    return {
        "power_rating_gap": gaps["power_rating"],
        "goal_threat_gap": gaps["goal_threat"],
        "power_rating_gap_normalized": gaps["power_rating"] / scale.power_rating,
        "goal_threat_gap_normalized": gaps["goal_threat"] / scale.goal_threat,
    }


def balance_by_performance(
    pool: Sequence[PlayerRecord],
    *,
    size_a: int,
    strategy: NormalizationStrategy,
    weights: Optional[PerformanceWeights],
    rng: random.Random,
    iterations: int,
    reference: Optional[Sequence[PlayerRecord]] = None,
    progress: Optional[ProgressCallback] = None,
) -> Tuple[Tuple[PlayerRecord, ...], Tuple[PlayerRecord, ...], float, Dict[str, float], int]:
    require_performance(pool)
    scale = league_scale(reference if reference else pool, strategy)
    logger.info(
        "Performance scale (%s): power_rating=%.3f goal_threat=%.3f",
        strategy.value,
        scale.power_rating,
        scale.goal_threat,
    )

    def loss(groups_a: Sequence[Sequence[PlayerRecord]], groups_b: Sequence[Sequence[PlayerRecord]]) -> float:
        return combine_gaps(performance_gaps(groups_a[0], groups_b[0]), scale, weights)

    outcome = local_search([list(pool)], [size_a], loss, rng=rng, iterations=iterations, progress=progress)
    team_a = outcome.team_a[0]
    team_b = outcome.team_b[0]
    return team_a, team_b, outcome.loss, performance_metrics(team_a, team_b, scale), outcome.evaluated

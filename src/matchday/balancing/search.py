"""Bounded random-restart local search over two-team partitions."""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from matchday.errors import BalanceSearchError


logger = logging.getLogger(__name__)

T = TypeVar("T")

LossFunction = Callable[[Sequence[Sequence[T]], Sequence[Sequence[T]]], float]
ProgressCallback = Callable[[float], None]

_ITERATIONS_PER_RESTART = 200
_MAX_RESTARTS = 10


@dataclass(frozen=True)
class SearchOutcome(Generic[T]):
    team_a: Tuple[Tuple[T, ...], ...]
    team_b: Tuple[Tuple[T, ...], ...]
    loss: float
    evaluated: int


def _random_partition(
    groups: Sequence[Sequence[T]],
    take: Sequence[int],
    rng: random.Random,
) -> Tuple[List[List[T]], List[List[T]]]:
    team_a: List[List[T]] = []
    team_b: List[List[T]] = []
    for group, count in zip(groups, take):
        shuffled = list(group)
        rng.shuffle(shuffled)
        team_a.append(shuffled[:count])
        team_b.append(shuffled[count:])
    return team_a, team_b


def _freeze(groups: List[List[T]]) -> Tuple[Tuple[T, ...], ...]:
    return tuple(tuple(group) for group in groups)


def local_search(
    groups: Sequence[Sequence[T]],
    take: Sequence[int],
    loss: LossFunction,
    *,
    rng: random.Random,
    iterations: int,
    restarts: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
) -> SearchOutcome[T]:
    """Find a low-loss split of each group into ``take[i]`` players for team A.

    Every restart draws a uniformly random partition and then hill-climbs by
    swapping one team-A member with one team-B member of the same group,
    keeping the swap only when the loss drops. The total number of loss
    evaluations never exceeds ``iterations``.
    """

    if len(groups) != len(take):
        raise ValueError("groups and take must have the same length")
    for group, count in zip(groups, take):
        if count < 0 or count > len(group):
            raise ValueError(f"Cannot take {count} players from a group of {len(group)}")
    iterations = max(1, iterations)
    if restarts is None:
        restarts = max(1, min(_MAX_RESTARTS, iterations // _ITERATIONS_PER_RESTART))
    restarts = max(1, min(restarts, iterations))
    per_restart = max(1, iterations // restarts)

    swappable = [index for index, (group, count) in enumerate(zip(groups, take)) if 0 < count < len(group)]

    best: Optional[Tuple[Tuple[Tuple[T, ...], ...], Tuple[Tuple[T, ...], ...]]] = None
    best_loss = math.inf
    evaluated = 0

    for restart in range(restarts):
        team_a, team_b = _random_partition(groups, take, rng)
        current = loss(team_a, team_b)
        evaluated += 1
        if math.isfinite(current) and current < best_loss:
            best_loss = current
            best = (_freeze(team_a), _freeze(team_b))

        if swappable:
            for _ in range(per_restart - 1):
                if best_loss == 0.0:
                    break
                group_index = rng.choice(swappable)
                side_a = team_a[group_index]
                side_b = team_b[group_index]
                i = rng.randrange(len(side_a))
                j = rng.randrange(len(side_b))
                side_a[i], side_b[j] = side_b[j], side_a[i]
                candidate = loss(team_a, team_b)
                evaluated += 1
                if math.isfinite(candidate) and (not math.isfinite(current) or candidate < current):
                    current = candidate
                    if current < best_loss:
                        best_loss = current
                        best = (_freeze(team_a), _freeze(team_b))
                else:
                    side_a[i], side_b[j] = side_b[j], side_a[i]

        if progress is not None:
            progress((restart + 1) / restarts)
        if best_loss == 0.0:
            break

    if best is None:
        raise BalanceSearchError(f"No split with a finite balance loss found after {evaluated} evaluations")

    logger.debug("Local search finished: loss %.4f after %s evaluations", best_loss, evaluated)
    return SearchOutcome(team_a=best[0], team_b=best[1], loss=best_loss, evaluated=evaluated)

"""Uniform random team split."""

from __future__ import annotations

import random
from typing import Sequence, Tuple

from matchday.models import PlayerRecord


def random_split(
    pool: Sequence[PlayerRecord],
    size_a: int,
    rng: random.Random,
) -> Tuple[Tuple[PlayerRecord, ...], Tuple[PlayerRecord, ...]]:
    """Shuffle the pool and cut it after ``size_a`` players.

    ``Random.shuffle`` is a Fisher-Yates shuffle, so every split of the given
    sizes is equally likely.
    """

    shuffled = list(pool)
    rng.shuffle(shuffled)
    return tuple(shuffled[:size_a]), tuple(shuffled[size_a:])

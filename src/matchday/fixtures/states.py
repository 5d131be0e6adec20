"""Fixture lifecycle states and transition guards."""

from __future__ import annotations

from enum import Enum
from typing import FrozenSet, Iterable

from matchday.errors import InvalidStateError


class FixtureState(str, Enum):
    DRAFT = "Draft"
    POOL_LOCKED = "PoolLocked"
    TEAMS_BALANCED = "TeamsBalanced"
    TEAMS_PUBLISHED = "TeamsPublished"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


TERMINAL_STATES: FrozenSet[FixtureState] = frozenset({FixtureState.COMPLETED, FixtureState.CANCELLED})

POOL_EDITABLE: FrozenSet[FixtureState] = frozenset(
    {
        FixtureState.DRAFT,
        FixtureState.POOL_LOCKED,
        FixtureState.TEAMS_BALANCED,
        FixtureState.TEAMS_PUBLISHED,
    }
)
TEAMS_ASSIGNED: FrozenSet[FixtureState] = frozenset({FixtureState.TEAMS_BALANCED, FixtureState.TEAMS_PUBLISHED})
BALANCEABLE: FrozenSet[FixtureState] = frozenset(
    {FixtureState.DRAFT, FixtureState.POOL_LOCKED, FixtureState.TEAMS_BALANCED}
)
PUBLISHABLE: FrozenSet[FixtureState] = frozenset({FixtureState.POOL_LOCKED, FixtureState.TEAMS_BALANCED})


def require_state(current: str | FixtureState, allowed: Iterable[FixtureState], operation: str) -> FixtureState:
    state = FixtureState(current)
    allowed = frozenset(allowed)
    if state not in allowed:
        expected = ", ".join(sorted(s.value for s in allowed))
        raise InvalidStateError(f"Cannot {operation} while fixture is {state.value} (allowed: {expected})")
    return state

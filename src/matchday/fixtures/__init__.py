"""Fixture lifecycle: states, guards and the service driving transitions."""

from .states import FixtureState, require_state

__all__ = ["FixtureState", "require_state"]

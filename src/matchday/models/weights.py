"""Weight configurations supplied to a single balancing call."""

from __future__ import annotations

from enum import Enum
from typing import Tuple

from pydantic import BaseModel, Field, model_validator
from pydantic.config import ConfigDict


POSITION_GROUPS: Tuple[str, ...] = ("defense", "midfield", "attack", "team")

_WEIGHT_SUM_TOLERANCE = 0.001


class NormalizationStrategy(str, Enum):
    COEFFICIENT_OF_VARIATION = "cv"
    RANGE = "range"
    PERCENTILE = "percentile"


class AttributeWeights(BaseModel):
    """Per-attribute weights for one position group; unlisted attributes count zero."""

    goalscoring: float = Field(default=0.0, ge=0.0)
    defending: float = Field(default=0.0, ge=0.0)
    stamina_pace: float = Field(default=0.0, ge=0.0)
    control: float = Field(default=0.0, ge=0.0)
    teamwork: float = Field(default=0.0, ge=0.0)
    resilience: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)


class AbilityWeights(BaseModel):
    defense: AttributeWeights = AttributeWeights(defending=0.4, stamina_pace=0.3, control=0.3)
    midfield: AttributeWeights = AttributeWeights(control=0.4, stamina_pace=0.3, goalscoring=0.3)
    attack: AttributeWeights = AttributeWeights(goalscoring=0.5, stamina_pace=0.3, control=0.2)
    team: AttributeWeights = AttributeWeights(teamwork=0.5, resilience=0.5)

    model_config = ConfigDict(frozen=True)

    def for_group(self, group: str) -> AttributeWeights:
        if group not in POSITION_GROUPS:
            raise KeyError(f"Unknown position group {group!r}")
        return getattr(self, group)


class PerformanceWeights(BaseModel):
    """Relative weight of the two normalised performance gaps."""

    power_rating: float = Field(default=0.5, ge=0.0, le=1.0)
    goal_threat: float = Field(default=0.5, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_sum(self) -> "PerformanceWeights":
        total = self.power_rating + self.goal_threat
        if abs(total - 1.0) > _WEIGHT_SUM_TOLERANCE:
            raise ValueError(f"Performance weights must sum to 1.0, got {total:.3f}")
        return self


class BalanceWeights(BaseModel):
    """Named, immutable weight set for one balancing call.

    ``performance`` left as ``None`` combines the two normalised performance
    gaps as an unweighted sum.
    """

    name: str = "default"
    ability: AbilityWeights = Field(default_factory=AbilityWeights)
    performance: PerformanceWeights | None = None
    normalization: NormalizationStrategy = NormalizationStrategy.COEFFICIENT_OF_VARIATION

    model_config = ConfigDict(frozen=True)


"""Canonical player models shared across ingestion, balancing and the API."""

from __future__ import annotations

from typing import Any, Dict, Tuple

from pydantic import BaseModel, Field
from pydantic.config import ConfigDict


ATTRIBUTE_NAMES: Tuple[str, ...] = (
    "goalscoring",
    "defending",
    "stamina_pace",
    "control",
    "teamwork",
    "resilience",
)

DEFAULT_ATTRIBUTE_VALUE = 3.0


class AttributeVector(BaseModel):
    """Fixed positional attribute ratings for a single player."""

    goalscoring: float = Field(default=DEFAULT_ATTRIBUTE_VALUE, ge=0.0, le=10.0)
    defending: float = Field(default=DEFAULT_ATTRIBUTE_VALUE, ge=0.0, le=10.0)
    stamina_pace: float = Field(default=DEFAULT_ATTRIBUTE_VALUE, ge=0.0, le=10.0)
    control: float = Field(default=DEFAULT_ATTRIBUTE_VALUE, ge=0.0, le=10.0)
    teamwork: float = Field(default=DEFAULT_ATTRIBUTE_VALUE, ge=0.0, le=10.0)
    resilience: float = Field(default=DEFAULT_ATTRIBUTE_VALUE, ge=0.0, le=10.0)

    model_config = ConfigDict(frozen=True)

    def as_tuple(self) -> Tuple[float, ...]:
        return tuple(getattr(self, name) for name in ATTRIBUTE_NAMES)


class PerformanceComposite(BaseModel):
    """Composites derived from match history by the stats pipeline."""

    power_rating: float
    goal_threat: float = Field(..., ge=0.0)

    model_config = ConfigDict(frozen=True)


class PlayerRecord(BaseModel):
    """Read-only player payload consumed by the balancing engine."""

    player_id: str = Field(..., min_length=1)
    name: str
    is_ringer: bool = False
    is_retired: bool = False
    attributes: AttributeVector = Field(default_factory=AttributeVector)
    performance: PerformanceComposite | None = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

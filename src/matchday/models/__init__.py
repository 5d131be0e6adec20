"""Typed inputs for the balancing engine."""

from .player import (
    ATTRIBUTE_NAMES,
    DEFAULT_ATTRIBUTE_VALUE,
    AttributeVector,
    PerformanceComposite,
    PlayerRecord,
)
from .weights import (
    POSITION_GROUPS,
    AbilityWeights,
    AttributeWeights,
    BalanceWeights,
    NormalizationStrategy,
    PerformanceWeights,
)

__all__ = [
    "ATTRIBUTE_NAMES",
    "DEFAULT_ATTRIBUTE_VALUE",
    "AttributeVector",
    "PerformanceComposite",
    "PlayerRecord",
    "POSITION_GROUPS",
    "AbilityWeights",
    "AttributeWeights",
    "BalanceWeights",
    "NormalizationStrategy",
    "PerformanceWeights",
]

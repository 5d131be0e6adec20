import pytest
from pydantic import ValidationError

from matchday.models import (
    AbilityWeights,
    AttributeVector,
    BalanceWeights,
    NormalizationStrategy,
    PerformanceComposite,
    PerformanceWeights,
    PlayerRecord,
)


def test_player_record_is_frozen():
    record = PlayerRecord(player_id="p1", name="Test Player")

    assert record.attributes == AttributeVector()
    assert record.performance is None

    with pytest.raises((TypeError, ValidationError)):
        record.player_id = "p2"  # type: ignore[attr-defined]


def test_attribute_defaults_and_bounds():
    vector = AttributeVector(goalscoring=8)
    assert vector.as_tuple() == (8.0, 3.0, 3.0, 3.0, 3.0, 3.0)

    with pytest.raises(ValidationError):
        AttributeVector(defending=11)


def test_goal_threat_must_be_non_negative():
    with pytest.raises(ValidationError):
        PerformanceComposite(power_rating=5.0, goal_threat=-0.1)


def test_performance_weights_must_sum_to_one():
    assert PerformanceWeights(power_rating=0.3, goal_threat=0.7).goal_threat == pytest.approx(0.7)
    PerformanceWeights(power_rating=0.5, goal_threat=0.5005)

    with pytest.raises(ValidationError):
        PerformanceWeights(power_rating=0.6, goal_threat=0.5)


def test_ability_weights_lookup():
    weights = AbilityWeights()
    assert weights.for_group("defense").defending == pytest.approx(0.4)
    assert weights.for_group("team").teamwork == pytest.approx(0.5)

    with pytest.raises(KeyError):
        weights.for_group("goalkeeper")


def test_balance_weights_defaults():
    weights = BalanceWeights()
    assert weights.performance is None
    assert weights.normalization is NormalizationStrategy.COEFFICIENT_OF_VARIATION

import logging
import random
from collections import Counter

import pytest

from matchday.balancing import BalanceMethod, balance, split_sizes
from matchday.balancing.ability import draft_positions
from matchday.balancing.performance import (
    MetricScale,
    coefficient_of_variation_scale,
    combine_gaps,
    league_scale,
    percentile_scale,
    range_scale,
)
from matchday.balancing.random_split import random_split
from matchday.balancing.search import local_search
from matchday.config import resolve
from matchday.config.settings import EngineSettings
from matchday.errors import InputValidationError, MethodDisabledError
from matchday.models import (
    AttributeVector,
    NormalizationStrategy,
    PerformanceComposite,
    PerformanceWeights,
    PlayerRecord,
)


def _player(player_id: str, *, power: float | None = None, goal: float | None = None, **attributes) -> PlayerRecord:
    performance = None
    if power is not None:
        performance = PerformanceComposite(power_rating=power, goal_threat=goal or 0.0)
    return PlayerRecord(
        player_id=player_id,
        name=player_id.upper(),
        attributes=AttributeVector(**attributes),
        performance=performance,
    )


def _pool(count: int, *, with_performance: bool = True) -> list[PlayerRecord]:
    players = []
    for index in range(count):
        players.append(
            _player(
                f"p{index:02d}",
                power=float(index % 7) + 1.0 if with_performance else None,
                goal=(index % 4) * 0.2,
                goalscoring=float(index % 9) + 1.0,
                defending=float((index * 3) % 10),
                control=float((index * 7) % 10),
            )
        )
    return players


def _ids(players) -> set[str]:
    return {player.player_id for player in players}


def _paired_pool() -> list[PlayerRecord]:
    """Five pairs of identical players, so a zero-loss 5v5 split exists."""

    profiles = [
        dict(defending=9, goalscoring=2, control=5, teamwork=6),
        dict(defending=8, goalscoring=3, control=4, teamwork=5),
        dict(defending=4, goalscoring=9, control=7, teamwork=4),
        dict(defending=3, goalscoring=5, control=8, teamwork=7),
        dict(defending=2, goalscoring=4, control=6, teamwork=3),
    ]
    players = []
    for index, profile in enumerate(profiles):
        players.append(_player(f"pair{index}a", **profile))
        players.append(_player(f"pair{index}b", **profile))
    return players


def test_split_sizes_gives_team_a_the_extra_player():
    assert split_sizes(10) == (5, 5)
    assert split_sizes(11) == (6, 5)
    assert split_sizes(2) == (1, 1)


@pytest.mark.parametrize("method", ["random", "performance"])
@pytest.mark.parametrize("count", [8, 9, 10, 11])
def test_every_player_lands_on_exactly_one_team(method, count):
    pool = _pool(count)
    result = balance(pool, method=method, seed=3)

    assert result.sizes == split_sizes(count)
    assert not (_ids(result.team_a) & _ids(result.team_b))
    assert _ids(result.team_a) | _ids(result.team_b) == _ids(pool)
    assert result.applied_method is BalanceMethod(method)
    assert result.degraded is False


def test_random_split_is_reproducible_with_seed():
    pool = _pool(10)
    first = balance(pool, method="random", seed=11)
    second = balance(pool, method="random", seed=11)
    assert [p.player_id for p in first.team_a] == [p.player_id for p in second.team_a]
    assert first.loss is None


def test_random_split_is_roughly_uniform():
    pool = _pool(4, with_performance=False)
    rng = random.Random(42)
    trials = 6000
    counts = Counter(frozenset(_ids(random_split(pool, 2, rng)[0])) for _ in range(trials))

    # C(4, 2) = 6 equally likely team-A line-ups.
    assert len(counts) == 6
    for seen in counts.values():
        assert 850 <= seen <= 1150


def test_ability_requires_even_teams():
    with pytest.raises(MethodDisabledError):
        balance(_pool(9), method="ability", seed=1)


def test_ability_requires_minimum_team_size():
    with pytest.raises(MethodDisabledError):
        balance(_pool(8), method="ability", seed=1)

    settings = EngineSettings(min_ability_team_size=4)
    result = balance(_pool(8), method="ability", seed=1, settings=settings)
    assert result.sizes == (4, 4)


def test_ability_draft_fills_defence_then_attack():
    pool = _paired_pool()
    defenders, midfielders, attackers = draft_positions(pool, resolve(5))

    assert _ids(defenders) == {"pair0a", "pair0b", "pair1a", "pair1b"}
    assert _ids(attackers) == {"pair2a", "pair2b"}
    assert _ids(midfielders) == {"pair3a", "pair3b", "pair4a", "pair4b"}


def test_ability_finds_perfectly_balanced_split():
    result = balance(_paired_pool(), method="ability", seed=7)

    assert result.applied_method is BalanceMethod.ABILITY
    assert result.loss == pytest.approx(0.0)
    assert set(result.metrics) >= {"defense", "midfield", "attack", "team"}
    # Each pair is split across the two teams.
    for index in range(5):
        pair = {f"pair{index}a", f"pair{index}b"}
        assert len(pair & _ids(result.team_a)) == 1
    # Slots follow the template order: defenders first, attacker last.
    assert {result.team_a[0].player_id[:5], result.team_a[1].player_id[:5]} == {"pair0", "pair1"}
    assert result.team_a[4].player_id.startswith("pair2")


def test_ability_search_respects_iteration_budget():
    progress = []
    result = balance(
        _pool(10),
        method="ability",
        seed=5,
        settings=EngineSettings(search_iterations=50),
        progress=progress.append,
    )
    assert 1 <= result.evaluated <= 50
    assert progress[-1] == pytest.approx(1.0)


def test_performance_without_composites_degrades_to_random(caplog):
    pool = _pool(10)
    pool[3] = _player("p03")

    with caplog.at_level(logging.WARNING):
        result = balance(pool, method="performance", seed=2)

    assert result.requested_method is BalanceMethod.PERFORMANCE
    assert result.applied_method is BalanceMethod.RANDOM
    assert result.degraded is True
    assert "split randomly" in result.message
    assert _ids(result.team_a) | _ids(result.team_b) == _ids(pool)
    assert any("falling back" in record.getMessage() for record in caplog.records)


def test_performance_balance_beats_naive_split():
    pool = sorted(_pool(10), key=lambda p: p.performance.power_rating)
    result = balance(pool, method="performance", seed=4)

    scale = league_scale(pool)
    naive = combine_gaps(
        {
            "power_rating": abs(
                sum(p.performance.power_rating for p in pool[:5]) - sum(p.performance.power_rating for p in pool[5:])
            ),
            "goal_threat": abs(
                sum(p.performance.goal_threat for p in pool[:5]) - sum(p.performance.goal_threat for p in pool[5:])
            ),
        },
        scale,
    )
    assert result.loss < naive
    assert result.loss == pytest.approx(
        result.metrics["power_rating_gap_normalized"] + result.metrics["goal_threat_gap_normalized"]
    )


def test_uneven_performance_gap_uses_scaled_means():
    pool = [_player(f"u{i}", power=2.0, goal=0.5) for i in range(9)]
    result = balance(pool, method="performance", seed=1)
    assert result.sizes == (5, 4)
    assert result.metrics["power_rating_gap"] == pytest.approx(0.0)


def test_normalization_rescales_gaps_by_league_spread():
    reference = [_player("r1", power=2.0, goal=0.0), _player("r2", power=10.0, goal=0.8)]
    scale = league_scale(reference, NormalizationStrategy.COEFFICIENT_OF_VARIATION)
    assert scale.power_rating == pytest.approx(4.0)
    assert scale.goal_threat == pytest.approx(0.4)

    first = {"power_rating": 0.8, "goal_threat": 1.2}
    second = {"power_rating": 3.0, "goal_threat": 0.1}

    # Raw sums let the wide power scale dominate.
    assert sum(first.values()) == pytest.approx(2.0)
    assert sum(second.values()) == pytest.approx(3.1)

    # In league standard deviations a 1.2 goal-threat gap is three times the spread.
    assert combine_gaps(first, scale) == pytest.approx(3.2)
    assert combine_gaps(second, scale) == pytest.approx(1.0)

    # One standard deviation on each metric contributes equally.
    assert combine_gaps({"power_rating": 4.0, "goal_threat": 0.4}, scale) == pytest.approx(2.0)


def test_performance_weights_scale_normalized_gaps():
    scale = MetricScale(power_rating=2.0, goal_threat=0.5)
    weights = PerformanceWeights(power_rating=0.25, goal_threat=0.75)
    assert combine_gaps({"power_rating": 2.0, "goal_threat": 1.0}, scale, weights) == pytest.approx(1.75)


def test_scale_functions():
    assert coefficient_of_variation_scale([2.0, 10.0]) == pytest.approx(4.0)
    assert coefficient_of_variation_scale([-1.0, 1.0]) == pytest.approx(1.0)
    assert range_scale([1.0, 5.0, 3.0]) == pytest.approx(4.0)
    assert percentile_scale([float(v) for v in range(10)]) == pytest.approx(8.0)


def test_degenerate_scale_falls_back_to_one(caplog):
    flat = [_player(f"f{i}", power=5.0, goal=0.3) for i in range(4)]
    with caplog.at_level(logging.WARNING):
        scale = league_scale(flat, NormalizationStrategy.RANGE)
    assert scale == MetricScale(power_rating=1.0, goal_threat=1.0)
    assert any("Non-positive" in record.getMessage() for record in caplog.records)


def test_pool_validation():
    with pytest.raises(InputValidationError):
        balance([_player("solo")], method="random")

    duplicate = _pool(4) + [_player("p01")]
    with pytest.raises(InputValidationError):
        balance(duplicate, method="random")

    with pytest.raises(InputValidationError):
        balance(_pool(4), method="alphabetical")


def test_local_search_stays_within_groups():
    groups = [[1, 2, 3, 4], [10, 20]]

    def loss(team_a, team_b):
        return sum(abs(sum(a) - sum(b)) for a, b in zip(team_a, team_b))

    outcome = local_search(groups, [2, 1], loss, rng=random.Random(0), iterations=400)

    assert sorted(outcome.team_a[0] + outcome.team_b[0]) == [1, 2, 3, 4]
    assert sorted(outcome.team_a[1] + outcome.team_b[1]) == [10, 20]
    assert outcome.loss == pytest.approx(10.0)
    assert outcome.evaluated <= 400

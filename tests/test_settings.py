import logging

import pytest

from matchday.config import TeamTemplate
from matchday.config.settings import EngineSettings
from matchday.config_loader import BalanceProfile
from matchday.errors import TemplateConfigError
from matchday.models import BalanceWeights, NormalizationStrategy, PerformanceWeights


_ENV_NAMES = (
    "MATCHDAY_DB_PATH",
    "MATCHDAY_POOL_SLACK",
    "MATCHDAY_ALLOW_UNEVEN_TEAMS",
    "MATCHDAY_MIN_ABILITY_TEAM_SIZE",
    "MATCHDAY_MAX_TEAM_SIZE",
    "MATCHDAY_SEARCH_ITERATIONS",
    "MATCHDAY_TRANSACTION_TIMEOUT",
    "MATCHDAY_NORMALIZATION",
    "MATCHDAY_NOTIFY_URL",
)


def _clear_env(monkeypatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment(monkeypatch):
    _clear_env(monkeypatch)
    settings = EngineSettings.from_env()
    assert settings == EngineSettings()
    assert settings.allow_uneven_teams is True
    assert settings.normalization is None


def test_environment_overrides(monkeypatch):
    _clear_env(monkeypatch)
    monkeypatch.setenv("MATCHDAY_POOL_SLACK", "0")
    monkeypatch.setenv("MATCHDAY_ALLOW_UNEVEN_TEAMS", "no")
    monkeypatch.setenv("MATCHDAY_SEARCH_ITERATIONS", "0")
    monkeypatch.setenv("MATCHDAY_TRANSACTION_TIMEOUT", "500")
    monkeypatch.setenv("MATCHDAY_NORMALIZATION", "Percentile")

    settings = EngineSettings.from_env()
    assert settings.pool_slack == 0
    assert settings.allow_uneven_teams is False
    assert settings.search_iterations == 1
    assert settings.transaction_timeout == pytest.approx(120.0)
    assert settings.normalization is NormalizationStrategy.PERCENTILE


def test_invalid_values_fall_back_with_warning(monkeypatch, caplog):
    _clear_env(monkeypatch)
    monkeypatch.setenv("MATCHDAY_POOL_SLACK", "lots")
    monkeypatch.setenv("MATCHDAY_NORMALIZATION", "zscore")

    with caplog.at_level(logging.WARNING):
        settings = EngineSettings.from_env()

    assert settings.pool_slack == 2
    assert settings.normalization is None
    assert len([r for r in caplog.records if r.levelno == logging.WARNING]) == 2


def test_configured_normalization_overrides_weights_only_when_set():
    profile_weights = BalanceWeights(normalization=NormalizationStrategy.PERCENTILE)

    assert EngineSettings().apply_normalization(profile_weights) == profile_weights
    assert EngineSettings().apply_normalization().normalization is NormalizationStrategy.COEFFICIENT_OF_VARIATION

    configured = EngineSettings(normalization=NormalizationStrategy.RANGE)
    assert configured.apply_normalization(profile_weights).normalization is NormalizationStrategy.RANGE


def test_pool_bounds():
    assert EngineSettings().pool_bounds(5) == (8, 10)
    assert EngineSettings(pool_slack=0).pool_bounds(7) == (14, 14)
    assert EngineSettings(pool_slack=5).pool_bounds(1) == (2, 2)


def test_profile_round_trip(tmp_path):
    profile = BalanceProfile(
        weights=BalanceWeights(
            name="league",
            performance=PerformanceWeights(power_rating=0.7, goal_threat=0.3),
            normalization=NormalizationStrategy.RANGE,
        ),
        templates={7: TeamTemplate(team_size=7, defenders=3, midfielders=2, attackers=2, name="3-2-2")},
        players_mapping={"name": "First|Last"},
    )
    path = tmp_path / "profile.json"
    profile.save(path)

    loaded = BalanceProfile.load(path)
    assert loaded.weights == profile.weights
    assert loaded.templates[7].defenders == 3
    assert loaded.players_mapping == {"name": "First|Last"}


def test_profile_rejects_inconsistent_template(tmp_path):
    path = tmp_path / "profile.json"
    path.write_text(
        '{"templates": {"6": {"defenders": 2, "midfielders": 2, "attackers": 1}}}',
        encoding="utf-8",
    )
    with pytest.raises(TemplateConfigError):
        BalanceProfile.load(path)

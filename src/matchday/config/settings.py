"""Environment-driven engine settings."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from typing import Optional

from matchday.models.weights import BalanceWeights, NormalizationStrategy


logger = logging.getLogger(__name__)

_DB_PATH_ENV = "MATCHDAY_DB_PATH"
_POOL_SLACK_ENV = "MATCHDAY_POOL_SLACK"
_ALLOW_UNEVEN_ENV = "MATCHDAY_ALLOW_UNEVEN_TEAMS"
_MIN_ABILITY_SIZE_ENV = "MATCHDAY_MIN_ABILITY_TEAM_SIZE"
_MAX_TEAM_SIZE_ENV = "MATCHDAY_MAX_TEAM_SIZE"
_SEARCH_ITERATIONS_ENV = "MATCHDAY_SEARCH_ITERATIONS"
_TIMEOUT_ENV = "MATCHDAY_TRANSACTION_TIMEOUT"
_NORMALIZATION_ENV = "MATCHDAY_NORMALIZATION"
_NOTIFY_URL_ENV = "MATCHDAY_NOTIFY_URL"
_PLAYERS_CSV_ENV = "MATCHDAY_PLAYERS_CSV"
_PROFILE_ENV = "MATCHDAY_PROFILE"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _env_float(name: str, default: float, *, clamp_min: float | None = None, clamp_max: float | None = None) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid float for %s: %s; using default %.2f", name, raw, default)
        return default
    if clamp_min is not None:
        value = max(clamp_min, value)
    if clamp_max is not None:
        value = min(clamp_max, value)
    return value


def _env_int(name: str, default: int, *, min_value: int | None = None, max_value: int | None = None) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid int for %s: %s; using default %d", name, raw, default)
        return default
    if min_value is not None:
        value = max(min_value, value)
    if max_value is not None:
        value = min(max_value, value)
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    logger.warning("Invalid boolean for %s: %s; using default %s", name, raw, default)
    return default


def _env_normalization(name: str, default: Optional[NormalizationStrategy]) -> Optional[NormalizationStrategy]:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return NormalizationStrategy(raw.strip().lower())
    except ValueError:
        logger.warning("Invalid normalization for %s: %s; ignoring", name, raw)
        return default


@dataclass(frozen=True)
class EngineSettings:
    db_path: str = "matchday.sqlite"
    pool_slack: int = 2
    allow_uneven_teams: bool = True
    min_ability_team_size: int = 5
    max_team_size: int = 11
    search_iterations: int = 2000
    transaction_timeout: float = 30.0
    normalization: Optional[NormalizationStrategy] = None
    notify_url: Optional[str] = None
    players_csv: Optional[str] = None
    profile_path: Optional[str] = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        defaults = cls()
        return cls(
            db_path=os.getenv(_DB_PATH_ENV) or defaults.db_path,
            pool_slack=_env_int(_POOL_SLACK_ENV, defaults.pool_slack, min_value=0),
            allow_uneven_teams=_env_bool(_ALLOW_UNEVEN_ENV, defaults.allow_uneven_teams),
            min_ability_team_size=_env_int(_MIN_ABILITY_SIZE_ENV, defaults.min_ability_team_size, min_value=2),
            max_team_size=_env_int(_MAX_TEAM_SIZE_ENV, defaults.max_team_size, min_value=1),
            search_iterations=_env_int(_SEARCH_ITERATIONS_ENV, defaults.search_iterations, min_value=1, max_value=200_000),
            transaction_timeout=_env_float(_TIMEOUT_ENV, defaults.transaction_timeout, clamp_min=0.1, clamp_max=120.0),
            normalization=_env_normalization(_NORMALIZATION_ENV, defaults.normalization),
            notify_url=os.getenv(_NOTIFY_URL_ENV) or None,
            players_csv=os.getenv(_PLAYERS_CSV_ENV) or None,
            profile_path=os.getenv(_PROFILE_ENV) or None,
        )

    def with_overrides(self, **changes) -> "EngineSettings":
        return replace(self, **changes)

    def apply_normalization(self, weights: Optional[BalanceWeights] = None) -> BalanceWeights:
        """Return ``weights`` with the configured normaliser, leaving theirs alone when none is configured."""

        weights = weights or BalanceWeights()
        if self.normalization is None:
            return weights
        return weights.model_copy(update={"normalization": self.normalization})

    def pool_bounds(self, team_size: int) -> tuple[int, int]:
        """Legal confirmed-pool size range for an ``team_size``-a-side fixture."""

        maximum = team_size * 2
        minimum = max(2, maximum - self.pool_slack)
        return minimum, maximum

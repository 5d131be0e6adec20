"""Configuration helpers for team templates and engine settings."""

from .settings import EngineSettings
from .templates import Position, TeamTemplate, iter_templates, position_of, resolve, validate_template

__all__ = [
    "EngineSettings",
    "Position",
    "TeamTemplate",
    "iter_templates",
    "position_of",
    "resolve",
    "validate_template",
]

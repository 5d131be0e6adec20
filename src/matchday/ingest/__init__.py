"""Input adapters that normalize raw player data."""

from .players import (
    DEFAULT_PLAYERS_MAPPING,
    LoadReport,
    PlayerRow,
    load_player_rows,
    load_players_csv,
    rows_to_records,
)

__all__ = [
    "DEFAULT_PLAYERS_MAPPING",
    "LoadReport",
    "PlayerRow",
    "load_player_rows",
    "load_players_csv",
    "rows_to_records",
]

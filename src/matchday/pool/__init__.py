"""Player pool utilities (membership, export)."""

from .export import TeamExportError, TeamSheetRow, build_team_sheet, export_teams_to_csv
from .manager import PoolManager, ResponseStatus, confirmed_ids

__all__ = [
    "PoolManager",
    "ResponseStatus",
    "TeamExportError",
    "TeamSheetRow",
    "build_team_sheet",
    "confirmed_ids",
    "export_teams_to_csv",
]

"""CSV export helpers for a fixture's team sheet."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from io import StringIO
from typing import Mapping, Optional, Sequence

from matchday.config.templates import TeamTemplate, position_of


class TeamExportError(RuntimeError):
    """Raised when a team sheet cannot be exported."""


@dataclass(frozen=True)
class TeamSheetRow:
    team: str
    team_name: str
    slot_number: int
    player_id: str
    name: str
    position: Optional[str] = None


EXPORT_HEADERS = ("Team", "Slot", "Position", "PlayerId", "Name")


def build_team_sheet(
    team: str,
    team_name: str,
    slots: Sequence[tuple[int, str]],
    names: Mapping[str, str],
    template: Optional[TeamTemplate] = None,
) -> list[TeamSheetRow]:
    """Turn ``(slot_number, player_id)`` pairs into ordered rows with positions."""

    ordered = sorted(slots)
    expected = list(range(1, len(ordered) + 1))
    if [slot for slot, _ in ordered] != expected:
        raise TeamExportError(f"Team {team_name} has gaps or duplicates in its slot numbers")
    rows: list[TeamSheetRow] = []
    for slot_number, player_id in ordered:
        position = None
        if template is not None and template.team_size == len(ordered):
            position = position_of(slot_number, len(ordered), template).value
        rows.append(
            TeamSheetRow(
                team=team,
                team_name=team_name,
                slot_number=slot_number,
                player_id=player_id,
                name=names.get(player_id, player_id),
                position=position,
            )
        )
    return rows


def export_teams_to_csv(rows: Sequence[TeamSheetRow]) -> str:
    if not rows:
        raise TeamExportError("No team assignments to export")

    buffer = StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for row in rows:
        writer.writerow([row.team_name, row.slot_number, row.position or "", row.player_id, row.name])
    return buffer.getvalue()


__all__ = [
    "EXPORT_HEADERS",
    "TeamExportError",
    "TeamSheetRow",
    "build_team_sheet",
    "export_teams_to_csv",
]

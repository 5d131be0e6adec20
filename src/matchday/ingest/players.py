"""Helpers to load player attribute CSVs and emit canonical records."""

from __future__ import annotations

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ValidationError

from matchday.models import (
    ATTRIBUTE_NAMES,
    DEFAULT_ATTRIBUTE_VALUE,
    AttributeVector,
    PerformanceComposite,
    PlayerRecord,
)


logger = logging.getLogger(__name__)

DEFAULT_PLAYERS_MAPPING = {
    "player_id": "player_id",
    "name": "name",
    "goalscoring": "goalscoring",
    "defending": "defending",
    "stamina_pace": "stamina_pace",
    "control": "control",
    "teamwork": "teamwork",
    "resilience": "resilience",
    "power_rating": "power_rating",
    "goal_threat": "goal_threat",
    "is_ringer": "is_ringer",
    "is_retired": "is_retired",
}

_TRUE_TOKENS = {"1", "true", "t", "yes", "y"}
_FALSE_TOKENS = {"0", "false", "f", "no", "n"}


class PlayerRow(BaseModel):
    raw_id: Optional[str] = None
    raw_name: str
    raw_attributes: dict[str, Optional[str]] = {}
    raw_power_rating: Optional[str] = None
    raw_goal_threat: Optional[str] = None
    raw_ringer: Optional[str] = None
    raw_retired: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, str], mapping: Mapping[str, str]) -> "PlayerRow":
        def extract(column: Optional[str], *, default: Optional[str] = None) -> Optional[str]:
            if column is None:
                return default
            if "|" in column:
                parts = [row.get(col.strip(), "").strip() for col in column.split("|") if row.get(col.strip())]
                return " ".join(parts) if parts else default
            value = row.get(column)
            return value.strip() if value is not None else default

        return cls(
            raw_id=extract(mapping.get("player_id")),
            raw_name=extract(mapping.get("name", "name"), default="") or "",
            raw_attributes={name: extract(mapping.get(name)) for name in ATTRIBUTE_NAMES},
            raw_power_rating=extract(mapping.get("power_rating")),
            raw_goal_threat=extract(mapping.get("goal_threat")),
            raw_ringer=extract(mapping.get("is_ringer")),
            raw_retired=extract(mapping.get("is_retired")),
        )


@dataclass
class LoadReport:
    total_rows: int = 0
    loaded: int = 0
    skipped_rows: List[str] = field(default_factory=list)
    defaulted_attributes: List[str] = field(default_factory=list)
    missing_performance: List[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "total_rows": self.total_rows,
            "loaded": self.loaded,
            "skipped_rows": list(self.skipped_rows),
            "defaulted_attributes": list(self.defaulted_attributes),
            "missing_performance": list(self.missing_performance),
        }


def _parse_number(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"'{raw}' is not numeric") from None


def _parse_flag(raw: Optional[str]) -> bool:
    if raw is None:
        return False
    text = raw.strip().lower()
    if text in _TRUE_TOKENS:
        return True
    if text in _FALSE_TOKENS or not text:
        return False
    raise ValueError(f"'{raw}' is not a yes/no flag")


def load_player_rows(path: Path, *, mapping: Mapping[str, str] | None = None) -> List[PlayerRow]:
    mapping = mapping or DEFAULT_PLAYERS_MAPPING
    with path.open(newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        rows = [PlayerRow.from_mapping(row, mapping) for row in reader]
    return rows


def rows_to_records(rows: Sequence[PlayerRow]) -> Tuple[List[PlayerRecord], LoadReport]:
    report = LoadReport(total_rows=len(rows))
    records: List[PlayerRecord] = []
    seen: set[str] = set()
    for index, row in enumerate(rows, start=1):
        player_id = row.raw_id or row.raw_name
        label = f"row {index}"
        if not player_id:
            report.skipped_rows.append(f"{label}: missing player id and name")
            continue
        if player_id in seen:
            report.skipped_rows.append(f"{label}: duplicate player {player_id}")
            continue
        try:
            attributes = {}
            for name in ATTRIBUTE_NAMES:
                value = _parse_number(row.raw_attributes.get(name))
                if value is None:
                    value = DEFAULT_ATTRIBUTE_VALUE
                    if player_id not in report.defaulted_attributes:
                        report.defaulted_attributes.append(player_id)
                attributes[name] = value
            power = _parse_number(row.raw_power_rating)
            goal = _parse_number(row.raw_goal_threat)
            performance = None
            if power is not None and goal is not None:
                performance = PerformanceComposite(power_rating=power, goal_threat=goal)
            else:
                report.missing_performance.append(player_id)
            record = PlayerRecord(
                player_id=player_id,
                name=row.raw_name or player_id,
                is_ringer=_parse_flag(row.raw_ringer),
                is_retired=_parse_flag(row.raw_retired),
                attributes=AttributeVector(**attributes),
                performance=performance,
            )
        except (ValueError, ValidationError) as exc:
            report.skipped_rows.append(f"{label} ({player_id}): {exc}")
            continue
        seen.add(player_id)
        records.append(record)
    report.loaded = len(records)
    if report.skipped_rows:
        logger.warning("Skipped %s of %s player rows", len(report.skipped_rows), report.total_rows)
    logger.info(
        "Loaded %s players (%s without performance data)",
        report.loaded,
        len(report.missing_performance),
    )
    return records, report


def load_players_csv(
    path: Path | str,
    *,
    mapping: Mapping[str, str] | None = None,
) -> Tuple[List[PlayerRecord], LoadReport]:
    return rows_to_records(load_player_rows(Path(path), mapping=mapping))

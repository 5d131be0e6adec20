from pathlib import Path

import pytest

from matchday.ingest import DEFAULT_PLAYERS_MAPPING, load_player_rows, load_players_csv, rows_to_records
from matchday.providers import StaticAttributeProvider
from matchday.errors import NotFoundError


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content, encoding="utf-8")
    return path


def _sample_players() -> str:
    return """player_id,name,goalscoring,defending,stamina_pace,control,teamwork,resilience,power_rating,goal_threat,is_ringer,is_retired
p1,Alex Keeper,4,8,6,5,7,6,3.5,0.2,no,no
p2,Blake Winger,8,3,,6,5,4,5.0,0.9,yes,no
p3,Casey Old,2,2,2,2,2,2,,,,yes
p1,Alex Again,5,5,5,5,5,5,1.0,0.1,no,no
p4,Drew Broken,eleven,5,5,5,5,5,1.0,0.1,no,no
"""


def test_load_players_report(tmp_path):
    path = _write(tmp_path, "players.csv", _sample_players())

    records, report = load_players_csv(path)

    assert [record.player_id for record in records] == ["p1", "p2", "p3"]
    assert report.total_rows == 5
    assert report.loaded == 3
    assert len(report.skipped_rows) == 2
    assert "duplicate player p1" in report.skipped_rows[0]
    assert report.defaulted_attributes == ["p2"]
    assert report.missing_performance == ["p3"]

    by_id = {record.player_id: record for record in records}
    assert by_id["p2"].attributes.stamina_pace == pytest.approx(3.0)
    assert by_id["p2"].is_ringer is True
    assert by_id["p3"].is_retired is True
    assert by_id["p3"].performance is None
    assert by_id["p1"].performance.goal_threat == pytest.approx(0.2)


def test_mapping_joins_name_columns(tmp_path):
    path = _write(
        tmp_path,
        "squad.csv",
        """Member,First Name,Last Name,Shooting,Tackling
m1,Jamie,Forward,9,2
m2,Sam,,3,9
""",
    )
    mapping = {
        "player_id": "Member",
        "name": "First Name|Last Name",
        "goalscoring": "Shooting",
        "defending": "Tackling",
    }

    rows = load_player_rows(path, mapping=mapping)
    records, report = rows_to_records(rows)

    assert [record.name for record in records] == ["Jamie Forward", "Sam"]
    assert records[1].attributes.defending == pytest.approx(9.0)
    assert report.defaulted_attributes == ["m1", "m2"]
    assert report.missing_performance == ["m1", "m2"]


def test_rows_without_id_fall_back_to_name(tmp_path):
    path = _write(tmp_path, "names.csv", "name,goalscoring\nRiley,7\n,5\n")
    records, report = load_players_csv(path, mapping={"name": "name", "goalscoring": "goalscoring"})

    assert [record.player_id for record in records] == ["Riley"]
    assert report.skipped_rows == ["row 2: missing player id and name"]


def test_provider_from_csv(tmp_path):
    path = _write(tmp_path, "players.csv", _sample_players())
    provider = StaticAttributeProvider.from_csv(path)

    assert len(provider) == 3
    assert provider.get_attributes("p2").name == "Blake Winger"
    with pytest.raises(NotFoundError):
        provider.get_attributes("p4")
    assert set(DEFAULT_PLAYERS_MAPPING) >= {"player_id", "goal_threat"}

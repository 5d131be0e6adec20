"""Read-only collaborators consumed by the engine: player attributes and tenant context."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Protocol

from matchday.errors import NotFoundError
from matchday.models import PlayerRecord


class AttributeProvider(Protocol):
    def get_attributes(self, player_id: str) -> PlayerRecord:
        ...


class TenantContext(Protocol):
    def current_tenant_id(self) -> str:
        ...


class StaticAttributeProvider:
    """In-memory provider keyed by player id."""

    def __init__(self, players: Iterable[PlayerRecord] = ()):
        self._players: Dict[str, PlayerRecord] = {}
        for player in players:
            self.upsert(player)

    @classmethod
    def from_csv(cls, path: Path | str, mapping: Optional[Mapping[str, str]] = None) -> "StaticAttributeProvider":
        from matchday.ingest.players import load_players_csv

        records, _report = load_players_csv(path, mapping=mapping)
        return cls(records)

    def upsert(self, player: PlayerRecord) -> None:
        self._players[player.player_id] = player

    def get_attributes(self, player_id: str) -> PlayerRecord:
        try:
            return self._players[player_id]
        except KeyError as exc:
            raise NotFoundError(f"Unknown player {player_id}") from exc

    def __len__(self) -> int:
        return len(self._players)


class StaticTenantContext:
    def __init__(self, tenant_id: str):
        self._tenant_id = tenant_id

    def current_tenant_id(self) -> str:
        return self._tenant_id

"""Player pool membership and response status for a fixture."""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from matchday.errors import InputValidationError
from matchday.fixtures.states import POOL_EDITABLE, TEAMS_ASSIGNED, FixtureState, require_state
from matchday.models import PlayerRecord
from matchday.persistence import FixtureRecord, FixtureStore, FixtureTransaction, PoolEntryRecord
from matchday.providers import AttributeProvider


logger = logging.getLogger(__name__)


class ResponseStatus(str, Enum):
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    PENDING = "pending"


def parse_status(value: ResponseStatus | str) -> ResponseStatus:
    try:
        return ResponseStatus(value)
    except ValueError as exc:
        allowed = ", ".join(status.value for status in ResponseStatus)
        raise InputValidationError(f"Unknown response status {value!r} (expected one of {allowed})") from exc


def confirmed_ids(entries: List[PoolEntryRecord]) -> List[str]:
    return [entry.player_id for entry in entries if entry.response_status == ResponseStatus.CONFIRMED.value]


def invalidate_teams(tx: FixtureTransaction, fixture: FixtureRecord, expected_version: Optional[int]) -> FixtureRecord:
    """Bump the version after a pool change, dropping any balance built on the old pool."""

    if FixtureState(fixture.state) in TEAMS_ASSIGNED:
        cleared = tx.clear_slots()
        logger.info(
            "Pool changed on fixture %s in %s; cleared %s slots and reverted to PoolLocked",
            fixture.fixture_id,
            fixture.state,
            cleared,
        )
        return tx.bump_version(
            expected_version,
            state=FixtureState.POOL_LOCKED.value,
            teams_locked_at=None,
            teams_published_at=None,
            balance_method=None,
            size_a=None,
            size_b=None,
        )
    return tx.bump_version(expected_version)


class PoolManager:
    def __init__(self, store: FixtureStore, provider: AttributeProvider):
        self.store = store
        self.provider = provider

    def _eligible_player(self, player_id: str) -> PlayerRecord:
        if not player_id:
            raise InputValidationError("player_id is required")
        player = self.provider.get_attributes(player_id)
        if player.is_retired:
            raise InputValidationError(f"Player {player_id} is retired and cannot join a pool")
        return player

    def add_to_pool(
        self,
        tenant_id: str,
        fixture_id: str,
        player_id: str,
        *,
        response_status: ResponseStatus | str = ResponseStatus.CONFIRMED,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> tuple[FixtureRecord, PoolEntryRecord]:
        status = parse_status(response_status)
        self._eligible_player(player_id)
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, POOL_EDITABLE, "change the pool")
            entry = tx.insert_pool_entry(player_id, status.value, notes)
            fixture = invalidate_teams(tx, fixture, expected_version)
        logger.info("Added %s (%s) to fixture %s", player_id, status.value, fixture_id)
        return fixture, entry

    def remove_from_pool(
        self,
        tenant_id: str,
        fixture_id: str,
        player_id: str,
        *,
        expected_version: Optional[int] = None,
    ) -> FixtureRecord:
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, POOL_EDITABLE, "change the pool")
            tx.delete_pool_entry(player_id)
            fixture = invalidate_teams(tx, fixture, expected_version)
        logger.info("Removed %s from fixture %s", player_id, fixture_id)
        return fixture

    def set_response_status(
        self,
        tenant_id: str,
        fixture_id: str,
        player_id: str,
        status: ResponseStatus | str,
        *,
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> tuple[FixtureRecord, PoolEntryRecord]:
        parsed = parse_status(status)
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, POOL_EDITABLE, "change the pool")
            entry = tx.update_pool_entry(player_id, response_status=parsed.value, notes=notes)
            fixture = invalidate_teams(tx, fixture, expected_version)
        logger.info("Set %s to %s on fixture %s", player_id, parsed.value, fixture_id)
        return fixture, entry

"""Fixture service: the state machine driving pools, balancing and publishing."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from matchday.balancing import BalanceMethod, BalanceResult, balance
from matchday.config.settings import EngineSettings
from matchday.config.templates import TeamTemplate, resolve
from matchday.errors import (
    ConcurrencyConflictError,
    InputValidationError,
    InvalidPoolSizeError,
    InvalidStateError,
    MatchdayError,
    NotFoundError,
    TemplateConfigError,
)
from matchday.fixtures.states import (
    BALANCEABLE,
    PUBLISHABLE,
    TEAMS_ASSIGNED,
    TERMINAL_STATES,
    FixtureState,
    require_state,
)
from matchday.models import BalanceWeights, PlayerRecord
from matchday.notify import NotificationSink, send_quietly, teams_published_message
from matchday.persistence import (
    JOB_COMPLETED,
    JOB_FAILED,
    TEAM_A,
    TEAM_B,
    BalanceJob,
    FixtureRecord,
    FixtureStore,
    PoolEntryRecord,
    SlotRecord,
)
from matchday.pool import (
    PoolManager,
    ResponseStatus,
    TeamSheetRow,
    build_team_sheet,
    confirmed_ids,
    export_teams_to_csv,
)
from matchday.providers import AttributeProvider


logger = logging.getLogger(__name__)

MANUAL_METHOD = "manual"

_PROGRESS_STEP = 0.1

_CLEARED_TEAM_FIELDS = {
    "teams_locked_at": None,
    "teams_published_at": None,
    "balance_method": None,
    "size_a": None,
    "size_b": None,
}


@dataclass
class FixtureView:
    fixture: FixtureRecord
    pool: List[PoolEntryRecord]
    team_a: List[SlotRecord] = field(default_factory=list)
    team_b: List[SlotRecord] = field(default_factory=list)

    @property
    def confirmed(self) -> List[str]:
        return confirmed_ids(self.pool)


@dataclass
class BalanceOutcome:
    fixture: FixtureRecord
    job: BalanceJob
    result: BalanceResult


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _split_slots(slots: Sequence[SlotRecord]) -> Tuple[List[SlotRecord], List[SlotRecord]]:
    team_a = sorted((s for s in slots if s.team == TEAM_A), key=lambda s: s.slot_number or 0)
    team_b = sorted((s for s in slots if s.team == TEAM_B), key=lambda s: s.slot_number or 0)
    return team_a, team_b


class FixtureService:
    """Coordinates the store, the balancing engine and the notification sink.

    Every mutating call runs in one short store transaction guarded by the
    fixture lock. Balancing runs on a snapshot outside the lock and its
    commit re-checks the fixture version, so a concurrent edit surfaces as a
    ConcurrencyConflictError instead of being overwritten.
    """

    def __init__(
        self,
        store: FixtureStore,
        provider: AttributeProvider,
        *,
        notifier: Optional[NotificationSink] = None,
        settings: Optional[EngineSettings] = None,
        weights: Optional[BalanceWeights] = None,
        templates: Optional[Mapping[int, TeamTemplate]] = None,
    ):
        self.store = store
        self.provider = provider
        self.notifier = notifier
        self.settings = settings or EngineSettings()
        self.weights = weights or self.settings.apply_normalization()
        self.templates = dict(templates or {})
        self.pool = PoolManager(store, provider)

    # -- reads -----------------------------------------------------------------

    def get_fixture(self, tenant_id: str, fixture_id: str) -> FixtureRecord:
        fixture = self.store.get_fixture(tenant_id, fixture_id)
        if fixture is None:
            raise NotFoundError(f"Fixture {fixture_id} not found")
        return fixture

    def get_view(self, tenant_id: str, fixture_id: str) -> FixtureView:
        snapshot = self.store.read_snapshot(tenant_id, fixture_id)
        team_a, team_b = _split_slots(snapshot.slots)
        return FixtureView(fixture=snapshot.fixture, pool=snapshot.pool, team_a=team_a, team_b=team_b)

    def list_fixtures(self, tenant_id: str, *, state: Optional[str] = None, limit: int = 50) -> List[FixtureRecord]:
        if state is not None:
            try:
                state = FixtureState(state).value
            except ValueError as exc:
                raise InputValidationError(f"Unknown fixture state {state!r}") from exc
        return self.store.list_fixtures(tenant_id, state=state, limit=limit)

    def get_job(self, tenant_id: str, fixture_id: str, job_id: str) -> BalanceJob:
        job = self.store.get_job(tenant_id, job_id)
        if job is None or job.fixture_id != fixture_id:
            raise NotFoundError(f"Balance job {job_id} not found")
        return job

    def team_sheet(self, tenant_id: str, fixture_id: str) -> List[TeamSheetRow]:
        return self.sheet_for_view(self.get_view(tenant_id, fixture_id))

    def sheet_for_view(self, view: FixtureView) -> List[TeamSheetRow]:
        """Team sheet rows for the slots captured in ``view``, without re-reading the store."""

        fixture = view.fixture
        names: Dict[str, str] = {}
        for slot in view.team_a + view.team_b:
            try:
                names[slot.player_id] = self.provider.get_attributes(slot.player_id).name
            except NotFoundError:
                names[slot.player_id] = slot.player_id
        rows: List[TeamSheetRow] = []
        for team, team_name, slots in (
            (TEAM_A, fixture.team_a_name, view.team_a),
            (TEAM_B, fixture.team_b_name, view.team_b),
        ):
            template = self._template_or_none(len(slots))
            pairs = [(slot.slot_number, slot.player_id) for slot in slots if slot.slot_number is not None]
            rows.extend(build_team_sheet(team, team_name, pairs, names, template))
        return rows

    def export_teams_csv(self, tenant_id: str, fixture_id: str) -> str:
        return export_teams_to_csv(self.team_sheet(tenant_id, fixture_id))

    def _template_or_none(self, team_size: int) -> Optional[TeamTemplate]:
        try:
            return resolve(team_size, self.templates)
        except TemplateConfigError:
            return None

    # -- creation and pool -----------------------------------------------------

    def create_fixture(
        self,
        tenant_id: str,
        *,
        match_date: date,
        team_size: int,
        team_a_name: str = "Orange",
        team_b_name: str = "Green",
    ) -> FixtureRecord:
        if not tenant_id:
            raise InputValidationError("tenant_id is required")
        if team_size < 1 or team_size > self.settings.max_team_size:
            raise InputValidationError(
                f"team_size must be between 1 and {self.settings.max_team_size}, got {team_size}"
            )
        team_a_name = team_a_name.strip()
        team_b_name = team_b_name.strip()
        if not team_a_name or not team_b_name:
            raise InputValidationError("Team names must not be empty")
        if team_a_name.lower() == team_b_name.lower():
            raise InputValidationError("Team names must differ")
        fixture = self.store.create_fixture(
            tenant_id=tenant_id,
            match_date=match_date,
            team_size=team_size,
            team_a_name=team_a_name,
            team_b_name=team_b_name,
            state=FixtureState.DRAFT.value,
        )
        logger.info("Created fixture %s (%s, %s-a-side)", fixture.fixture_id, match_date.isoformat(), team_size)
        return fixture

    def add_to_pool(self, tenant_id: str, fixture_id: str, player_id: str, **kwargs) -> Tuple[FixtureRecord, PoolEntryRecord]:
        return self.pool.add_to_pool(tenant_id, fixture_id, player_id, **kwargs)

    def remove_from_pool(self, tenant_id: str, fixture_id: str, player_id: str, **kwargs) -> FixtureRecord:
        return self.pool.remove_from_pool(tenant_id, fixture_id, player_id, **kwargs)

    def set_response_status(
        self,
        tenant_id: str,
        fixture_id: str,
        player_id: str,
        status: ResponseStatus | str,
        **kwargs,
    ) -> Tuple[FixtureRecord, PoolEntryRecord]:
        return self.pool.set_response_status(tenant_id, fixture_id, player_id, status, **kwargs)

    def check_pool_size(self, fixture: FixtureRecord, pool_size: int) -> None:
        minimum, maximum = self.settings.pool_bounds(fixture.team_size)
        if pool_size < minimum or pool_size > maximum:
            raise InvalidPoolSizeError(
                f"Pool has {pool_size} confirmed players; {fixture.team_size}-a-side needs "
                f"{minimum} to {maximum}"
            )
        if pool_size % 2 and not self.settings.allow_uneven_teams:
            raise InvalidPoolSizeError(f"Pool of {pool_size} cannot be split evenly and uneven teams are disabled")

    # -- transitions -------------------------------------------------------------

    def lock_pool(self, tenant_id: str, fixture_id: str, *, expected_version: int) -> FixtureRecord:
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, {FixtureState.DRAFT}, "lock the pool")
            self.check_pool_size(fixture, len(confirmed_ids(tx.pool_entries())))
            fixture = tx.bump_version(expected_version, state=FixtureState.POOL_LOCKED.value)
        logger.info("Fixture %s pool locked (version %s)", fixture_id, fixture.version)
        return fixture

    def unlock_pool(self, tenant_id: str, fixture_id: str, *, expected_version: int) -> FixtureRecord:
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, {FixtureState.POOL_LOCKED}, "unlock the pool")
            tx.clear_slots()
            fixture = tx.bump_version(expected_version, state=FixtureState.DRAFT.value, **_CLEARED_TEAM_FIELDS)
        logger.info("Fixture %s pool reopened (version %s)", fixture_id, fixture.version)
        return fixture

    def lock_pool_and_balance(
        self,
        tenant_id: str,
        fixture_id: str,
        *,
        method: BalanceMethod | str,
        weights: Optional[BalanceWeights] = None,
        expected_version: Optional[int] = None,
        seed: Optional[int] = None,
        reference: Optional[Sequence[PlayerRecord]] = None,
    ) -> BalanceOutcome:
        """Lock the pool if needed, balance it and persist the split as team slots."""

        try:
            method = BalanceMethod(method)
        except ValueError as exc:
            raise InputValidationError(f"Unknown balance method {method!r}") from exc

        snapshot = self.store.read_snapshot(tenant_id, fixture_id)
        fixture = snapshot.fixture
        require_state(fixture.state, BALANCEABLE, "balance teams")
        if expected_version is not None and expected_version != fixture.version:
            raise ConcurrencyConflictError(
                f"Fixture {fixture_id} changed (version {fixture.version}, expected "
                f"{expected_version}); refresh and try again"
            )
        commit_version = fixture.version
        player_ids = confirmed_ids(snapshot.pool)
        self.check_pool_size(fixture, len(player_ids))
        players = [self.provider.get_attributes(player_id) for player_id in player_ids]

        job = self.store.create_job(tenant_id=tenant_id, fixture_id=fixture_id, method=method.value)
        last_reported = [0.0]

        def report(progress: float) -> None:
            if progress - last_reported[0] >= _PROGRESS_STEP or progress >= 1.0:
                last_reported[0] = progress
                self.store.update_job(job.job_id, progress=progress)

        try:
            template = self.templates.get((len(players) + 1) // 2)
            result = balance(
                players,
                method=method,
                template=template,
                weights=weights or self.weights,
                settings=self.settings,
                seed=seed,
                reference=reference,
                progress=report,
            )
            with self.store.transaction(tenant_id, fixture_id) as tx:
                current = tx.fixture()
                require_state(current.state, BALANCEABLE, "balance teams")
                tx.replace_slots(
                    [player.player_id for player in result.team_a],
                    [player.player_id for player in result.team_b],
                )
                fixture = tx.bump_version(
                    commit_version,
                    state=FixtureState.TEAMS_BALANCED.value,
                    balance_method=result.applied_method.value,
                    size_a=len(result.team_a),
                    size_b=len(result.team_b),
                    teams_locked_at=_utcnow(),
                    teams_published_at=None,
                )
        except Exception as exc:
            message = exc.message if isinstance(exc, MatchdayError) else str(exc)
            self.store.update_job(job.job_id, state=JOB_FAILED, message=message)
            raise

        self.store.update_job(job.job_id, state=JOB_COMPLETED, progress=1.0, message=result.message)
        job = self.store.get_job(tenant_id, job.job_id) or job
        logger.info(
            "Fixture %s balanced by %s (%sv%s, version %s)%s",
            fixture_id,
            result.applied_method.value,
            len(result.team_a),
            len(result.team_b),
            fixture.version,
            " [degraded]" if result.degraded else "",
        )
        return BalanceOutcome(fixture=fixture, job=job, result=result)

    def swap_players(
        self,
        tenant_id: str,
        fixture_id: str,
        player_a: str,
        player_b: str,
        *,
        expected_version: int,
    ) -> FixtureView:
        if not player_a or not player_b:
            raise InputValidationError("Both player ids are required for a swap")
        if player_a == player_b:
            raise InputValidationError("Cannot swap a player with themselves")
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, TEAMS_ASSIGNED, "swap players")
            slots = tx.swap_slots(player_a, player_b)
            fixture = tx.bump_version(expected_version)
            pool = tx.pool_entries()
        logger.info("Fixture %s swapped %s <-> %s (version %s)", fixture_id, player_a, player_b, fixture.version)
        team_a, team_b = _split_slots(slots)
        return FixtureView(fixture=fixture, pool=pool, team_a=team_a, team_b=team_b)

    def save_teams(
        self,
        tenant_id: str,
        fixture_id: str,
        *,
        expected_version: int,
        team_a: Optional[Sequence[str]] = None,
        team_b: Optional[Sequence[str]] = None,
    ) -> FixtureRecord:
        """Publish the current split, or a manual one when both team lists are given."""

        manual = team_a is not None or team_b is not None
        if manual:
            if team_a is None or team_b is None:
                raise InputValidationError("Manual assignments need both team lists")
            if not team_a or not team_b:
                raise InputValidationError("Manual assignments need at least one player per team")
            chosen = list(team_a) + list(team_b)
            if len(set(chosen)) != len(chosen):
                raise InputValidationError("A player appears more than once in the manual assignments")

        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            state = require_state(fixture.state, PUBLISHABLE, "publish teams")
            changes: Dict[str, object] = {}
            if manual:
                pool = set(confirmed_ids(tx.pool_entries()))
                if set(chosen) != pool:
                    missing = sorted(pool - set(chosen))
                    extra = sorted(set(chosen) - pool)
                    raise InputValidationError(
                        f"Manual assignments must match the confirmed pool (missing: {missing}, unknown: {extra})"
                    )
                tx.replace_slots(list(team_a), list(team_b))
                changes.update(
                    balance_method=MANUAL_METHOD,
                    size_a=len(team_a),
                    size_b=len(team_b),
                    teams_locked_at=fixture.teams_locked_at or _utcnow(),
                )
            elif state is FixtureState.POOL_LOCKED or not tx.slots():
                raise InvalidStateError("No balanced teams to publish; balance or supply assignments first")
            fixture = tx.bump_version(
                expected_version,
                state=FixtureState.TEAMS_PUBLISHED.value,
                teams_published_at=_utcnow(),
                **changes,
            )
        logger.info("Fixture %s teams published (version %s)", fixture_id, fixture.version)
        send_quietly(self.notifier, tenant_id, teams_published_message(fixture.match_date))
        return fixture

    def unlock_teams(self, tenant_id: str, fixture_id: str, *, expected_version: int) -> FixtureRecord:
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, TEAMS_ASSIGNED, "unlock teams")
            tx.clear_slots()
            fixture = tx.bump_version(
                expected_version,
                state=FixtureState.POOL_LOCKED.value,
                **_CLEARED_TEAM_FIELDS,
            )
        logger.info("Fixture %s teams cleared (version %s)", fixture_id, fixture.version)
        return fixture

    def complete(self, tenant_id: str, fixture_id: str, *, expected_version: int) -> FixtureRecord:
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            require_state(fixture.state, TEAMS_ASSIGNED, "complete the fixture")
            fixture = tx.bump_version(expected_version, state=FixtureState.COMPLETED.value)
        logger.info("Fixture %s completed", fixture_id)
        return fixture

    def cancel(self, tenant_id: str, fixture_id: str, *, expected_version: int) -> FixtureRecord:
        with self.store.transaction(tenant_id, fixture_id) as tx:
            fixture = tx.fixture()
            allowed = set(FixtureState) - TERMINAL_STATES
            require_state(fixture.state, allowed, "cancel the fixture")
            tx.clear_slots()
            fixture = tx.bump_version(expected_version, state=FixtureState.CANCELLED.value)
        logger.info("Fixture %s cancelled", fixture_id)
        return fixture

"""Persistence layer for fixtures, player pools, team slots and balance jobs."""

from __future__ import annotations

import logging
import sqlite3
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence
from uuid import uuid4

from matchday.errors import (
    ConcurrencyConflictError,
    DuplicateEntryError,
    NotFoundError,
    OperationTimeoutError,
)
from matchday.persistence.locks import FixtureLockRegistry


logger = logging.getLogger(__name__)

TEAM_A = "A"
TEAM_B = "B"
UNASSIGNED = "U"

JOB_RUNNING = "running"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

_MUTABLE_FIXTURE_COLUMNS = {
    "state",
    "balance_method",
    "size_a",
    "size_b",
    "teams_locked_at",
    "teams_published_at",
}


@dataclass
class FixtureRecord:
    fixture_id: str
    tenant_id: str
    match_date: date
    team_size: int
    team_a_name: str
    team_b_name: str
    state: str
    version: int
    balance_method: Optional[str]
    size_a: Optional[int]
    size_b: Optional[int]
    teams_locked_at: Optional[datetime]
    teams_published_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


@dataclass
class PoolEntryRecord:
    fixture_id: str
    player_id: str
    response_status: str
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass
class SlotRecord:
    fixture_id: str
    player_id: str
    team: str
    slot_number: Optional[int]


@dataclass
class BalanceJob:
    job_id: str
    tenant_id: str
    fixture_id: str
    method: str
    state: str
    progress: float
    message: Optional[str]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]


@dataclass
class FixtureSnapshot:
    fixture: FixtureRecord
    pool: List[PoolEntryRecord]
    slots: List[SlotRecord]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


def _row_to_fixture(row: sqlite3.Row) -> FixtureRecord:
    return FixtureRecord(
        fixture_id=row["id"],
        tenant_id=row["tenant_id"],
        match_date=date.fromisoformat(row["match_date"]),
        team_size=row["team_size"],
        team_a_name=row["team_a_name"],
        team_b_name=row["team_b_name"],
        state=row["state"],
        version=row["version"],
        balance_method=row["balance_method"],
        size_a=row["size_a"],
        size_b=row["size_b"],
        teams_locked_at=_parse_ts(row["teams_locked_at"]),
        teams_published_at=_parse_ts(row["teams_published_at"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_pool_entry(row: sqlite3.Row) -> PoolEntryRecord:
    return PoolEntryRecord(
        fixture_id=row["fixture_id"],
        player_id=row["player_id"],
        response_status=row["response_status"],
        notes=row["notes"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_slot(row: sqlite3.Row) -> SlotRecord:
    return SlotRecord(
        fixture_id=row["fixture_id"],
        player_id=row["player_id"],
        team=row["team"],
        slot_number=row["slot_number"],
    )


def _row_to_job(row: sqlite3.Row) -> BalanceJob:
    return BalanceJob(
        job_id=row["id"],
        tenant_id=row["tenant_id"],
        fixture_id=row["fixture_id"],
        method=row["method"],
        state=row["state"],
        progress=row["progress"],
        message=row["message"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
        completed_at=_parse_ts(row["completed_at"]),
    )


class FixtureTransaction:
    """Mutations on one fixture inside a single locked sqlite transaction."""

    def __init__(self, conn: sqlite3.Connection, tenant_id: str, fixture_id: str):
        self._conn = conn
        self.tenant_id = tenant_id
        self.fixture_id = fixture_id

    def fixture(self) -> FixtureRecord:
        row = self._conn.execute(
            "SELECT * FROM fixtures WHERE id = ? AND tenant_id = ?",
            (self.fixture_id, self.tenant_id),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Fixture {self.fixture_id} not found")
        return _row_to_fixture(row)

    def bump_version(self, expected_version: Optional[int], **changes) -> FixtureRecord:
        """Apply ``changes`` and increment the version if it still equals ``expected_version``.

        ``None`` means "whatever the row holds now"; the per-fixture lock
        already excludes concurrent writers inside this transaction.
        """

        unknown = set(changes) - _MUTABLE_FIXTURE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update fixture columns: {', '.join(sorted(unknown))}")
        if expected_version is None:
            expected_version = self.fixture().version

        assignments = ["version = version + 1", "updated_at = ?"]
        params: list = [_now()]
        for column, value in changes.items():
            assignments.append(f"{column} = ?")
            params.append(value.isoformat() if isinstance(value, datetime) else value)
        params.extend([self.fixture_id, self.tenant_id, expected_version])

        cursor = self._conn.execute(
            f"UPDATE fixtures SET {', '.join(assignments)} WHERE id = ? AND tenant_id = ? AND version = ?",
            tuple(params),
        )
        if cursor.rowcount == 0:
            current = self.fixture()
            raise ConcurrencyConflictError(
                f"Fixture {self.fixture_id} changed (version {current.version}, expected "
                f"{expected_version}); refresh and try again"
            )
        return self.fixture()

    def pool_entries(self) -> List[PoolEntryRecord]:
        rows = self._conn.execute(
            "SELECT * FROM pool_entries WHERE fixture_id = ? AND tenant_id = ? ORDER BY created_at, player_id",
            (self.fixture_id, self.tenant_id),
        ).fetchall()
        return [_row_to_pool_entry(row) for row in rows]

    def pool_entry(self, player_id: str) -> Optional[PoolEntryRecord]:
        row = self._conn.execute(
            "SELECT * FROM pool_entries WHERE fixture_id = ? AND tenant_id = ? AND player_id = ?",
            (self.fixture_id, self.tenant_id, player_id),
        ).fetchone()
        return _row_to_pool_entry(row) if row else None

    def insert_pool_entry(self, player_id: str, response_status: str, notes: Optional[str] = None) -> PoolEntryRecord:
        now = _now()
        try:
            self._conn.execute(
                """
                INSERT INTO pool_entries (
                    fixture_id, tenant_id, player_id, response_status, notes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (self.fixture_id, self.tenant_id, player_id, response_status, notes, now, now),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateEntryError(f"Player {player_id} is already in the pool") from exc
        entry = self.pool_entry(player_id)
        if entry is None:  # pragma: no cover
            raise NotFoundError(f"Pool entry for {player_id} missing after insert")
        return entry

    def update_pool_entry(
        self,
        player_id: str,
        *,
        response_status: str,
        notes: Optional[str] = None,
    ) -> PoolEntryRecord:
        cursor = self._conn.execute(
            """
            UPDATE pool_entries
            SET response_status = ?, notes = COALESCE(?, notes), updated_at = ?
            WHERE fixture_id = ? AND tenant_id = ? AND player_id = ?
            """,
            (response_status, notes, _now(), self.fixture_id, self.tenant_id, player_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Player {player_id} is not in the pool")
        entry = self.pool_entry(player_id)
        if entry is None:  # pragma: no cover
            raise NotFoundError(f"Player {player_id} is not in the pool")
        return entry

    def delete_pool_entry(self, player_id: str) -> None:
        cursor = self._conn.execute(
            "DELETE FROM pool_entries WHERE fixture_id = ? AND tenant_id = ? AND player_id = ?",
            (self.fixture_id, self.tenant_id, player_id),
        )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Player {player_id} is not in the pool")

    def slots(self) -> List[SlotRecord]:
        rows = self._conn.execute(
            """
            SELECT * FROM slot_assignments
            WHERE fixture_id = ? AND tenant_id = ?
            ORDER BY team, slot_number
            """,
            (self.fixture_id, self.tenant_id),
        ).fetchall()
        return [_row_to_slot(row) for row in rows]

    def clear_slots(self) -> int:
        cursor = self._conn.execute(
            "DELETE FROM slot_assignments WHERE fixture_id = ? AND tenant_id = ?",
            (self.fixture_id, self.tenant_id),
        )
        return cursor.rowcount

    def replace_slots(self, team_a: Sequence[str], team_b: Sequence[str]) -> List[SlotRecord]:
        """Delete every slot and insert dense 1..n numbering per team in the given order."""

        self.clear_slots()
        rows = [
            (self.fixture_id, self.tenant_id, player_id, team, index)
            for team, players in ((TEAM_A, team_a), (TEAM_B, team_b))
            for index, player_id in enumerate(players, start=1)
        ]
        try:
            self._conn.executemany(
                """
                INSERT INTO slot_assignments (fixture_id, tenant_id, player_id, team, slot_number)
                VALUES (?, ?, ?, ?, ?)
                """,
                rows,
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateEntryError(f"A player appears more than once in the team split: {exc}") from exc
        return self.slots()

    def _slot_for(self, player_id: str) -> SlotRecord:
        row = self._conn.execute(
            "SELECT * FROM slot_assignments WHERE fixture_id = ? AND tenant_id = ? AND player_id = ?",
            (self.fixture_id, self.tenant_id, player_id),
        ).fetchone()
        if row is None or row["slot_number"] is None:
            raise NotFoundError(f"Player {player_id} has no team slot")
        return _row_to_slot(row)

    def _move(self, player_id: str, team: str, slot_number: Optional[int]) -> None:
        self._conn.execute(
            """
            UPDATE slot_assignments SET team = ?, slot_number = ?
            WHERE fixture_id = ? AND tenant_id = ? AND player_id = ?
            """,
            (team, slot_number, self.fixture_id, self.tenant_id, player_id),
        )

    def swap_slots(self, player_a: str, player_b: str) -> List[SlotRecord]:
        """Exchange two players' slots through the unassigned holding team."""

        first = self._slot_for(player_a)
        second = self._slot_for(player_b)
        self._move(player_a, UNASSIGNED, None)
        self._move(player_b, first.team, first.slot_number)
        self._move(player_a, second.team, second.slot_number)
        return self.slots()


class FixtureStore:
    """SQLite-backed store for fixtures and everything hanging off them."""

    def __init__(
        self,
        db_path: Path | str,
        *,
        timeout: float = 30.0,
        locks: Optional[FixtureLockRegistry] = None,
        allow_fallback: bool = True,
    ):
        self._use_uri = isinstance(db_path, str) and db_path.startswith("file:")
        self.db_path: Path | str = db_path if self._use_uri else Path(db_path)
        self.timeout = timeout
        self.locks = locks or FixtureLockRegistry()
        self.allow_fallback = allow_fallback
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            try:
                conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
            except sqlite3.OperationalError:
                if not self.allow_fallback:
                    raise
                fallback_dir = Path(tempfile.gettempdir()) / "matchday-runtime"
                fallback_dir.mkdir(parents=True, exist_ok=True)
                fallback = fallback_dir / "matchday.sqlite"
                logger.warning("Cannot open %s; falling back to %s", self.db_path, fallback)
                conn = sqlite3.connect(fallback, timeout=self.timeout, isolation_level=None)
                self.db_path = fallback
                self._create_schema(conn)
        else:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None, uri=self._use_uri)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._connect()
        try:
            self._create_schema(conn)
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS fixtures (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                match_date TEXT NOT NULL,
                team_size INTEGER NOT NULL,
                team_a_name TEXT NOT NULL,
                team_b_name TEXT NOT NULL,
                state TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 0,
                balance_method TEXT,
                size_a INTEGER,
                size_b INTEGER,
                teams_locked_at TEXT,
                teams_published_at TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS pool_entries (
                fixture_id TEXT NOT NULL REFERENCES fixtures(id) ON DELETE CASCADE,
                tenant_id TEXT NOT NULL,
                player_id TEXT NOT NULL,
                response_status TEXT NOT NULL,
                notes TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (fixture_id, player_id)
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS slot_assignments (
                fixture_id TEXT NOT NULL REFERENCES fixtures(id) ON DELETE CASCADE,
                tenant_id TEXT NOT NULL,
                player_id TEXT NOT NULL,
                team TEXT NOT NULL CHECK (team IN ('A', 'B', 'U')),
                slot_number INTEGER CHECK (slot_number IS NULL OR slot_number >= 1),
                PRIMARY KEY (fixture_id, player_id)
            )
            """
        )
        conn.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS ux_slot_assignments_slot
            ON slot_assignments (fixture_id, team, slot_number)
            WHERE slot_number IS NOT NULL
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS balance_jobs (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                fixture_id TEXT NOT NULL,
                method TEXT NOT NULL,
                state TEXT NOT NULL,
                progress REAL NOT NULL DEFAULT 0,
                message TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                completed_at TEXT
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS ix_fixtures_tenant ON fixtures (tenant_id, match_date)")

    @contextmanager
    def transaction(self, tenant_id: str, fixture_id: str) -> Iterator[FixtureTransaction]:
        """Hold the fixture lock and an IMMEDIATE sqlite transaction for the block.

        The block commits on normal exit and rolls back on any exception.
        """

        with self.locks.hold(tenant_id, fixture_id, self.timeout):
            conn = self._connect()
            try:
                try:
                    conn.execute("BEGIN IMMEDIATE")
                except sqlite3.OperationalError as exc:
                    if _is_lock_error(exc):
                        raise OperationTimeoutError(
                            f"Database busy; could not start a transaction for fixture {fixture_id}"
                        ) from exc
                    raise
                try:
                    yield FixtureTransaction(conn, tenant_id, fixture_id)
                except BaseException:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
                try:
                    conn.execute("COMMIT")
                except sqlite3.OperationalError as exc:
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    if _is_lock_error(exc):
                        raise OperationTimeoutError(f"Database busy; commit for fixture {fixture_id} timed out") from exc
                    raise
            finally:
                conn.close()

    def create_fixture(
        self,
        *,
        tenant_id: str,
        match_date: date,
        team_size: int,
        team_a_name: str = "Orange",
        team_b_name: str = "Green",
        state: str = "Draft",
        fixture_id: Optional[str] = None,
    ) -> FixtureRecord:
        fixture_id = fixture_id or uuid4().hex
        now = _now()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO fixtures (
                    id, tenant_id, match_date, team_size, team_a_name, team_b_name,
                    state, version, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (fixture_id, tenant_id, match_date.isoformat(), team_size, team_a_name, team_b_name, state, now, now),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateEntryError(f"Fixture {fixture_id} already exists") from exc
        finally:
            conn.close()
        fixture = self.get_fixture(tenant_id, fixture_id)
        if fixture is None:  # pragma: no cover
            raise NotFoundError(f"Fixture {fixture_id} not found after insert")
        return fixture

    def get_fixture(self, tenant_id: str, fixture_id: str) -> Optional[FixtureRecord]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM fixtures WHERE id = ? AND tenant_id = ?",
                (fixture_id, tenant_id),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_fixture(row) if row else None

    def list_fixtures(
        self,
        tenant_id: str,
        *,
        state: Optional[str] = None,
        limit: int = 50,
    ) -> List[FixtureRecord]:
        query = "SELECT * FROM fixtures WHERE tenant_id = ?"
        params: list[str | int] = [tenant_id]
        if state:
            query += " AND state = ?"
            params.append(state)
        query += " ORDER BY match_date DESC, created_at DESC LIMIT ?"
        params.append(limit)
        conn = self._connect()
        try:
            rows = conn.execute(query, tuple(params)).fetchall()
        finally:
            conn.close()
        return [_row_to_fixture(row) for row in rows]

    def read_snapshot(self, tenant_id: str, fixture_id: str) -> FixtureSnapshot:
        """Read fixture, pool and slots from one consistent sqlite snapshot."""

        conn = self._connect()
        try:
            conn.execute("BEGIN")
            tx = FixtureTransaction(conn, tenant_id, fixture_id)
            snapshot = FixtureSnapshot(fixture=tx.fixture(), pool=tx.pool_entries(), slots=tx.slots())
            conn.execute("COMMIT")
            return snapshot
        finally:
            conn.close()

    def create_job(self, *, tenant_id: str, fixture_id: str, method: str, job_id: Optional[str] = None) -> BalanceJob:
        job_id = job_id or uuid4().hex
        now = _now()
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO balance_jobs (
                    id, tenant_id, fixture_id, method, state, progress, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, ?, ?)
                """,
                (job_id, tenant_id, fixture_id, method, JOB_RUNNING, now, now),
            )
        finally:
            conn.close()
        job = self.get_job(tenant_id, job_id)
        if job is None:  # pragma: no cover
            raise NotFoundError(f"Balance job {job_id} not found after insert")
        return job

    def update_job(
        self,
        job_id: str,
        *,
        state: Optional[str] = None,
        progress: Optional[float] = None,
        message: Optional[str] = None,
    ) -> None:
        now = _now()
        completed_at = now if state in {JOB_COMPLETED, JOB_FAILED} else None
        if progress is not None:
            progress = min(1.0, max(0.0, progress))
        conn = self._connect()
        try:
            cursor = conn.execute(
                """
                UPDATE balance_jobs
                SET state = COALESCE(?, state),
                    progress = COALESCE(?, progress),
                    message = COALESCE(?, message),
                    updated_at = ?,
                    completed_at = COALESCE(?, completed_at)
                WHERE id = ?
                """,
                (state, progress, message, now, completed_at, job_id),
            )
        finally:
            conn.close()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Balance job {job_id} not found")

    def get_job(self, tenant_id: str, job_id: str) -> Optional[BalanceJob]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM balance_jobs WHERE id = ? AND tenant_id = ?",
                (job_id, tenant_id),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_job(row) if row else None


__all__ = [
    "BalanceJob",
    "FixtureLockRegistry",
    "FixtureRecord",
    "FixtureSnapshot",
    "FixtureStore",
    "FixtureTransaction",
    "PoolEntryRecord",
    "SlotRecord",
    "TEAM_A",
    "TEAM_B",
    "UNASSIGNED",
    "JOB_RUNNING",
    "JOB_COMPLETED",
    "JOB_FAILED",
]

"""SQLite job store - durable job records with atomic conditional updates.

Architecture:
    ::

        insert_if_absent(job)
            INSERT ... ON CONFLICT(idempotency_key) DO NOTHING
            rowcount decides created vs existing, then SELECT by key

        atomic_transition(id, expected, target, fields)
            UPDATE automation_jobs SET status = target, ...
             WHERE id = ? AND status IN (expected...)
            rowcount == 1  -> this caller won, updated Job returned
            rowcount == 0  -> lost (missing job or status moved on), None

    The UNIQUE constraint on ``idempotency_key`` and the conditional UPDATE
    are the only synchronization points; there is no read-modify-write.

Thread-safety:
    One ``sqlite3`` connection opened with ``check_same_thread=False`` and a
    ``threading.Lock`` around every statement. File databases use WAL so
    API readers do not block the worker.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from adops.jobs.models import (
    Job,
    JobFilter,
    JobPage,
    JobStatus,
    PageRequest,
    validate_job_transition,
)
from adops.observability.logging import get_logger

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Return timezone-aware UTC datetime."""
    return datetime.now(UTC)


JOBS_SCHEMA = """
CREATE TABLE IF NOT EXISTS automation_jobs (
    id               TEXT PRIMARY KEY,
    type             TEXT NOT NULL,
    idempotency_key  TEXT NOT NULL UNIQUE,
    status           TEXT NOT NULL,
    payload          TEXT,
    result           TEXT,
    attempts         INTEGER NOT NULL DEFAULT 0,
    max_attempts     INTEGER NOT NULL DEFAULT 5,
    last_error       TEXT,
    priority         INTEGER NOT NULL DEFAULT 1,
    owner_ref        TEXT,
    scope_ref        TEXT,
    created_by       TEXT,
    queued_at        TEXT NOT NULL,
    started_at       TEXT,
    finished_at      TEXT,
    updated_at       TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_automation_jobs_owner_status
    ON automation_jobs (owner_ref, status, queued_at);
CREATE INDEX IF NOT EXISTS idx_automation_jobs_type
    ON automation_jobs (type, queued_at);
"""

_COLUMNS = (
    "id, type, idempotency_key, status, payload, result, attempts, max_attempts, "
    "last_error, priority, owner_ref, scope_ref, created_by, "
    "queued_at, started_at, finished_at, updated_at"
)

# Columns atomic_transition may write besides status/updated_at/attempts
_TRANSITION_FIELDS = frozenset({"result", "last_error", "started_at", "finished_at"})


def open_connection(db_path: str) -> sqlite3.Connection:
    """Open a shared connection for the store (``:memory:`` allowed)."""
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    if db_path != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
    return conn


@runtime_checkable
class JobStore(Protocol):
    """Persistence seam used by the orchestrator and the worker."""

    def find_by_id(self, job_id: str) -> Job | None: ...

    def find_by_idempotency_key(self, key: str) -> Job | None: ...

    def insert_if_absent(self, job: Job) -> tuple[Job, bool]: ...

    def atomic_transition(
        self,
        job_id: str,
        expected: JobStatus | Iterable[JobStatus],
        target: JobStatus,
        fields: dict[str, Any] | None = None,
        *,
        increment_attempts: bool = False,
    ) -> Job | None: ...

    def list(self, job_filter: JobFilter | None = None, page: PageRequest | None = None) -> JobPage: ...


class SqliteJobStore:
    """Job store backed by a single SQLite connection.

    Example:
        >>> store = SqliteJobStore(db_path=":memory:")
        >>> job, created = store.insert_if_absent(job)
        >>> store.atomic_transition(job.id, JobStatus.QUEUED, JobStatus.RUNNING,
        ...                         {"started_at": utcnow()}, increment_attempts=True)
    """

    def __init__(self, db_path: str | None = None, conn: sqlite3.Connection | None = None):
        if conn is not None:
            self._conn = conn
            self._owns_conn = False
        elif db_path:
            self._conn = open_connection(db_path)
            self._owns_conn = True
        else:
            raise ValueError("Either db_path or conn must be provided")
        self._conn.row_factory = sqlite3.Row

        # SQLite does not support concurrent writers on one connection
        self._lock = threading.Lock()
        with self._lock:
            self._conn.executescript(JOBS_SCHEMA)
            self._conn.commit()

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    @property
    def lock(self) -> threading.Lock:
        """The lock guarding the shared connection."""
        return self._lock

    def close(self) -> None:
        if self._owns_conn:
            self._conn.close()

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def find_by_id(self, job_id: str) -> Job | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM automation_jobs WHERE id = ?",
                (job_id,),
            ).fetchone()
        return _row_to_job(row) if row else None

    def find_by_idempotency_key(self, key: str) -> Job | None:
        with self._lock:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM automation_jobs WHERE idempotency_key = ?",
                (key,),
            ).fetchone()
        return _row_to_job(row) if row else None

    def list(self, job_filter: JobFilter | None = None, page: PageRequest | None = None) -> JobPage:
        """Filtered page of jobs, newest first, with the unpaged total."""
        job_filter = job_filter or JobFilter()
        page = page or PageRequest()

        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("owner_ref", job_filter.owner_ref),
            ("scope_ref", job_filter.scope_ref),
            ("status", job_filter.status.value if job_filter.status else None),
            ("type", job_filter.type),
        ):
            if value is not None:
                clauses.append(f"{column} = ?")
                params.append(value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._lock:
            total = self._conn.execute(
                f"SELECT COUNT(*) FROM automation_jobs {where}",
                params,
            ).fetchone()[0]
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM automation_jobs {where} "
                "ORDER BY queued_at DESC, rowid DESC LIMIT ? OFFSET ?",
                [*params, page.page_size, page.offset],
            ).fetchall()

        return JobPage(
            items=[_row_to_job(row) for row in rows],
            total=total,
            page=page.page,
            page_size=page.page_size,
        )

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def insert_if_absent(self, job: Job) -> tuple[Job, bool]:
        """Insert *job* unless its idempotency key exists.

        Returns:
            ``(stored_job, created)``; ``stored_job`` is the existing row when
            ``created`` is False.
        """
        now = utcnow()
        queued_at = job.queued_at or now
        with self._lock:
            cursor = self._conn.execute(
                f"INSERT INTO automation_jobs ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(idempotency_key) DO NOTHING",
                (
                    job.id,
                    job.type,
                    job.idempotency_key,
                    job.status.value,
                    _dump(job.payload),
                    _dump(job.result),
                    job.attempts,
                    job.max_attempts,
                    job.last_error,
                    job.priority,
                    job.owner_ref,
                    job.scope_ref,
                    job.created_by,
                    _ts(queued_at),
                    _ts(job.started_at),
                    _ts(job.finished_at),
                    _ts(now),
                ),
            )
            created = cursor.rowcount == 1
            self._conn.commit()
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM automation_jobs WHERE idempotency_key = ?",
                (job.idempotency_key,),
            ).fetchone()

        stored = _row_to_job(row)
        if created:
            logger.debug("job_inserted", job_id=stored.id, job_type=stored.type)
        return stored, created

    def atomic_transition(
        self,
        job_id: str,
        expected: JobStatus | Iterable[JobStatus],
        target: JobStatus,
        fields: dict[str, Any] | None = None,
        *,
        increment_attempts: bool = False,
    ) -> Job | None:
        """Move *job_id* to *target* only if its status is in *expected*.

        Args:
            expected: Allowed current status(es)
            target: New status
            fields: Extra columns to write (``result``, ``last_error``,
                ``started_at``, ``finished_at``); None clears a column.
                ``started_at`` is only written when unset.
            increment_attempts: Add 1 to ``attempts`` in the same statement

        Returns:
            The updated job, or None if the job is missing or was not in an
            expected status.

        Raises:
            InvalidTransitionError: If some ``expected -> target`` edge is not
                in the state machine (a programming error, not a race).
            ValueError: For unknown field names.
        """
        expected_set = {expected} if isinstance(expected, JobStatus) else set(expected)
        if not expected_set:
            raise ValueError("expected must name at least one status")
        for current in expected_set:
            validate_job_transition(current, target)

        fields = dict(fields or {})
        unknown = set(fields) - _TRANSITION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported transition fields: {sorted(unknown)}")

        assignments = ["status = ?", "updated_at = ?"]
        params: list[Any] = [target.value, _ts(utcnow())]
        for name, value in fields.items():
            if name == "started_at":
                assignments.append("started_at = COALESCE(started_at, ?)")
                params.append(_ts(value))
            elif name == "result":
                assignments.append("result = ?")
                params.append(_dump(value))
            elif name == "finished_at":
                assignments.append("finished_at = ?")
                params.append(_ts(value))
            else:
                assignments.append(f"{name} = ?")
                params.append(value)
        if increment_attempts:
            assignments.append("attempts = attempts + 1")

        statuses = sorted(status.value for status in expected_set)
        placeholders = ", ".join("?" for _ in statuses)
        sql = (
            f"UPDATE automation_jobs SET {', '.join(assignments)} "
            f"WHERE id = ? AND status IN ({placeholders})"
        )

        with self._lock:
            cursor = self._conn.execute(sql, [*params, job_id, *statuses])
            won = cursor.rowcount == 1
            self._conn.commit()
            if not won:
                return None
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM automation_jobs WHERE id = ?",
                (job_id,),
            ).fetchone()

        return _row_to_job(row)


# --------------------------------------------------------------------------- #
# Row mapping
# --------------------------------------------------------------------------- #


def _dump(value: Any) -> str | None:
    return None if value is None else json.dumps(value, default=str)


def _load(raw: str | None) -> Any:
    return None if raw is None else json.loads(raw)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_ts(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


def _row_to_job(row: sqlite3.Row) -> Job:
    return Job(
        id=row["id"],
        type=row["type"],
        idempotency_key=row["idempotency_key"],
        status=JobStatus(row["status"]),
        payload=_load(row["payload"]),
        result=_load(row["result"]),
        attempts=row["attempts"],
        max_attempts=row["max_attempts"],
        last_error=row["last_error"],
        priority=row["priority"],
        owner_ref=row["owner_ref"],
        scope_ref=row["scope_ref"],
        created_by=row["created_by"],
        queued_at=_parse_ts(row["queued_at"]),
        started_at=_parse_ts(row["started_at"]),
        finished_at=_parse_ts(row["finished_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )

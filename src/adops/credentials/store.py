"""Credential stores: where the pool loads its tokens from at startup.

Two implementations of the same ``load_active_credentials()`` seam:

- ``SqliteCredentialStore``: a ``credentials`` table in the job database,
  managed with ``adops credentials add``.
- ``StaticCredentialStore``: a fixed list, typically ``ADOPS_API_TOKENS``.

Both return credentials in load order; the pool assigns priority by
position (first loaded = 0).
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from typing import Protocol, runtime_checkable

from adops.credentials.models import Credential, CredentialStatus
from adops.observability.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class CredentialStore(Protocol):
    """Source of credentials for the resource pool."""

    def load_active_credentials(self) -> list[Credential]: ...


class StaticCredentialStore:
    """In-memory list of secrets (from settings or tests)."""

    def __init__(self, secrets: list[str], label: str | None = "static"):
        self._secrets = list(secrets)
        self._label = label

    def load_active_credentials(self) -> list[Credential]:
        return [
            Credential(id=f"static-{index}", secret=secret, priority=index, label=self._label)
            for index, secret in enumerate(self._secrets)
        ]


CREDENTIALS_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    id          TEXT PRIMARY KEY,
    secret      TEXT NOT NULL UNIQUE,
    label       TEXT,
    status      TEXT NOT NULL DEFAULT 'active',
    created_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
)
"""


class SqliteCredentialStore:
    """Credentials persisted in SQLite.

    Health state (failure counts, cool-down windows) lives only in the pool;
    the table records which secrets exist and whether an operator disabled
    them.
    """

    def __init__(self, conn: sqlite3.Connection, lock: threading.Lock | None = None):
        self._conn = conn
        self._lock = lock or threading.Lock()
        with self._lock:
            self._conn.execute(CREDENTIALS_SCHEMA)
            self._conn.commit()

    def load_active_credentials(self) -> list[Credential]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, secret, label FROM credentials "
                "WHERE status != ? ORDER BY created_at ASC, rowid ASC",
                (CredentialStatus.DISABLED.value,),
            ).fetchall()
        return [
            Credential(id=row[0], secret=row[1], label=row[2], priority=index)
            for index, row in enumerate(rows)
        ]

    def add(self, secret: str, label: str | None = None, credential_id: str | None = None) -> Credential:
        """Insert a credential, or return the existing one for the same secret."""
        new_id = credential_id or uuid.uuid4().hex
        with self._lock:
            self._conn.execute(
                "INSERT INTO credentials (id, secret, label) VALUES (?, ?, ?) "
                "ON CONFLICT(secret) DO NOTHING",
                (new_id, secret, label),
            )
            self._conn.commit()
            row = self._conn.execute(
                "SELECT id, secret, label FROM credentials WHERE secret = ?",
                (secret,),
            ).fetchone()
        logger.info("credential_added", credential_id=row[0], label=row[2])
        return Credential(id=row[0], secret=row[1], label=row[2])

    def set_status(self, credential_id: str, status: CredentialStatus) -> bool:
        """Persist an operator status change. Returns False for unknown ids."""
        with self._lock:
            cursor = self._conn.execute(
                "UPDATE credentials SET status = ? WHERE id = ?",
                (status.value, credential_id),
            )
            self._conn.commit()
        return cursor.rowcount > 0

"""SQLite schema and connection helpers for thread and version records."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import closing, contextmanager
from datetime import datetime
from pathlib import Path

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversation_threads (
        id TEXT PRIMARY KEY,
        document_id TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        external_handle TEXT NOT NULL,
        status TEXT NOT NULL CHECK (status IN ('active', 'archived', 'error')),
        created_at TEXT NOT NULL,
        last_activity_at TEXT NOT NULL,
        archived_at TEXT,
        error_reason TEXT
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS uq_conversation_threads_active
    ON conversation_threads (document_id, owner_id)
    WHERE status = 'active'
    """,
    """
    CREATE TABLE IF NOT EXISTS resume_versions (
        id TEXT PRIMARY KEY,
        document_id TEXT NOT NULL,
        version_number INTEGER NOT NULL CHECK (version_number >= 1),
        snapshot TEXT NOT NULL,
        source_session_id TEXT,
        change_summary TEXT,
        created_at TEXT NOT NULL,
        UNIQUE (document_id, version_number)
    )
    """,
)


class SqliteDatabase:
    """Opens one short-lived connection per operation.

    Connections are never shared across threads, so stores built on this class
    can be used from concurrent request handlers. Writers wait up to
    `busy_timeout_seconds` for the database lock.
    """

    def __init__(self, path: str | Path, *, busy_timeout_seconds: float = 30.0) -> None:
        self.path = Path(path)
        self.busy_timeout_seconds = busy_timeout_seconds
        self.ensure_schema()

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction that commits on success."""

        with closing(
            sqlite3.connect(self.path, timeout=self.busy_timeout_seconds)
        ) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    def ensure_schema(self) -> None:
        with self.connect() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)


def to_db_time(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_db_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None

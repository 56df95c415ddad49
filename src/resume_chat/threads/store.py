"""Persistence for conversation thread records."""

from __future__ import annotations

import logging
import sqlite3
import threading
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from resume_chat.storage import SqliteDatabase, from_db_time, to_db_time
from resume_chat.types import AlreadyExists, Created, CreateOutcome, ThreadRecord, ThreadStatus

logger = logging.getLogger(__name__)


class ThreadStore(Protocol):
    """Thread persistence contract.

    Implementations must guarantee at most one `active` record per
    (document_id, owner_id) pair and report a lost creation race as
    `AlreadyExists` rather than raising.
    """

    def find_active(self, document_id: str, owner_id: str) -> ThreadRecord | None:
        """Return the active record for the pair, if any."""

    def get(self, thread_id: str) -> ThreadRecord | None:
        """Return a record by id regardless of status."""

    def try_create(self, record: ThreadRecord) -> CreateOutcome:
        """Insert an active record or return the one that already holds the slot."""

    def touch(self, thread_id: str, at: datetime) -> ThreadRecord | None:
        """Refresh `last_activity_at` of an active record."""

    def mark_error(self, thread_id: str, reason: str, at: datetime) -> bool:
        """Move an active record to `error`; False if it was no longer active."""

    def archive(self, thread_id: str, at: datetime) -> bool:
        """Move an active record to `archived`; False if it was no longer active."""

    def list_threads(self, document_id: str, owner_id: str) -> list[ThreadRecord]:
        """All records for the pair, oldest first."""


class InMemoryThreadStore:
    """Lock-guarded store used for tests and local prototyping."""

    def __init__(self) -> None:
        self._records: dict[str, ThreadRecord] = {}
        self._lock = threading.Lock()

    def find_active(self, document_id: str, owner_id: str) -> ThreadRecord | None:
        with self._lock:
            record = self._find_active_locked(document_id, owner_id)
            return replace(record) if record is not None else None

    def get(self, thread_id: str) -> ThreadRecord | None:
        with self._lock:
            record = self._records.get(thread_id)
            return replace(record) if record is not None else None

    def try_create(self, record: ThreadRecord) -> CreateOutcome:
        with self._lock:
            existing = self._find_active_locked(record.document_id, record.owner_id)
            if existing is not None:
                return AlreadyExists(replace(existing))
            self._records[record.id] = replace(record)
            return Created(replace(record))

    def touch(self, thread_id: str, at: datetime) -> ThreadRecord | None:
        with self._lock:
            record = self._records.get(thread_id)
            if record is None or record.status != ThreadStatus.ACTIVE:
                return None
            record.last_activity_at = at
            return replace(record)

    def mark_error(self, thread_id: str, reason: str, at: datetime) -> bool:
        with self._lock:
            record = self._records.get(thread_id)
            if record is None or record.status != ThreadStatus.ACTIVE:
                return False
            record.status = ThreadStatus.ERROR
            record.error_reason = reason
            record.last_activity_at = at
            return True

    def archive(self, thread_id: str, at: datetime) -> bool:
        with self._lock:
            record = self._records.get(thread_id)
            if record is None or record.status != ThreadStatus.ACTIVE:
                return False
            record.status = ThreadStatus.ARCHIVED
            record.archived_at = at
            return True

    def list_threads(self, document_id: str, owner_id: str) -> list[ThreadRecord]:
        with self._lock:
            records = [
                replace(record)
                for record in self._records.values()
                if record.document_id == document_id and record.owner_id == owner_id
            ]
        return sorted(records, key=lambda record: record.created_at)

    def _find_active_locked(self, document_id: str, owner_id: str) -> ThreadRecord | None:
        for record in self._records.values():
            if (
                record.document_id == document_id
                and record.owner_id == owner_id
                and record.status == ThreadStatus.ACTIVE
            ):
                return record
        return None


class SqliteThreadStore:
    """Thread store backed by the `conversation_threads` table.

    The partial unique index on active rows is what makes concurrent creation
    converge: a losing insert raises IntegrityError and the winner is re-read.
    """

    _max_insert_attempts = 3

    def __init__(self, database: SqliteDatabase) -> None:
        self._db = database

    def find_active(self, document_id: str, owner_id: str) -> ThreadRecord | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversation_threads "
                "WHERE document_id = ? AND owner_id = ? AND status = 'active'",
                (document_id, owner_id),
            ).fetchone()
        return _row_to_record(row) if row else None

    def get(self, thread_id: str) -> ThreadRecord | None:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT * FROM conversation_threads WHERE id = ?", (thread_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    def try_create(self, record: ThreadRecord) -> CreateOutcome:
        for attempt in range(1, self._max_insert_attempts + 1):
            try:
                with self._db.connect() as conn:
                    conn.execute(
                        "INSERT INTO conversation_threads (id, document_id, owner_id, "
                        "external_handle, status, created_at, last_activity_at, "
                        "archived_at, error_reason) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            record.id,
                            record.document_id,
                            record.owner_id,
                            record.external_handle,
                            record.status.value,
                            to_db_time(record.created_at),
                            to_db_time(record.last_activity_at),
                            to_db_time(record.archived_at),
                            record.error_reason,
                        ),
                    )
                return Created(record)
            except sqlite3.IntegrityError:
                existing = self.find_active(record.document_id, record.owner_id)
                if existing is not None:
                    return AlreadyExists(existing)
                # The winner was closed before we could read it; the slot is free again.
                logger.info(
                    f"Active thread slot for document {record.document_id} freed during "
                    f"insert (attempt {attempt}/{self._max_insert_attempts})"
                )
        raise sqlite3.IntegrityError(
            f"could not claim active thread slot for document {record.document_id}"
        )

    def touch(self, thread_id: str, at: datetime) -> ThreadRecord | None:
        with self._db.connect() as conn:
            cursor = conn.execute(
                "UPDATE conversation_threads SET last_activity_at = ? "
                "WHERE id = ? AND status = 'active'",
                (to_db_time(at), thread_id),
            )
            if cursor.rowcount == 0:
                return None
        return self.get(thread_id)

    def mark_error(self, thread_id: str, reason: str, at: datetime) -> bool:
        with self._db.connect() as conn:
            cursor = conn.execute(
                "UPDATE conversation_threads SET status = 'error', error_reason = ?, "
                "last_activity_at = ? WHERE id = ? AND status = 'active'",
                (reason, to_db_time(at), thread_id),
            )
        return cursor.rowcount > 0

    def archive(self, thread_id: str, at: datetime) -> bool:
        with self._db.connect() as conn:
            cursor = conn.execute(
                "UPDATE conversation_threads SET status = 'archived', archived_at = ? "
                "WHERE id = ? AND status = 'active'",
                (to_db_time(at), thread_id),
            )
        return cursor.rowcount > 0

    def list_threads(self, document_id: str, owner_id: str) -> list[ThreadRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM conversation_threads WHERE document_id = ? AND owner_id = ? "
                "ORDER BY created_at ASC, rowid ASC",
                (document_id, owner_id),
            ).fetchall()
        return [_row_to_record(row) for row in rows]


def _row_to_record(row: sqlite3.Row) -> ThreadRecord:
    return ThreadRecord(
        id=row["id"],
        document_id=row["document_id"],
        owner_id=row["owner_id"],
        external_handle=row["external_handle"],
        status=ThreadStatus(row["status"]),
        created_at=from_db_time(row["created_at"]),
        last_activity_at=from_db_time(row["last_activity_at"]),
        archived_at=from_db_time(row["archived_at"]),
        error_reason=row["error_reason"],
    )

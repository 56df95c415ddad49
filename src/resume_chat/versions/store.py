"""Append-only persistence for resume version snapshots."""

from __future__ import annotations

import copy
import json
import sqlite3
import threading
from dataclasses import replace
from typing import Protocol

from resume_chat.errors import VersionConflict
from resume_chat.storage import SqliteDatabase, from_db_time, to_db_time
from resume_chat.types import VersionRecord


class VersionStore(Protocol):
    """Version persistence contract.

    `insert` must raise `VersionConflict` when `(document_id, version_number)`
    is already taken; that uniqueness is what keeps numbering gap-free under
    concurrent writers.
    """

    def max_version_number(self, document_id: str) -> int:
        """Highest stored number for the document, 0 when there is none."""

    def insert(self, record: VersionRecord) -> VersionRecord:
        """Persist a new version or raise VersionConflict."""

    def get(self, version_id: str) -> VersionRecord | None:
        """Return a version by id."""

    def latest(self, document_id: str) -> VersionRecord | None:
        """Return the highest-numbered version."""

    def history(self, document_id: str) -> list[VersionRecord]:
        """All versions, newest first."""

    def by_number(self, document_id: str, version_number: int) -> VersionRecord | None:
        """Return one version by its number."""

    def delete_document(self, document_id: str) -> int:
        """Cascade delete every version of a document; returns rows removed."""


class InMemoryVersionStore:
    """Lock-guarded store used for tests and local prototyping.

    Snapshots are deep-copied on the way in and out so callers can never
    alter a stored version.
    """

    def __init__(self) -> None:
        self._by_document: dict[str, dict[int, VersionRecord]] = {}
        self._lock = threading.Lock()

    def max_version_number(self, document_id: str) -> int:
        with self._lock:
            return max(self._by_document.get(document_id, {}), default=0)

    def insert(self, record: VersionRecord) -> VersionRecord:
        with self._lock:
            versions = self._by_document.setdefault(record.document_id, {})
            if record.version_number in versions:
                raise VersionConflict(record.document_id, record.version_number)
            versions[record.version_number] = _isolated(record)
        return _isolated(record)

    def get(self, version_id: str) -> VersionRecord | None:
        with self._lock:
            for versions in self._by_document.values():
                for record in versions.values():
                    if record.id == version_id:
                        return _isolated(record)
        return None

    def latest(self, document_id: str) -> VersionRecord | None:
        with self._lock:
            versions = self._by_document.get(document_id)
            if not versions:
                return None
            return _isolated(versions[max(versions)])

    def history(self, document_id: str) -> list[VersionRecord]:
        with self._lock:
            versions = self._by_document.get(document_id, {})
            return [_isolated(versions[number]) for number in sorted(versions, reverse=True)]

    def by_number(self, document_id: str, version_number: int) -> VersionRecord | None:
        with self._lock:
            record = self._by_document.get(document_id, {}).get(version_number)
            return _isolated(record) if record is not None else None

    def delete_document(self, document_id: str) -> int:
        with self._lock:
            return len(self._by_document.pop(document_id, {}))


class SqliteVersionStore:
    """Version store backed by the `resume_versions` table."""

    def __init__(self, database: SqliteDatabase) -> None:
        self._db = database

    def max_version_number(self, document_id: str) -> int:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(version_number), 0) AS max_number "
                "FROM resume_versions WHERE document_id = ?",
                (document_id,),
            ).fetchone()
        return int(row["max_number"])

    def insert(self, record: VersionRecord) -> VersionRecord:
        try:
            with self._db.connect() as conn:
                conn.execute(
                    "INSERT INTO resume_versions (id, document_id, version_number, snapshot, "
                    "source_session_id, change_summary, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        record.id,
                        record.document_id,
                        record.version_number,
                        json.dumps(record.snapshot, ensure_ascii=False),
                        record.source_session_id,
                        record.change_summary,
                        to_db_time(record.created_at),
                    ),
                )
        except sqlite3.IntegrityError as exc:
            raise VersionConflict(record.document_id, record.version_number) from exc
        return _isolated(record)

    def get(self, version_id: str) -> VersionRecord | None:
        return self._fetch_one("SELECT * FROM resume_versions WHERE id = ?", (version_id,))

    def latest(self, document_id: str) -> VersionRecord | None:
        return self._fetch_one(
            "SELECT * FROM resume_versions WHERE document_id = ? "
            "ORDER BY version_number DESC LIMIT 1",
            (document_id,),
        )

    def history(self, document_id: str) -> list[VersionRecord]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM resume_versions WHERE document_id = ? "
                "ORDER BY version_number DESC",
                (document_id,),
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    def by_number(self, document_id: str, version_number: int) -> VersionRecord | None:
        return self._fetch_one(
            "SELECT * FROM resume_versions WHERE document_id = ? AND version_number = ?",
            (document_id, version_number),
        )

    def delete_document(self, document_id: str) -> int:
        with self._db.connect() as conn:
            cursor = conn.execute(
                "DELETE FROM resume_versions WHERE document_id = ?", (document_id,)
            )
        return cursor.rowcount

    def _fetch_one(self, query: str, params: tuple[object, ...]) -> VersionRecord | None:
        with self._db.connect() as conn:
            row = conn.execute(query, params).fetchone()
        return _row_to_record(row) if row else None


def _isolated(record: VersionRecord) -> VersionRecord:
    return replace(record, snapshot=copy.deepcopy(record.snapshot))


def _row_to_record(row: sqlite3.Row) -> VersionRecord:
    return VersionRecord(
        id=row["id"],
        document_id=row["document_id"],
        version_number=row["version_number"],
        snapshot=json.loads(row["snapshot"]),
        created_at=from_db_time(row["created_at"]),
        source_session_id=row["source_session_id"],
        change_summary=row["change_summary"],
    )

"""Append-only version log for resume documents."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from resume_chat.config import VersionLogConfig
from resume_chat.errors import VersionConflict
from resume_chat.types import VersionRecord
from resume_chat.versions.store import VersionStore

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class VersionLog:
    """Records a snapshot after every successful edit.

    Numbers are allocated as `max + 1` and the store's unique
    `(document_id, version_number)` constraint rejects a racing writer, which
    then re-reads the maximum and tries again up to `max_attempts` times.
    """

    def __init__(
        self,
        store: VersionStore,
        config: VersionLogConfig | None = None,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.config = config or VersionLogConfig()
        self._clock = clock

    def record_version(
        self,
        document_id: str,
        snapshot: Any,
        source_session_id: str | None = None,
        *,
        change_summary: str | None = None,
    ) -> VersionRecord:
        if not document_id:
            raise ValueError("document_id is required")

        attempt = 0
        while True:
            attempt += 1
            version_number = self.store.max_version_number(document_id) + 1
            record = VersionRecord(
                id=str(uuid.uuid4()),
                document_id=document_id,
                version_number=version_number,
                snapshot=snapshot,
                created_at=self._clock(),
                source_session_id=source_session_id,
                change_summary=change_summary,
            )
            try:
                return self.store.insert(record)
            except VersionConflict:
                logger.warning(
                    f"Version {version_number} of document {document_id} was taken by a "
                    f"concurrent writer (attempt {attempt}/{self.config.max_attempts})"
                )
                if attempt >= self.config.max_attempts:
                    raise

    def get_latest(self, document_id: str) -> VersionRecord | None:
        return self.store.latest(document_id)

    def get_history(self, document_id: str) -> list[VersionRecord]:
        return self.store.history(document_id)

    def get_by_number(self, document_id: str, version_number: int) -> VersionRecord | None:
        return self.store.by_number(document_id, version_number)

    def get_version(self, version_id: str) -> VersionRecord | None:
        return self.store.get(version_id)

    def undo(self, document_id: str, source_session_id: str | None = None) -> VersionRecord:
        """Append a new version carrying the previous version's snapshot.

        History is never rewritten: undoing version N creates version N+1 with
        the content of version N-1.
        """

        current = self.store.latest(document_id)
        if current is None:
            raise LookupError(f"document {document_id} has no versions")
        if current.version_number == 1:
            raise ValueError("cannot undo the original version")
        return self.revert_to(
            document_id,
            current.version_number - 1,
            source_session_id=source_session_id or current.source_session_id,
            change_summary=f"Undo: reverted to version {current.version_number - 1}",
        )

    def revert_to(
        self,
        document_id: str,
        version_number: int,
        *,
        source_session_id: str | None = None,
        change_summary: str | None = None,
    ) -> VersionRecord:
        target = self.store.by_number(document_id, version_number)
        if target is None:
            raise LookupError(f"version {version_number} of document {document_id} not found")
        return self.record_version(
            document_id,
            target.snapshot,
            source_session_id,
            change_summary=change_summary or f"Reverted to version {version_number}",
        )

    def delete_document(self, document_id: str) -> int:
        removed = self.store.delete_document(document_id)
        logger.info(f"Deleted {removed} versions of document {document_id}")
        return removed

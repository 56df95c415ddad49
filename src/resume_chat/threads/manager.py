"""Conversation thread lifecycle: one active thread per (document, owner)."""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from resume_chat.errors import ExternalApiError, ThreadValidationFailed
from resume_chat.threads.assistant import AssistantClient
from resume_chat.threads.store import ThreadStore
from resume_chat.types import AlreadyExists, ThreadRecord, ThreadStatus

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ThreadLifecycleManager:
    """Resolves, validates and recreates assistant conversation threads.

    State machine per record: created directly as `active`; `active ->
    archived` on explicit close or rotation; `active -> error` when the
    provider rejects the handle, after which a fresh `active` record is
    created and the old one stays for audit.

    No lock is taken. Concurrent `ensure_thread` calls for one pair converge
    because the store admits a single active row and reports the loser's
    insert as `AlreadyExists`.
    """

    def __init__(
        self,
        store: ThreadStore,
        assistant: AssistantClient,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.store = store
        self.assistant = assistant
        self._clock = clock

    def ensure_thread(self, document_id: str, owner_id: str) -> ThreadRecord:
        """Return the single valid active thread for the pair, creating it if needed.

        Raises:
            ValueError: if either identifier is empty.
            ExternalApiError: creating a conversation failed (not retried here).
            ThreadValidationFailed: the existing handle was rejected and the
                replacement could not be created.
        """

        _require(document_id, "document_id")
        _require(owner_id, "owner_id")

        existing = self.store.find_active(document_id, owner_id)
        if existing is None:
            return self._create(document_id, owner_id)

        check = self.assistant.validate_conversation(existing.external_handle)
        if check.valid:
            refreshed = self.store.touch(existing.id, self._clock())
            if refreshed is not None:
                return refreshed
            # Closed by a concurrent caller between read and touch.
            return self._create(document_id, owner_id)

        reason = check.reason or "conversation handle rejected"
        logger.warning(
            f"Conversation thread {existing.id} for document {document_id} is invalid "
            f"({reason}); recreating"
        )
        self.store.mark_error(existing.id, reason, self._clock())
        try:
            return self._create(document_id, owner_id)
        except ExternalApiError as exc:
            raise ThreadValidationFailed(existing.id, reason, exc.category) from exc

    def get_active_thread(self, document_id: str, owner_id: str) -> ThreadRecord | None:
        """Read-only lookup: no validation, no creation, no activity refresh."""

        _require(document_id, "document_id")
        _require(owner_id, "owner_id")
        return self.store.find_active(document_id, owner_id)

    def archive_thread(self, thread_id: str) -> bool:
        """Close an active thread; returns False if it was not active."""

        archived = self.store.archive(thread_id, self._clock())
        if archived:
            logger.info(f"Archived conversation thread {thread_id}")
        return archived

    def rotate_thread(self, document_id: str, owner_id: str) -> ThreadRecord:
        """Archive the current active thread as superseded and start a fresh one."""

        _require(document_id, "document_id")
        _require(owner_id, "owner_id")
        current = self.store.find_active(document_id, owner_id)
        if current is not None:
            self.archive_thread(current.id)
        return self._create(document_id, owner_id)

    def thread_history(self, document_id: str, owner_id: str) -> list[ThreadRecord]:
        return self.store.list_threads(document_id, owner_id)

    def _create(self, document_id: str, owner_id: str) -> ThreadRecord:
        handle = self.assistant.create_conversation()
        now = self._clock()
        record = ThreadRecord(
            id=str(uuid.uuid4()),
            document_id=document_id,
            owner_id=owner_id,
            external_handle=handle,
            status=ThreadStatus.ACTIVE,
            created_at=now,
            last_activity_at=now,
        )
        outcome = self.store.try_create(record)
        if isinstance(outcome, AlreadyExists):
            logger.info(
                f"Concurrent creation for document {document_id}; "
                f"converged on thread {outcome.record.id}"
            )
        else:
            logger.info(f"Created conversation thread {record.id} for document {document_id}")
        return outcome.record


def _require(value: str, name: str) -> None:
    if not value or not value.strip():
        raise ValueError(f"{name} is required")

"""One chat turn: resolve thread, apply edits, score, record a version."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from resume_chat.agent.intent import IntentSource
from resume_chat.config import RetryConfig
from resume_chat.editing.engine import apply_modifications
from resume_chat.editing.operations import ModificationOperation, summarize_operation
from resume_chat.errors import ExternalApiError, ThreadValidationFailed
from resume_chat.obs.tracing import TurnTraceStore, timed_stage
from resume_chat.scoring.cache import ScoreCache, Scorer
from resume_chat.threads.manager import ThreadLifecycleManager
from resume_chat.types import CachedScore, StageTiming, ThreadRecord, VersionRecord
from resume_chat.versions.log import VersionLog

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class TurnResult:
    thread: ThreadRecord
    document: Any
    operations: list[ModificationOperation]
    score: CachedScore
    cache_hit: bool
    version: VersionRecord | None
    trace_id: str


class ChatTurnProcessor:
    """Runs the chat editing loop through the four core components.

    Stages run strictly in order (thread, intent, apply, score, record) and
    any error from the mutation engine propagates unchanged; nothing is
    recorded for a turn whose edits fail. Retryable assistant errors during
    thread resolution are retried with exponential backoff per `RetryConfig`.
    """

    def __init__(
        self,
        *,
        thread_manager: ThreadLifecycleManager,
        version_log: VersionLog,
        score_cache: ScoreCache,
        intent_source: IntentSource,
        scorer: Scorer,
        trace_store: TurnTraceStore | None = None,
        retry: RetryConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.thread_manager = thread_manager
        self.version_log = version_log
        self.score_cache = score_cache
        self.intent_source = intent_source
        self.scorer = scorer
        self.trace_store = trace_store or TurnTraceStore()
        self.retry = retry or RetryConfig()
        self._sleep = sleep

    def process(
        self,
        *,
        document_id: str,
        owner_id: str,
        message: str,
        document: Any,
        criteria: Any,
    ) -> TurnResult:
        timings: list[StageTiming] = []
        started = time.perf_counter()

        with timed_stage("thread", timings):
            thread = self._ensure_thread(document_id, owner_id)

        with timed_stage("intent", timings) as stage:
            operations = self.intent_source.parse(message, document=document, thread=thread)
            stage.detail["operations"] = len(operations)

        with timed_stage("apply", timings):
            edited = apply_modifications(document, operations)

        with timed_stage("score", timings) as stage:
            score, cache_hit = self.score_cache.get_or_compute(edited, criteria, self.scorer)
            stage.detail["cache_hit"] = cache_hit

        version: VersionRecord | None = None
        if operations:
            with timed_stage("record", timings) as stage:
                version = self.version_log.record_version(
                    document_id,
                    edited,
                    thread.id,
                    change_summary="; ".join(
                        summarize_operation(operation) for operation in operations
                    ),
                )
                stage.detail["version"] = version.version_number

        trace = self.trace_store.create_record(
            document_id=document_id,
            thread_id=thread.id,
            operation_kinds=[
                operation.kind.value for operation in operations if operation.kind is not None
            ],
            stage_timings=timings,
            cache_hit=cache_hit,
            score=score.score,
            version_number=version.version_number if version is not None else None,
            latency_ms=(time.perf_counter() - started) * 1000.0,
        )
        return TurnResult(
            thread=thread,
            document=edited,
            operations=operations,
            score=score,
            cache_hit=cache_hit,
            version=version,
            trace_id=trace.trace_id,
        )

    def _ensure_thread(self, document_id: str, owner_id: str) -> ThreadRecord:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.thread_manager.ensure_thread(document_id, owner_id)
            except (ExternalApiError, ThreadValidationFailed) as exc:
                if not exc.retryable or attempt >= self.retry.max_attempts:
                    raise
                delay = min(
                    self.retry.max_delay_seconds,
                    self.retry.base_delay_seconds * (2 ** (attempt - 1)),
                )
                logger.warning(
                    f"Assistant {exc.category.value} error resolving thread for document "
                    f"{document_id}; retrying in {delay:.2f}s "
                    f"(attempt {attempt}/{self.retry.max_attempts})"
                )
                self._sleep(delay)

"""Per-turn tracing and aggregate metrics for the chat editing loop."""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone

from resume_chat.types import StageTiming


@dataclass(slots=True)
class TurnTraceRecord:
    trace_id: str
    timestamp_utc: str
    document_id: str
    thread_id: str
    operation_kinds: list[str]
    stage_timings: list[StageTiming]
    cache_hit: bool
    score: float | None
    version_number: int | None
    latency_ms: float


class TurnTraceStore:
    """In-memory trace storage for chat turn observability."""

    def __init__(self, max_records: int = 1000) -> None:
        self._records: dict[str, TurnTraceRecord] = {}
        self._max_records = max_records
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        document_id: str,
        thread_id: str,
        operation_kinds: list[str],
        stage_timings: list[StageTiming],
        cache_hit: bool,
        score: float | None,
        version_number: int | None,
        latency_ms: float,
    ) -> TurnTraceRecord:
        record = TurnTraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            document_id=document_id,
            thread_id=thread_id,
            operation_kinds=operation_kinds,
            stage_timings=stage_timings,
            cache_hit=cache_hit,
            score=score,
            version_number=version_number,
            latency_ms=latency_ms,
        )
        with self._lock:
            self._records[record.trace_id] = record
            while len(self._records) > self._max_records:
                del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> TurnTraceRecord:
        with self._lock:
            record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TurnTraceRecord]:
        with self._lock:
            return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, float | int]:
        """Aggregate turn metrics for dashboard display."""
        with self._lock:
            records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_turns": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "cache_hit_rate": 0.0,
                "versions_recorded": 0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        hits = sum(1 for record in records if record.cache_hit)
        versions = sum(1 for record in records if record.version_number is not None)

        return {
            "total_turns": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "cache_hit_rate": hits / total,
            "versions_recorded": versions,
        }


@contextmanager
def timed_stage(name: str, timings: list[StageTiming]) -> Iterator[StageTiming]:
    """Time one turn stage and append it to `timings` if the body succeeds.

    The yielded `StageTiming` is live, so the body can add `detail` entries.
    """

    timing = StageTiming(name, 0.0)
    started = time.perf_counter()
    try:
        yield timing
    finally:
        timing.latency_ms = (time.perf_counter() - started) * 1000.0
    timings.append(timing)

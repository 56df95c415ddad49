import pytest

from resume_chat.obs.tracing import TurnTraceRecord, TurnTraceStore, timed_stage
from resume_chat.types import StageTiming


def _record(
    store: TurnTraceStore, *, latency_ms: float, cache_hit: bool, version: int | None
) -> TurnTraceRecord:
    return store.create_record(
        document_id="doc-1",
        thread_id="thread-1",
        operation_kinds=["prefix"] if version is not None else [],
        stage_timings=[StageTiming("apply", 0.2)],
        cache_hit=cache_hit,
        score=80.0,
        version_number=version,
        latency_ms=latency_ms,
    )


def test_empty_summary() -> None:
    summary = TurnTraceStore().summary()

    assert summary["total_turns"] == 0
    assert summary["cache_hit_rate"] == 0.0


def test_summary_aggregates_turns() -> None:
    store = TurnTraceStore()
    _record(store, latency_ms=10.0, cache_hit=False, version=1)
    _record(store, latency_ms=30.0, cache_hit=True, version=None)

    summary = store.summary()

    assert summary["total_turns"] == 2
    assert summary["avg_latency_ms"] == 20.0
    assert summary["cache_hit_rate"] == 0.5
    assert summary["versions_recorded"] == 1


def test_store_keeps_most_recent_records() -> None:
    store = TurnTraceStore(max_records=2)
    first = _record(store, latency_ms=1.0, cache_hit=False, version=None)
    _record(store, latency_ms=2.0, cache_hit=False, version=None)
    last = _record(store, latency_ms=3.0, cache_hit=False, version=None)

    assert [record.latency_ms for record in store.list_recent()] == [2.0, 3.0]
    assert store.get(last.trace_id) is last
    with pytest.raises(KeyError, match="Trace not found"):
        store.get(first.trace_id)


def test_timed_stage_records_successful_stages_with_detail() -> None:
    timings: list[StageTiming] = []

    with timed_stage("score", timings) as stage:
        stage.detail["cache_hit"] = True

    assert [timing.name for timing in timings] == ["score"]
    assert timings[0].detail == {"cache_hit": True}
    assert timings[0].latency_ms >= 0.0


def test_timed_stage_skips_failed_stages() -> None:
    timings: list[StageTiming] = []

    with pytest.raises(RuntimeError):
        with timed_stage("apply", timings):
            raise RuntimeError("edit failed")

    assert timings == []

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from resume_chat.config import CacheConfig
from resume_chat.scoring.cache import ScoreCache
from resume_chat.scoring.hashing import cache_key, canonical_json

CRITERIA = {"keywords": ["python", "sql"], "seniority": "senior"}


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _cache(clock: FakeClock, **config: object) -> ScoreCache:
    return ScoreCache(CacheConfig(sweep_interval_seconds=None, **config), clock=clock)


def test_key_is_stable_under_key_order() -> None:
    first = {"summary": "x", "contact": {"email": "a@b.c", "phone": "1"}}
    second = {"contact": {"phone": "1", "email": "a@b.c"}, "summary": "x"}

    assert canonical_json(first) == canonical_json(second)
    assert cache_key(first, CRITERIA) == cache_key(second, dict(reversed(list(CRITERIA.items()))))
    assert cache_key(first, CRITERIA) != cache_key(first, {"keywords": ["go"]})


def test_non_json_content_is_rejected_instead_of_stringified() -> None:
    moment = datetime(2024, 3, 1, tzinfo=timezone.utc)

    with pytest.raises(TypeError):
        canonical_json({"updated": moment})
    with pytest.raises(TypeError):
        cache_key({"updated": moment}, CRITERIA)
    assert canonical_json({"updated": moment.isoformat()})


def test_miss_then_hit_across_equivalent_documents() -> None:
    cache = _cache(FakeClock())
    document = {"summary": "x", "skills": ["python"]}

    assert cache.get(document, CRITERIA) is None
    stored = cache.set(document, CRITERIA, 82.5, {"keywords": 90.0})
    hit = cache.get({"skills": ["python"], "summary": "x"}, CRITERIA)

    assert hit == stored
    assert hit is not None and hit.score == 82.5
    assert cache.stats().hits == 1
    assert cache.stats().misses == 1
    assert cache.stats().hit_rate == 50.0


def test_different_criteria_is_a_miss() -> None:
    cache = _cache(FakeClock())
    document = {"summary": "x"}
    cache.set(document, CRITERIA, 70.0, {})

    assert cache.get(document, {"keywords": ["rust"]}) is None


def test_expired_entry_is_absent_and_removed() -> None:
    clock = FakeClock()
    cache = _cache(clock, ttl_seconds=60)
    cache.set({"a": 1}, CRITERIA, 50.0, {})

    clock.advance(60)
    assert cache.has({"a": 1}, CRITERIA)

    clock.advance(1)
    assert not cache.has({"a": 1}, CRITERIA)
    assert cache.get({"a": 1}, CRITERIA) is None
    assert len(cache) == 0
    assert cache.stats().misses == 1


def test_cleanup_drops_only_expired_entries() -> None:
    clock = FakeClock()
    cache = _cache(clock, ttl_seconds=10)
    cache.set({"a": 1}, CRITERIA, 1.0, {})
    clock.advance(8)
    cache.set({"b": 2}, CRITERIA, 2.0, {})
    clock.advance(5)

    assert cache.cleanup() == 1
    assert not cache.has({"a": 1}, CRITERIA)
    assert cache.has({"b": 2}, CRITERIA)


def test_full_cache_evicts_least_recently_accessed() -> None:
    clock = FakeClock()
    cache = _cache(clock, max_entries=2)
    cache.set({"doc": "a"}, CRITERIA, 1.0, {})
    clock.advance(1)
    cache.set({"doc": "b"}, CRITERIA, 2.0, {})
    clock.advance(1)
    assert cache.get({"doc": "a"}, CRITERIA) is not None

    clock.advance(1)
    cache.set({"doc": "c"}, CRITERIA, 3.0, {})

    assert len(cache) == 2
    assert cache.has({"doc": "a"}, CRITERIA)
    assert not cache.has({"doc": "b"}, CRITERIA)
    assert cache.has({"doc": "c"}, CRITERIA)


def test_overwrite_does_not_evict() -> None:
    cache = _cache(FakeClock(), max_entries=2)
    cache.set({"doc": "a"}, CRITERIA, 1.0, {})
    cache.set({"doc": "b"}, CRITERIA, 2.0, {})

    cache.set({"doc": "a"}, CRITERIA, 5.0, {})

    assert len(cache) == 2
    assert cache.get({"doc": "a"}, CRITERIA).score == 5.0
    assert cache.has({"doc": "b"}, CRITERIA)


def test_get_or_compute_runs_scorer_once() -> None:
    cache = _cache(FakeClock())
    calls: list[object] = []

    def scorer(document: object, criteria: object) -> tuple[float, dict[str, float]]:
        calls.append(document)
        return 77.0, {"keywords": 80.0}

    first, first_hit = cache.get_or_compute({"a": 1}, CRITERIA, scorer)
    second, second_hit = cache.get_or_compute({"a": 1}, CRITERIA, scorer)

    assert (first_hit, second_hit) == (False, True)
    assert first == second
    assert first.subscores == {"keywords": 80.0}
    assert len(calls) == 1


def test_delete_clear_and_introspection() -> None:
    cache = _cache(FakeClock())
    cache.set({"doc": "a"}, CRITERIA, 1.0, {"k": 1.0})
    cache.set({"doc": "b"}, CRITERIA, 2.0, {})
    for _ in range(3):
        cache.get({"doc": "b"}, CRITERIA)

    top = cache.most_accessed(1)
    assert top[0]["score"] == 2.0
    assert top[0]["access_count"] == 3
    assert len(top[0]["content_hash"]) == 8
    assert cache.size_bytes() > 0

    assert cache.delete({"doc": "a"}, CRITERIA)
    assert not cache.delete({"doc": "a"}, CRITERIA)

    cache.clear()
    stats = cache.stats()
    assert (stats.hits, stats.misses, stats.size, stats.hit_rate) == (0, 0, 0, 0.0)


def test_sweeper_removes_expired_entries_in_background() -> None:
    clock = FakeClock()
    cache = ScoreCache(
        CacheConfig(ttl_seconds=5, sweep_interval_seconds=0.01), clock=clock
    )
    cache.set({"a": 1}, CRITERIA, 1.0, {})
    clock.advance(10)

    with cache:
        deadline = time.monotonic() + 5
        while len(cache) and time.monotonic() < deadline:
            time.sleep(0.01)

    assert len(cache) == 0


def test_concurrent_access_keeps_counters_consistent() -> None:
    cache = _cache(FakeClock(), max_entries=16)

    def worker(n: int) -> None:
        document = {"doc": n % 24}
        if cache.get(document, CRITERIA) is None:
            cache.set(document, CRITERIA, float(n), {})

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(worker, range(400)))

    stats = cache.stats()
    assert stats.hits + stats.misses == 400
    assert stats.size <= 16

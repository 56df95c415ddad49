"""Content-addressed cache for compatibility scores."""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from resume_chat.config import CacheConfig
from resume_chat.scoring.hashing import cache_key, canonical_json, content_hash
from resume_chat.types import CachedScore, CacheStats

logger = logging.getLogger(__name__)

Scorer = Callable[[Any, Any], tuple[float, dict[str, float]]]


@dataclass(slots=True)
class _CacheEntry:
    key: str
    value: CachedScore
    stored_at: float
    last_accessed_at: float
    access_count: int = 0


class ScoreCache:
    """Thread-safe TTL + LRU cache keyed by document and criteria content.

    Entries are kept in an OrderedDict in access order, so the first entry is
    always the one with the oldest `last_accessed_at` and is the one evicted
    when the cache is full. Expired entries are dropped lazily on access and
    by `cleanup()`, which the optional background sweeper runs periodically.

    One instance is meant to be constructed at process start and passed to
    request handlers; call `close()` (or use it as a context manager) to stop
    the sweeper.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or CacheConfig()
        self._clock = clock
        self._entries: OrderedDict[str, _CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def get(self, document: Any, criteria: Any) -> CachedScore | None:
        key = cache_key(document, criteria)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if self._expired(entry, now):
                del self._entries[key]
                self._misses += 1
                return None

            entry.access_count += 1
            entry.last_accessed_at = now
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.value

    def set(
        self,
        document: Any,
        criteria: Any,
        score: float,
        subscores: dict[str, float],
    ) -> CachedScore:
        key = cache_key(document, criteria)
        value = CachedScore(
            score=score,
            subscores=dict(subscores),
            content_hash=content_hash({"resume": document, "criteria": criteria}),
            cached_at=datetime.now(timezone.utc),
        )
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.config.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted least recently used score entry {evicted_key[:12]}")
            self._entries[key] = _CacheEntry(
                key=key, value=value, stored_at=now, last_accessed_at=now
            )
        return value

    def get_or_compute(
        self, document: Any, criteria: Any, scorer: Scorer
    ) -> tuple[CachedScore, bool]:
        """Return `(score, hit)`, running `scorer` only on a miss.

        The scorer runs outside the lock, so two concurrent misses for the same
        content may both compute; the scorer is deterministic so either result
        is correct.
        """

        cached = self.get(document, criteria)
        if cached is not None:
            return cached, True
        score, subscores = scorer(document, criteria)
        return self.set(document, criteria, score, subscores), False

    def has(self, document: Any, criteria: Any) -> bool:
        key = cache_key(document, criteria)
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not self._expired(entry, self._clock())

    def delete(self, document: Any, criteria: Any) -> bool:
        key = cache_key(document, criteria)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def cleanup(self) -> int:
        """Remove every expired entry and return how many were dropped."""

        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired score entries")
        return len(expired)

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            hit_rate = round(self._hits / total * 100, 2) if total else 0.0
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                size=len(self._entries),
                hit_rate=hit_rate,
            )

    def most_accessed(self, count: int = 10) -> list[dict[str, Any]]:
        with self._lock:
            entries = sorted(
                self._entries.values(), key=lambda entry: entry.access_count, reverse=True
            )[:count]
            return [
                {
                    "content_hash": entry.value.content_hash[:8],
                    "score": entry.value.score,
                    "access_count": entry.access_count,
                }
                for entry in entries
            ]

    def size_bytes(self) -> int:
        """Approximate memory footprint from the serialized entries."""

        with self._lock:
            return sum(
                len(
                    canonical_json(
                        {
                            "key": entry.key,
                            "score": entry.value.score,
                            "subscores": entry.value.subscores,
                        }
                    ).encode("utf-8")
                )
                for entry in self._entries.values()
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def start(self) -> None:
        """Start the background sweeper if a sweep interval is configured."""

        interval = self.config.sweep_interval_seconds
        if interval is None or self._sweeper is not None:
            return
        self._stop.clear()
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            args=(interval,),
            name="score-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()

    def close(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None

    def __enter__(self) -> "ScoreCache":
        self.start()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.close()

    def _sweep_loop(self, interval: float) -> None:
        while not self._stop.wait(interval):
            self.cleanup()

    def _expired(self, entry: _CacheEntry, now: float) -> bool:
        return now - entry.stored_at > self.config.ttl_seconds

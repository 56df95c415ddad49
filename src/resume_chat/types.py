"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

Document = Any


class ThreadStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    ERROR = "error"


@dataclass(slots=True)
class ThreadRecord:
    """Persisted conversation thread bound to one (document, owner) pair."""

    id: str
    document_id: str
    owner_id: str
    external_handle: str
    status: ThreadStatus
    created_at: datetime
    last_activity_at: datetime
    archived_at: datetime | None = None
    error_reason: str | None = None


@dataclass(frozen=True, slots=True)
class Created:
    """The caller's insert won and `record` is now the active thread."""

    record: ThreadRecord


@dataclass(frozen=True, slots=True)
class AlreadyExists:
    """Another caller created the active thread first; `record` is theirs."""

    record: ThreadRecord


CreateOutcome = Union[Created, AlreadyExists]


@dataclass(slots=True)
class VersionRecord:
    """Immutable snapshot of a document after one successful edit."""

    id: str
    document_id: str
    version_number: int
    snapshot: Document
    created_at: datetime
    source_session_id: str | None = None
    change_summary: str | None = None


@dataclass(frozen=True, slots=True)
class CachedScore:
    score: float
    subscores: dict[str, float]
    content_hash: str
    cached_at: datetime


@dataclass(frozen=True, slots=True)
class CacheStats:
    hits: int
    misses: int
    size: int
    hit_rate: float


@dataclass(slots=True)
class StageTiming:
    """Latency of one stage inside a chat turn."""

    name: str
    latency_ms: float
    detail: dict[str, Any] = field(default_factory=dict)

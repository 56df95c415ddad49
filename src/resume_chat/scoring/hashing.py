"""Canonical content hashing for cache keys."""

from __future__ import annotations

import json
from hashlib import sha256
from typing import Any


def canonical_json(content: Any) -> str:
    """Serialize with sorted keys at every depth so insertion order never matters.

    Only JSON-native values are accepted; anything else raises TypeError, so
    two distinct values can never share the hash of their string forms.
    """

    return json.dumps(
        content,
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    )


def content_hash(content: Any) -> str:
    return sha256(canonical_json(content).encode("utf-8")).hexdigest()


def cache_key(document: Any, criteria: Any) -> str:
    return f"{content_hash(document)}:{content_hash(criteria)}"

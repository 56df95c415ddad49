"""Field path parsing and read-only navigation of resume documents.

Paths use dot-separated map keys and bracketed indices, for example
`experience[0].achievements[2]`. The alias `[latest]` addresses index 0,
since resume sections are stored newest first.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from resume_chat.errors import InvalidOperation

_SEGMENT_PATTERN = re.compile(r"^(?P<key>[^.\[\]]+)?(?P<indices>(?:\[[^\]]*\])*)$")
_INDEX_PATTERN = re.compile(r"\[([^\]]*)\]")
LATEST_ALIAS = "latest"


@dataclass(frozen=True, slots=True)
class PathToken:
    kind: Literal["key", "index"]
    value: str | int

    def __str__(self) -> str:
        return f"[{self.value}]" if self.kind == "index" else str(self.value)


@dataclass(frozen=True, slots=True)
class PathValidation:
    valid: bool
    error: str | None = None
    suggestions: list[str] = field(default_factory=list)


def parse_field_path(path: str) -> list[PathToken]:
    """Split a field path into key and index tokens.

    Raises:
        InvalidOperation: if the path is empty or syntactically malformed.
    """

    if not isinstance(path, str) or not path.strip():
        raise InvalidOperation("field path cannot be empty")

    tokens: list[PathToken] = []
    for part in path.strip().split("."):
        match = _SEGMENT_PATTERN.match(part)
        if not part or match is None:
            raise InvalidOperation(f"invalid path segment '{part}' in '{path}'")
        key = match.group("key")
        indices = _INDEX_PATTERN.findall(match.group("indices"))
        if (key is None and tokens) or (key is not None and not key.strip()):
            raise InvalidOperation(f"invalid path segment '{part}' in '{path}'")
        if key is not None:
            tokens.append(PathToken("key", key.strip()))
        for raw in indices:
            tokens.append(PathToken("index", _parse_index(raw, path)))
    return tokens


def format_field_path(tokens: list[PathToken]) -> str:
    out = ""
    for token in tokens:
        if token.kind == "index":
            out += f"[{token.value}]"
        else:
            out += f".{token.value}" if out else str(token.value)
    return out


def get_field_value(document: Any, path: str) -> Any:
    """Return the value at `path`, or None when any part is missing."""

    try:
        tokens = parse_field_path(path)
    except InvalidOperation:
        return None

    current = document
    for token in tokens:
        if token.kind == "key":
            if not isinstance(current, Mapping) or token.value not in current:
                return None
            current = current[token.value]
        else:
            if not isinstance(current, list) or token.value >= len(current):
                return None
            current = current[token.value]
    return current


def is_array_field(document: Any, path: str) -> bool:
    return isinstance(get_field_value(document, path), list)


def array_length(document: Any, path: str) -> int:
    value = get_field_value(document, path)
    return len(value) if isinstance(value, list) else 0


def validate_field_path(path: str, reference: Any) -> PathValidation:
    """Check `path` against the shape of a reference document.

    Sequences are validated against their first element, so a reference
    resume with one filled-in entry per section is enough. Unknown keys get
    suggestions within edit distance 2 to catch typos like `contact.emial`.
    """

    try:
        tokens = parse_field_path(path)
    except InvalidOperation as exc:
        return PathValidation(valid=False, error=str(exc))

    current = reference
    for token in tokens:
        if token.kind == "key":
            if not isinstance(current, Mapping):
                return PathValidation(
                    valid=False,
                    error=f"cannot access property '{token.value}' on non-object",
                )
            if token.value not in current:
                suggestions = sorted(
                    key
                    for key in current
                    if _levenshtein(str(key), str(token.value)) <= 2
                )
                return PathValidation(
                    valid=False,
                    error=f"field '{token.value}' not found",
                    suggestions=suggestions,
                )
            current = current[token.value]
        else:
            if not isinstance(current, list):
                return PathValidation(
                    valid=False, error="cannot use array index on non-array field"
                )
            current = current[0] if current else None
    return PathValidation(valid=True)


def _parse_index(raw: str, path: str) -> int:
    raw = raw.strip()
    if raw == LATEST_ALIAS:
        return 0
    if not (raw.isascii() and raw.isdigit()):
        raise InvalidOperation(f"invalid array index '{raw}' in '{path}'")
    return int(raw)


def _levenshtein(a: str, b: str) -> int:
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (char_a != char_b),
                )
            )
        previous = current
    return previous[-1]

"""Structured modification operations produced by intent sources."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from resume_chat.errors import InvalidOperation, MissingValue


class OperationKind(str, Enum):
    REPLACE = "replace"
    PREFIX = "prefix"
    SUFFIX = "suffix"
    APPEND = "append"
    INSERT = "insert"
    REMOVE = "remove"


VALUE_REQUIRED = frozenset(
    {
        OperationKind.REPLACE,
        OperationKind.PREFIX,
        OperationKind.SUFFIX,
        OperationKind.APPEND,
        OperationKind.INSERT,
    }
)

_KIND_VALUES = frozenset(kind.value for kind in OperationKind)

_CHANGE_VERBS = {
    OperationKind.REPLACE: "Replaced",
    OperationKind.PREFIX: "Added prefix to",
    OperationKind.SUFFIX: "Added suffix to",
    OperationKind.APPEND: "Appended to",
    OperationKind.INSERT: "Inserted into",
    OperationKind.REMOVE: "Removed",
}


class ModificationOperation(BaseModel):
    """One edit against a resume document.

    Payloads from the chat layer may use the legacy keys `operation`,
    `field_path` and `new_value`. A value is "absent" only when the key was not
    supplied at all; an explicit `None` is a real value for `replace`.
    """

    model_config = ConfigDict(frozen=True)

    kind: OperationKind | None = Field(
        default=None, validation_alias=AliasChoices("kind", "operation")
    )
    path: str | None = Field(
        default=None, validation_alias=AliasChoices("path", "field_path")
    )
    value: Any = Field(default=None, validation_alias=AliasChoices("value", "new_value"))

    @property
    def has_value(self) -> bool:
        return "value" in self.model_fields_set


def coerce_operation(operation: ModificationOperation | Mapping[str, Any]) -> ModificationOperation:
    """Normalize a model or raw payload, mapping schema failures to InvalidOperation."""

    if isinstance(operation, ModificationOperation):
        return operation
    if not isinstance(operation, Mapping):
        raise InvalidOperation(
            f"invalid operation: expected a mapping, got {type(operation).__name__}"
        )

    raw_kind = operation.get("kind", operation.get("operation"))
    if isinstance(raw_kind, OperationKind):
        raw_kind = raw_kind.value
    if raw_kind is not None and (
        not isinstance(raw_kind, str) or raw_kind not in _KIND_VALUES
    ):
        raise InvalidOperation(f"invalid operation kind '{raw_kind}'")
    try:
        return ModificationOperation.model_validate(dict(operation))
    except ValidationError as exc:
        raise InvalidOperation(f"invalid operation: {exc.errors()[0]['msg']}") from exc


def validate_operation(operation: ModificationOperation) -> ModificationOperation:
    """Shape checks that must pass before any tree traversal."""

    if operation.path is None or not operation.path.strip():
        raise InvalidOperation("invalid operation: field path is required")
    if operation.kind is None:
        raise InvalidOperation("invalid operation: kind is required")
    if operation.kind in VALUE_REQUIRED and not operation.has_value:
        raise MissingValue(f"value is required for {operation.kind.value} operations")
    return operation


def summarize_operation(operation: ModificationOperation | Mapping[str, Any]) -> str:
    """Human-readable change summary stored alongside a version snapshot."""

    op = validate_operation(coerce_operation(operation))
    return f"{_CHANGE_VERBS[op.kind]} {op.path}"  # type: ignore[index]

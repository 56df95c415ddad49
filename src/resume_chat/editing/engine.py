"""Pure mutation engine for nested resume documents.

Every operation returns a new tree. Only the spine from the root to the edited
location is rebuilt; untouched branches are shared with the input, which is
never mutated.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from resume_chat.editing.operations import (
    ModificationOperation,
    OperationKind,
    coerce_operation,
    validate_operation,
)
from resume_chat.editing.paths import PathToken, format_field_path, parse_field_path
from resume_chat.errors import IndexOutOfRange, InvalidOperation, PathNotFound, TypeMismatch

Leaf = Callable[[Any, PathToken, str], Any]

_TYPE_NAMES: tuple[tuple[type, str], ...] = (
    (bool, "boolean"),
    (str, "string"),
    (int, "number"),
    (float, "number"),
    (list, "array"),
    (Mapping, "object"),
)


def describe_type(value: Any) -> str:
    if value is None:
        return "null"
    for kind, name in _TYPE_NAMES:
        if isinstance(value, kind):
            return name
    return type(value).__name__


def apply_modification(
    document: Any, operation: ModificationOperation | Mapping[str, Any]
) -> Any:
    """Apply one operation and return the edited copy of `document`.

    Raises:
        InvalidOperation: malformed operation or path (checked before traversal).
        MissingValue: a value-carrying kind was given no value.
        PathNotFound: an intermediate container is missing.
        TypeMismatch: the resolved location has the wrong type for the kind.
        IndexOutOfRange: a sequence index is out of bounds.
    """

    op = validate_operation(coerce_operation(operation))
    tokens = parse_field_path(op.path or "")

    if op.kind == OperationKind.REMOVE:
        if not _exists(document, tokens):
            return document
        return _rewrite(document, tokens, 0, _remove_leaf, create_missing=False)

    if op.kind == OperationKind.INSERT and tokens[-1].kind == "key":
        _reject_keyed_insert(document, tokens)

    value = copy.deepcopy(op.value)
    leaf = _LEAF_FACTORIES[op.kind](value)
    return _rewrite(
        document,
        tokens,
        0,
        leaf,
        create_missing=op.kind == OperationKind.APPEND,
    )


def apply_modifications(
    document: Any, operations: Iterable[ModificationOperation | Mapping[str, Any]]
) -> Any:
    """Apply operations in order; the first failure propagates and nothing is kept."""

    current = document
    for operation in operations:
        current = apply_modification(current, operation)
    return current


def _rewrite(
    node: Any,
    tokens: list[PathToken],
    depth: int,
    leaf: Leaf,
    *,
    create_missing: bool,
) -> Any:
    token = tokens[depth]
    location = format_field_path(tokens[: depth + 1])
    if depth == len(tokens) - 1:
        return leaf(node, token, location)

    child = _descend(node, tokens, depth, location, create_missing=create_missing)
    new_child = _rewrite(child, tokens, depth + 1, leaf, create_missing=create_missing)
    return _with_child(node, token, new_child)


def _descend(
    node: Any,
    tokens: list[PathToken],
    depth: int,
    location: str,
    *,
    create_missing: bool,
) -> Any:
    token = tokens[depth]
    if token.kind == "key":
        if not isinstance(node, Mapping):
            raise TypeMismatch(f"cannot access '{token.value}' on {describe_type(node)}")
        child = node.get(token.value)
        if child is not None:
            return child
        if create_missing:
            return [] if tokens[depth + 1].kind == "index" else {}
        raise PathNotFound(format_field_path(tokens), location)

    if not isinstance(node, list):
        raise TypeMismatch(f"cannot index {describe_type(node)} at '{location}'")
    if token.value >= len(node):
        raise IndexOutOfRange(location, int(token.value), len(node))
    return node[token.value]


def _with_child(node: Any, token: PathToken, child: Any) -> Any:
    if token.kind == "key":
        return {**node, token.value: child}
    index = int(token.value)
    return [*node[:index], child, *node[index + 1 :]]


def _read_terminal(parent: Any, token: PathToken, location: str) -> Any:
    if token.kind == "key":
        if not isinstance(parent, Mapping):
            raise TypeMismatch(f"cannot access '{token.value}' on {describe_type(parent)}")
        return parent.get(token.value)
    if not isinstance(parent, list):
        raise TypeMismatch(f"cannot index {describe_type(parent)} at '{location}'")
    if token.value >= len(parent):
        raise IndexOutOfRange(location, int(token.value), len(parent))
    return parent[token.value]


def _replace_leaf(value: Any) -> Leaf:
    def _leaf(parent: Any, token: PathToken, location: str) -> Any:
        _read_terminal(parent, token, location)
        return _with_child(parent, token, value)

    return _leaf


def _concat_leaf(kind: OperationKind) -> Callable[[Any], Leaf]:
    def _factory(value: Any) -> Leaf:
        def _leaf(parent: Any, token: PathToken, location: str) -> Any:
            current = _read_terminal(parent, token, location)
            if current is not None and not isinstance(current, str):
                raise TypeMismatch(f"cannot {kind.value} {describe_type(current)}")
            if not isinstance(value, str):
                raise TypeMismatch(
                    f"cannot {kind.value} with {describe_type(value)} value"
                )
            if not current:
                return _with_child(parent, token, value)
            joined = value + current if kind == OperationKind.PREFIX else current + value
            return _with_child(parent, token, joined)

        return _leaf

    return _factory


def _append_leaf(value: Any) -> Leaf:
    def _leaf(parent: Any, token: PathToken, location: str) -> Any:
        current = _read_terminal(parent, token, location)
        if current is None:
            return _with_child(parent, token, [value])
        if not isinstance(current, list):
            raise TypeMismatch(f"cannot append to {describe_type(current)}")
        return _with_child(parent, token, [*current, value])

    return _leaf


def _insert_leaf(value: Any) -> Leaf:
    def _leaf(parent: Any, token: PathToken, location: str) -> Any:
        if not isinstance(parent, list):
            raise TypeMismatch(f"cannot insert into {describe_type(parent)}")
        index = int(token.value)
        if index > len(parent):
            raise IndexOutOfRange(location, index, len(parent))
        return [*parent[:index], value, *parent[index:]]

    return _leaf


def _remove_leaf(parent: Any, token: PathToken, location: str) -> Any:
    if token.kind == "key":
        return {key: item for key, item in parent.items() if key != token.value}
    index = int(token.value)
    return [*parent[:index], *parent[index + 1 :]]


_LEAF_FACTORIES: dict[OperationKind, Callable[[Any], Leaf]] = {
    OperationKind.REPLACE: _replace_leaf,
    OperationKind.PREFIX: _concat_leaf(OperationKind.PREFIX),
    OperationKind.SUFFIX: _concat_leaf(OperationKind.SUFFIX),
    OperationKind.APPEND: _append_leaf,
    OperationKind.INSERT: _insert_leaf,
}


def _reject_keyed_insert(document: Any, tokens: list[PathToken]) -> None:
    """Inserts need a trailing slot index; report what the path points at instead."""

    current = document
    for depth, token in enumerate(tokens):
        location = format_field_path(tokens[: depth + 1])
        current = _read_terminal(current, token, location)
        if current is None:
            raise PathNotFound(format_field_path(tokens), location)
    if isinstance(current, list):
        raise InvalidOperation(
            f"insert into '{format_field_path(tokens)}' requires a trailing index"
        )
    raise TypeMismatch(f"cannot insert into {describe_type(current)}")


def _exists(document: Any, tokens: list[PathToken]) -> bool:
    current = document
    for token in tokens:
        if token.kind == "key":
            if not isinstance(current, Mapping) or token.value not in current:
                return False
        elif not isinstance(current, list) or token.value >= len(current):
            return False
        current = current[token.value]
    return True

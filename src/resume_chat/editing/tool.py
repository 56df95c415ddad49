"""LangChain tool exposing the mutation engine to tool-calling chat models."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, Field

from resume_chat.editing.engine import apply_modification
from resume_chat.editing.operations import (
    ModificationOperation,
    OperationKind,
    coerce_operation,
    validate_operation,
)
from resume_chat.errors import ResumeChatError

EDIT_TOOL_NAME = "apply_resume_edit"


class EditToolInput(BaseModel):
    kind: OperationKind = Field(description="Edit kind to apply at the field path.")
    path: str = Field(
        min_length=1,
        description="Field path such as `summary` or `experience[0].achievements[2]`.",
    )
    value: Any = Field(
        default=None,
        description="New content. Required for every kind except `remove`.",
    )


def build_edit_tool(get_document: Callable[[], Any]) -> StructuredTool:
    """Build the `apply_resume_edit` tool bound to a document provider.

    Invoking the tool only previews the edit: it returns the edited document
    as JSON (or `ERROR: ...`) and never persists anything.
    """

    def _preview(**kwargs: Any) -> str:
        try:
            edited = apply_modification(get_document(), to_operation(kwargs))
        except ResumeChatError as exc:
            return f"ERROR: {exc}"
        return json.dumps(edited, ensure_ascii=False, sort_keys=True)

    return StructuredTool.from_function(
        name=EDIT_TOOL_NAME,
        description=(
            "Apply one structured edit (replace, prefix, suffix, append, insert, "
            "remove) to the resume at a field path and preview the result."
        ),
        args_schema=EditToolInput,
        func=_preview,
    )


def to_operation(arguments: dict[str, Any]) -> ModificationOperation:
    """Convert validated tool arguments into an operation.

    `value` is only forwarded when present, so a model that omits it for a
    `replace` still fails with MissingValue instead of writing `None`.
    """

    payload = {key: arguments[key] for key in ("kind", "path") if key in arguments}
    if arguments.get("value") is not None:
        payload["value"] = arguments["value"]
    return validate_operation(coerce_operation(payload))

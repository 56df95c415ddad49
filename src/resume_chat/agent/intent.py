"""Intent sources: turn a chat message into structured modification operations."""

from __future__ import annotations

import json
from typing import Any, Protocol

from langchain_core.prompts import ChatPromptTemplate

from resume_chat.editing.operations import (
    ModificationOperation,
    coerce_operation,
    validate_operation,
)
from resume_chat.editing.tool import EDIT_TOOL_NAME, build_edit_tool, to_operation
from resume_chat.errors import InvalidOperation
from resume_chat.types import ThreadRecord

_SYSTEM_PROMPT = """
You edit a structured resume on behalf of its owner.

Rules:
1) Express every requested change as a call to `apply_resume_edit`.
2) Only use field paths that exist in the resume below: dot-separated keys and
   [index] for list items, e.g. experience[0].achievements[1].
3) Use prefix/suffix only on text fields and include any spacing in the value.
4) If the message does not ask for an edit, make no tool calls.

Current resume (JSON):
{document}
""".strip()


class IntentSource(Protocol):
    def parse(
        self, message: str, *, document: Any, thread: ThreadRecord | None = None
    ) -> list[ModificationOperation]:
        """Return the operations requested by `message`, possibly none."""


class ToolCallingIntentSource:
    """Binds the `apply_resume_edit` tool to a LangChain chat model.

    Understanding the message is the model's job; this adapter only forwards
    the model's tool calls as operations. Malformed calls raise
    InvalidOperation rather than being dropped.
    """

    def __init__(self, llm: Any) -> None:
        self.llm = llm
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", _SYSTEM_PROMPT), ("human", "{message}")]
        )

    def parse(
        self, message: str, *, document: Any, thread: ThreadRecord | None = None
    ) -> list[ModificationOperation]:
        del thread  # conversation memory lives with the assistant thread, not here.
        tool = build_edit_tool(lambda: document)
        chain = self.prompt | self.llm.bind_tools([tool])
        response = chain.invoke(
            {
                "document": json.dumps(document, ensure_ascii=False, sort_keys=True),
                "message": message,
            }
        )
        return [
            to_operation(dict(call.get("args") or {}))
            for call in getattr(response, "tool_calls", None) or []
            if call.get("name") == EDIT_TOOL_NAME
        ]


class StructuredMessageIntentSource:
    """Deterministic source for offline use when no chat model is configured.

    Accepts messages that already carry operations as JSON: a single object or
    a list of objects. Plain prose yields no operations.
    """

    def parse(
        self, message: str, *, document: Any, thread: ThreadRecord | None = None
    ) -> list[ModificationOperation]:
        del document, thread
        text = message.strip()
        if not text.startswith(("{", "[")):
            return []
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidOperation(f"invalid operation payload: {exc.msg}") from exc
        items = payload if isinstance(payload, list) else [payload]
        return [validate_operation(coerce_operation(item)) for item in items]

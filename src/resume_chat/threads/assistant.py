"""Assistant conversation API contract and concrete adapters."""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass
from typing import Any, Protocol

import openai

from resume_chat.config import AssistantConfig
from resume_chat.errors import ApiErrorCategory, ExternalApiError


@dataclass(frozen=True, slots=True)
class HandleCheck:
    """Outcome of validating an existing conversation handle."""

    valid: bool
    reason: str = ""


class AssistantClient(Protocol):
    """Minimal contract the thread lifecycle manager needs from the provider.

    Transport failures (timeouts, rate limits, auth) must be raised as
    `ExternalApiError`; only a provider answer that the handle itself is
    unknown or unusable is reported as an invalid `HandleCheck`.
    """

    def create_conversation(self) -> str:
        """Create a new conversation and return its opaque handle."""

    def validate_conversation(self, handle: str) -> HandleCheck:
        """Check that a previously created handle is still usable."""


def classify_api_error(exc: BaseException) -> ExternalApiError:
    """Map provider and transport exceptions onto the error taxonomy."""

    if isinstance(exc, ExternalApiError):
        return exc

    detail = f"{type(exc).__name__}: {exc}"
    status = getattr(exc, "status_code", None)
    if isinstance(exc, (openai.APIConnectionError, TimeoutError, ConnectionError)):
        category = ApiErrorCategory.NETWORK
    elif isinstance(exc, openai.RateLimitError) or status == 429:
        category = ApiErrorCategory.RATE_LIMIT
    elif isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)) or status in (
        401,
        403,
    ):
        category = ApiErrorCategory.AUTH
    elif isinstance(
        exc,
        (openai.BadRequestError, openai.NotFoundError, openai.UnprocessableEntityError),
    ) or status in (400, 404, 409, 422):
        category = ApiErrorCategory.INVALID_REQUEST
    else:
        category = ApiErrorCategory.UNKNOWN
    return ExternalApiError(category, detail=detail)


class OpenAIAssistantClient:
    """Adapter over OpenAI Assistants threads.

    SDK-level retries are disabled: retry policy belongs to the caller, and a
    request that exceeds `timeout_seconds` surfaces as a network error.
    """

    def __init__(self, config: AssistantConfig, *, client: Any | None = None) -> None:
        self.config = config
        self._client = client or openai.OpenAI(
            api_key=config.api_key,
            timeout=config.timeout_seconds,
            max_retries=0,
        )

    def create_conversation(self) -> str:
        try:
            thread = self._client.beta.threads.create()
        except Exception as exc:
            raise classify_api_error(exc) from exc
        return str(thread.id)

    def validate_conversation(self, handle: str) -> HandleCheck:
        try:
            self._client.beta.threads.retrieve(handle)
        except openai.NotFoundError:
            return HandleCheck(valid=False, reason="conversation not found")
        except openai.BadRequestError:
            return HandleCheck(valid=False, reason="conversation handle rejected")
        except Exception as exc:
            raise classify_api_error(exc) from exc
        return HandleCheck(valid=True)


class InMemoryAssistantClient:
    """Deterministic assistant used for tests and offline environments."""

    def __init__(self, prefix: str = "conv") -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._live: set[str] = set()
        self._pending_failures: list[BaseException] = []
        self._lock = threading.Lock()
        self.create_calls = 0
        self.validate_calls = 0

    def create_conversation(self) -> str:
        with self._lock:
            self.create_calls += 1
            if self._pending_failures:
                raise classify_api_error(self._pending_failures.pop(0))
            handle = f"{self._prefix}_{next(self._counter):04d}"
            self._live.add(handle)
            return handle

    def validate_conversation(self, handle: str) -> HandleCheck:
        with self._lock:
            self.validate_calls += 1
            if handle in self._live:
                return HandleCheck(valid=True)
            return HandleCheck(valid=False, reason="conversation not found")

    def invalidate(self, handle: str) -> None:
        """Forget a handle, as the provider does when a conversation expires."""

        with self._lock:
            self._live.discard(handle)

    def fail_next_create(self, exc: BaseException) -> None:
        with self._lock:
            self._pending_failures.append(exc)

"""Error taxonomy for the resume chat core."""

from __future__ import annotations

from enum import Enum


class ResumeChatError(Exception):
    """Base class for every error raised by this package."""


class InvalidOperation(ResumeChatError):
    """Malformed modification operation or field path."""


class MissingValue(InvalidOperation):
    """Operation kind requires a value but none was supplied."""


class PathNotFound(ResumeChatError):
    """Path references a missing intermediate container."""

    def __init__(self, path: str, segment: str) -> None:
        super().__init__(f"path not found: '{segment}' does not exist in '{path}'")
        self.path = path
        self.segment = segment


class TypeMismatch(ResumeChatError):
    """Operation is incompatible with the resolved value's type."""


class IndexOutOfRange(ResumeChatError):
    """Sequence index outside the valid range."""

    def __init__(self, path: str, index: int, length: int) -> None:
        super().__init__(f"invalid index {index} for '{path}' (length {length})")
        self.path = path
        self.index = index
        self.length = length


class ApiErrorCategory(str, Enum):
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    AUTH = "auth"
    INVALID_REQUEST = "invalid_request"
    UNKNOWN = "unknown"


_PUBLIC_MESSAGES = {
    ApiErrorCategory.RATE_LIMIT: "The assistant service is busy. Please try again shortly.",
    ApiErrorCategory.NETWORK: "The assistant service could not be reached.",
    ApiErrorCategory.AUTH: "The assistant service rejected the configured credentials.",
    ApiErrorCategory.INVALID_REQUEST: "The assistant service rejected the request.",
    ApiErrorCategory.UNKNOWN: "The assistant service failed unexpectedly.",
}


class ExternalApiError(ResumeChatError):
    """Classified failure of the external assistant API.

    `str(error)` is always the sanitized public message. The raw provider
    message is kept in `detail` for logs and must not be shown to users.
    """

    def __init__(self, category: ApiErrorCategory, detail: str = "") -> None:
        super().__init__(_PUBLIC_MESSAGES[category])
        self.category = category
        self.detail = detail

    @property
    def public_message(self) -> str:
        return _PUBLIC_MESSAGES[self.category]

    @property
    def retryable(self) -> bool:
        return self.category in (ApiErrorCategory.RATE_LIMIT, ApiErrorCategory.NETWORK)


class ThreadValidationFailed(ResumeChatError):
    """An existing conversation handle was rejected and could not be replaced.

    `str(error)` is a public message; `thread_id` and `reason` are for logs.
    `category` is that of the failed replacement, so callers can apply the
    same retry policy as for `ExternalApiError`.
    """

    def __init__(self, thread_id: str, reason: str, category: ApiErrorCategory) -> None:
        super().__init__(
            "The conversation could not be restored. "
            + _PUBLIC_MESSAGES[category]
        )
        self.thread_id = thread_id
        self.reason = reason
        self.category = category

    @property
    def retryable(self) -> bool:
        return self.category in (ApiErrorCategory.RATE_LIMIT, ApiErrorCategory.NETWORK)


class VersionConflict(ResumeChatError):
    """Another writer already holds this version number."""

    def __init__(self, document_id: str, version_number: int) -> None:
        super().__init__(
            f"version {version_number} already exists for document {document_id}"
        )
        self.document_id = document_id
        self.version_number = version_number

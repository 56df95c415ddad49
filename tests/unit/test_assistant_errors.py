from types import SimpleNamespace

import httpx
import openai
import pytest

from resume_chat.config import AssistantConfig
from resume_chat.errors import ApiErrorCategory, ExternalApiError
from resume_chat.threads.assistant import OpenAIAssistantClient, classify_api_error

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/threads")


def _status_error(cls: type, status: int, message: str) -> openai.APIStatusError:
    return cls(message, response=httpx.Response(status, request=REQUEST), body=None)


@pytest.mark.parametrize(
    ("exc", "category"),
    [
        (openai.APITimeoutError(request=REQUEST), ApiErrorCategory.NETWORK),
        (openai.APIConnectionError(request=REQUEST), ApiErrorCategory.NETWORK),
        (TimeoutError("read timed out"), ApiErrorCategory.NETWORK),
        (_status_error(openai.RateLimitError, 429, "slow down"), ApiErrorCategory.RATE_LIMIT),
        (_status_error(openai.AuthenticationError, 401, "bad key"), ApiErrorCategory.AUTH),
        (_status_error(openai.PermissionDeniedError, 403, "nope"), ApiErrorCategory.AUTH),
        (_status_error(openai.NotFoundError, 404, "missing"), ApiErrorCategory.INVALID_REQUEST),
        (_status_error(openai.BadRequestError, 400, "bad"), ApiErrorCategory.INVALID_REQUEST),
        (_status_error(openai.InternalServerError, 500, "boom"), ApiErrorCategory.UNKNOWN),
        (RuntimeError("unexpected"), ApiErrorCategory.UNKNOWN),
    ],
)
def test_classify_api_error(exc: BaseException, category: ApiErrorCategory) -> None:
    assert classify_api_error(exc).category == category


def test_only_rate_limit_and_network_are_retryable() -> None:
    retryable = {category for category in ApiErrorCategory if ExternalApiError(category).retryable}

    assert retryable == {ApiErrorCategory.RATE_LIMIT, ApiErrorCategory.NETWORK}


def test_public_message_hides_provider_detail() -> None:
    error = classify_api_error(
        _status_error(openai.AuthenticationError, 401, "Incorrect API key provided: sk-abc123")
    )

    assert "sk-abc123" not in str(error)
    assert str(error) == error.public_message
    assert "sk-abc123" in error.detail


def test_classify_passes_through_classified_errors() -> None:
    error = ExternalApiError(ApiErrorCategory.RATE_LIMIT)

    assert classify_api_error(error) is error


class _FakeThreads:
    def __init__(self, *, create_error: BaseException | None = None) -> None:
        self.create_error = create_error
        self.retrieve_errors: dict[str, BaseException] = {}

    def create(self) -> SimpleNamespace:
        if self.create_error is not None:
            raise self.create_error
        return SimpleNamespace(id="thread_abc")

    def retrieve(self, handle: str) -> SimpleNamespace:
        if handle in self.retrieve_errors:
            raise self.retrieve_errors[handle]
        return SimpleNamespace(id=handle)


def _client(threads: _FakeThreads) -> OpenAIAssistantClient:
    fake = SimpleNamespace(beta=SimpleNamespace(threads=threads))
    return OpenAIAssistantClient(AssistantConfig(api_key="sk-test"), client=fake)


def test_openai_client_creates_and_validates_handles() -> None:
    threads = _FakeThreads()
    threads.retrieve_errors["thread_gone"] = _status_error(openai.NotFoundError, 404, "gone")
    client = _client(threads)

    assert client.create_conversation() == "thread_abc"
    assert client.validate_conversation("thread_abc").valid

    check = client.validate_conversation("thread_gone")
    assert not check.valid
    assert check.reason == "conversation not found"


def test_openai_client_raises_transport_errors_from_validation() -> None:
    threads = _FakeThreads()
    threads.retrieve_errors["thread_slow"] = openai.APITimeoutError(request=REQUEST)
    client = _client(threads)

    with pytest.raises(ExternalApiError) as info:
        client.validate_conversation("thread_slow")

    assert info.value.category == ApiErrorCategory.NETWORK
    assert isinstance(info.value.__cause__, openai.APITimeoutError)


def test_openai_client_classifies_create_failures() -> None:
    client = _client(
        _FakeThreads(create_error=_status_error(openai.AuthenticationError, 401, "bad key"))
    )

    with pytest.raises(ExternalApiError) as info:
        client.create_conversation()

    assert info.value.category == ApiErrorCategory.AUTH
    assert not info.value.retryable

import sys
import time
import types

import pytest

import services.llm_service as llm_service
from exceptions import APIError, APIKeyError, ConfigurationError, RateLimitError
from services.llm_service import CircuitBreaker, LLMResponse, LLMService


class DummyService(LLMService):
    def __init__(self, responses):
        self._responses = list(responses)
        self.call_count = 0
        super().__init__()

    def _init_client(self) -> None:
        self.client = object()

    async def _call_api(self, prompt: str, **kwargs) -> LLMResponse:
        self.call_count += 1
        result = self._responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def no_sleep(monkeypatch):
    sleep_calls = []

    async def fake_sleep(seconds):
        sleep_calls.append(seconds)

    monkeypatch.setattr(llm_service.asyncio, "sleep", fake_sleep)
    return sleep_calls


@pytest.mark.asyncio
async def test_call_success():
    service = DummyService([LLMResponse(content="ok")])
    service.analysis_config.max_retry = 1
    response = await service.call("ping")
    assert response.content == "ok"
    assert response.response_time is not None
    assert service.call_count == 1


@pytest.mark.asyncio
async def test_retry_on_retryable_error(no_sleep):
    service = DummyService([
        APIError("retry", is_retryable=True),
        LLMResponse(content="ok"),
    ])
    service.analysis_config.max_retry = 2

    assert (await service.call("ping")).content == "ok"
    assert service.call_count == 2
    assert no_sleep


@pytest.mark.asyncio
async def test_rate_limit_uses_retry_after(monkeypatch, no_sleep):
    monkeypatch.setattr(llm_service.random, "uniform", lambda _a, _b: 0)

    service = DummyService([
        RateLimitError("limit", retry_after=2),
        LLMResponse(content="ok"),
    ])
    service.analysis_config.max_retry = 2

    assert (await service.call("ping")).content == "ok"
    assert no_sleep == [2]


@pytest.mark.asyncio
async def test_retries_exhausted(no_sleep):
    service = DummyService([RuntimeError("network"), RuntimeError("network")])
    service.analysis_config.max_retry = 2

    with pytest.raises(APIError) as excinfo:
        await service.call("ping", request_label="story-coherence")
    assert "story-coherence" in excinfo.value.message
    assert excinfo.value.is_retryable is False
    assert service.call_count == 2


@pytest.mark.asyncio
async def test_key_error_not_retried(no_sleep):
    service = DummyService([APIKeyError("bad key")])
    service.analysis_config.max_retry = 3

    with pytest.raises(APIKeyError):
        await service.call("ping")
    assert service.call_count == 1
    assert no_sleep == []


@pytest.mark.asyncio
async def test_circuit_breaker_opens_on_failure():
    service = DummyService([APIError("fatal", is_retryable=False)])
    service.analysis_config.max_retry = 1
    service.circuit_breaker.failure_threshold = 1

    with pytest.raises(APIError):
        await service.call("ping")

    with pytest.raises(APIError) as excinfo:
        await service.call("ping again")

    assert excinfo.value.is_retryable is True
    assert service.call_count == 1


def test_circuit_breaker_half_open_after_timeout():
    breaker = CircuitBreaker(failure_threshold=1, timeout_seconds=60)
    breaker.record_failure()
    assert breaker.state == "OPEN"
    assert breaker.call_allowed() is False

    breaker.last_failure_time = time.monotonic() - 120
    assert breaker.call_allowed() is True
    assert breaker.state == "HALF_OPEN"
    breaker.record_success()
    assert breaker.state == "CLOSED"


def test_openai_service_initialization_uses_http_client(monkeypatch):
    class DummyOpenAIClient:
        def __init__(self, api_key=None, base_url=None, http_client=None):
            self.api_key = api_key
            self.base_url = base_url
            self.http_client = http_client

    fake_openai = types.SimpleNamespace(AsyncOpenAI=DummyOpenAIClient)
    monkeypatch.setitem(sys.modules, "openai", fake_openai)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    monkeypatch.setattr(llm_service.OpenAIService, "_http_clients", {})

    service = llm_service.OpenAIService()
    assert isinstance(service.client, DummyOpenAIClient)
    assert service.client.api_key == "sk-test"
    assert service.client.http_client is llm_service.OpenAIService._http_clients[None]


def test_openai_service_missing_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(llm_service.OpenAIService, "_http_clients", {})
    with pytest.raises((APIKeyError, ConfigurationError)):
        llm_service.OpenAIService()


@pytest.mark.asyncio
async def test_openai_errors_are_classified(monkeypatch):
    class FailingCompletions:
        def __init__(self, message):
            self.message = message

        async def create(self, **kwargs):
            raise RuntimeError(self.message)

    service = DummyService([])
    service.api_config.openai_model = "gpt-4o-mini"

    cases = [
        ("Authentication failed", APIKeyError),
        ("Rate limit reached", RateLimitError),
        ("You exceeded your current quota", APIError),
        ("connection reset", APIError),
    ]
    for message, expected in cases:
        service.client = types.SimpleNamespace(
            chat=types.SimpleNamespace(completions=FailingCompletions(message))
        )
        with pytest.raises(expected):
            await llm_service.OpenAIService._call_api(service, "ping")


def test_create_llm_service_rejects_unknown_provider(monkeypatch):
    monkeypatch.setenv("API_PROVIDER", "zhipu")
    with pytest.raises(ConfigurationError):
        llm_service.create_llm_service()


def test_create_llm_service_openai(monkeypatch):
    created = []
    monkeypatch.setitem(llm_service._SERVICES, "openai", lambda: created.append("openai") or "service")
    assert llm_service.create_llm_service() == "service"
    assert created == ["openai"]


def test_half_open_failure_reopens():
    breaker = CircuitBreaker(failure_threshold=3, timeout_seconds=60)
    breaker.state = "HALF_OPEN"
    breaker.record_failure()
    assert breaker.state == "OPEN"


class StatusError(Exception):
    def __init__(self, message, status_code, headers=None):
        super().__init__(message)
        self.status_code = status_code
        self.response = types.SimpleNamespace(headers=headers or {})


def test_classify_by_status_code():
    classify = llm_service._classify_openai_error

    assert isinstance(classify(StatusError("denied", 401)), APIKeyError)

    limited = classify(StatusError("slow down", 429, {"retry-after": "7"}))
    assert isinstance(limited, RateLimitError)
    assert limited.retry_after == 7

    quota = classify(StatusError("insufficient_quota: You exceeded your current quota", 429))
    assert not isinstance(quota, RateLimitError)
    assert quota.is_retryable is False

    assert classify(StatusError("bad request", 400)).is_retryable is False
    assert classify(StatusError("upstream", 502)).is_retryable is True

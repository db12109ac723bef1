"""
Unit tests for the backoff executor: transient-only retries with deterministic delays.
"""

import httpx
import pytest

from research_assistant.agent.backoff import BackoffExecutor, FailureKind, classify_failure, is_transient
from research_assistant.core.errors import ProviderError, QuotaExhausted, TransientProviderError


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FlakyOperation:
    """Fails with the given errors in order, then returns 'ok'."""

    def __init__(self, *errors: Exception) -> None:
        self.errors = list(errors)
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestIsTransient:
    def test_transient_provider_error(self) -> None:
        assert is_transient(TransientProviderError("rate limited", 429))

    def test_connection_reset(self) -> None:
        assert is_transient(ConnectionResetError())
        assert is_transient(httpx.ConnectError("reset"))

    def test_http_429(self) -> None:
        request = httpx.Request("GET", "https://example.org")
        response = httpx.Response(429, request=request)
        assert is_transient(httpx.HTTPStatusError("too many", request=request, response=response))

    def test_http_500_is_fatal(self) -> None:
        request = httpx.Request("GET", "https://example.org")
        response = httpx.Response(500, request=request)
        exc = httpx.HTTPStatusError("boom", request=request, response=response)
        assert not is_transient(exc)
        assert classify_failure(exc) is FailureKind.FATAL

    def test_domain_errors_are_fatal(self) -> None:
        assert not is_transient(ProviderError("bad json"))
        assert not is_transient(QuotaExhausted())
        assert not is_transient(ValueError("nope"))


class TestBackoffExecutor:
    @pytest.mark.asyncio
    async def test_success_first_try_does_not_sleep(self) -> None:
        sleep = RecordingSleep()
        op = FlakyOperation()
        result = await BackoffExecutor(retries=3, initial_delay=1.0, sleep=sleep).execute(op)
        assert result == "ok"
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_retries_transient_with_doubling_delay(self) -> None:
        sleep = RecordingSleep()
        op = FlakyOperation(TransientProviderError("429"), TransientProviderError("429"))
        result = await BackoffExecutor(retries=3, initial_delay=1.0, sleep=sleep).execute(op)
        assert result == "ok"
        assert op.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_budget_reraises_last_error(self) -> None:
        sleep = RecordingSleep()
        errors = [TransientProviderError(f"attempt {i}") for i in range(1, 5)]
        op = FlakyOperation(*errors)
        with pytest.raises(TransientProviderError) as exc_info:
            await BackoffExecutor(retries=3, initial_delay=0.5, sleep=sleep).execute(op)
        assert exc_info.value is errors[-1]
        assert op.calls == 4
        assert sleep.delays == [0.5, 1.0, 2.0]

    @pytest.mark.asyncio
    async def test_non_transient_not_retried(self) -> None:
        sleep = RecordingSleep()
        op = FlakyOperation(ProviderError("bad request"))
        with pytest.raises(ProviderError):
            await BackoffExecutor(retries=3, initial_delay=1.0, sleep=sleep).execute(op)
        assert op.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_zero_retries(self) -> None:
        op = FlakyOperation(TransientProviderError("429"))
        with pytest.raises(TransientProviderError):
            await BackoffExecutor(retries=0, sleep=RecordingSleep()).execute(op)
        assert op.calls == 1

    def test_negative_retries_rejected(self) -> None:
        with pytest.raises(ValueError):
            BackoffExecutor(retries=-1)

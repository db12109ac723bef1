"""
Backoff executor: bounded retries with deterministic exponential delay.

Only transient failures (rate-limit signal, connection reset) are retried. Everything
else propagates on the first attempt; the last error is re-raised unchanged once the
retry budget is spent.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import httpx
import openai
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from research_assistant.core.config import BACKOFF_INITIAL_DELAY, BACKOFF_RETRIES
from research_assistant.core.errors import AssistantError, TransientProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    TransientProviderError,
    openai.RateLimitError,
    openai.APIConnectionError,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
    httpx.TimeoutException,
    ConnectionResetError,
)


class FailureKind(str, Enum):
    RETRYABLE = "retryable"
    FATAL = "fatal"


def is_transient(exc: BaseException) -> bool:
    """True for rate-limit (429) and network-reset style failures."""
    if isinstance(exc, AssistantError):
        # QuotaExhausted also carries 429 but is final until the counter resets
        return False
    if isinstance(exc, _TRANSIENT_TYPES):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    for attr in ("status_code", "code"):
        if getattr(exc, attr, None) == 429:
            return True
    return False


def classify_failure(exc: BaseException) -> FailureKind:
    return FailureKind.RETRYABLE if is_transient(exc) else FailureKind.FATAL


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome else None
    delay = state.next_action.sleep if state.next_action else 0.0
    logger.warning(
        "[backoff] transient failure attempt=%d retry_in=%.2fs error=%s",
        state.attempt_number,
        delay,
        exc,
    )


class BackoffExecutor:
    """Runs one async operation, retrying transient failures `retries` times.

    The n-th retry waits ``initial_delay * 2 ** (n - 1)`` seconds (no jitter).
    """

    def __init__(
        self,
        retries: int = BACKOFF_RETRIES,
        initial_delay: float = BACKOFF_INITIAL_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if retries < 0:
            raise ValueError("retries must be >= 0")
        self.retries = retries
        self.initial_delay = initial_delay
        self._sleep = sleep

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.retries + 1),
            wait=wait_exponential(multiplier=self.initial_delay, exp_base=2, min=0),
            retry=retry_if_exception(is_transient),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        async for attempt in self._retrying():
            with attempt:
                return await operation()
        raise AssertionError("unreachable: tenacity reraises on exhaustion")

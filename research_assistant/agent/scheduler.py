"""
Rate-limited scheduler: token bucket + concurrency cap + process-wide daily quota.

Admission is FIFO. An operation is admitted when a concurrency slot is free, the
bucket holds a token, and at least `min_time` has passed since the previous start.
The bucket refills to capacity every `refresh_interval` seconds. Admitted operations
run through the BackoffExecutor. Admission reserves one daily-quota unit, so
operations in flight count against the limit; the reservation becomes a used unit
on success and is released on failure (one per operation, not per retry attempt).

Two schedulers (classification, generation) normally share one DailyQuota: the
quota models the provider-wide cap, the buckets model per-call-class throughput.
"""

import asyncio
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import TypeVar

from research_assistant.agent.backoff import BackoffExecutor, classify_failure
from research_assistant.core.config import (
    CLASSIFY_RESERVOIR,
    DAILY_QUOTA_LIMIT,
    GENERATE_RESERVOIR,
    MAX_CONCURRENT,
    MIN_TIME_SECONDS,
    QUOTA_AUTO_RESET,
    RESERVOIR_REFRESH_SECONDS,
    SCHEDULER_CALL_TIMEOUT,
    SHARED_DAILY_QUOTA,
)
from research_assistant.core.errors import QuotaExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DailyQuota:
    """Process-wide counter of successful provider calls. All mutation under one lock."""

    def __init__(
        self,
        limit: int = DAILY_QUOTA_LIMIT,
        auto_reset: bool = QUOTA_AUTO_RESET,
        today: Callable[[], date] = _utc_today,
    ) -> None:
        if limit < 0:
            raise ValueError("limit must be >= 0")
        self.limit = limit
        self.auto_reset = auto_reset
        self._today = today
        self._day = today()
        self._used = 0
        self._pending = 0
        self._lock = threading.Lock()

    def _roll_over(self) -> None:
        # caller holds the lock
        if not self.auto_reset:
            return
        today = self._today()
        if today != self._day:
            logger.info("[quota] new day %s, resetting used=%d", today, self._used)
            self._day = today
            self._used = 0

    @property
    def used(self) -> int:
        with self._lock:
            self._roll_over()
            return self._used

    @property
    def remaining(self) -> int:
        with self._lock:
            self._roll_over()
            return max(0, self.limit - self._used)

    def check(self) -> None:
        with self._lock:
            self._roll_over()
            if self._used >= self.limit:
                logger.warning("[quota] exhausted used=%d limit=%d", self._used, self.limit)
                raise QuotaExhausted()

    def reserve(self) -> None:
        """Hold one unit for an admitted operation; in-flight reservations count against the limit."""
        with self._lock:
            self._roll_over()
            if self._used + self._pending >= self.limit:
                logger.warning(
                    "[quota] exhausted used=%d pending=%d limit=%d", self._used, self._pending, self.limit
                )
                raise QuotaExhausted()
            self._pending += 1

    def commit(self) -> int:
        """Turn a reservation into a used unit."""
        with self._lock:
            self._roll_over()
            self._pending = max(0, self._pending - 1)
            self._used += 1
            return self._used

    def release(self) -> None:
        """Drop a reservation whose operation failed."""
        with self._lock:
            self._pending = max(0, self._pending - 1)

    def record(self) -> int:
        with self._lock:
            self._roll_over()
            self._used += 1
            return self._used

    def reset(self) -> None:
        with self._lock:
            self._used = 0
            self._day = self._today()
        logger.info("[quota] reset")


@dataclass(frozen=True)
class RateLimiterState:
    name: str
    available_tokens: int
    capacity: int
    daily_used: int
    daily_limit: int
    in_flight: int
    queued: int


class RateLimitedScheduler:
    """FIFO token-bucket scheduler. See module docstring."""

    def __init__(
        self,
        name: str,
        capacity: int,
        refresh_interval: float,
        max_concurrent: int,
        quota: DailyQuota,
        min_time: float = 0.0,
        executor: BackoffExecutor | None = None,
        timeout: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if refresh_interval <= 0:
            raise ValueError("refresh_interval must be > 0")
        self.name = name
        self.capacity = capacity
        self.refresh_interval = refresh_interval
        self.max_concurrent = max_concurrent
        self.min_time = min_time
        self.quota = quota
        self.executor = executor or BackoffExecutor()
        self.timeout = timeout
        self._clock = clock
        self._sleep = sleep

        self._tokens = capacity
        self._last_refill = clock()
        self._last_start: float | None = None
        self._in_flight = 0
        self._queued = 0
        # asyncio primitives are bound to the loop that first uses them
        self._loop: asyncio.AbstractEventLoop | None = None
        self._admission: asyncio.Lock | None = None
        self._slots: asyncio.Semaphore | None = None

    def _primitives(self) -> tuple[asyncio.Lock, asyncio.Semaphore]:
        loop = asyncio.get_running_loop()
        if self._loop is not loop or self._admission is None or self._slots is None:
            self._loop = loop
            self._admission = asyncio.Lock()
            self._slots = asyncio.Semaphore(self.max_concurrent)
            self._in_flight = 0
            self._queued = 0
        return self._admission, self._slots

    @property
    def available_tokens(self) -> int:
        self._refill()
        return self._tokens

    def state(self) -> RateLimiterState:
        return RateLimiterState(
            name=self.name,
            available_tokens=self.available_tokens,
            capacity=self.capacity,
            daily_used=self.quota.used,
            daily_limit=self.quota.limit,
            in_flight=self._in_flight,
            queued=self._queued,
        )

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed >= self.refresh_interval:
            periods = int(elapsed // self.refresh_interval)
            self._last_refill += periods * self.refresh_interval
            self._tokens = self.capacity

    async def _take_token(self) -> None:
        # caller holds the admission lock
        while True:
            self._refill()
            wait = 0.0
            if self._tokens <= 0:
                wait = self._last_refill + self.refresh_interval - self._clock()
            elif self.min_time and self._last_start is not None:
                wait = self._last_start + self.min_time - self._clock()
            if wait <= 0:
                break
            logger.info("[scheduler:%s] waiting %.3fs for admission", self.name, wait)
            await self._sleep(wait)
        self._tokens -= 1
        self._last_start = self._clock()

    async def _admit(self, slots: asyncio.Semaphore) -> None:
        admission, _ = self._primitives()
        self._queued += 1
        try:
            async with admission:
                await slots.acquire()
                try:
                    # quota may have run out while queued; in-flight operations hold a unit
                    self.quota.reserve()
                except BaseException:
                    slots.release()
                    raise
                try:
                    await self._take_token()
                except BaseException:
                    self.quota.release()
                    slots.release()
                    raise
        finally:
            self._queued -= 1

    async def schedule(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Admit, run with backoff, count one quota unit on success."""
        self.quota.check()
        _, slots = self._primitives()
        await self._admit(slots)
        committed = False
        self._in_flight += 1
        logger.info(
            "[scheduler:%s] admitted tokens_left=%d in_flight=%d daily_used=%d",
            self.name,
            self._tokens,
            self._in_flight,
            self.quota.used,
        )
        try:
            call = self.executor.execute(operation)
            if self.timeout is not None:
                result = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                result = await call
            used = self.quota.commit()
            committed = True
        except Exception as exc:
            logger.error(
                "[scheduler:%s] operation failed kind=%s error=%s",
                self.name,
                classify_failure(exc).value,
                exc,
            )
            raise
        finally:
            if not committed:
                self.quota.release()
            self._in_flight -= 1
            slots.release()
        logger.info("[scheduler:%s] OUT success daily_used=%d", self.name, used)
        return result


def build_schedulers(
    shared_quota: bool = SHARED_DAILY_QUOTA,
    daily_limit: int = DAILY_QUOTA_LIMIT,
) -> tuple[RateLimitedScheduler, RateLimitedScheduler]:
    """Return (classify_scheduler, generate_scheduler) from config."""
    classify_quota = DailyQuota(daily_limit)
    generate_quota = classify_quota if shared_quota else DailyQuota(daily_limit)
    if not shared_quota:
        logger.warning("[scheduler] SHARED_DAILY_QUOTA disabled: each scheduler counts its own quota")
    classify = RateLimitedScheduler(
        name="classify",
        capacity=CLASSIFY_RESERVOIR,
        refresh_interval=RESERVOIR_REFRESH_SECONDS,
        max_concurrent=MAX_CONCURRENT,
        min_time=MIN_TIME_SECONDS,
        quota=classify_quota,
        timeout=SCHEDULER_CALL_TIMEOUT,
    )
    generate = RateLimitedScheduler(
        name="generate",
        capacity=GENERATE_RESERVOIR,
        refresh_interval=RESERVOIR_REFRESH_SECONDS,
        max_concurrent=MAX_CONCURRENT,
        min_time=MIN_TIME_SECONDS,
        quota=generate_quota,
        timeout=SCHEDULER_CALL_TIMEOUT,
    )
    return classify, generate

"""
Unit tests for the rate-limited scheduler and the daily quota.

Most tests drive a fake clock whose sleep advances time, so waits are exact and instant.
"""

import asyncio
import time
from datetime import date

import pytest

from research_assistant.agent.backoff import BackoffExecutor
from research_assistant.agent.scheduler import DailyQuota, RateLimitedScheduler, build_schedulers
from research_assistant.core.errors import ProviderError, QuotaExhausted


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)
        self.now += delay
        await asyncio.sleep(0)


def make_scheduler(clock: FakeClock, capacity: int = 3, interval: float = 60.0, quota: DailyQuota | None = None, **kwargs) -> RateLimitedScheduler:
    return RateLimitedScheduler(
        name="test",
        capacity=capacity,
        refresh_interval=interval,
        max_concurrent=kwargs.pop("max_concurrent", 1),
        quota=quota or DailyQuota(limit=100),
        executor=BackoffExecutor(retries=0, sleep=clock.sleep),
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


def returning(value):
    async def op():
        return value
    return op


class TestDailyQuota:
    def test_counts_and_exhausts(self) -> None:
        quota = DailyQuota(limit=2)
        quota.check()
        assert quota.record() == 1
        assert quota.record() == 2
        assert quota.remaining == 0
        with pytest.raises(QuotaExhausted):
            quota.check()

    def test_rolls_over_on_new_utc_day(self) -> None:
        day = {"today": date(2024, 5, 1)}
        quota = DailyQuota(limit=1, auto_reset=True, today=lambda: day["today"])
        quota.record()
        with pytest.raises(QuotaExhausted):
            quota.check()
        day["today"] = date(2024, 5, 2)
        quota.check()
        assert quota.used == 0

    def test_no_rollover_when_disabled(self) -> None:
        day = {"today": date(2024, 5, 1)}
        quota = DailyQuota(limit=1, auto_reset=False, today=lambda: day["today"])
        quota.record()
        day["today"] = date(2024, 5, 2)
        with pytest.raises(QuotaExhausted):
            quota.check()
        quota.reset()
        quota.check()

    def test_reservations_count_against_limit(self) -> None:
        quota = DailyQuota(limit=1)
        quota.reserve()
        with pytest.raises(QuotaExhausted):
            quota.reserve()
        quota.release()
        quota.reserve()
        assert quota.commit() == 1
        assert quota.used == 1
        with pytest.raises(QuotaExhausted):
            quota.reserve()

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValueError):
            DailyQuota(limit=-1)


class TestRateLimitedScheduler:
    @pytest.mark.asyncio
    async def test_tokens_bounded_and_refilled(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=3, interval=60.0)
        for _ in range(3):
            assert await scheduler.schedule(returning("ok")) == "ok"
            assert 0 <= scheduler.available_tokens <= 3
        assert scheduler.available_tokens == 0
        assert clock.now == 0.0

        # fourth call waits for the refresh
        assert await scheduler.schedule(returning("late")) == "late"
        assert clock.now == pytest.approx(60.0)
        assert scheduler.available_tokens == 2

    @pytest.mark.asyncio
    async def test_capacity_one_spaces_calls_by_interval(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=1, interval=10.0)
        starts: list[float] = []

        async def op():
            starts.append(clock.now)
            return None

        for _ in range(3):
            await scheduler.schedule(op)
        assert starts == [0.0, pytest.approx(10.0), pytest.approx(20.0)]

    @pytest.mark.asyncio
    async def test_capacity_one_real_clock(self) -> None:
        interval = 0.05
        scheduler = RateLimitedScheduler(
            name="real",
            capacity=1,
            refresh_interval=interval,
            max_concurrent=1,
            quota=DailyQuota(limit=10),
            executor=BackoffExecutor(retries=0),
        )
        starts: list[float] = []

        async def op():
            starts.append(time.monotonic())

        await scheduler.schedule(op)
        await scheduler.schedule(op)
        assert starts[1] - starts[0] >= interval * 0.8

    @pytest.mark.asyncio
    async def test_min_time_between_starts(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=10, interval=60.0, min_time=4.0)
        starts: list[float] = []

        async def op():
            starts.append(clock.now)

        for _ in range(3):
            await scheduler.schedule(op)
        assert starts == [0.0, pytest.approx(4.0), pytest.approx(8.0)]

    @pytest.mark.asyncio
    async def test_quota_exhausted_without_consuming_token(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=5, quota=DailyQuota(limit=2))
        calls = []

        async def op():
            calls.append(1)
            return "ok"

        await scheduler.schedule(op)
        await scheduler.schedule(op)
        tokens_before = scheduler.available_tokens
        with pytest.raises(QuotaExhausted):
            await scheduler.schedule(op)
        assert len(calls) == 2
        assert scheduler.available_tokens == tokens_before
        assert scheduler.quota.used == 2

    @pytest.mark.asyncio
    async def test_failed_operation_does_not_count_quota(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, quota=DailyQuota(limit=5))

        async def op():
            raise ProviderError("bad response")

        with pytest.raises(ProviderError):
            await scheduler.schedule(op)
        assert scheduler.quota.used == 0
        assert scheduler.state().in_flight == 0

    @pytest.mark.asyncio
    async def test_fifo_admission(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=1, interval=5.0)
        order: list[int] = []

        def op_for(n: int):
            async def op():
                order.append(n)
                return n
            return op

        results = await asyncio.gather(*(scheduler.schedule(op_for(n)) for n in range(4)))
        assert results == [0, 1, 2, 3]
        assert order == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_concurrency_cap(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=10, max_concurrent=2)
        running = 0
        peak = 0

        async def op():
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1

        await asyncio.gather(*(scheduler.schedule(op) for _ in range(5)))
        assert peak <= 2

    @pytest.mark.asyncio
    async def test_quota_rechecked_after_queueing(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=5, quota=DailyQuota(limit=1))
        calls = []

        async def op():
            calls.append(1)
            await asyncio.sleep(0)
            return "ok"

        results = await asyncio.gather(scheduler.schedule(op), scheduler.schedule(op), return_exceptions=True)
        assert results[0] == "ok"
        assert isinstance(results[1], QuotaExhausted)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_operations_never_exceed_quota(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=5, max_concurrent=2, quota=DailyQuota(limit=1))

        async def op():
            await asyncio.sleep(0.05)
            return "ok"

        results = await asyncio.gather(scheduler.schedule(op), scheduler.schedule(op), return_exceptions=True)

        assert results.count("ok") == 1
        assert sum(isinstance(r, QuotaExhausted) for r in results) == 1
        assert scheduler.quota.used == 1

    @pytest.mark.asyncio
    async def test_failed_operation_releases_reservation(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, quota=DailyQuota(limit=1))

        async def op():
            raise ProviderError("bad response")

        with pytest.raises(ProviderError):
            await scheduler.schedule(op)
        assert await scheduler.schedule(returning("ok")) == "ok"
        assert scheduler.quota.used == 1

    @pytest.mark.asyncio
    async def test_state_snapshot(self) -> None:
        clock = FakeClock()
        scheduler = make_scheduler(clock, capacity=3, quota=DailyQuota(limit=9))
        await scheduler.schedule(returning(None))
        state = scheduler.state()
        assert state.name == "test"
        assert state.available_tokens == 2
        assert state.capacity == 3
        assert state.daily_used == 1
        assert state.daily_limit == 9
        assert state.in_flight == 0
        assert state.queued == 0

    def test_invalid_arguments(self) -> None:
        with pytest.raises(ValueError):
            RateLimitedScheduler("x", capacity=0, refresh_interval=1, max_concurrent=1, quota=DailyQuota(1))
        with pytest.raises(ValueError):
            RateLimitedScheduler("x", capacity=1, refresh_interval=0, max_concurrent=1, quota=DailyQuota(1))
        with pytest.raises(ValueError):
            RateLimitedScheduler("x", capacity=1, refresh_interval=1, max_concurrent=0, quota=DailyQuota(1))


class TestBuildSchedulers:
    @pytest.mark.asyncio
    async def test_shared_quota_is_one_counter(self) -> None:
        classify, generate = build_schedulers(shared_quota=True, daily_limit=1)
        assert classify.quota is generate.quota
        await classify.schedule(returning("label"))
        with pytest.raises(QuotaExhausted):
            await generate.schedule(returning("text"))

    @pytest.mark.asyncio
    async def test_shared_quota_concurrent_schedulers(self) -> None:
        classify, generate = build_schedulers(shared_quota=True, daily_limit=1)
        classify.min_time = generate.min_time = 0.0

        async def op():
            await asyncio.sleep(0.05)
            return "ok"

        results = await asyncio.gather(classify.schedule(op), generate.schedule(op), return_exceptions=True)

        assert results.count("ok") == 1
        assert sum(isinstance(r, QuotaExhausted) for r in results) == 1
        assert classify.quota.used == 1

    @pytest.mark.asyncio
    async def test_separate_quotas(self) -> None:
        classify, generate = build_schedulers(shared_quota=False, daily_limit=1)
        assert classify.quota is not generate.quota
        await classify.schedule(returning("label"))
        assert await generate.schedule(returning("text")) == "text"

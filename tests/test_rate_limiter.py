"""Unit tests for the in-memory rate limiter."""

import asyncio
import threading

import pytest

from ratelimit_api.adapters.rate_limit.base import (
    FixedWindowPolicy,
    TokenBucketPolicy,
)
from ratelimit_api.adapters.rate_limit.fixed_window import FixedWindowStrategy
from ratelimit_api.adapters.rate_limit.limiter import (
    RateLimiter,
    build_rate_limiter,
    build_strategy,
)
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketStrategy
from ratelimit_api.core.config import RateLimitSettings
from ratelimit_api.core.errors import ConfigurationAppError
from ratelimit_api.core.rate_limit import run_periodic_cleanup


def _fixed_window(clock, max_requests: int = 3, window_size_ms: int = 1000) -> RateLimiter:
    return RateLimiter(
        FixedWindowStrategy(
            FixedWindowPolicy(max_requests=max_requests, window_size_ms=window_size_ms)
        ),
        clock=clock,
    )


def _token_bucket(clock, capacity: float = 3, rate: float = 3, idle_ms: float = 60_000) -> RateLimiter:
    return RateLimiter(
        TokenBucketStrategy(
            TokenBucketPolicy(
                capacity=capacity,
                refill_rate_per_second=rate,
                cost_per_request=1,
                idle_eviction_ms=idle_ms,
            )
        ),
        clock=clock,
    )


def test_fixed_window_allows_up_to_limit(clock) -> None:
    limiter = _fixed_window(clock)

    results = []
    for _ in range(4):
        results.append(limiter.check("X"))
        clock.advance(3)

    assert [r.allowed for r in results] == [True, True, True, False]
    assert [r.remaining for r in results] == [2, 1, 0, 0]


def test_isolated_by_key(clock) -> None:
    limiter = _fixed_window(clock, max_requests=1)

    assert limiter.check("k1").allowed is True
    assert limiter.check("k1").allowed is False
    assert limiter.check("k2").allowed is True
    assert limiter.size() == 2


def test_any_key_is_a_new_client(clock) -> None:
    limiter = _token_bucket(clock)

    assert limiter.check("").allowed is True
    assert limiter.check("::1").allowed is True
    assert limiter.size() == 2


def test_token_bucket_refills_over_time(clock) -> None:
    limiter = _token_bucket(clock)

    assert [limiter.check("X").allowed for _ in range(4)] == [True, True, True, False]

    clock.advance(500)
    decision = limiter.check("X")

    assert decision.allowed is True
    assert decision.tokens == pytest.approx(0.5)


def test_fixed_window_cleanup_evicts_past_windows(clock) -> None:
    limiter = _fixed_window(clock)
    limiter.check("old")
    clock.advance(1000)
    limiter.check("fresh")

    evicted = limiter.cleanup()

    assert evicted == 1
    assert sorted(limiter.store.keys()) == ["fresh"]


def test_token_bucket_cleanup_uses_idle_threshold(clock) -> None:
    limiter = _token_bucket(clock, idle_ms=60_000)
    limiter.check("idle")
    clock.advance(30_000)
    limiter.check("active")
    clock.advance(30_001)

    assert limiter.cleanup() == 1
    assert list(limiter.store.keys()) == ["active"]


def test_evicted_key_comes_back_as_new_client(clock) -> None:
    limiter = _fixed_window(clock, max_requests=2)
    for _ in range(5):
        limiter.check("X")

    clock.advance(1000)
    limiter.cleanup()
    decision = limiter.check("X")

    assert decision.allowed is True
    assert decision.remaining == 1
    assert limiter.store.get("X").state.count == 1


def test_evicted_bucket_comes_back_full(clock) -> None:
    limiter = _token_bucket(clock, capacity=2, rate=0.001, idle_ms=10)
    limiter.check("X")
    limiter.check("X")
    clock.advance(11)

    assert limiter.cleanup() == 1
    limiter.check("X")

    assert limiter.store.get("X").state.tokens == pytest.approx(1.0)


def test_cleanup_skips_key_being_checked(clock) -> None:
    limiter = _fixed_window(clock)
    limiter.check("busy")
    clock.advance(1000)
    slot = limiter.store.get("busy")

    acquired = threading.Event()
    release = threading.Event()

    def hold_lock() -> None:
        with slot.lock:
            acquired.set()
            release.wait(timeout=5)

    holder = threading.Thread(target=hold_lock)
    holder.start()
    acquired.wait(timeout=5)
    try:
        assert limiter.cleanup() == 0
        assert limiter.size() == 1
    finally:
        release.set()
        holder.join()

    assert limiter.cleanup() == 1


def test_check_after_concurrent_eviction_uses_fresh_state(clock) -> None:
    limiter = _fixed_window(clock, max_requests=1)
    limiter.check("X")
    stale = limiter.store.get("X")

    limiter.store.remove("X")

    assert limiter.check("X").allowed is True
    assert stale.evicted is True
    assert limiter.store.get("X") is not stale


def test_parallel_checks_admit_exactly_capacity(clock) -> None:
    capacity = 25
    limiter = _token_bucket(clock, capacity=capacity, rate=1)
    workers = 100
    barrier = threading.Barrier(workers)
    allowed = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        decision = limiter.check("shared")
        with lock:
            allowed.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert allowed.count(True) == capacity
    assert allowed.count(False) == workers - capacity


def test_parallel_fixed_window_counts_every_request(clock) -> None:
    limiter = _fixed_window(clock, max_requests=10)
    workers = 50
    barrier = threading.Barrier(workers)
    results = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        decision = limiter.check("shared")
        with lock:
            results.append(decision.allowed)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 10
    assert limiter.store.get("shared").state.count == workers


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "window_size_ms": 1000},
        {"max_requests": 1, "window_size_ms": 0},
        {"max_requests": -3, "window_size_ms": 1000},
        {"max_requests": 1.5, "window_size_ms": 1000},
        {"max_requests": 1, "window_size_ms": 1.5},
        {"max_requests": True, "window_size_ms": 1000},
    ],
)
def test_invalid_fixed_window_policy(kwargs: dict) -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        FixedWindowPolicy(**kwargs)

    assert exc_info.value.code == "invalid_rate_policy"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"capacity": 0, "refill_rate_per_second": 1},
        {"capacity": 1, "refill_rate_per_second": 0},
        {"capacity": 1, "refill_rate_per_second": 1, "cost_per_request": 0},
        {"capacity": 1, "refill_rate_per_second": 1, "idle_eviction_ms": -1},
        {"capacity": "3", "refill_rate_per_second": 1},
    ],
)
def test_invalid_token_bucket_policy(kwargs: dict) -> None:
    with pytest.raises(ConfigurationAppError):
        TokenBucketPolicy(**kwargs)


def test_build_strategy_from_settings() -> None:
    fixed = build_strategy(RateLimitSettings(algorithm="fixed_window", max_requests=5))
    bucket = build_strategy(RateLimitSettings(algorithm="token_bucket", capacity=10))

    assert isinstance(fixed, FixedWindowStrategy)
    assert fixed.policy.max_requests == 5
    assert isinstance(bucket, TokenBucketStrategy)
    assert bucket.policy.capacity == 10


def test_build_rate_limiter_rejects_non_positive_settings() -> None:
    with pytest.raises(ConfigurationAppError):
        build_rate_limiter(RateLimitSettings(algorithm="token_bucket", refill_rate_per_second=0))


def test_periodic_cleanup_evicts_off_the_event_loop(clock) -> None:
    limiter = _fixed_window(clock)
    limiter.check("stale")
    clock.advance(1000)

    cleanup_threads: list[int] = []
    original_cleanup = limiter.cleanup

    def recording_cleanup() -> int:
        cleanup_threads.append(threading.get_ident())
        return original_cleanup()

    limiter.cleanup = recording_cleanup

    async def run() -> int:
        loop_thread = threading.get_ident()
        task = asyncio.create_task(run_periodic_cleanup(limiter, 0.01))
        try:
            for _ in range(200):
                if limiter.size() == 0:
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        return loop_thread

    loop_thread = asyncio.run(run())

    assert limiter.size() == 0
    assert cleanup_threads
    assert loop_thread not in cleanup_threads

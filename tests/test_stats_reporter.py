"""Unit tests for the token bucket stats reader."""

import pytest

from ratelimit_api.adapters.rate_limit.base import FixedWindowPolicy, TokenBucketPolicy
from ratelimit_api.adapters.rate_limit.fixed_window import FixedWindowStrategy
from ratelimit_api.adapters.rate_limit.limiter import RateLimiter
from ratelimit_api.adapters.rate_limit.stats import BucketStats, TokenBucketStatsReporter
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketStrategy
from ratelimit_api.core.errors import ConfigurationAppError


@pytest.fixture
def limiter(clock) -> RateLimiter:
    policy = TokenBucketPolicy(capacity=3, refill_rate_per_second=3, cost_per_request=1)
    return RateLimiter(TokenBucketStrategy(policy), clock=clock)


def test_snapshot_is_ordered_by_key(limiter: RateLimiter) -> None:
    for key in ("10.0.0.3", "10.0.0.1", "10.0.0.2"):
        limiter.check(key)

    snapshot = TokenBucketStatsReporter(limiter).snapshot()

    assert [item.key for item in snapshot] == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
    assert all(item.capacity == 3.0 for item in snapshot)


def test_snapshot_refills_without_consuming(limiter: RateLimiter, clock) -> None:
    for _ in range(3):
        limiter.check("X")
    clock.advance(200)

    snapshot = TokenBucketStatsReporter(limiter).snapshot()

    assert len(snapshot) == 1
    assert isinstance(snapshot[0], BucketStats)
    assert snapshot[0].key == "X"
    assert snapshot[0].tokens == pytest.approx(0.6)
    state = limiter.store.get("X").state
    assert state.tokens == pytest.approx(0.6)
    assert state.last_refill == clock()


def test_snapshot_twice_is_stable(limiter: RateLimiter, clock) -> None:
    limiter.check("X")
    limiter.check("Y")
    reporter = TokenBucketStatsReporter(limiter)

    first = reporter.snapshot()
    clock.advance(0.001)
    second = reporter.snapshot()

    assert [s.key for s in first] == [s.key for s in second]
    for before, after in zip(first, second):
        assert after.tokens >= before.tokens
        assert after.tokens == pytest.approx(before.tokens, abs=1e-3)
        assert after.tokens <= after.capacity


def test_snapshot_matches_next_check(limiter: RateLimiter, clock) -> None:
    for _ in range(3):
        limiter.check("X")
    clock.advance(400)

    reported = TokenBucketStatsReporter(limiter).snapshot()[0].tokens
    decision = limiter.check("X")

    assert decision.allowed is True
    assert decision.tokens == pytest.approx(reported - 1)


def test_empty_snapshot(limiter: RateLimiter) -> None:
    assert TokenBucketStatsReporter(limiter).snapshot() == []


def test_fixed_window_has_no_stats(clock) -> None:
    limiter = RateLimiter(
        FixedWindowStrategy(FixedWindowPolicy(max_requests=1, window_size_ms=1000)),
        clock=clock,
    )

    with pytest.raises(ConfigurationAppError):
        TokenBucketStatsReporter(limiter)

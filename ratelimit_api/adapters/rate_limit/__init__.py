"""Rate limiting adapters.

This package holds the in-process admission-control core: the keyed state
store, the fixed window and token bucket strategies, the limiter that ties
them together, and the token bucket stats reader. The HTTP layer only sees
``RateLimiter`` and ``Decision``.
"""

from ratelimit_api.adapters.rate_limit.base import (
    Algorithm,
    Decision,
    FixedWindowPolicy,
    FixedWindowState,
    RateStrategy,
    TokenBucketPolicy,
    TokenBucketState,
)
from ratelimit_api.adapters.rate_limit.fixed_window import FixedWindowStrategy
from ratelimit_api.adapters.rate_limit.limiter import RateLimiter, build_rate_limiter, build_strategy
from ratelimit_api.adapters.rate_limit.stats import BucketStats, TokenBucketStatsReporter
from ratelimit_api.adapters.rate_limit.store import KeyedStateStore, StateSlot
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketStrategy

__all__ = [
    "Algorithm",
    "BucketStats",
    "Decision",
    "FixedWindowPolicy",
    "FixedWindowState",
    "FixedWindowStrategy",
    "KeyedStateStore",
    "RateLimiter",
    "RateStrategy",
    "StateSlot",
    "TokenBucketPolicy",
    "TokenBucketState",
    "TokenBucketStatsReporter",
    "TokenBucketStrategy",
    "build_rate_limiter",
    "build_strategy",
]

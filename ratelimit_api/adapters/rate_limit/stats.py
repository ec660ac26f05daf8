"""Read-side view over token buckets.

Fixed window has no equivalent: peeking at a counter cannot avoid looking
like a request, so only token bucket limiters expose stats.
"""

from __future__ import annotations

from dataclasses import dataclass

from ratelimit_api.adapters.rate_limit.base import TokenBucketPolicy, TokenBucketState
from ratelimit_api.adapters.rate_limit.limiter import RateLimiter
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketStrategy
from ratelimit_api.core.errors import ConfigurationAppError


@dataclass(frozen=True)
class BucketStats:
    key: str
    tokens: float
    capacity: float


class TokenBucketStatsReporter:
    """Snapshot current token levels per key.

    ``snapshot`` refills every bucket to "now" so the reported tokens match
    what the next check would see. It never consumes tokens, but the refill
    does advance ``last_refill`` and ``tokens`` on the stored state.
    """

    def __init__(self, limiter: RateLimiter[TokenBucketState]) -> None:
        strategy = limiter.strategy
        if not isinstance(strategy, TokenBucketStrategy):
            raise ConfigurationAppError(
                code="stats_unavailable",
                message="Bucket statistics require the token bucket algorithm",
                details={"algorithm": limiter.algorithm.value},
            )
        self._limiter = limiter
        self._strategy = strategy

    @property
    def policy(self) -> TokenBucketPolicy:
        return self._strategy.policy

    @property
    def capacity(self) -> float:
        return float(self._strategy.policy.capacity)

    def snapshot(self) -> list[BucketStats]:
        """Return ``(key, tokens, capacity)`` per live bucket, ordered by key."""

        now = self._limiter.clock()
        capacity = self.capacity
        stats: list[BucketStats] = []
        for slot in self._limiter.store.snapshot():
            with slot.lock:
                if slot.evicted:
                    continue
                self._strategy.refill(slot.state, now)
                stats.append(BucketStats(key=slot.key, tokens=slot.state.tokens, capacity=capacity))

        stats.sort(key=lambda item: item.key)
        return stats

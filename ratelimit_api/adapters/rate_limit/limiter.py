"""In-memory rate limiter orchestrating the keyed store and a strategy.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: checks for the same key are serialized by that key's slot
  lock; checks for different keys only share a brief shard lookup.
"""

from __future__ import annotations

import logging
from typing import Generic, TypeVar

from ratelimit_api.adapters.rate_limit.base import (
    Algorithm,
    Decision,
    FixedWindowPolicy,
    RateStrategy,
    TokenBucketPolicy,
)
from ratelimit_api.adapters.rate_limit.clock import Clock, now_ms
from ratelimit_api.adapters.rate_limit.fixed_window import FixedWindowStrategy
from ratelimit_api.adapters.rate_limit.store import DEFAULT_SHARDS, KeyedStateStore, StateSlot
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketStrategy
from ratelimit_api.core.config import RateLimitSettings
from ratelimit_api.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT")


class RateLimiter(Generic[StateT]):
    """Single entry point used by the HTTP layer.

    Unknown keys are new clients: ``check`` never fails because of the key.
    Over-quota requests come back as ``Decision(allowed=False)``, never as
    exceptions.
    """

    def __init__(
        self,
        strategy: RateStrategy[StateT],
        *,
        clock: Clock = now_ms,
        shards: int = DEFAULT_SHARDS,
    ) -> None:
        self._strategy = strategy
        self._clock = clock
        self._store: KeyedStateStore[StateT] = KeyedStateStore(shards=shards)

    @property
    def strategy(self) -> RateStrategy[StateT]:
        return self._strategy

    @property
    def algorithm(self) -> Algorithm:
        return self._strategy.algorithm

    @property
    def store(self) -> KeyedStateStore[StateT]:
        return self._store

    @property
    def clock(self) -> Clock:
        return self._clock

    def size(self) -> int:
        return self._store.size()

    def check(self, key: str) -> Decision:
        """Decide whether the request identified by ``key`` is admitted.

        The key's state is created on first use and locked for the duration
        of the strategy call. If cleanup evicted the slot between lookup and
        lock, a fresh slot is fetched so the evicted state is never revived.

        Args:
            key: Client key (e.g. source address).

        Returns:
            Decision with quota metadata.
        """

        while True:
            slot = self._store.get_or_create(key, self._default_factory)
            with slot.lock:
                if slot.evicted:
                    continue
                return self._strategy.check(slot.state, self._clock())

    def _default_factory(self) -> StateT:
        return self._strategy.create_state(self._clock())

    def cleanup(self) -> int:
        """Evict idle keys.

        Fixed window evicts keys whose window is older than the current one;
        token bucket evicts keys idle longer than the configured threshold.
        Slots locked by an in-flight ``check`` are skipped: they are being
        touched right now.

        Returns:
            Number of evicted keys.
        """

        now = self._clock()
        evicted = 0

        def _visit(slot: StateSlot[StateT]) -> None:
            nonlocal evicted
            if not slot.lock.acquire(blocking=False):
                return
            try:
                if not slot.evicted and self._strategy.is_idle(slot.state, now):
                    if self._store.remove(slot.key):
                        evicted += 1
            finally:
                slot.lock.release()

        self._store.for_each(_visit)

        logger.debug(
            "rate_limit.cleanup",
            extra={
                "algorithm": self.algorithm.value,
                "evicted": evicted,
                "remaining_keys": self._store.size(),
            },
        )
        return evicted


def build_strategy(config: RateLimitSettings) -> RateStrategy:
    """Create the strategy selected by configuration.

    Raises:
        ConfigurationAppError: If the algorithm is unknown or any policy
            parameter is non-positive.
    """

    if config.algorithm == "fixed_window":
        return FixedWindowStrategy(
            FixedWindowPolicy(
                max_requests=config.max_requests,
                window_size_ms=config.window_size_ms,
            )
        )
    if config.algorithm == "token_bucket":
        return TokenBucketStrategy(
            TokenBucketPolicy(
                capacity=config.capacity,
                refill_rate_per_second=config.refill_rate_per_second,
                cost_per_request=config.cost_per_request,
                idle_eviction_ms=config.idle_eviction_ms,
            )
        )
    raise ConfigurationAppError(
        code="invalid_rate_policy",
        message=f"Unknown rate limit algorithm: {config.algorithm}",
        details={"parameter": "algorithm", "actual_value": config.algorithm},
    )


def build_rate_limiter(config: RateLimitSettings, *, clock: Clock = now_ms) -> RateLimiter:
    """Create a limiter from settings."""
    return RateLimiter(build_strategy(config), clock=clock)

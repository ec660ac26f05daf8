"""Rate limiter interfaces and value types.

The HTTP layer depends on ``Decision`` and ``RateLimiter`` only. Strategies
implement ``RateStrategy`` and own the algorithm; the keyed store owns the
per-client state objects and their lifecycle.
"""

from __future__ import annotations

import numbers
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

from ratelimit_api.core.errors import ConfigurationAppError


class Algorithm(str, Enum):
    """Admission algorithm tag reported with every decision."""

    FIXED_WINDOW = "FixedWindow"
    TOKEN_BUCKET = "TokenBucket"


@dataclass(frozen=True)
class Decision:
    """Result of a single admission check.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window, or bucket capacity.
        remaining: Remaining quota, never negative. Token bucket reports the
            floor of the current tokens.
        reset_or_retry_after: Seconds until the quota recovers. Fixed window
            reports the time to the next window; token bucket reports 0 when
            allowed and the time to refill one request's cost otherwise.
        algorithm: Which algorithm produced the decision.
        tokens: Token bucket only, unfloored tokens after the check.
        capacity: Token bucket only, bucket capacity.
        refill_rate: Token bucket only, tokens per second.
        cost: Token bucket only, tokens consumed per request.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_or_retry_after: int
    algorithm: Algorithm
    tokens: float | None = None
    capacity: float | None = None
    refill_rate: float | None = None
    cost: float | None = None


def _require_positive(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real) or not value > 0:
        raise ConfigurationAppError(
            code="invalid_rate_policy",
            message=f"{name} must be a positive number",
            details={"parameter": name, "actual_value": value},
        )


@dataclass(frozen=True)
class FixedWindowPolicy:
    """Fixed window configuration shared by every key of one limiter."""

    max_requests: int
    window_size_ms: int

    def __post_init__(self) -> None:
        for name in ("max_requests", "window_size_ms"):
            value = getattr(self, name)
            _require_positive(name, value)
            if not isinstance(value, numbers.Integral):
                raise ConfigurationAppError(
                    code="invalid_rate_policy",
                    message=f"{name} must be an integer",
                    details={"parameter": name, "actual_value": value},
                )


@dataclass(frozen=True)
class TokenBucketPolicy:
    """Token bucket configuration shared by every key of one limiter."""

    capacity: float
    refill_rate_per_second: float
    cost_per_request: float = 1.0
    idle_eviction_ms: float = 60_000

    def __post_init__(self) -> None:
        _require_positive("capacity", self.capacity)
        _require_positive("refill_rate_per_second", self.refill_rate_per_second)
        _require_positive("cost_per_request", self.cost_per_request)
        _require_positive("idle_eviction_ms", self.idle_eviction_ms)


@dataclass
class FixedWindowState:
    """Per-key fixed window counters.

    ``count`` is not clamped: rejected requests keep incrementing it.
    """

    window_start: int
    count: int = 0


@dataclass
class TokenBucketState:
    """Per-key bucket. ``0 <= tokens <= capacity``."""

    tokens: float
    last_refill: float


StateT = TypeVar("StateT")


class RateStrategy(ABC, Generic[StateT]):
    """Interface for admission algorithms.

    Strategies are stateless apart from their policy. They mutate only the
    state handed to them, and only for the duration of the call.
    """

    algorithm: Algorithm

    @abstractmethod
    def create_state(self, now: float) -> StateT:
        """Build the default state of a key first observed at ``now``."""
        raise NotImplementedError

    @abstractmethod
    def check(self, state: StateT, now: float) -> Decision:
        """Apply the algorithm to ``state`` at time ``now`` (ms).

        Args:
            state: The key's state; mutated in place.
            now: Current time in epoch milliseconds.

        Returns:
            Decision describing whether the request was admitted.
        """
        raise NotImplementedError

    @abstractmethod
    def is_idle(self, state: StateT, now: float) -> bool:
        """Return True when ``state`` may be evicted at ``now``."""
        raise NotImplementedError

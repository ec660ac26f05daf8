"""Token bucket rate limiting strategy.

Each key owns a bucket that refills continuously at a fixed rate up to its
capacity; a request is admitted when the bucket holds at least one
request's cost. Tokens are kept as floats and only floored when reported,
so repeated refills do not accumulate rounding error.
"""

from __future__ import annotations

import math

from ratelimit_api.adapters.rate_limit.base import (
    Algorithm,
    Decision,
    RateStrategy,
    TokenBucketPolicy,
    TokenBucketState,
)


class TokenBucketStrategy(RateStrategy[TokenBucketState]):
    """Continuous-refill admission with burst tolerance up to capacity."""

    algorithm = Algorithm.TOKEN_BUCKET

    def __init__(self, policy: TokenBucketPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> TokenBucketPolicy:
        return self._policy

    def create_state(self, now: float) -> TokenBucketState:
        return TokenBucketState(tokens=float(self._policy.capacity), last_refill=now)

    def refill(self, state: TokenBucketState, now: float) -> None:
        """Add the tokens earned since the last refill, capped at capacity.

        A clock that steps backwards adds nothing and leaves ``last_refill``
        where it was.
        """
        elapsed_seconds = max(0.0, (now - state.last_refill) / 1000)
        state.tokens = min(
            float(self._policy.capacity),
            state.tokens + elapsed_seconds * self._policy.refill_rate_per_second,
        )
        state.last_refill = max(state.last_refill, now)

    def check(self, state: TokenBucketState, now: float) -> Decision:
        policy = self._policy
        self.refill(state, now)

        allowed = state.tokens >= policy.cost_per_request
        if allowed:
            state.tokens = max(0.0, state.tokens - policy.cost_per_request)
            retry_after = 0
        else:
            retry_after = int(
                math.ceil((policy.cost_per_request - state.tokens) / policy.refill_rate_per_second)
            )

        return Decision(
            allowed=allowed,
            limit=int(math.floor(policy.capacity)),
            remaining=int(math.floor(state.tokens)),
            reset_or_retry_after=retry_after,
            algorithm=self.algorithm,
            tokens=state.tokens,
            capacity=float(policy.capacity),
            refill_rate=float(policy.refill_rate_per_second),
            cost=float(policy.cost_per_request),
        )

    def is_idle(self, state: TokenBucketState, now: float) -> bool:
        return now - state.last_refill > self._policy.idle_eviction_ms

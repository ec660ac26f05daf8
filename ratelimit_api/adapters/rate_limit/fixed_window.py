"""Fixed-window rate limiting strategy.

Notes:
- Windows are globally aligned: every key shares the same boundaries
  (multiples of the window size since the UNIX epoch).
- A rejected request still increments the counter, so ``count`` can grow
  past ``max_requests`` within a window. Admission is unaffected (every
  later request in that window is rejected too) but the raw count is not a
  count of admitted requests.
"""

from __future__ import annotations

import math

from ratelimit_api.adapters.rate_limit.base import (
    Algorithm,
    Decision,
    FixedWindowPolicy,
    FixedWindowState,
    RateStrategy,
)


class FixedWindowStrategy(RateStrategy[FixedWindowState]):
    """Count requests per key within fixed time windows.

    Susceptible to boundary bursts: a client can send ``max_requests`` at
    the end of one window and ``max_requests`` again at the start of the
    next.
    """

    algorithm = Algorithm.FIXED_WINDOW

    def __init__(self, policy: FixedWindowPolicy) -> None:
        self._policy = policy

    @property
    def policy(self) -> FixedWindowPolicy:
        return self._policy

    def window_start(self, now: float) -> int:
        """Compute the start of the window containing ``now``.

        Args:
            now: UNIX time in milliseconds.

        Returns:
            Greatest multiple of the window size that is <= ``now``.
        """
        size = self._policy.window_size_ms
        return int(math.floor(now / size)) * size

    def create_state(self, now: float) -> FixedWindowState:
        return FixedWindowState(window_start=self.window_start(now), count=0)

    def check(self, state: FixedWindowState, now: float) -> Decision:
        current_start = self.window_start(now)
        if state.window_start != current_start:
            state.window_start = current_start
            state.count = 0

        state.count += 1

        max_requests = self._policy.max_requests
        window_end = current_start + self._policy.window_size_ms
        reset_after = max(0, int(math.ceil((window_end - now) / 1000)))

        return Decision(
            allowed=state.count <= max_requests,
            limit=max_requests,
            remaining=max(0, max_requests - state.count),
            reset_or_retry_after=reset_after,
            algorithm=self.algorithm,
        )

    def is_idle(self, state: FixedWindowState, now: float) -> bool:
        return state.window_start < self.window_start(now)

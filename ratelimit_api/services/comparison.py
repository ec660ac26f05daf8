"""Side by side replay of one request timeline through both algorithms.

Both limiters share a manually advanced clock, so the result only depends on
the timeline. The default timeline is the window boundary burst: three
requests 10 ms before a window edge and three 10 ms after it. Fixed window
admits all six; the token bucket admits three.

Run ``python -m ratelimit_api.services.comparison`` to print the table.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ratelimit_api.adapters.rate_limit.base import FixedWindowPolicy, TokenBucketPolicy
from ratelimit_api.adapters.rate_limit.fixed_window import FixedWindowStrategy
from ratelimit_api.adapters.rate_limit.limiter import RateLimiter
from ratelimit_api.adapters.rate_limit.token_bucket import TokenBucketStrategy

# Window aligned origin for offsets, in epoch ms.
TIMELINE_ORIGIN_MS = 1_000_000.0

BOUNDARY_BURST_MS: tuple[float, ...] = (990, 990, 990, 1010, 1010, 1010)

CLIENT_KEY = "127.0.0.1"


class _ManualClock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@dataclass(frozen=True)
class ComparisonRow:
    at_ms: float
    fixed_window_allowed: bool
    fixed_window_remaining: int
    token_bucket_allowed: bool
    token_bucket_tokens: float


def compare_algorithms(
    timeline_ms: Sequence[float] = BOUNDARY_BURST_MS,
    *,
    max_requests: int = 3,
    window_size_ms: int = 1000,
    capacity: float = 3,
    refill_rate_per_second: float = 3,
) -> list[ComparisonRow]:
    """Replay ``timeline_ms`` (offsets from a window edge) through both limiters.

    Args:
        timeline_ms: Non-decreasing request offsets in milliseconds.
        max_requests: Fixed window limit.
        window_size_ms: Fixed window length.
        capacity: Token bucket capacity.
        refill_rate_per_second: Token bucket refill rate.

    Returns:
        One row per request, in timeline order.
    """

    clock = _ManualClock(TIMELINE_ORIGIN_MS)
    fixed_window = RateLimiter(
        FixedWindowStrategy(
            FixedWindowPolicy(max_requests=max_requests, window_size_ms=window_size_ms)
        ),
        clock=clock,
    )
    token_bucket = RateLimiter(
        TokenBucketStrategy(
            TokenBucketPolicy(capacity=capacity, refill_rate_per_second=refill_rate_per_second)
        ),
        clock=clock,
    )

    rows: list[ComparisonRow] = []
    for offset in timeline_ms:
        clock.now = TIMELINE_ORIGIN_MS + offset
        fw = fixed_window.check(CLIENT_KEY)
        tb = token_bucket.check(CLIENT_KEY)
        rows.append(
            ComparisonRow(
                at_ms=offset,
                fixed_window_allowed=fw.allowed,
                fixed_window_remaining=fw.remaining,
                token_bucket_allowed=tb.allowed,
                token_bucket_tokens=round(tb.tokens or 0.0, 2),
            )
        )
    return rows


def format_table(rows: Sequence[ComparisonRow]) -> str:
    def mark(allowed: bool) -> str:
        return "allow" if allowed else "REJECT"

    lines = [f"{'t (ms)':>8}  {'fixed window':<20}  {'token bucket':<20}"]
    for row in rows:
        fw = f"{mark(row.fixed_window_allowed)} ({row.fixed_window_remaining} left)"
        tb = f"{mark(row.token_bucket_allowed)} ({row.token_bucket_tokens:.2f} tokens)"
        lines.append(f"{row.at_ms:>8g}  {fw:<20}  {tb:<20}")

    fw_total = sum(r.fixed_window_allowed for r in rows)
    tb_total = sum(r.token_bucket_allowed for r in rows)
    lines.append(f"admitted: fixed window {fw_total}, token bucket {tb_total}")
    return "\n".join(lines)


if __name__ == "__main__":
    print(format_table(compare_algorithms()))

from __future__ import annotations

from fastapi import APIRouter, Depends

from ratelimit_api.adapters.rate_limit.base import Algorithm
from ratelimit_api.adapters.rate_limit.limiter import RateLimiter
from ratelimit_api.adapters.rate_limit.stats import TokenBucketStatsReporter
from ratelimit_api.core.errors import NotFoundAppError
from ratelimit_api.core.rate_limit import get_rate_limiter
from ratelimit_api.schemas.stats import BucketStatsItem, StatsResponse, TokenBucketConfig

router = APIRouter(tags=["Stats"])


@router.get("/api/stats", response_model=StatsResponse)
def bucket_stats(limiter: RateLimiter = Depends(get_rate_limiter)) -> StatsResponse:
    """Report current token levels for every tracked client.

    Buckets are refilled to "now" before being read; no tokens are consumed.
    Only available when the token bucket algorithm is active.

    Raises:
        NotFoundAppError: When the API runs the fixed window algorithm.
    """

    if limiter.algorithm is not Algorithm.TOKEN_BUCKET:
        raise NotFoundAppError(
            code="stats_unavailable",
            message="Bucket statistics are only available with the token bucket algorithm",
            details={"algorithm": limiter.algorithm.value},
        )

    reporter = TokenBucketStatsReporter(limiter)
    snapshot = reporter.snapshot()
    policy = reporter.policy

    return StatsResponse(
        total_buckets=len(snapshot),
        buckets=[
            BucketStatsItem(key=item.key, tokens=round(item.tokens, 2), capacity=item.capacity)
            for item in snapshot
        ],
        config=TokenBucketConfig(
            capacity=policy.capacity,
            refill_rate=policy.refill_rate_per_second,
            tokens_per_request=policy.cost_per_request,
        ),
    )

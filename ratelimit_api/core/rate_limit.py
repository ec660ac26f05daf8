"""Rate limiting middleware for FastAPI.

This module wires the in-process limiter into the HTTP layer.

Design goals:
- Minimal coupling: the limiter only returns a ``Decision``; rendering it as
  headers, status code and JSON body happens here.
- One middleware for both algorithms: the decision's algorithm tag selects
  the headers and the 429 body shape.
- Rejections are responses, not exceptions, so the hot path never raises.

Client key strategy:
- Client address from the connection.
- First ``X-Forwarded-For`` hop when explicitly trusted (behind a proxy).
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from ratelimit_api.adapters.rate_limit.base import Algorithm, Decision
from ratelimit_api.adapters.rate_limit.limiter import RateLimiter
from ratelimit_api.core.config import RateLimitSettings
from ratelimit_api.core.logging import hash_client_key

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> RateLimiter:
    """Return the limiter attached to the running application."""
    return request.app.state.rate_limiter


def build_client_key(request: Request, *, trust_forwarded_for: bool = False) -> str:
    """Build the limiter key for the current request.

    Args:
        request: FastAPI request.
        trust_forwarded_for: Prefer the first X-Forwarded-For hop.

    Returns:
        str: Client address, or "unknown" when the transport has none.
    """

    if trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop

    return request.client.host if request.client else "unknown"


def _format_number(value: float) -> str:
    return f"{value:g}"


def build_rate_limit_headers(decision: Decision) -> dict[str, str]:
    """Headers describing the quota, for both allowed and rejected requests."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if decision.algorithm is Algorithm.FIXED_WINDOW:
        headers["X-RateLimit-Reset"] = str(decision.reset_or_retry_after)
    else:
        headers["X-RateLimit-Type"] = Algorithm.TOKEN_BUCKET.value
    return headers


def build_rejection_response(decision: Decision, config: RateLimitSettings) -> JSONResponse:
    """Render a rejected decision as HTTP 429."""

    headers = build_rate_limit_headers(decision)
    retry_after = decision.reset_or_retry_after

    if decision.algorithm is Algorithm.FIXED_WINDOW:
        window_seconds = _format_number(config.window_size_ms / 1000)
        content = {
            "error": "Too Many Requests",
            "message": (
                f"Rate limit exceeded. Maximum {decision.limit} requests "
                f"per {window_seconds} second(s)."
            ),
            "retryAfter": retry_after,
            "resetIn": f"{retry_after} second(s)",
            "limit": decision.limit,
            "remaining": 0,
        }
    else:
        headers["Retry-After"] = str(retry_after)
        capacity = decision.capacity or 0.0
        refill_rate = decision.refill_rate or 0.0
        content = {
            "error": "Too Many Requests",
            "message": (
                f"Rate limit exceeded. Bucket capacity: {_format_number(capacity)} tokens, "
                f"Refill rate: {_format_number(refill_rate)} tokens/second."
            ),
            "retryAfter": retry_after,
            "bucketCapacity": capacity,
            "refillRate": refill_rate,
            "currentTokens": round(decision.tokens or 0.0, 2),
            "tokensNeeded": decision.cost or 0.0,
        }

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=content,
        headers=headers,
    )


async def rate_limit_middleware(request: Request, call_next) -> Response:
    """HTTP middleware enforcing the configured rate policy.

    Consumes one request's worth of quota for the client. Allowed requests
    proceed and get ``X-RateLimit-*`` headers; rejected requests receive a
    429 response without reaching the route.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: Route response with quota headers, or a 429 response.
    """

    config: RateLimitSettings = request.app.state.rate_limit_settings
    if not config.enabled or request.url.path in config.exempt_paths:
        return await call_next(request)

    limiter = get_rate_limiter(request)
    key = build_client_key(request, trust_forwarded_for=config.trust_forwarded_for)
    decision = limiter.check(key)

    log_extra = {
        "key_hash": hash_client_key(key),
        "algorithm": decision.algorithm.value,
        "limit": decision.limit,
        "remaining": decision.remaining,
        "path": request.url.path,
    }

    if not decision.allowed:
        logger.warning(
            "rate_limit.exceeded",
            extra={**log_extra, "retry_after_s": decision.reset_or_retry_after},
        )
        return build_rejection_response(decision, config)

    logger.info("rate_limit.allowed", extra=log_extra)

    response: Response = await call_next(request)
    for name, value in build_rate_limit_headers(decision).items():
        response.headers[name] = value
    return response


async def run_periodic_cleanup(limiter: RateLimiter, interval_seconds: float) -> None:
    """Evict idle keys every ``interval_seconds`` until cancelled."""

    while True:
        await asyncio.sleep(interval_seconds)
        try:
            evicted = await asyncio.to_thread(limiter.cleanup)
        except Exception:
            logger.exception("rate_limit.cleanup_failed")
            continue
        if evicted:
            logger.info(
                "rate_limit.cleanup",
                extra={"evicted": evicted, "remaining_keys": limiter.size()},
            )

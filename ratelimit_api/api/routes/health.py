from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Exempt from rate limiting so load balancers are never throttled.

    Returns:
        dict: Status plus the active algorithm and number of tracked clients.
    """

    limiter = request.app.state.rate_limiter
    return {
        "status": "ok",
        "algorithm": limiter.algorithm.value,
        "tracked_clients": limiter.size(),
    }

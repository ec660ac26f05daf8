"""Application factory for FastAPI app.

Centralizes app construction (limiter, middleware, handlers, routers) so
tests can build apps with their own policy and clock.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from ratelimit_api.adapters.rate_limit.clock import Clock, now_ms
from ratelimit_api.adapters.rate_limit.limiter import build_rate_limiter
from ratelimit_api.api.routes import demo_router, health_router, stats_router
from ratelimit_api.core.config import RateLimitSettings, settings
from ratelimit_api.core.exception_handlers import setup_exception_handlers
from ratelimit_api.core.logging import configure_logging
from ratelimit_api.core.middleware import request_id_middleware
from ratelimit_api.core.rate_limit import rate_limit_middleware, run_periodic_cleanup

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: RateLimitSettings = app.state.rate_limit_settings
    task: asyncio.Task | None = None
    if config.cleanup_interval_seconds > 0:
        task = asyncio.create_task(
            run_periodic_cleanup(app.state.rate_limiter, config.cleanup_interval_seconds)
        )
    logger.info(
        "rate_limit.started",
        extra={
            "algorithm": app.state.rate_limiter.algorithm.value,
            "cleanup_interval_s": config.cleanup_interval_seconds,
        },
    )
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task


def create_app(
    rate_limit_settings: RateLimitSettings | None = None,
    *,
    clock: Clock = now_ms,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        rate_limit_settings: Policy to enforce; defaults to global settings.
        clock: Millisecond time source handed to the limiter.

    Returns:
        Configured FastAPI app with middleware, handlers and routers.

    Raises:
        ConfigurationAppError: If the rate policy is invalid.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    config = rate_limit_settings or settings.rate_limit

    app = FastAPI(
        title=settings.app.title,
        description=(
            "Per-client admission control with fixed window or token bucket "
            "rate limiting. Rejected requests receive HTTP 429 with quota "
            "metadata; allowed requests carry X-RateLimit-* headers."
        ),
        version="0.1.0",
        debug=settings.app.debug,
        lifespan=_lifespan,
    )

    app.state.rate_limit_settings = config
    app.state.rate_limiter = build_rate_limiter(config, clock=clock)

    # Middleware: last registered runs first, so request ids wrap rate limiting
    app.middleware("http")(rate_limit_middleware)
    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(demo_router)
    app.include_router(stats_router)

    return app

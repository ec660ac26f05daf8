from __future__ import annotations

from ratelimit_api.api.routes.demo import router as demo_router
from ratelimit_api.api.routes.health import router as health_router
from ratelimit_api.api.routes.stats import router as stats_router

__all__ = ["demo_router", "health_router", "stats_router"]

from __future__ import annotations

import json
from datetime import datetime, timezone
from random import randint
from typing import Any

from fastapi import APIRouter, Request

from ratelimit_api.core.errors import ValidationAppError

router = APIRouter(tags=["Demo"])


def _algorithm_label(request: Request) -> str:
    return request.app.state.rate_limiter.algorithm.value


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/")
def welcome(request: Request) -> dict[str, Any]:
    """Landing endpoint reporting which algorithm guards the API."""

    return {
        "message": "Welcome to Rate Limiting Demo!",
        "algorithm": _algorithm_label(request),
        "timestamp": _timestamp(),
        "ip": request.client.host if request.client else None,
    }


@router.get("/api/data")
def get_data(request: Request) -> dict[str, Any]:
    """Return a small sample payload; useful for hammering the limiter."""

    return {
        "message": "Data fetched successfully",
        "algorithm": _algorithm_label(request),
        "timestamp": _timestamp(),
        "data": {"id": randint(0, 999), "value": "Sample data"},
    }


@router.post("/api/submit")
async def submit_data(request: Request) -> dict[str, Any]:
    """Echo the submitted JSON body.

    Raises:
        ValidationAppError: If the body is present but is not valid JSON.
    """

    raw = await request.body()
    received: Any = None
    if raw:
        try:
            received = json.loads(raw)
        except ValueError as exc:
            raise ValidationAppError(
                code="invalid_json",
                message="Request body must be valid JSON",
            ) from exc

    return {
        "message": "Data submitted successfully",
        "algorithm": _algorithm_label(request),
        "timestamp": _timestamp(),
        "received": received,
    }

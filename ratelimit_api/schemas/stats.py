"""Pydantic schemas for the token bucket statistics endpoint."""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class BucketStatsItem(BaseModel):
    """Current token level of one client's bucket."""

    key: str = Field(..., description="Client key (source address).")
    tokens: float = Field(..., description="Tokens available now, rounded to 2 decimals.")
    capacity: float = Field(..., description="Bucket capacity.")


class TokenBucketConfig(BaseModel):
    """Active token bucket policy."""

    model_config = ConfigDict(populate_by_name=True)

    capacity: float
    refill_rate: float = Field(..., alias="refillRate")
    tokens_per_request: float = Field(..., alias="tokensPerRequest")


class StatsResponse(BaseModel):
    """Response body of ``GET /api/stats``."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = "Token Bucket Statistics"
    total_buckets: int = Field(..., alias="totalBuckets")
    buckets: List[BucketStatsItem] = Field(default_factory=list)
    config: TokenBucketConfig

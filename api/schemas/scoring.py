"""Scoring schemas."""

from pydantic import BaseModel, Field


class TrendRequest(BaseModel):
    """Monthly average positions, oldest first; null for months without data."""

    positions: list[float | None] = Field(..., max_length=120)


class TrendRead(BaseModel):
    direction: str
    recent_mean: float
    prior_mean: float
    delta: float


class OpportunityRequest(BaseModel):
    """
    Inputs of the opportunity score.

    When ``site_url`` and ``page_url`` are given, the open high/medium
    recommendation counts are taken from the page's latest audit results
    instead of the request.
    """

    position: float | None = Field(None, description="Current average ranking position")
    high_priority: int = Field(0, ge=0)
    medium_priority: int = Field(0, ge=0)
    search_volume: int | None = Field(None, ge=0)
    site_url: str | None = None
    page_url: str | None = None


class OpportunityRead(BaseModel):
    score: int
    level: str
    position_points: int
    recommendation_points: int
    volume_points: int

"""Tests for the scoring endpoints."""

import pytest
from httpx import AsyncClient

from tests.fixtures.audit_service import SITE_URL, make_recommendation, make_result
from worker.audit.models import Priority

PAGE = f"{SITE_URL}/pricing"


@pytest.mark.asyncio
async def test_trend(client: AsyncClient) -> None:
    """Test trend over six monthly positions."""
    response = await client.post("/v1/scoring/trend", json={"positions": [5, 4, 6, 2, 1, 3]})

    assert response.status_code == 200
    assert response.json()["data"] == {
        "direction": "up",
        "recent_mean": 2.0,
        "prior_mean": 5.0,
        "delta": -3.0,
    }


@pytest.mark.asyncio
async def test_trend_insufficient_data(client: AsyncClient) -> None:
    """Test trend with too few samples."""
    response = await client.post("/v1/scoring/trend", json={"positions": [5, None, 4]})

    body = response.json()
    assert body["data"] is None
    assert body["meta"] == {"reason": "insufficient_data"}


@pytest.mark.asyncio
async def test_opportunity_from_request_counts(client: AsyncClient) -> None:
    """Test opportunity score from explicit inputs."""
    response = await client.post(
        "/v1/scoring/opportunity",
        json={"position": 2, "high_priority": 1, "medium_priority": 2, "search_volume": 600},
    )

    data = response.json()["data"]
    assert data["score"] == 10 + 8 + 6 + 4
    assert data["level"] == "limited"


@pytest.mark.asyncio
async def test_opportunity_counts_open_recommendations(client: AsyncClient, audit_service) -> None:
    """Test counts come from the page's latest results, minus rejected ones."""
    session = audit_service.site(SITE_URL)
    session.coordinator.log.append(
        make_result(
            PAGE,
            recommendations=[
                make_recommendation(Priority.HIGH),
                make_recommendation(Priority.HIGH),
                make_recommendation(Priority.MEDIUM),
            ],
        )
    )
    session.lifecycle.reject(f"seo::{PAGE}::1")
    await session.lifecycle.flush()

    response = await client.post(
        "/v1/scoring/opportunity",
        json={"position": 15, "site_url": SITE_URL, "page_url": PAGE, "high_priority": 9},
    )

    body = response.json()
    assert body["data"]["score"] == 50 + 8 + 3
    assert body["data"]["level"] == "moderate"
    assert body["meta"] == {"results": 1}


@pytest.mark.asyncio
async def test_opportunity_page_requires_site(client: AsyncClient) -> None:
    """Test page_url without site_url is rejected."""
    response = await client.post(
        "/v1/scoring/opportunity",
        json={"position": 15, "page_url": PAGE},
    )

    assert response.status_code == 422
    assert response.json()["error"]["details"] == {"field": "site_url"}

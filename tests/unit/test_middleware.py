"""Tests for middleware components."""

import pytest
from httpx import AsyncClient

from api.middleware import STREAMING_PATHS


class TestRequestIDMiddleware:
    """Tests for request ID tagging."""

    @pytest.mark.asyncio
    async def test_generates_request_id(self, client: AsyncClient):
        response = await client.get("/api/health")
        request_id = response.headers["X-Request-ID"]
        assert len(request_id) == 32

    @pytest.mark.asyncio
    async def test_echoes_incoming_request_id(self, client: AsyncClient):
        response = await client.get("/api/health", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"

    @pytest.mark.asyncio
    async def test_error_responses_are_tagged(self, client: AsyncClient):
        response = await client.post(
            "/v1/audits/resume", json={"site_url": "https://nowhere.test"}
        )
        assert response.status_code == 404
        assert "X-Request-ID" in response.headers


class TestLoggingMiddleware:
    """Tests for request logging."""

    def test_stream_paths(self):
        assert "/v1/audits/stream".startswith(STREAMING_PATHS)
        assert not "/v1/audits/results".startswith(STREAMING_PATHS)

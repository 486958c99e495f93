"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

# Set test environment before any app code runs
os.environ["ENV"] = "test"
os.environ["AUDIT_SERVICE_URL"] = "http://audit.test/api"
os.environ["AUDIT_CHUNK_SIZE"] = "3"
os.environ["RUN_GAP_MINUTES"] = "5"

from tests.fixtures.audit_service import SITE_URL, FakeAuditClient, FakeTaskStore  # noqa: E402


@pytest.fixture
def settings():
    """Fresh settings built from the test environment."""
    from api.config import get_settings

    get_settings.cache_clear()
    return get_settings()


@pytest.fixture
def fake_client() -> FakeAuditClient:
    return FakeAuditClient(
        sitemap_urls=[f"{SITE_URL}/", f"{SITE_URL}/pricing", f"{SITE_URL}/blog"],
        keyword_pages={"crm": [f"{SITE_URL}/crm", f"{SITE_URL}/pricing"]},
    )


@pytest.fixture
def fake_store() -> FakeTaskStore:
    return FakeTaskStore()


@pytest.fixture
def audit_service(settings, fake_client, fake_store):
    """Audit service wired to the fakes."""
    from api.services.audit_service import AuditService

    return AuditService(settings=settings, client=fake_client, store=fake_store)


@pytest.fixture
async def client(audit_service) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    from api.main import app
    from api.services.audit_service import get_audit_service

    app.dependency_overrides[get_audit_service] = lambda: audit_service
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()

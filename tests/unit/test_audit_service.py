"""Tests for the audit service registry."""

import asyncio

import pytest

from api.exceptions import NotFoundError
from api.services.audit_service import AuditService
from tests.fixtures.audit_service import SITE_URL, FakeAuditClient, FakeTaskStore
from worker.audit.models import AuditType

URLS = [f"{SITE_URL}/{p}" for p in "abcde"]


class TestAuditService:
    """Tests for site sessions and shutdown."""

    def test_site_sessions_are_shared(self, audit_service):
        assert audit_service.site(SITE_URL + "/") is audit_service.site(SITE_URL)

    def test_existing_site_unknown(self, audit_service):
        with pytest.raises(NotFoundError):
            audit_service.existing_site("https://unknown.example")

    async def test_aclose_lets_chunk_in_flight_finish(self, settings):
        client = FakeAuditClient(delay=0.02)
        store = FakeTaskStore()
        service = AuditService(settings=settings, client=client, store=store)
        coordinator = service.site(SITE_URL).coordinator

        coordinator.start_urls(URLS, (AuditType.SEO,))
        while client.in_flight == 0:
            await asyncio.sleep(0)

        await service.aclose()

        assert not coordinator.running
        assert client.closed
        assert coordinator.state.completed_urls == set(URLS[:3])
        assert len(coordinator.log) == 3
        assert not any(result.failed for result in coordinator.log)

"""Test fixtures: audit backend and task store doubles."""

from tests.fixtures.audit_service import (
    BASE_TIME,
    SITE_URL,
    FakeAuditClient,
    FakeTaskStore,
    make_recommendation,
    make_result,
    mock_transport,
)

__all__ = [
    "BASE_TIME",
    "SITE_URL",
    "FakeAuditClient",
    "FakeTaskStore",
    "make_recommendation",
    "make_result",
    "mock_transport",
]

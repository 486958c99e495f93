"""Business logic services package."""

from api.services.audit_service import AuditService, SiteSession, get_audit_service

__all__ = [
    "AuditService",
    "SiteSession",
    "get_audit_service",
]

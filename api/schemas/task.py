"""Tasklist schemas."""

from pydantic import BaseModel, Field, field_validator

from api.schemas.audit import SiteRequest
from worker.audit.models import (
    ALL_AUDIT_TYPES,
    AuditType,
    parse_audit_types,
    parse_recommendation_key,
)


def _check_key(key: str) -> str:
    try:
        parse_recommendation_key(key)
    except ValueError as e:
        raise ValueError(f"Malformed recommendation key: {key}") from e
    return key


class TaskKeyRequest(SiteRequest):
    """A lifecycle action on one recommendation."""

    key: str = Field(..., min_length=1, description="Recommendation key 'type::page_url::index'")

    @field_validator("key")
    @classmethod
    def check_key(cls, v: str) -> str:
        return _check_key(v)


class TaskBulkAddRequest(SiteRequest):
    """Put several recommendations on the tasklist."""

    keys: list[str] = Field(..., min_length=1, max_length=500)

    @field_validator("keys")
    @classmethod
    def check_keys(cls, v: list[str]) -> list[str]:
        return [_check_key(key) for key in v]


class TaskReloadRequest(SiteRequest):
    audit_types: list[str] | None = None

    @field_validator("audit_types")
    @classmethod
    def check_audit_types(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return None
        return [t.value for t in parse_audit_types(v)]

    def selected_types(self) -> tuple[AuditType, ...]:
        if not self.audit_types:
            return ALL_AUDIT_TYPES
        return parse_audit_types(self.audit_types)


class TaskStateRead(BaseModel):
    """Local view of the site's tasklist."""

    site_url: str
    pending: list[str]
    completed: list[str]
    rejected: list[str]


class TaskTransitionRead(BaseModel):
    key: str
    state: str


class TaskBulkAddRead(BaseModel):
    added: list[str]
    skipped: list[str]

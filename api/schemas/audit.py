"""Audit run schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from api.config import get_settings
from worker.audit.models import (
    AuditType,
    TargetMode,
    TargetSelection,
    parse_audit_types,
)


def _normalize_audit_types(v: list[str] | None) -> list[str] | None:
    if v is None:
        return None
    return [t.value for t in parse_audit_types(v)]


class SiteRequest(BaseModel):
    """Body naming the site an action applies to."""

    site_url: str = Field(..., min_length=1, max_length=2048)

    @field_validator("site_url")
    @classmethod
    def strip_site_url(cls, v: str) -> str:
        return v.strip().rstrip("/")


class AuditStartRequest(SiteRequest):
    """Start a batch audit for a target selection."""

    mode: TargetMode = TargetMode.PAGE
    page_url: str | None = Field(None, max_length=2048)
    keyword: str | None = Field(None, max_length=500)
    keywords: list[str] = Field(default_factory=list, max_length=200)
    group_name: str | None = Field(None, max_length=255)
    audit_types: list[str] | None = Field(
        None, description="Audit types to run; the configured default selection when omitted"
    )
    skip_audited: bool = Field(
        False, description="Skip pages already audited in this session or loaded history"
    )

    @field_validator("audit_types")
    @classmethod
    def check_audit_types(cls, v: list[str] | None) -> list[str] | None:
        return _normalize_audit_types(v)

    @model_validator(mode="after")
    def check_mode_parameters(self) -> "AuditStartRequest":
        if self.mode == TargetMode.PAGE and not self.page_url:
            raise ValueError("page_url is required for mode 'page'")
        if self.mode == TargetMode.KEYWORD and not self.keyword:
            raise ValueError("keyword is required for mode 'keyword'")
        if self.mode == TargetMode.GROUP and not self.keywords:
            raise ValueError("keywords are required for mode 'group'")
        return self

    def selection(self) -> TargetSelection:
        return TargetSelection(
            site_url=self.site_url,
            mode=self.mode,
            page_url=self.page_url,
            keyword=self.keyword,
            keywords=tuple(self.keywords),
            group_name=self.group_name,
        )

    def selected_types(self) -> tuple[AuditType, ...]:
        return parse_audit_types(self.audit_types or get_settings().audit_types)


class HistoryLoadRequest(SiteRequest):
    """Load persisted audit results into the site's result log."""

    audit_types: list[str] | None = None
    mark_completed: bool = True

    @field_validator("audit_types")
    @classmethod
    def check_audit_types(cls, v: list[str] | None) -> list[str] | None:
        return _normalize_audit_types(v)

    def selected_types(self) -> tuple[AuditType, ...]:
        return parse_audit_types(self.audit_types or get_settings().audit_types)


class ProgressRead(BaseModel):
    """Live progress of a site's audit run."""

    site_url: str
    done: int
    total: int
    percent: int
    current_batch: list[str]
    audit_types: list[str]
    running: bool
    aborted: bool
    resumable: bool


class RecommendationRead(BaseModel):
    key: str
    priority: str
    category: str
    issue: str
    recommendation: str
    how_to_fix: str | None = None
    impact: str = ""
    state: str = "new"


class PageAuditResultRead(BaseModel):
    """One page/audit-type result as stored in the result log."""

    index: int
    page_url: str
    audit_type: str
    score: int
    summary: str
    strengths: list[str]
    recommendations: list[RecommendationRead]
    audited_at: datetime
    error: str | None = None


class AuditRunRead(BaseModel):
    """A run inferred from result timestamps."""

    index: int
    started_at: datetime
    finished_at: datetime
    page_count: int
    result_count: int
    audit_types: list[str]


class HistoryLoadRead(BaseModel):
    loaded: int
    progress: ProgressRead


class RunDeleteRead(BaseModel):
    deleted: int
    failed: int


class RunSummaryRead(BaseModel):
    """Aggregated scores, buckets and top issues for a run."""

    run: AuditRunRead | None = None
    overall_score: int | None
    type_scores: dict[str, int]
    buckets: dict[str, int]
    top_issues: list[dict[str, Any]]
    recommendation_counts: dict[str, int]
    failed_results: int
    pages: list[dict[str, Any]]

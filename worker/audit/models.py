"""Data models for page audits and audit runs."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


class AuditType(StrEnum):
    """Scoring dimensions a page can be audited for."""

    SEO = "seo"
    CONTENT = "content"
    AEO = "aeo"
    SCHEMA = "schema"
    COMPLIANCE = "compliance"
    SPEED = "speed"

    @property
    def label(self) -> str:
        return AUDIT_TYPE_LABELS[self]


AUDIT_TYPE_LABELS: dict[AuditType, str] = {
    AuditType.SEO: "SEO",
    AuditType.CONTENT: "Content",
    AuditType.AEO: "AEO",
    AuditType.SCHEMA: "Schema",
    AuditType.COMPLIANCE: "Compliance",
    AuditType.SPEED: "Page Speed",
}

ALL_AUDIT_TYPES: tuple[AuditType, ...] = tuple(AuditType)


class Priority(StrEnum):
    """Recommendation priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ScoreBucket(StrEnum):
    """Score bands used for filtering and distribution counts."""

    POOR = "poor"  # < 60
    NEEDS_WORK = "needs-work"  # 60-79
    GOOD = "good"  # >= 80


class TargetMode(StrEnum):
    """How the set of pages to audit is selected."""

    PAGE = "page"
    KEYWORD = "keyword"
    GROUP = "group"
    SITE = "site"


def utcnow() -> datetime:
    return datetime.now(UTC)


def recommendation_key(audit_type: AuditType | str, page_url: str, index: int) -> str:
    """Identity of a recommendation: its audit type, page and position in the result."""
    return f"{AuditType(audit_type).value}::{page_url}::{index}"


def parse_recommendation_key(key: str) -> tuple[AuditType, str, int]:
    """Split a recommendation key back into (audit_type, page_url, index)."""
    audit_type, rest = key.split("::", 1)
    page_url, index = rest.rsplit("::", 1)
    return AuditType(audit_type), page_url, int(index)


def parse_audit_types(values: list[str] | tuple[str, ...] | set[str]) -> tuple[AuditType, ...]:
    """
    Parse a selection of audit type names.

    Unknown names are dropped, duplicates collapse, and the canonical order of
    AuditType is kept so requests are reproducible. An empty result raises.
    """
    wanted = {v.strip().lower() for v in values}
    selected = tuple(t for t in ALL_AUDIT_TYPES if t.value in wanted)
    if not selected:
        raise ValueError("At least one valid audit type is required")
    return selected


@dataclass(frozen=True)
class Recommendation:
    """A single actionable finding within one page/audit-type result."""

    priority: Priority
    category: str
    issue: str
    recommendation_text: str
    impact: str = ""
    how_to_fix: str | None = None

    def task_text(self) -> str:
        """Human-readable line used when the finding is put on the tasklist."""
        text = f"[{self.priority.value.upper()}] {self.category}: {self.recommendation_text}"
        return text.strip()

    def to_dict(self) -> dict:
        return {
            "priority": self.priority.value,
            "category": self.category,
            "issue": self.issue,
            "recommendation": self.recommendation_text,
            "how_to_fix": self.how_to_fix,
            "impact": self.impact,
        }


@dataclass(frozen=True)
class PageAuditResult:
    """
    Outcome of auditing one page for one audit type.

    Immutable once created. Recommendations keep their original order for the
    lifetime of the result because their index is part of the recommendation
    identity key.
    """

    page_url: str
    audit_type: AuditType
    score: int
    summary: str = ""
    strengths: tuple[str, ...] = ()
    recommendations: tuple[Recommendation, ...] = ()
    audited_at: datetime = field(default_factory=utcnow)
    error: str | None = None
    record_id: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def keyed_recommendations(self) -> list[tuple[str, Recommendation]]:
        """Recommendations paired with their identity keys, in original order."""
        return [
            (recommendation_key(self.audit_type, self.page_url, i), rec)
            for i, rec in enumerate(self.recommendations)
        ]

    @classmethod
    def failure(
        cls,
        page_url: str,
        audit_type: AuditType,
        message: str,
        audited_at: datetime | None = None,
    ) -> "PageAuditResult":
        """Build the recorded outcome of an audit request that did not succeed."""
        return cls(
            page_url=page_url,
            audit_type=audit_type,
            score=0,
            audited_at=audited_at or utcnow(),
            error=message or "Unknown error",
        )

    def to_dict(self) -> dict:
        return {
            "page_url": self.page_url,
            "audit_type": self.audit_type.value,
            "score": self.score,
            "summary": self.summary,
            "strengths": list(self.strengths),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "audited_at": self.audited_at.isoformat(),
            "error": self.error,
        }


@dataclass(frozen=True)
class AuditTarget:
    """A page URL plus the audit types requested for it."""

    url: str
    audit_types: tuple[AuditType, ...]


@dataclass(frozen=True)
class TargetSelection:
    """User selection the target resolver turns into page URLs."""

    site_url: str
    mode: TargetMode
    page_url: str | None = None
    keyword: str | None = None
    keywords: tuple[str, ...] = ()
    group_name: str | None = None


@dataclass
class RunState:
    """
    Progress of one batch audit over a target list.

    Owned by the batch scheduler and mutated only between chunks. Callers hold
    on to the instance to stop a run or to resume it later.
    """

    target_urls: list[str] = field(default_factory=list)
    completed_urls: set[str] = field(default_factory=set)
    current_batch: list[str] = field(default_factory=list)
    audit_types: tuple[AuditType, ...] = ALL_AUDIT_TYPES
    aborted: bool = False
    running: bool = False
    site_url: str = ""

    def prepare(
        self,
        targets: list[str],
        audit_types: tuple[AuditType, ...],
        *,
        resume: bool,
    ) -> None:
        """Reset the state for a new pass over ``targets``."""
        self.target_urls = list(dict.fromkeys(targets))
        self.audit_types = tuple(audit_types)
        self.aborted = False
        self.current_batch = []
        if not resume:
            self.completed_urls = set()

    def request_stop(self) -> None:
        """Ask the scheduler to stop at the next chunk boundary."""
        self.aborted = True

    @property
    def done(self) -> int:
        return sum(1 for url in dict.fromkeys(self.target_urls) if url in self.completed_urls)

    @property
    def total(self) -> int:
        return len(dict.fromkeys(self.target_urls))

    @property
    def remaining(self) -> list[str]:
        return [url for url in dict.fromkeys(self.target_urls) if url not in self.completed_urls]

    @property
    def is_complete(self) -> bool:
        return self.total > 0 and self.done >= self.total

    @property
    def is_resumable(self) -> bool:
        return not self.running and 0 < self.done < self.total

    @property
    def percent(self) -> int:
        if self.total == 0:
            return 0
        return int(self.done * 100 / self.total + 0.5)

    def to_dict(self) -> dict:
        return {
            "site_url": self.site_url,
            "done": self.done,
            "total": self.total,
            "percent": self.percent,
            "current_batch": list(self.current_batch),
            "audit_types": [t.value for t in self.audit_types],
            "running": self.running,
            "aborted": self.aborted,
            "resumable": self.is_resumable,
        }

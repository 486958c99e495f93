"""Result aggregation: run clustering, score roll-ups, buckets and top issues.

Runs are never stored. They are derived from the result log by clustering
audit timestamps: results sorted newest first belong to the same run while the
gap to the previous result is at most the gap threshold; a strictly larger gap
starts a new run.

Error-flagged results are shown but do not contribute to any score. Rejected
recommendations stay in the log but are left out of every count.
"""

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from api.config import BUCKET_GOOD_MIN, BUCKET_NEEDS_WORK_MIN
from worker.audit.models import (
    AuditType,
    PageAuditResult,
    Priority,
    ScoreBucket,
)

DEFAULT_RUN_GAP = timedelta(minutes=5)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded away from zero."""
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def mean_score(scores: Iterable[int]) -> int | None:
    values = list(scores)
    if not values:
        return None
    return round_half_up(sum(values) / len(values))


def score_bucket(score: int) -> ScoreBucket:
    """poor < 60 <= needs-work < 80 <= good."""
    if score >= BUCKET_GOOD_MIN:
        return ScoreBucket.GOOD
    if score >= BUCKET_NEEDS_WORK_MIN:
        return ScoreBucket.NEEDS_WORK
    return ScoreBucket.POOR


@dataclass
class AuditRun:
    """A cluster of results inferred to come from one audit execution."""

    index: int
    results: list[PageAuditResult]

    @property
    def started_at(self) -> datetime:
        return min(r.audited_at for r in self.results)

    @property
    def finished_at(self) -> datetime:
        return max(r.audited_at for r in self.results)

    @property
    def page_urls(self) -> list[str]:
        return list(dict.fromkeys(r.page_url for r in self.results))

    @property
    def audit_types(self) -> list[AuditType]:
        present = {r.audit_type for r in self.results}
        return [t for t in AuditType if t in present]

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "page_count": len(self.page_urls),
            "result_count": len(self.results),
            "audit_types": [t.value for t in self.audit_types],
        }


def cluster_runs(
    results: Iterable[PageAuditResult],
    gap: timedelta = DEFAULT_RUN_GAP,
) -> list[AuditRun]:
    """
    Group results into runs, newest run first.

    Args:
        results: Results in any order
        gap: Largest gap between consecutive results of the same run

    Returns:
        Runs with their results sorted newest first.
    """
    ordered = sorted(results, key=lambda r: r.audited_at, reverse=True)
    if not ordered:
        return []

    clusters: list[list[PageAuditResult]] = [[ordered[0]]]
    for previous, current in zip(ordered, ordered[1:]):
        if previous.audited_at - current.audited_at > gap:
            clusters.append([current])
        else:
            clusters[-1].append(current)

    return [AuditRun(index=i, results=cluster) for i, cluster in enumerate(clusters)]


def scored(results: Iterable[PageAuditResult]) -> list[PageAuditResult]:
    """Results that carry a real score (not error-flagged)."""
    return [r for r in results if not r.failed]


def page_scores(results: Iterable[PageAuditResult]) -> dict[str, int]:
    """Mean score per page over its audit types, pages in first-seen order."""
    per_page: dict[str, list[int]] = {}
    for r in scored(results):
        per_page.setdefault(r.page_url, []).append(r.score)
    return {url: round_half_up(sum(s) / len(s)) for url, s in per_page.items()}


def type_scores(results: Iterable[PageAuditResult]) -> dict[AuditType, int]:
    """Mean score per audit type across all pages."""
    per_type: dict[AuditType, list[int]] = {}
    for r in scored(results):
        per_type.setdefault(r.audit_type, []).append(r.score)
    return {
        t: round_half_up(sum(per_type[t]) / len(per_type[t])) for t in AuditType if t in per_type
    }


def overall_score(results: Iterable[PageAuditResult]) -> int | None:
    return mean_score(r.score for r in scored(results))


def bucket_distribution(scores: Iterable[int]) -> dict[ScoreBucket, int]:
    counts = {bucket: 0 for bucket in ScoreBucket}
    for score in scores:
        counts[score_bucket(score)] += 1
    return counts


@dataclass
class IssueCount:
    """How often a recommendation category occurs."""

    category: str
    count: int
    high: int = 0
    medium: int = 0
    low: int = 0

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "count": self.count,
            "high": self.high,
            "medium": self.medium,
            "low": self.low,
        }


def open_recommendations(
    results: Iterable[PageAuditResult],
    rejected: set[str] | frozenset[str] = frozenset(),
):
    """Yield (key, result, recommendation) for every non-rejected recommendation."""
    for result in results:
        for key, rec in result.keyed_recommendations():
            if key not in rejected:
                yield key, result, rec


def top_issues(
    results: Iterable[PageAuditResult],
    rejected: set[str] | frozenset[str] = frozenset(),
    limit: int | None = None,
) -> list[IssueCount]:
    """
    Count recommendations per category, most frequent first.

    Ties keep the order in which categories were first seen.
    """
    issues: dict[str, IssueCount] = {}
    for _key, _result, rec in open_recommendations(results, rejected):
        issue = issues.get(rec.category)
        if issue is None:
            issue = issues[rec.category] = IssueCount(category=rec.category, count=0)
        issue.count += 1
        setattr(issue, rec.priority.value, getattr(issue, rec.priority.value) + 1)

    # sorted() is stable, so first-seen order breaks ties
    ranked = sorted(issues.values(), key=lambda i: i.count, reverse=True)
    return ranked[:limit] if limit is not None else ranked


@dataclass
class PageSummary:
    """One page of a run with its per-type results."""

    page_url: str
    score: int | None
    bucket: ScoreBucket | None
    results: list[PageAuditResult]
    open_recommendations: int = 0

    def to_dict(self) -> dict:
        return {
            "page_url": self.page_url,
            "score": self.score,
            "bucket": self.bucket.value if self.bucket else None,
            "open_recommendations": self.open_recommendations,
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class RunSummary:
    """Aggregated view over a set of results (usually one run)."""

    overall_score: int | None
    pages: list[PageSummary]
    type_scores: dict[AuditType, int]
    buckets: dict[ScoreBucket, int]
    top_issues: list[IssueCount]
    recommendation_counts: dict[Priority, int]
    failed_results: int = 0
    run: AuditRun | None = None

    def to_dict(self) -> dict:
        return {
            "run": self.run.to_dict() if self.run else None,
            "overall_score": self.overall_score,
            "type_scores": {t.value: s for t, s in self.type_scores.items()},
            "buckets": {b.value: c for b, c in self.buckets.items()},
            "top_issues": [i.to_dict() for i in self.top_issues],
            "recommendation_counts": {p.value: c for p, c in self.recommendation_counts.items()},
            "failed_results": self.failed_results,
            "pages": [p.to_dict() for p in self.pages],
        }


def summarize(
    results: list[PageAuditResult],
    rejected: set[str] | frozenset[str] = frozenset(),
    *,
    audit_type: AuditType | None = None,
    bucket: ScoreBucket | None = None,
    priority: Priority | None = None,
    top_issue_limit: int | None = 10,
    run: AuditRun | None = None,
) -> RunSummary:
    """
    Aggregate results into page, type and overall scores.

    Args:
        results: Results in scope (typically AuditRun.results)
        rejected: Recommendation keys excluded from counts
        audit_type: Only consider results of this audit type
        bucket: Only keep pages whose page score falls in this bucket
        priority: Only keep pages with an open recommendation of this priority
        top_issue_limit: Number of categories to return, None for all
        run: Run the results belong to, echoed in the summary
    """
    in_scope = [r for r in results if audit_type is None or r.audit_type == audit_type]

    by_page: dict[str, list[PageAuditResult]] = {}
    for r in in_scope:
        by_page.setdefault(r.page_url, []).append(r)

    scores = page_scores(in_scope)
    pages = []
    for url, page_results in by_page.items():
        score = scores.get(url)
        page_bucket = score_bucket(score) if score is not None else None
        if bucket is not None and page_bucket != bucket:
            continue
        open_recs = [rec for _, _, rec in open_recommendations(page_results, rejected)]
        if priority is not None and not any(rec.priority == priority for rec in open_recs):
            continue
        pages.append(
            PageSummary(
                page_url=url,
                score=score,
                bucket=page_bucket,
                results=page_results,
                open_recommendations=len(open_recs),
            )
        )

    kept = [r for page in pages for r in page.results]
    priorities = Counter(rec.priority for _, _, rec in open_recommendations(kept, rejected))

    return RunSummary(
        overall_score=overall_score(kept),
        pages=pages,
        type_scores=type_scores(kept),
        buckets=bucket_distribution(p.score for p in pages if p.score is not None),
        top_issues=top_issues(kept, rejected, limit=top_issue_limit),
        recommendation_counts={p: priorities.get(p, 0) for p in Priority},
        failed_results=sum(1 for r in kept if r.failed),
        run=run,
    )

"""HTTP adapter for the audit backend.

All responses from the scoring, discovery and history endpoints pass through
normalize_result() so the rest of the package only ever sees one result shape.
"""

from collections.abc import Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Any

import httpx
import structlog

from api.config import Settings, get_settings
from api.exceptions import AuditServiceError
from worker.audit.models import (
    AuditType,
    PageAuditResult,
    Priority,
    Recommendation,
    utcnow,
)

logger = structlog.get_logger(__name__)

# Endpoint paths relative to the configured service URL
SITEMAP_PATH = "audit/sitemap"
RUN_MULTI_PATH = "audit/run-multi"
RUN_PATH = "audit/run"
RUN_BATCH_PATH = "audit/run-batch"
KEYWORD_PAGES_PATH = "google/search-console/keyword-pages"
PAGE_AUDITS_PATH = "db/page-audits"


def _first(raw: dict, *names: str) -> Any:
    for name in names:
        value = raw.get(name)
        if value is not None:
            return value
    return None


def _coerce_score(value: Any) -> int:
    try:
        score = int(float(value) + 0.5)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def normalize_recommendation(raw: dict) -> Recommendation:
    """Normalize one recommendation object from the scoring service."""
    priority_raw = str(raw.get("priority") or "").lower()
    try:
        priority = Priority(priority_raw)
    except ValueError:
        priority = Priority.LOW

    how_to_fix = _first(raw, "howToFix", "how_to_fix")
    return Recommendation(
        priority=priority,
        category=str(raw.get("category") or "General"),
        issue=str(raw.get("issue") or ""),
        recommendation_text=str(
            _first(raw, "recommendation", "recommendationText", "recommendation_text") or ""
        ),
        impact=str(raw.get("impact") or ""),
        how_to_fix=str(how_to_fix) if how_to_fix else None,
    )


def normalize_result(
    raw: dict,
    page_url: str | None = None,
    audit_type: AuditType | None = None,
    received_at: datetime | None = None,
) -> PageAuditResult:
    """
    Convert one raw result row into a PageAuditResult.

    Args:
        raw: Result object as returned by the service or the history store
        page_url: URL that was requested, used when the row omits it
        audit_type: Audit type that was requested, used when the row omits it
        received_at: Timestamp to stamp when the row carries none

    Raises:
        ValueError: If neither the row nor the caller provide a page URL or
            a valid audit type.
    """
    url = _first(raw, "pageUrl", "page_url") or page_url
    if not url:
        raise ValueError("Audit result is missing its page URL")

    type_raw = _first(raw, "auditType", "audit_type") or audit_type
    if type_raw is None:
        raise ValueError(f"Audit result for {url} is missing its audit type")
    parsed_type = AuditType(str(type_raw).lower())

    strengths_raw = raw.get("strengths")
    strengths = tuple(str(s) for s in strengths_raw) if isinstance(strengths_raw, list) else ()

    recs_raw = raw.get("recommendations")
    recommendations = (
        tuple(normalize_recommendation(r) for r in recs_raw if isinstance(r, dict))
        if isinstance(recs_raw, list)
        else ()
    )

    audited_at = (
        _parse_timestamp(_first(raw, "auditedAt", "audited_at")) or received_at or utcnow()
    )
    error = raw.get("error")

    return PageAuditResult(
        page_url=str(url),
        audit_type=parsed_type,
        score=_coerce_score(raw.get("score")),
        summary=str(raw.get("summary") or ""),
        strengths=strengths,
        recommendations=recommendations,
        audited_at=audited_at,
        error=str(error) if error else None,
        record_id=str(raw["id"]) if raw.get("id") is not None else None,
    )


def _normalize_many(
    rows: Iterable[Any],
    page_url: str | None = None,
    audit_type: AuditType | None = None,
) -> list[PageAuditResult]:
    received_at = utcnow()
    results = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            results.append(normalize_result(row, page_url, audit_type, received_at))
        except ValueError as e:
            logger.warning("audit_result_dropped", reason=str(e))
    return results


class AuditServiceClient:
    """Client for the scoring, discovery and audit-history endpoints."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = (base_url or self.settings.audit_service_url).rstrip("/")
        self.timeout = timeout if timeout is not None else self.settings.audit_request_timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.settings.audit_user_agent},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "AuditServiceClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        url = f"{self.base_url}/{path}"
        try:
            response = await self._get_client().request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            raise AuditServiceError(path, str(e) or type(e).__name__) from e

        if response.status_code >= 400:
            raise AuditServiceError(
                path,
                f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise AuditServiceError(path, "Invalid JSON response") from e
        if not isinstance(data, dict):
            raise AuditServiceError(path, "Unexpected response shape")
        return data

    # Scoring

    async def run_multi(
        self,
        site_url: str,
        page_url: str,
        audit_types: Iterable[AuditType],
    ) -> list[PageAuditResult]:
        """Audit one page for several audit types in a single request."""
        data = await self._request(
            "POST",
            RUN_MULTI_PATH,
            json={
                "siteUrl": site_url,
                "pageUrl": page_url,
                "auditTypes": [t.value for t in audit_types],
            },
        )
        return _normalize_many(data.get("results") or [], page_url=page_url)

    async def run(self, site_url: str, page_url: str, audit_type: AuditType) -> PageAuditResult:
        """Audit one page for one audit type."""
        data = await self._request(
            "POST",
            RUN_PATH,
            json={"siteUrl": site_url, "pageUrl": page_url, "auditType": audit_type.value},
        )
        return normalize_result(data, page_url=page_url, audit_type=audit_type)

    async def run_batch(
        self,
        site_url: str,
        page_urls: list[str],
        audit_type: AuditType,
    ) -> list[PageAuditResult]:
        """Audit several pages for one audit type in a single request."""
        data = await self._request(
            "POST",
            RUN_BATCH_PATH,
            json={
                "siteUrl": site_url,
                "pageUrls": page_urls,
                "auditType": audit_type.value,
            },
        )
        return _normalize_many(data.get("results") or [], audit_type=audit_type)

    # Discovery

    async def sitemap(self, site_url: str) -> list[str]:
        """List every page URL found in the site's sitemap."""
        data = await self._request("GET", SITEMAP_PATH, params={"siteUrl": site_url})
        urls = data.get("urls") or []
        return [u for u in urls if isinstance(u, str) and u]

    async def keyword_pages(
        self,
        site_url: str,
        keyword: str,
        lookback_days: int | None = None,
        today: date | None = None,
    ) -> list[str]:
        """List pages ranking for a keyword over the lookback window."""
        days = lookback_days if lookback_days is not None else self.settings.keyword_lookback_days
        end = today or utcnow().date()
        start = end - timedelta(days=days)
        data = await self._request(
            "POST",
            KEYWORD_PAGES_PATH,
            json={
                "siteUrl": site_url,
                "keyword": keyword,
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
            },
        )
        pages = []
        for row in data.get("rows") or []:
            keys = row.get("keys") if isinstance(row, dict) else None
            if isinstance(keys, list) and len(keys) > 1 and keys[1]:
                pages.append(str(keys[1]))
        return pages

    # History

    async def list_page_audits(
        self,
        site_url: str,
        audit_type: AuditType | None = None,
    ) -> list[PageAuditResult]:
        """Read persisted audit results for a site, optionally for one type."""
        params = {"siteUrl": site_url}
        if audit_type is not None:
            params["auditType"] = audit_type.value
        data = await self._request("GET", PAGE_AUDITS_PATH, params=params)
        return _normalize_many(data.get("results") or [], audit_type=audit_type)

    async def delete_page_audit(self, site_url: str, result: PageAuditResult) -> None:
        """
        Delete one persisted audit result.

        Rows read from the store are deleted by id; results without one are
        matched on site, page, audit type and timestamp.
        """
        if result.record_id is not None:
            body = {"id": result.record_id}
        else:
            body = {
                "siteUrl": site_url,
                "pageUrl": result.page_url,
                "auditType": result.audit_type.value,
                "auditedAt": result.audited_at.isoformat(),
            }
        await self._request("DELETE", PAGE_AUDITS_PATH, json=body)

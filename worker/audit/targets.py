"""Target resolution: turn a page/keyword/group/site selection into page URLs."""

from collections.abc import Iterable

import structlog

from api.config import Settings, get_settings
from api.exceptions import AuditServiceError, NoTargetsFoundError
from worker.audit.client import AuditServiceClient
from worker.audit.models import (
    AuditTarget,
    AuditType,
    TargetMode,
    TargetSelection,
)

logger = structlog.get_logger(__name__)


def dedupe_urls(urls: Iterable[str]) -> list[str]:
    """Drop duplicate and blank URLs, keeping first-occurrence order."""
    return list(dict.fromkeys(u.strip() for u in urls if u and u.strip()))


def absolutize(site_url: str, page: str) -> str:
    """Resolve a page path against the site URL ("/pricing" -> "https://x.com/pricing")."""
    page = page.strip()
    if page.startswith(("http://", "https://")):
        return page
    base = site_url.rstrip("/")
    return f"{base}{'' if page.startswith('/') else '/'}{page}"


def build_targets(urls: list[str], audit_types: tuple[AuditType, ...]) -> list[AuditTarget]:
    return [AuditTarget(url=u, audit_types=audit_types) for u in urls]


class TargetResolver:
    """Resolves a selection into a deduplicated, ordered list of absolute URLs."""

    def __init__(self, client: AuditServiceClient, settings: Settings | None = None):
        self.client = client
        self.settings = settings or get_settings()

    async def resolve(self, selection: TargetSelection) -> list[str]:
        """
        Resolve a selection to page URLs.

        Raises:
            NoTargetsFoundError: If the discovery call fails or finds nothing.
        """
        if selection.mode == TargetMode.PAGE:
            urls = self._resolve_page(selection)
        elif selection.mode == TargetMode.KEYWORD:
            urls = await self._resolve_keyword(selection)
        elif selection.mode == TargetMode.GROUP:
            urls = await self._resolve_group(selection)
        else:
            urls = await self._resolve_site(selection)

        urls = dedupe_urls(urls)
        if not urls:
            raise NoTargetsFoundError(selection.mode.value, "no URLs returned")

        logger.info(
            "targets_resolved",
            mode=selection.mode.value,
            site_url=selection.site_url,
            count=len(urls),
        )
        return urls

    def _resolve_page(self, selection: TargetSelection) -> list[str]:
        if not selection.page_url or not selection.page_url.strip():
            raise NoTargetsFoundError(selection.mode.value, "no page URL given")
        return [absolutize(selection.site_url, selection.page_url)]

    async def _resolve_keyword(self, selection: TargetSelection) -> list[str]:
        if not selection.keyword:
            raise NoTargetsFoundError(selection.mode.value, "no keyword given")
        try:
            return await self.client.keyword_pages(selection.site_url, selection.keyword)
        except AuditServiceError as e:
            raise NoTargetsFoundError(selection.mode.value, e.message) from e

    async def _resolve_group(self, selection: TargetSelection) -> list[str]:
        keywords = list(dict.fromkeys(k.strip() for k in selection.keywords if k.strip()))
        keywords = keywords[: self.settings.group_keyword_limit]
        if not keywords:
            raise NoTargetsFoundError(selection.mode.value, "keyword group is empty")

        # One lookup failing must not lose the pages found for the other keywords
        urls: list[str] = []
        failures = 0
        for keyword in keywords:
            try:
                urls.extend(await self.client.keyword_pages(selection.site_url, keyword))
            except AuditServiceError as e:
                failures += 1
                logger.warning(
                    "keyword_lookup_failed",
                    group=selection.group_name,
                    keyword=keyword,
                    error=e.message,
                )

        if failures == len(keywords):
            raise NoTargetsFoundError(selection.mode.value, "every keyword lookup failed")
        return urls

    async def _resolve_site(self, selection: TargetSelection) -> list[str]:
        try:
            return await self.client.sitemap(selection.site_url)
        except AuditServiceError as e:
            raise NoTargetsFoundError(selection.mode.value, e.message) from e

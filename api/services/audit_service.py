"""Per-site audit sessions shared by the API routers.

Each site gets one coordinator (result log, run state, background run) and one
recommendation lifecycle (tasklist overlay), created on first use and kept for
the lifetime of the process. All sites share the audit service client and the
task store client.
"""

from dataclasses import dataclass

import structlog

from api.config import Settings, get_settings
from api.exceptions import NotFoundError
from api.logging import bind_site
from worker.audit.client import AuditServiceClient
from worker.audit.coordinator import AuditCoordinator
from worker.audit.models import PageAuditResult, Recommendation, parse_recommendation_key
from worker.audit.scheduler import BatchScheduler
from worker.audit.targets import TargetResolver
from worker.tasklist.lifecycle import RecommendationLifecycle
from worker.tasklist.store import RemoteTaskStore

logger = structlog.get_logger(__name__)


def normalize_site_url(site_url: str) -> str:
    return site_url.strip().rstrip("/")


@dataclass
class SiteSession:
    """Everything the API keeps for one site."""

    site_url: str
    coordinator: AuditCoordinator
    lifecycle: RecommendationLifecycle

    def find_recommendation(self, key: str) -> tuple[PageAuditResult, Recommendation]:
        """
        Look a recommendation key up in the site's result log.

        The newest result for the key's audit type and page wins.

        Raises:
            NotFoundError: If no logged result carries that recommendation.
        """
        try:
            audit_type, page_url, index = parse_recommendation_key(key)
        except ValueError as e:
            raise NotFoundError("Recommendation", key) from e

        for result in reversed(self.coordinator.log.visible()):
            if result.audit_type == audit_type and result.page_url == page_url:
                if 0 <= index < len(result.recommendations):
                    return result, result.recommendations[index]
                break
        raise NotFoundError("Recommendation", key)

    def recommendation_or_none(self, key: str) -> Recommendation | None:
        try:
            return self.find_recommendation(key)[1]
        except NotFoundError:
            return None


class AuditService:
    """Registry of site sessions."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: AuditServiceClient | None = None,
        store: RemoteTaskStore | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or AuditServiceClient(settings=self.settings)
        self.store = store or RemoteTaskStore(settings=self.settings)
        self._sessions: dict[str, SiteSession] = {}

    def site(self, site_url: str) -> SiteSession:
        """Get or create the session for a site."""
        site_url = normalize_site_url(site_url)
        bind_site(site_url)

        session = self._sessions.get(site_url)
        if session is None:
            coordinator = AuditCoordinator(
                site_url,
                self.client,
                scheduler=BatchScheduler(self.client, settings=self.settings),
                resolver=TargetResolver(self.client, settings=self.settings),
                settings=self.settings,
            )
            session = SiteSession(
                site_url=site_url,
                coordinator=coordinator,
                lifecycle=RecommendationLifecycle(site_url, self.store),
            )
            self._sessions[site_url] = session
            logger.info("site_session_created", site_url=site_url)
        return session

    def existing_site(self, site_url: str) -> SiteSession:
        """
        Get the session of a site that has been used before.

        Raises:
            NotFoundError: If nothing has been done for the site yet.
        """
        site_url = normalize_site_url(site_url)
        session = self._sessions.get(site_url)
        if session is None:
            raise NotFoundError("Site session", site_url)
        bind_site(site_url)
        return session

    def active_runs(self) -> int:
        return sum(1 for s in self._sessions.values() if s.coordinator.running)

    async def aclose(self) -> None:
        """Stop active runs, let their chunks in flight finish, then close the clients."""
        sessions = list(self._sessions.values())
        for session in sessions:
            session.coordinator.stop()
        for session in sessions:
            await session.coordinator.wait()
            await session.lifecycle.flush()
        await self.client.aclose()
        await self.store.aclose()


# Module-level instance shared by the routers
_service: AuditService | None = None


def get_audit_service() -> AuditService:
    """Get or create the audit service singleton."""
    global _service
    if _service is None:
        _service = AuditService()
    return _service


async def shutdown_audit_service() -> None:
    global _service
    if _service is not None:
        await _service.aclose()
        _service = None

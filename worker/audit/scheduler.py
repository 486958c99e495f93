"""Batch scheduler: bounded-concurrency, resumable page audits.

Pages are audited in fixed-size chunks. All requests of a chunk run
concurrently and the chunk is awaited as a whole before its results are
yielded and the next chunk starts, so at most ``chunk_size`` page requests are
outstanding at any time and results arrive in chunk order.

Failures never propagate out of the scheduler:
- A failed request for one page becomes one error-flagged result per
  requested audit type (score 0, no recommendations).
- Without the multi-type endpoint, a failed batch call is retried one
  (page, audit type) request at a time.
"""

import asyncio
from collections.abc import AsyncIterator, Iterable, Iterator
from dataclasses import replace
from typing import TypeVar

import structlog

from api.config import Settings, get_settings
from worker.audit.client import AuditServiceClient
from worker.audit.models import AuditType, PageAuditResult, RunState

logger = structlog.get_logger(__name__)

T = TypeVar("T")

NO_RESULT_MESSAGE = "No result returned"


def chunked(items: list[T], size: int) -> Iterator[list[T]]:
    """Split items into consecutive lists of at most ``size`` elements."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for i in range(0, len(items), size):
        yield items[i : i + size]


def failed_results(
    page_url: str,
    audit_types: Iterable[AuditType],
    message: str,
) -> list[PageAuditResult]:
    """One error-flagged result per audit type for a page that could not be audited."""
    return [PageAuditResult.failure(page_url, t, message) for t in audit_types]


def _error_message(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or type(exc).__name__


class BatchScheduler:
    """Drives an audit over a target list in chunks against the audit service."""

    def __init__(
        self,
        client: AuditServiceClient,
        chunk_size: int | None = None,
        use_multi_endpoint: bool | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.client = client
        self.chunk_size = chunk_size or settings.audit_chunk_size
        self.use_multi_endpoint = (
            settings.audit_use_multi_endpoint if use_multi_endpoint is None else use_multi_endpoint
        )
        if self.chunk_size < 1:
            raise ValueError("chunk size must be at least 1")

    async def run_audit(
        self,
        state: RunState,
        targets: list[str],
        audit_types: tuple[AuditType, ...],
        *,
        resume: bool,
        prepared: bool = False,
    ) -> AsyncIterator[PageAuditResult]:
        """
        Audit every target not yet completed, yielding results chunk by chunk.

        Args:
            state: Run state to update; keep it to stop or resume the run
            targets: Page URLs in audit order
            audit_types: Audit types requested for every page
            resume: Keep the completed set and only audit the remainder;
                when False every target is audited again
            prepared: The caller already reset ``state`` for this pass; a
                stop requested since then is honoured before the first chunk

        Yields:
            PageAuditResult for every (page, audit type) of each chunk, all
            results of a chunk before the next chunk is requested.
        """
        if not audit_types:
            raise ValueError("At least one audit type is required")

        if not prepared:
            state.prepare(targets, audit_types, resume=resume)
        remaining = state.remaining
        state.running = True
        logger.info(
            "audit_run_started",
            site_url=state.site_url,
            total=state.total,
            remaining=len(remaining),
            resume=resume,
            chunk_size=self.chunk_size,
            audit_types=[t.value for t in audit_types],
        )

        try:
            for chunk in chunked(remaining, self.chunk_size):
                if state.aborted:
                    logger.info("audit_run_stopped", site_url=state.site_url, done=state.done)
                    break

                state.current_batch = list(chunk)
                results = await self._audit_chunk(state.site_url, chunk, state.audit_types)

                # Every page of the chunk terminates, success or recorded failure
                state.completed_urls.update(chunk)
                state.current_batch = []

                logger.info(
                    "audit_chunk_completed",
                    pages=len(chunk),
                    results=len(results),
                    failures=sum(1 for r in results if r.failed),
                    done=state.done,
                    total=state.total,
                )
                for result in results:
                    yield result
        finally:
            state.running = False
            state.current_batch = []

        logger.info(
            "audit_run_completed",
            site_url=state.site_url,
            pages=state.done,
            total=state.total,
            aborted=state.aborted,
            audit_types=", ".join(t.value for t in state.audit_types),
        )

    async def _audit_chunk(
        self,
        site_url: str,
        chunk: list[str],
        audit_types: tuple[AuditType, ...],
    ) -> list[PageAuditResult]:
        if self.use_multi_endpoint:
            per_page = await asyncio.gather(
                *(self._audit_page(site_url, url, audit_types) for url in chunk)
            )
            return [r for results in per_page for r in results]
        return await self._audit_chunk_batched(site_url, chunk, audit_types)

    async def _audit_page(
        self,
        site_url: str,
        page_url: str,
        audit_types: tuple[AuditType, ...],
    ) -> list[PageAuditResult]:
        try:
            results = await self.client.run_multi(site_url, page_url, audit_types)
        except Exception as e:
            message = _error_message(e)
            logger.warning("page_audit_failed", page_url=page_url, error=message)
            return failed_results(page_url, audit_types, message)

        # One result per requested type, recorded under the requested URL
        by_type: dict[AuditType, PageAuditResult] = {}
        for result in results:
            if result.audit_type in audit_types and result.audit_type not in by_type:
                if result.page_url != page_url:
                    result = replace(result, page_url=page_url)
                by_type[result.audit_type] = result

        missing = [t for t in audit_types if t not in by_type]
        if missing:
            logger.warning(
                "page_audit_incomplete",
                page_url=page_url,
                missing=[t.value for t in missing],
            )
            for result in failed_results(page_url, missing, NO_RESULT_MESSAGE):
                by_type[result.audit_type] = result
        return [by_type[t] for t in audit_types]

    async def _audit_chunk_batched(
        self,
        site_url: str,
        chunk: list[str],
        audit_types: tuple[AuditType, ...],
    ) -> list[PageAuditResult]:
        per_type = await asyncio.gather(
            *(self._audit_type_batch(site_url, chunk, t) for t in audit_types)
        )
        by_key = {(r.page_url, r.audit_type): r for results in per_type for r in results}
        return [by_key[(url, t)] for url in chunk for t in audit_types if (url, t) in by_key]

    async def _audit_type_batch(
        self,
        site_url: str,
        chunk: list[str],
        audit_type: AuditType,
    ) -> list[PageAuditResult]:
        try:
            results = await self.client.run_batch(site_url, chunk, audit_type)
        except Exception as e:
            logger.warning(
                "audit_batch_failed",
                audit_type=audit_type.value,
                pages=len(chunk),
                error=_error_message(e),
            )
            return await self._audit_sequentially(site_url, chunk, audit_type)

        returned = {r.page_url: r for r in results if r.audit_type == audit_type}
        missing = [url for url in chunk if url not in returned]
        if missing:
            logger.info("audit_batch_incomplete", audit_type=audit_type.value, missing=len(missing))
            for result in await self._audit_sequentially(site_url, missing, audit_type):
                returned[result.page_url] = result
        return [returned[url] for url in chunk if url in returned]

    async def _audit_sequentially(
        self,
        site_url: str,
        page_urls: list[str],
        audit_type: AuditType,
    ) -> list[PageAuditResult]:
        results = []
        for page_url in page_urls:
            try:
                result = await self.client.run(site_url, page_url, audit_type)
                # The record must carry the URL that was requested
                if result.page_url != page_url:
                    result = replace(result, page_url=page_url)
                results.append(result)
            except Exception as e:
                message = _error_message(e)
                logger.warning(
                    "page_audit_failed",
                    page_url=page_url,
                    audit_type=audit_type.value,
                    error=message,
                )
                results.append(PageAuditResult.failure(page_url, audit_type, message))
        return results

"""Audit run coordinator: start/resume/stop control over a site's audits.

The coordinator owns the site's result log and run state, resolves targets,
and drives the batch scheduler in a background task. Every result is appended
to the log (and handed to subscribers) as soon as its chunk completes.
"""

import asyncio
from collections.abc import Callable, Iterator
from datetime import timedelta

import structlog

from api.config import Settings, get_settings
from api.exceptions import AuditServiceError, ConflictError, NotFoundError, RunInProgressError
from worker.audit.aggregator import AuditRun, RunSummary, cluster_runs, summarize
from worker.audit.client import AuditServiceClient
from worker.audit.models import (
    ALL_AUDIT_TYPES,
    AuditTarget,
    AuditType,
    PageAuditResult,
    Priority,
    RunState,
    ScoreBucket,
    TargetSelection,
)
from worker.audit.scheduler import BatchScheduler
from worker.audit.targets import TargetResolver, build_targets

logger = structlog.get_logger(__name__)

ResultCallback = Callable[[PageAuditResult], None]


class ResultLog:
    """
    Append-only log of audit results with live subscribers.

    Subscribers receive ``(index, result)`` tuples for every appended result
    and ``None`` when the producing run finishes. Hidden results keep their
    index but are left out of ``visible()``.
    """

    def __init__(self) -> None:
        self._results: list[PageAuditResult] = []
        self._hidden: set[int] = set()
        self._subscribers: set[asyncio.Queue] = set()

    def __len__(self) -> int:
        return len(self._results)

    def __iter__(self) -> Iterator[PageAuditResult]:
        return iter(list(self._results))

    def append(self, result: PageAuditResult) -> int:
        index = len(self._results)
        self._results.append(result)
        for queue in self._subscribers:
            queue.put_nowait((index, result))
        return index

    def since(self, offset: int = 0) -> list[PageAuditResult]:
        return self._results[max(0, offset) :]

    def snapshot(self) -> list[PageAuditResult]:
        return list(self._results)

    def visible(self) -> list[PageAuditResult]:
        return [r for i, r in enumerate(self._results) if i not in self._hidden]

    def is_hidden(self, index: int) -> bool:
        return index in self._hidden

    def hide(self, results: list[PageAuditResult]) -> int:
        """Hide the given logged results from the views; returns how many were found."""
        targets = {id(r) for r in results}
        found = {i for i, r in enumerate(self._results) if id(r) in targets}
        self._hidden |= found
        return len(found)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def notify_finished(self) -> None:
        for queue in self._subscribers:
            queue.put_nowait(None)


class AuditCoordinator:
    """Start, resume and stop batch audits for one site and expose their results."""

    def __init__(
        self,
        site_url: str,
        client: AuditServiceClient,
        scheduler: BatchScheduler | None = None,
        resolver: TargetResolver | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.site_url = site_url
        self.client = client
        self.scheduler = scheduler or BatchScheduler(client, settings=self.settings)
        self.resolver = resolver or TargetResolver(client, settings=self.settings)
        self.state = RunState(site_url=site_url)
        self.log = ResultLog()
        self.run_gap = timedelta(minutes=self.settings.run_gap_minutes)
        self._callbacks: list[ResultCallback] = []
        self._task: asyncio.Task | None = None

    # Subscriptions

    def on_result(self, callback: ResultCallback) -> Callable[[], None]:
        """Register a callback for every appended result; returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    # Control

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(
        self,
        selection: TargetSelection,
        audit_types: tuple[AuditType, ...] = ALL_AUDIT_TYPES,
        *,
        skip_audited: bool = False,
    ) -> RunState:
        """
        Resolve a selection and start auditing it in the background.

        Raises:
            RunInProgressError: If a run is already active for the site
            NoTargetsFoundError: If the selection resolves to no pages
        """
        if self.running:
            raise RunInProgressError(self.site_url)
        urls = await self.resolver.resolve(selection)
        return self.start_urls(urls, audit_types, resume=skip_audited)

    def start_urls(
        self,
        urls: list[str],
        audit_types: tuple[AuditType, ...] = ALL_AUDIT_TYPES,
        *,
        resume: bool = False,
    ) -> RunState:
        """Start auditing an explicit URL list in the background."""
        if self.running:
            raise RunInProgressError(self.site_url)
        if not audit_types:
            raise ValueError("At least one audit type is required")

        self.state.prepare(urls, audit_types, resume=resume)
        self.state.running = True
        self._task = asyncio.create_task(
            self._drive(list(self.state.target_urls), tuple(audit_types), resume)
        )
        return self.state

    def resume(self) -> RunState:
        """Continue the last run with the pages it has not completed yet."""
        if self.running:
            raise RunInProgressError(self.site_url)
        if not self.state.target_urls:
            raise NotFoundError("Resumable run", self.site_url)
        if not self.state.remaining:
            raise ConflictError("The last run has already completed every page")
        return self.start_urls(self.state.target_urls, self.state.audit_types, resume=True)

    def stop(self) -> RunState:
        """Stop after the chunk in flight; its results are still recorded."""
        if self.running:
            self.state.request_stop()
            logger.info("audit_stop_requested", site_url=self.site_url, done=self.state.done)
        return self.state

    async def wait(self) -> RunState:
        """Wait for the active run, if any, to finish."""
        if self._task is not None:
            await asyncio.shield(self._task)
        return self.state

    def progress(self) -> dict:
        return self.state.to_dict()

    def targets(self) -> list[AuditTarget]:
        """Pages of the current run with the audit types requested for each."""
        return build_targets(self.state.target_urls, self.state.audit_types)

    async def _drive(
        self,
        targets: list[str],
        audit_types: tuple[AuditType, ...],
        resume: bool,
    ) -> None:
        try:
            async for result in self.scheduler.run_audit(
                self.state, targets, audit_types, resume=resume, prepared=True
            ):
                self._record(result)
        except Exception:
            # The scheduler converts request failures into results; anything
            # reaching here is a programming error and must not kill the loop.
            logger.exception("audit_run_crashed", site_url=self.site_url)
        finally:
            self.state.running = False
            self.log.notify_finished()

    def _record(self, result: PageAuditResult) -> None:
        self.log.append(result)
        for callback in list(self._callbacks):
            try:
                callback(result)
            except Exception:
                logger.exception("result_callback_failed", page_url=result.page_url)

    # History

    async def load_history(
        self,
        audit_types: tuple[AuditType, ...] = ALL_AUDIT_TYPES,
        *,
        mark_completed: bool = True,
    ) -> int:
        """
        Load persisted results for the site into the log.

        Pages found in the history count as completed, so a later resume or
        ``skip_audited`` start does not audit them again. A failing read for
        one audit type is logged and skipped.

        Returns:
            Number of results loaded.
        """
        if self.running:
            raise RunInProgressError(self.site_url)

        loaded = 0
        for audit_type in audit_types:
            try:
                results = await self.client.list_page_audits(self.site_url, audit_type)
            except AuditServiceError as e:
                logger.warning(
                    "audit_history_load_failed",
                    audit_type=audit_type.value,
                    error=e.message,
                )
                continue
            for result in sorted(results, key=lambda r: r.audited_at):
                self.log.append(result)
                if mark_completed:
                    self.state.completed_urls.add(result.page_url)
                loaded += 1

        logger.info("audit_history_loaded", site_url=self.site_url, results=loaded)
        return loaded

    async def delete_run(self, run_index: int) -> dict[str, int]:
        """
        Delete a run's persisted results and hide them from every view.

        Remote deletes are best effort: a failed delete is logged and counted.
        The results stay in the log under their original indices.

        Raises:
            RunInProgressError: If a run is active for the site
            NotFoundError: If the run index does not exist
        """
        if self.running:
            raise RunInProgressError(self.site_url)
        runs = self.runs()
        if not 0 <= run_index < len(runs):
            raise NotFoundError("Audit run", str(run_index))

        run = runs[run_index]
        failed = 0
        for result in run.results:
            try:
                await self.client.delete_page_audit(self.site_url, result)
            except AuditServiceError as e:
                failed += 1
                logger.warning(
                    "audit_result_delete_failed",
                    page_url=result.page_url,
                    audit_type=result.audit_type.value,
                    error=e.message,
                )
        hidden = self.log.hide(run.results)

        logger.info("audit_run_deleted", site_url=self.site_url, results=hidden, failed=failed)
        return {"deleted": hidden, "failed": failed}

    # Views

    def runs(self) -> list[AuditRun]:
        return cluster_runs(self.log.visible(), gap=self.run_gap)

    def summary(
        self,
        run_index: int | None = 0,
        rejected: set[str] | frozenset[str] = frozenset(),
        *,
        audit_type: AuditType | None = None,
        bucket: ScoreBucket | None = None,
        priority: Priority | None = None,
    ) -> RunSummary:
        """
        Summarize one run (0 = most recent) or, with ``run_index=None``, the whole log.

        Raises:
            NotFoundError: If the run index does not exist.
        """
        if run_index is None:
            return summarize(
                self.log.visible(),
                rejected,
                audit_type=audit_type,
                bucket=bucket,
                priority=priority,
            )

        runs = self.runs()
        if not 0 <= run_index < len(runs):
            raise NotFoundError("Audit run", str(run_index))
        run = runs[run_index]
        return summarize(
            run.results,
            rejected,
            audit_type=audit_type,
            bucket=bucket,
            priority=priority,
            run=run,
        )

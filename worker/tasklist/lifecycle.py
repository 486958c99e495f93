"""Recommendation lifecycle: new -> pending -> completed / rejected.

Each action updates the local overlay first and then writes to the remote task
store in the background. A failed write is logged and dropped; the local state
stays authoritative until reload() re-reads the remote store. Writes for the
same key are applied in the order the actions happened.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from enum import StrEnum

import structlog

from api.exceptions import InvalidTransitionError, TaskStoreError
from worker.audit.models import (
    ALL_AUDIT_TYPES,
    AuditType,
    Recommendation,
    parse_recommendation_key,
)
from worker.tasklist.store import (
    LocalTaskOverlay,
    RemoteTaskStore,
    TaskRecord,
    TaskStatus,
    scope_keyword,
)

logger = structlog.get_logger(__name__)


class RecommendationState(StrEnum):
    """Lifecycle state of one recommendation key."""

    NEW = "new"
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


_STATE_BY_STATUS = {
    None: RecommendationState.NEW,
    TaskStatus.PENDING: RecommendationState.PENDING,
    TaskStatus.COMPLETED: RecommendationState.COMPLETED,
    TaskStatus.REJECTED: RecommendationState.REJECTED,
}


class RecommendationLifecycle:
    """Tracks recommendations of one site through the tasklist."""

    def __init__(
        self,
        site_url: str,
        store: RemoteTaskStore,
        overlay: LocalTaskOverlay | None = None,
    ):
        self.site_url = site_url
        self.store = store
        self.overlay = overlay or LocalTaskOverlay()
        # Completed keys that were on the tasklist before; un-marking returns them there
        self._completed_from_pending: set[str] = set()
        self._texts: dict[str, str] = {}
        self._last_write: dict[str, asyncio.Task] = {}
        self._writes: set[asyncio.Task] = set()

    def state_of(self, key: str) -> RecommendationState:
        return _STATE_BY_STATUS[self.overlay.status_of(key)]

    @property
    def rejected(self) -> frozenset[str]:
        return self.overlay.rejected

    # Actions

    def add_to_tasklist(
        self,
        items: Iterable[tuple[str, Recommendation | None]],
    ) -> list[str]:
        """
        Put recommendations on the tasklist.

        Keys already pending or completed are skipped.

        Returns:
            Keys that were added.
        """
        added = []
        for key, recommendation in items:
            state = self.state_of(key)
            if state in (RecommendationState.PENDING, RecommendationState.COMPLETED):
                continue
            self._remember_text(key, recommendation)
            self.overlay.set_status(key, TaskStatus.PENDING)
            self._persist_status(key, TaskStatus.PENDING)
            added.append(key)

        if added:
            logger.info("tasks_added", site_url=self.site_url, count=len(added))
        return added

    def mark_done(self, key: str, recommendation: Recommendation | None = None) -> None:
        state = self.state_of(key)
        if state not in (RecommendationState.NEW, RecommendationState.PENDING):
            raise InvalidTransitionError("mark done", key, state.value)

        self._remember_text(key, recommendation)
        if state == RecommendationState.PENDING:
            self._completed_from_pending.add(key)
        self.overlay.set_status(key, TaskStatus.COMPLETED)
        self._persist_status(key, TaskStatus.COMPLETED)

    def unmark_done(self, key: str, recommendation: Recommendation | None = None) -> None:
        state = self.state_of(key)
        if state != RecommendationState.COMPLETED:
            raise InvalidTransitionError("un-mark done", key, state.value)

        self._remember_text(key, recommendation)
        if key in self._completed_from_pending:
            self._completed_from_pending.discard(key)
            self.overlay.set_status(key, TaskStatus.PENDING)
            self._persist_status(key, TaskStatus.PENDING)
        else:
            self.overlay.set_status(key, None)
            self._persist_delete(key)

    def reject(self, key: str, recommendation: Recommendation | None = None) -> None:
        state = self.state_of(key)
        if state == RecommendationState.REJECTED:
            raise InvalidTransitionError("reject", key, state.value)

        self._remember_text(key, recommendation)
        self._completed_from_pending.discard(key)
        self.overlay.set_status(key, TaskStatus.REJECTED)
        self._persist_status(key, TaskStatus.REJECTED)

    def unreject(self, key: str) -> None:
        state = self.state_of(key)
        if state != RecommendationState.REJECTED:
            raise InvalidTransitionError("un-reject", key, state.value)

        self.overlay.set_status(key, None)
        self._persist_delete(key)

    # Reconciliation

    async def reload(self, audit_types: Iterable[AuditType] = ALL_AUDIT_TYPES) -> None:
        """
        Re-derive the local sets from the remote store.

        Audit types whose records cannot be read keep their current local
        state. Pending writes are flushed first so the reload sees them.
        """
        await self.flush()

        records: list[TaskRecord] = []
        for audit_type in audit_types:
            keyword = scope_keyword(audit_type)
            try:
                records.extend(await self.store.fetch(self.site_url, keyword))
            except TaskStoreError as e:
                logger.warning("task_reload_failed", keyword=keyword, error=e.message)
                prefix = f"{audit_type.value}::"
                records.extend(
                    TaskRecord(task_id=key, keyword=keyword, status=status)
                    for key, status in self.overlay.keys_with_prefix(prefix).items()
                )

        self.overlay.replace(records)
        self._completed_from_pending.intersection_update(self.overlay.completed)
        for record in records:
            if record.task_text:
                self._texts.setdefault(record.task_id, record.task_text)

        logger.info(
            "tasks_reloaded",
            site_url=self.site_url,
            pending=len(self.overlay.pending),
            completed=len(self.overlay.completed),
            rejected=len(self.overlay.rejected),
        )

    async def flush(self) -> None:
        """Wait for every background write issued so far."""
        while self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    def snapshot(self) -> dict:
        return self.overlay.to_dict()

    # Persistence

    def _remember_text(self, key: str, recommendation: Recommendation | None) -> None:
        if recommendation is not None:
            self._texts[key] = recommendation.task_text()

    def _persist_status(self, key: str, status: TaskStatus) -> None:
        audit_type, _, _ = parse_recommendation_key(key)
        record = TaskRecord(
            task_id=key,
            keyword=scope_keyword(audit_type),
            status=status,
            task_text=self._texts.get(key, key),
            category=audit_type.value,
        )
        self._schedule(key, lambda: self.store.upsert(self.site_url, record))

    def _persist_delete(self, key: str) -> None:
        audit_type, _, _ = parse_recommendation_key(key)
        keyword = scope_keyword(audit_type)
        self._schedule(key, lambda: self.store.delete(self.site_url, keyword, key))

    def _schedule(self, key: str, write: Callable[[], Awaitable[None]]) -> None:
        previous = self._last_write.get(key)

        async def run() -> None:
            if previous is not None:
                await asyncio.gather(previous, return_exceptions=True)
            try:
                await write()
            except TaskStoreError as e:
                logger.warning("task_write_failed", key=key, error=e.message)
            except Exception:
                logger.exception("task_write_failed", key=key)

        task = asyncio.get_running_loop().create_task(run())
        self._last_write[key] = task
        self._writes.add(task)

        def done(finished: asyncio.Task) -> None:
            self._writes.discard(finished)
            if self._last_write.get(key) is finished:
                del self._last_write[key]

        task.add_done_callback(done)

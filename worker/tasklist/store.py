"""Task status storage: remote task store client plus the local overlay.

The remote store is the source of truth across sessions. The local overlay is
what the application reads; it is updated optimistically before every remote
write and wins until the next full reload re-derives it from the remote store.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

import httpx

from api.config import Settings, get_settings
from api.exceptions import TaskStoreError
from worker.audit.models import AuditType

COMPLETED_TASKS_PATH = "db/completed-tasks"


class TaskStatus(StrEnum):
    """Persisted status of a tracked recommendation."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


def scope_keyword(audit_type: AuditType) -> str:
    """Keyword under which audit recommendations of one type are stored."""
    return f"audit:{audit_type.value}"


@dataclass(frozen=True)
class TaskRecord:
    """One persisted task row."""

    task_id: str
    keyword: str
    status: TaskStatus
    task_text: str = ""
    category: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "TaskRecord":
        status_raw = str(row.get("status") or TaskStatus.PENDING.value).lower()
        try:
            status = TaskStatus(status_raw)
        except ValueError:
            status = TaskStatus.PENDING
        return cls(
            task_id=str(row.get("task_id") or row.get("taskId") or ""),
            keyword=str(row.get("keyword") or ""),
            status=status,
            task_text=str(row.get("task_text") or row.get("taskText") or ""),
            category=row.get("category"),
        )


class RemoteTaskStore:
    """HTTP client for the persisted task store."""

    def __init__(
        self,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        self.base_url = (base_url or settings.audit_service_url).rstrip("/")
        self.timeout = settings.audit_request_timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        url = f"{self.base_url}/{COMPLETED_TASKS_PATH}"
        try:
            response = await self._get_client().request(method, url, params=params, json=json)
        except httpx.HTTPError as e:
            raise TaskStoreError(f"{method} failed: {str(e) or type(e).__name__}") from e

        if response.status_code >= 400:
            raise TaskStoreError(f"{method} returned HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError:
            data = {}
        return data if isinstance(data, dict) else {}

    async def fetch(self, site_url: str, keyword: str) -> list[TaskRecord]:
        """All task records stored for a site under one keyword."""
        data = await self._request("GET", params={"siteUrl": site_url, "keyword": keyword})
        rows = data.get("tasks") or []
        return [TaskRecord.from_row(row) for row in rows if isinstance(row, dict)]

    async def upsert(self, site_url: str, record: TaskRecord) -> None:
        await self._request(
            "POST",
            json={
                "siteUrl": site_url,
                "keyword": record.keyword,
                "taskId": record.task_id,
                "taskText": record.task_text,
                "category": record.category,
                "status": record.status.value,
            },
        )

    async def delete(self, site_url: str, keyword: str, task_id: str) -> None:
        await self._request(
            "DELETE",
            json={"siteUrl": site_url, "keyword": keyword, "taskId": task_id},
        )


class LocalTaskOverlay:
    """
    In-memory pending/completed/rejected key sets.

    A key is in at most one set; a key in none of them is a new recommendation.
    """

    def __init__(self) -> None:
        self._sets: dict[TaskStatus, set[str]] = {status: set() for status in TaskStatus}

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._sets[TaskStatus.PENDING])

    @property
    def completed(self) -> frozenset[str]:
        return frozenset(self._sets[TaskStatus.COMPLETED])

    @property
    def rejected(self) -> frozenset[str]:
        return frozenset(self._sets[TaskStatus.REJECTED])

    def status_of(self, key: str) -> TaskStatus | None:
        for status, keys in self._sets.items():
            if key in keys:
                return status
        return None

    def set_status(self, key: str, status: TaskStatus | None) -> None:
        """Move a key into one set (or out of all of them for None)."""
        for keys in self._sets.values():
            keys.discard(key)
        if status is not None:
            self._sets[status].add(key)

    def replace(self, records: Iterable[TaskRecord]) -> None:
        for keys in self._sets.values():
            keys.clear()
        for record in records:
            self.set_status(record.task_id, record.status)

    def keys_with_prefix(self, prefix: str) -> dict[str, TaskStatus]:
        return {
            key: status
            for status, keys in self._sets.items()
            for key in keys
            if key.startswith(prefix)
        }

    def to_dict(self) -> dict:
        return {status.value: sorted(keys) for status, keys in self._sets.items()}

"""Tasklist: recommendation lifecycle backed by the remote task store."""

from worker.tasklist.lifecycle import RecommendationLifecycle, RecommendationState
from worker.tasklist.store import (
    LocalTaskOverlay,
    RemoteTaskStore,
    TaskRecord,
    TaskStatus,
    scope_keyword,
)

__all__ = [
    "RecommendationLifecycle",
    "RecommendationState",
    "LocalTaskOverlay",
    "RemoteTaskStore",
    "TaskRecord",
    "TaskStatus",
    "scope_keyword",
]

"""Audit run coordination: targets, batch scheduling, results and runs."""

from worker.audit.aggregator import AuditRun, RunSummary, cluster_runs, summarize
from worker.audit.client import AuditServiceClient, normalize_result
from worker.audit.coordinator import AuditCoordinator, ResultLog
from worker.audit.models import (
    ALL_AUDIT_TYPES,
    AuditType,
    PageAuditResult,
    Priority,
    Recommendation,
    RunState,
    ScoreBucket,
    TargetMode,
    TargetSelection,
)
from worker.audit.scheduler import BatchScheduler
from worker.audit.targets import TargetResolver

__all__ = [
    # Models
    "ALL_AUDIT_TYPES",
    "AuditType",
    "PageAuditResult",
    "Priority",
    "Recommendation",
    "RunState",
    "ScoreBucket",
    "TargetMode",
    "TargetSelection",
    # Service adapter
    "AuditServiceClient",
    "normalize_result",
    # Pipeline
    "TargetResolver",
    "BatchScheduler",
    "AuditCoordinator",
    "ResultLog",
    # Aggregation
    "AuditRun",
    "RunSummary",
    "cluster_runs",
    "summarize",
]

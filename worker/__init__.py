"""SEAUTO Audit Coordinator - Worker Package."""

# Lazy imports keep `import worker` free of the httpx/structlog stack.
# Use explicit imports when these are needed:
# from worker.audit import AuditCoordinator, BatchScheduler, TargetResolver
# from worker.tasklist import RecommendationLifecycle

__all__ = [
    "AuditCoordinator",
    "BatchScheduler",
    "TargetResolver",
    "RecommendationLifecycle",
]


from typing import Any


def __getattr__(name: str) -> Any:
    """Lazy import for worker submodules."""
    if name in ("AuditCoordinator", "BatchScheduler", "TargetResolver"):
        from worker.audit import AuditCoordinator, BatchScheduler, TargetResolver

        return locals()[name]
    elif name == "RecommendationLifecycle":
        from worker.tasklist import RecommendationLifecycle

        return RecommendationLifecycle
    raise AttributeError(f"module 'worker' has no attribute '{name}'")

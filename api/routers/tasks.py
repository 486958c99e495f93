"""Tasklist endpoints: recommendation lifecycle actions."""

from fastapi import APIRouter, Query

from api.deps import AuditServiceDep
from api.exceptions import ValidationError
from api.schemas.responses import SuccessResponse
from api.schemas.task import (
    TaskBulkAddRead,
    TaskBulkAddRequest,
    TaskKeyRequest,
    TaskReloadRequest,
    TaskStateRead,
    TaskTransitionRead,
)
from api.services.audit_service import SiteSession
from worker.audit.models import parse_recommendation_key

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _checked_key(key: str) -> str:
    try:
        parse_recommendation_key(key)
    except ValueError as e:
        raise ValidationError(f"Malformed recommendation key: {key}", field="key") from e
    return key


def _state(session: SiteSession) -> TaskStateRead:
    return TaskStateRead(site_url=session.site_url, **session.lifecycle.snapshot())


def _transition(session: SiteSession, key: str) -> TaskTransitionRead:
    return TaskTransitionRead(key=key, state=session.lifecycle.state_of(key).value)


@router.get("", response_model=SuccessResponse[TaskStateRead], summary="Tasklist state")
async def get_tasks(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
) -> SuccessResponse[TaskStateRead]:
    """Pending, completed and rejected recommendation keys as currently known locally."""
    session = service.site(site_url)
    return SuccessResponse(data=_state(session))


@router.post("/reload", response_model=SuccessResponse[TaskStateRead], summary="Reload tasklist")
async def reload_tasks(
    request: TaskReloadRequest,
    service: AuditServiceDep,
) -> SuccessResponse[TaskStateRead]:
    """Re-derive the local tasklist from the persisted task store."""
    session = service.site(request.site_url)
    await session.lifecycle.reload(request.selected_types())
    return SuccessResponse(data=_state(session))


@router.post(
    "/pending",
    response_model=SuccessResponse[TaskBulkAddRead],
    summary="Add recommendations to the tasklist",
)
async def add_to_tasklist(
    request: TaskBulkAddRequest,
    service: AuditServiceDep,
) -> SuccessResponse[TaskBulkAddRead]:
    """
    Put recommendations on the tasklist.

    Keys already pending or completed are skipped. Rejected keys are moved
    back onto the tasklist.
    """
    session = service.site(request.site_url)
    keys = list(dict.fromkeys(request.keys))
    added = session.lifecycle.add_to_tasklist(
        (key, session.recommendation_or_none(key)) for key in keys
    )
    added_set = set(added)
    skipped = [key for key in keys if key not in added_set]
    return SuccessResponse(data=TaskBulkAddRead(added=added, skipped=skipped))


@router.post("/done", response_model=SuccessResponse[TaskTransitionRead], summary="Mark done")
async def mark_done(
    request: TaskKeyRequest,
    service: AuditServiceDep,
) -> SuccessResponse[TaskTransitionRead]:
    session = service.site(request.site_url)
    session.lifecycle.mark_done(request.key, session.recommendation_or_none(request.key))
    return SuccessResponse(data=_transition(session, request.key))


@router.delete("/done", response_model=SuccessResponse[TaskTransitionRead], summary="Un-mark done")
async def unmark_done(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
    key: str = Query(..., min_length=1),
) -> SuccessResponse[TaskTransitionRead]:
    """Return a completed recommendation to the tasklist, or to new if it was never on it."""
    session = service.site(site_url)
    key = _checked_key(key)
    session.lifecycle.unmark_done(key, session.recommendation_or_none(key))
    return SuccessResponse(data=_transition(session, key))


@router.post("/rejected", response_model=SuccessResponse[TaskTransitionRead], summary="Reject")
async def reject(
    request: TaskKeyRequest,
    service: AuditServiceDep,
) -> SuccessResponse[TaskTransitionRead]:
    """Dismiss a recommendation. It stays in the results but leaves every count."""
    session = service.site(request.site_url)
    session.lifecycle.reject(request.key, session.recommendation_or_none(request.key))
    return SuccessResponse(data=_transition(session, request.key))


@router.delete("/rejected", response_model=SuccessResponse[TaskTransitionRead], summary="Un-reject")
async def unreject(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
    key: str = Query(..., min_length=1),
) -> SuccessResponse[TaskTransitionRead]:
    session = service.site(site_url)
    key = _checked_key(key)
    session.lifecycle.unreject(key)
    return SuccessResponse(data=_transition(session, key))

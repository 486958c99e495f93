"""Audit run endpoints: start/resume/stop, progress, results and live stream."""

from collections.abc import AsyncGenerator

import orjson
from fastapi import APIRouter, Query, status
from fastapi.responses import StreamingResponse

from api.deps import AuditServiceDep
from api.schemas.audit import (
    AuditRunRead,
    AuditStartRequest,
    HistoryLoadRead,
    HistoryLoadRequest,
    PageAuditResultRead,
    ProgressRead,
    RecommendationRead,
    RunDeleteRead,
    RunSummaryRead,
    SiteRequest,
)
from api.schemas.responses import ErrorResponse, SuccessResponse
from api.services.audit_service import SiteSession
from worker.audit.models import AuditType, PageAuditResult, Priority, ScoreBucket

router = APIRouter(prefix="/audits", tags=["audits"])


def _result_read(
    session: SiteSession,
    index: int,
    result: PageAuditResult,
) -> PageAuditResultRead:
    lifecycle = session.lifecycle
    data = result.to_dict()
    data["index"] = index
    data["recommendations"] = [
        RecommendationRead(key=key, state=lifecycle.state_of(key).value, **rec.to_dict())
        for key, rec in result.keyed_recommendations()
    ]
    return PageAuditResultRead.model_validate(data)


def _result_payload(session: SiteSession, index: int, result: PageAuditResult) -> dict:
    return _result_read(session, index, result).model_dump(mode="json")


def _progress(session: SiteSession) -> ProgressRead:
    return ProgressRead.model_validate(session.coordinator.progress())


@router.post(
    "/start",
    response_model=SuccessResponse[ProgressRead],
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a batch audit",
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def start_audit(
    request: AuditStartRequest,
    service: AuditServiceDep,
) -> SuccessResponse[ProgressRead]:
    """
    Resolve the target selection and start auditing it in the background.

    - `page`: one page URL (relative paths are resolved against the site)
    - `keyword`: pages ranking for a keyword over the lookback window
    - `group`: union of pages for up to 20 keywords
    - `site`: every page in the sitemap

    Fails with 422 when the selection resolves to no pages and 409 when a run
    is already active for the site.
    """
    session = service.site(request.site_url)
    await session.coordinator.start(
        request.selection(),
        request.selected_types(),
        skip_audited=request.skip_audited,
    )
    return SuccessResponse(data=_progress(session))


@router.post(
    "/resume",
    response_model=SuccessResponse[ProgressRead],
    status_code=status.HTTP_202_ACCEPTED,
    summary="Resume the last run",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resume_audit(
    request: SiteRequest,
    service: AuditServiceDep,
) -> SuccessResponse[ProgressRead]:
    """Continue the last run with the pages it has not completed yet."""
    session = service.existing_site(request.site_url)
    session.coordinator.resume()
    return SuccessResponse(data=_progress(session))


@router.post(
    "/stop",
    response_model=SuccessResponse[ProgressRead],
    summary="Stop the active run",
)
async def stop_audit(
    request: SiteRequest,
    service: AuditServiceDep,
) -> SuccessResponse[ProgressRead]:
    """Stop after the chunk in flight. Its results are still recorded."""
    session = service.existing_site(request.site_url)
    session.coordinator.stop()
    return SuccessResponse(data=_progress(session))


@router.get(
    "/progress",
    response_model=SuccessResponse[ProgressRead],
    summary="Run progress",
)
async def get_progress(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
) -> SuccessResponse[ProgressRead]:
    session = service.site(site_url)
    return SuccessResponse(data=_progress(session))


@router.get(
    "/results",
    response_model=SuccessResponse[list[PageAuditResultRead]],
    summary="Logged audit results",
)
async def list_results(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
    offset: int = Query(0, ge=0, description="Index of the first result to return"),
    audit_type: AuditType | None = Query(None),
) -> SuccessResponse[list[PageAuditResultRead]]:
    """
    Results in the order they were appended to the log.

    Poll with `offset` set to the previous `meta.next_offset` to receive only
    new results.
    """
    session = service.site(site_url)
    results = session.coordinator.log.since(offset)
    data = [
        _result_read(session, offset + i, r)
        for i, r in enumerate(results)
        if not session.coordinator.log.is_hidden(offset + i)
        and (audit_type is None or r.audit_type == audit_type)
    ]
    return SuccessResponse(
        data=data,
        meta={
            "offset": offset,
            "next_offset": offset + len(results),
            "total": len(session.coordinator.log),
        },
    )


@router.get(
    "/runs",
    response_model=SuccessResponse[list[AuditRunRead]],
    summary="Runs inferred from result timestamps",
)
async def list_runs(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
) -> SuccessResponse[list[AuditRunRead]]:
    """Runs newest first; index 0 is the most recent run."""
    session = service.site(site_url)
    runs = session.coordinator.runs()
    return SuccessResponse(data=[AuditRunRead.model_validate(run.to_dict()) for run in runs])


@router.get(
    "/summary",
    response_model=SuccessResponse[RunSummaryRead],
    summary="Aggregated scores for a run",
)
async def get_summary(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
    run_index: int = Query(0, ge=0, description="0 is the most recent run"),
    all_runs: bool = Query(False, description="Aggregate the whole result log instead"),
    audit_type: AuditType | None = Query(None),
    bucket: ScoreBucket | None = Query(None),
    priority: Priority | None = Query(None),
) -> SuccessResponse[RunSummaryRead]:
    """
    Page, audit type and overall scores with bucket counts and top issues.

    Rejected recommendations are left out of every count.
    """
    session = service.site(site_url)
    summary = session.coordinator.summary(
        None if all_runs else run_index,
        session.lifecycle.rejected,
        audit_type=audit_type,
        bucket=bucket,
        priority=priority,
    )
    return SuccessResponse(data=RunSummaryRead.model_validate(summary.to_dict()))


@router.delete(
    "/runs/{run_index}",
    response_model=SuccessResponse[RunDeleteRead],
    summary="Delete an audit run",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_run(
    run_index: int,
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
) -> SuccessResponse[RunDeleteRead]:
    """
    Delete a run's stored results and drop it from runs, summaries and results.

    `failed` counts stored rows the backend could not delete.
    """
    session = service.existing_site(site_url)
    outcome = await session.coordinator.delete_run(run_index)
    return SuccessResponse(data=RunDeleteRead(**outcome))


@router.post(
    "/history/load",
    response_model=SuccessResponse[HistoryLoadRead],
    summary="Load persisted audit results",
)
async def load_history(
    request: HistoryLoadRequest,
    service: AuditServiceDep,
) -> SuccessResponse[HistoryLoadRead]:
    """Read the site's stored audit results into the result log."""
    session = service.site(request.site_url)
    loaded = await session.coordinator.load_history(
        request.selected_types(),
        mark_completed=request.mark_completed,
    )
    return SuccessResponse(data=HistoryLoadRead(loaded=loaded, progress=_progress(session)))


@router.get("/stream", summary="Stream results as they are logged")
async def stream_results(
    service: AuditServiceDep,
    site_url: str = Query(..., min_length=1),
    offset: int = Query(0, ge=0, description="Replay results from this log index"),
) -> StreamingResponse:
    """
    Stream appended results via Server-Sent Events.

    Emits `event: result` for every result from `offset` on, then
    `event: complete` with the final progress once no run is active.
    """
    session = service.site(site_url)
    coordinator = session.coordinator

    def encode(event: str, payload: dict) -> str:
        return f"event: {event}\ndata: {orjson.dumps(payload).decode()}\n\n"

    async def event_generator() -> AsyncGenerator[str, None]:
        queue = coordinator.log.subscribe()
        try:
            next_index = offset
            for result in coordinator.log.since(offset):
                if not coordinator.log.is_hidden(next_index):
                    yield encode("result", _result_payload(session, next_index, result))
                next_index += 1

            # Results appended while replaying are also queued; skip what was sent
            while coordinator.running or not queue.empty():
                item = await queue.get()
                if item is None:
                    if coordinator.running:
                        continue
                    break
                index, result = item
                if index < next_index:
                    continue
                yield encode("result", _result_payload(session, index, result))
                next_index = index + 1

            yield encode("complete", _progress(session).model_dump(mode="json"))
        finally:
            coordinator.log.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )

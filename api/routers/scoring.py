"""Scoring endpoints: ranking trend and opportunity score."""

from fastapi import APIRouter

from api.deps import AuditServiceDep
from api.exceptions import ValidationError
from api.schemas.responses import SuccessResponse
from api.schemas.scoring import OpportunityRead, OpportunityRequest, TrendRead, TrendRequest
from worker.scoring import calculate_opportunity, calculate_trend, count_open_priorities

router = APIRouter(prefix="/scoring", tags=["scoring"])


@router.post("/trend", response_model=SuccessResponse[TrendRead | None], summary="Ranking trend")
async def ranking_trend(request: TrendRequest) -> SuccessResponse[TrendRead | None]:
    """
    Compare the mean of the last three monthly positions with up to three before.

    Returns null data when fewer than four months have a position.
    """
    trend = calculate_trend(request.positions)
    if trend is None:
        return SuccessResponse(data=None, meta={"reason": "insufficient_data"})
    return SuccessResponse(data=TrendRead.model_validate(trend.to_dict()))


@router.post(
    "/opportunity",
    response_model=SuccessResponse[OpportunityRead],
    summary="Opportunity score",
)
async def opportunity_score(
    request: OpportunityRequest,
    service: AuditServiceDep,
) -> SuccessResponse[OpportunityRead]:
    """
    Score 0-100 from rank position, open high/medium recommendations and
    search volume. A better current position yields a lower score.
    """
    high, medium = request.high_priority, request.medium_priority
    meta = None
    if request.page_url:
        if not request.site_url:
            raise ValidationError("site_url is required with page_url", field="site_url")
        session = service.site(request.site_url)
        runs = session.coordinator.runs()
        latest = runs[0].results if runs else []
        page_results = [r for r in latest if r.page_url == request.page_url]
        high, medium = count_open_priorities(page_results, session.lifecycle.rejected)
        meta = {"results": len(page_results)}

    score = calculate_opportunity(
        request.position,
        high_priority=high,
        medium_priority=medium,
        search_volume=request.search_volume,
    )
    return SuccessResponse(data=OpportunityRead.model_validate(score.to_dict()), meta=meta)

"""V1 API router - aggregates all versioned endpoints."""

from fastapi import APIRouter

from api.routers import audits, scoring, tasks

router = APIRouter()

# Audit run control, results and stream
router.include_router(audits.router)

# Recommendation lifecycle
router.include_router(tasks.router)

# Trend and opportunity scoring
router.include_router(scoring.router)


@router.get("/")
async def v1_root() -> dict[str, str]:
    """V1 API root endpoint."""
    return {
        "version": "1",
        "status": "active",
    }

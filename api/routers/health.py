"""Health check endpoints."""

import time
from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel, Field

from api.deps import AuditServiceDep, SettingsDep

router = APIRouter(tags=["Health"])

# Track server start time for uptime calculation
_server_start_time = time.time()

VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(..., description="Health status: healthy")
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str = Field(..., description="API version")
    uptime_seconds: int = Field(..., description="Server uptime in seconds")
    active_runs: int = Field(0, description="Sites with an audit run in progress")


class ApiInfoResponse(BaseModel):
    """API information response."""

    name: str
    version: str
    env: str
    docs: str | None
    audit_service_url: str


@router.get("/health", response_model=HealthResponse)
async def health_check(service: AuditServiceDep) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns healthy if the API is running. The audit backend is not probed;
    its failures show up as error-flagged results instead.
    """
    uptime = int(time.time() - _server_start_time)
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC).isoformat(),
        version=VERSION,
        uptime_seconds=uptime,
        active_runs=service.active_runs(),
    )


@router.get("/", response_model=ApiInfoResponse)
async def root(settings: SettingsDep) -> ApiInfoResponse:
    """Root endpoint with API information."""
    return ApiInfoResponse(
        name="SEAUTO Audit Coordinator API",
        version=VERSION,
        env=settings.env,
        docs="/docs" if settings.debug else None,
        audit_service_url=settings.audit_service_url,
    )

"""
Health Check Routes

- GET /health              full HealthReport, 503 when unhealthy
- GET /health/diagnostics  checklist with pass/warning/fail grading
- GET /health/live         liveness only, never touches dependencies

Status codes follow the usual probe convention: 200 = serve traffic,
503 = take out of rotation.
"""

from datetime import datetime

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from courier.application.api.dependencies import ManagerDep
from courier.application.api.models.health import (
    DiagnosticsResponse,
    HealthReportResponse,
    LivenessResponse,
)
from courier.monitoring import HealthStatus

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", response_model=HealthReportResponse)
async def health(manager: ManagerDep):
    """
    Full health report.

    Returns 503 with the same body when the courier is unhealthy so load
    balancers and orchestrators can act on the status code alone.
    """
    report = await manager.get_health_report()
    if report.status == HealthStatus.UNHEALTHY:
        return JSONResponse(status_code=503, content=report.to_dict())
    return report.to_dict()


@router.get("/diagnostics", response_model=DiagnosticsResponse)
async def diagnostics(manager: ManagerDep):
    return await manager.run_diagnostics()


@router.get("/live", response_model=LivenessResponse)
async def liveness():
    return LivenessResponse(timestamp=datetime.utcnow().isoformat() + "Z")

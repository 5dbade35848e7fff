"""
Health Check Routes

    GET /health             configuration presence + Redis reachability
    GET /health?deep=true   also fetches a speech provider token
    GET /health/live        liveness probe, no dependency checks
"""

from typing import Annotated

from fastapi import APIRouter, Query, Response, status
from pydantic import BaseModel

from menu_tts.application.api.dependencies import HealthCheckerDep

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str | None = None
    configuration: dict[str, bool] | None = None
    components: dict | None = None


@router.get("", response_model=HealthResponse)
async def health_check(
    checker: HealthCheckerDep,
    response: Response,
    deep: Annotated[bool, Query(description="Also verify a token can be fetched")] = False,
):
    """
    HTTP Status Codes:
        200: healthy or degraded
        503: unhealthy
    """
    report = await checker.check_health(deep=deep)
    if report["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return report


@router.get("/live", response_model=HealthResponse)
async def liveness(checker: HealthCheckerDep):
    return await checker.liveness_check()

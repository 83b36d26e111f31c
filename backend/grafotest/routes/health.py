"""
Grafotest API — Health Check Route
===================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Reports the Gemini client's readiness without calling the API.

Status levels:
    - ok:        Gemini configured and circuit closed (HTTP 200)
    - degraded:  Key missing or circuit open (HTTP 200, flag for monitoring)
"""

import logging
import time

from fastapi import APIRouter

from grafotest import __version__
from grafotest.config import settings
from grafotest.schemas.analysis import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check() -> HealthResponse:
    gemini_status = "available"
    overall = "ok"

    from grafotest.services.gemini_service import CircuitBreaker, gemini_service

    if gemini_service.circuit_breaker.state == CircuitBreaker.OPEN:
        gemini_status = "circuit_open"
        overall = "degraded"
    elif not await gemini_service.health_check():
        gemini_status = "unconfigured"
        overall = "degraded"
        logger.warning("Health check: GEMINI_API_KEY is not configured")

    return HealthResponse(
        status=overall,
        service=settings.service_name,
        version=__version__,
        gemini=gemini_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )

"""
Hairfolio Backend: Health Check Route
======================================

What:  Liveness plus dependency status for monitors and load balancers.
How:   Pings the remote designer store and reads the circuit breaker of
       every Gemini stage. The local mirror keeps the service usable without
       the remote store, so a failed remote check reports "degraded", not
       down.

Status levels:
    healthy:   every dependency available
    degraded:  remote store unreachable or an AI circuit open (HTTP 200)
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from hairfolio import __version__
from hairfolio.dependencies import ServiceContainer, get_services
from hairfolio.schemas.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
)
async def health_check(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    checks = {}

    checks["remote_store"] = (
        "connected" if await services.gateway.remote.health_check() else "unavailable"
    )
    checks["style_description"] = (
        "available" if await services.describer.health_check() else "circuit_open"
    )
    checks["composite_generation"] = (
        "available" if await services.composer.health_check() else "circuit_open"
    )
    checks["color_analysis"] = (
        "available" if await services.color_analyzer.health_check() else "circuit_open"
    )
    checks["color_transform"] = (
        "available" if await services.color_transformer.health_check() else "circuit_open"
    )

    overall = "healthy"
    if any(value not in ("connected", "available") for value in checks.values()):
        overall = "degraded"
        logger.warning("Health check degraded: %s", checks)

    return HealthResponse(
        status=overall,
        version=__version__,
        checks=checks,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )

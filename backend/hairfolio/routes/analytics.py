"""
Hairfolio Backend: Analytics Route Handlers
============================================

Routes:
    GET    /api/designers/{id}/analytics   summary
    DELETE /api/designers/{id}/analytics   reset counters and trial history
"""

import logging

from fastapi import APIRouter, Depends

from hairfolio.dependencies import ServiceContainer, get_services
from hairfolio.exceptions import NotFoundError
from hairfolio.schemas.api import ErrorResponse, SaveResponse
from hairfolio.schemas.designer import AnalyticsSummary

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/designers", tags=["Analytics"])


@router.get(
    "/{designer_id}/analytics",
    response_model=AnalyticsSummary,
    responses={404: {"model": ErrorResponse}},
    summary="Analytics summary",
)
async def get_analytics(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
) -> AnalyticsSummary:
    if not await services.portfolio.designer_exists(designer_id):
        raise NotFoundError(resource="designer", resource_id=designer_id)
    return await services.analytics.summarize(designer_id)


@router.delete(
    "/{designer_id}/analytics",
    response_model=SaveResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Reset analytics",
)
async def reset_analytics(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
) -> SaveResponse:
    if not await services.portfolio.designer_exists(designer_id):
        raise NotFoundError(resource="designer", resource_id=designer_id)
    saved = await services.analytics.reset_analytics(designer_id)
    return SaveResponse(
        saved=saved,
        message=None if saved else "Reset saved on this device only; the designer store is unavailable.",
    )

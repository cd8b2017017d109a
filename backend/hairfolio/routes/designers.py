"""
Hairfolio Backend: Designer Route Handlers
===========================================

What:  Designer records and portfolios over HTTP.
How:   Thin handlers over PortfolioService; visit tracking on record reads.
Who:   Designer dashboard (writes) and client portfolio page (reads).

Routes:
    POST   /api/designers/import                      import a backup
    POST   /api/designers/{id}                        register
    GET    /api/designers/{id}                        record (+ visit tracking)
    POST   /api/designers/{id}/portfolio              add style
    PATCH  /api/designers/{id}/portfolio/{style_id}   update style
    DELETE /api/designers/{id}/portfolio/{style_id}   remove style
    PUT    /api/designers/{id}/reservation-url        booking link
    PUT    /api/designers/{id}/profile                profile
    PUT    /api/designers/{id}/settings               settings
    GET    /api/designers/{id}/export                 backup export

Write responses carry `saved: false` when only the local mirror was updated.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from pydantic import Field

from hairfolio.dependencies import ServiceContainer, get_client_session, get_services
from hairfolio.exceptions import NotFoundError
from hairfolio.schemas.api import ErrorResponse, SaveResponse, StyleSaveResponse
from hairfolio.schemas.designer import (
    CamelModel,
    DesignerProfile,
    DesignerSettings,
    StyleCreate,
    StylePatch,
)
from hairfolio.services.persistence import WriteOutcome
from hairfolio.services.session_registry import ClientSession

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/designers", tags=["Designers"])

_NOT_SAVED_MESSAGE = "Saved on this device only; the designer store is unavailable."


class ReservationUrlBody(CamelModel):
    url: str = Field(default="", max_length=2048)


def _save_response(outcome: WriteOutcome) -> SaveResponse:
    return SaveResponse(
        saved=outcome.success,
        local_saved=outcome.local_ok,
        message=None if outcome.success else _NOT_SAVED_MESSAGE,
    )


@router.post(
    "/import",
    response_model=Dict[str, Any],
    responses={400: {"model": ErrorResponse}},
    summary="Import a designer backup",
)
async def import_designer(
    payload: Dict[str, Any] = Body(..., description="Export document: {designerName, data, exportDate, version}"),
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    designer_id, outcome = await services.portfolio.import_designer(payload)
    return {"designerName": designer_id, **_save_response(outcome).model_dump(by_alias=True)}


@router.post("/{designer_id}", status_code=201, summary="Register a designer")
async def register_designer(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    record, outcome = await services.portfolio.register_designer(designer_id)
    return {
        "designerId": designer_id,
        "created": outcome is not None,
        "saved": outcome.success if outcome else True,
        "record": record.to_document(),
    }


@router.get(
    "/{designer_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Get a designer record",
    description="Returns the designer record and counts a visit once per client session.",
)
async def get_designer(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> Dict[str, Any]:
    loaded = await services.gateway.load(designer_id)
    if not loaded.exists:
        raise NotFoundError(resource="designer", resource_id=designer_id)

    await services.analytics.track_visit(designer_id, session.tracker)
    return loaded.record.to_document()


# ── Portfolio ─────────────────────────────────────────────────────────────


@router.post(
    "/{designer_id}/portfolio",
    status_code=201,
    response_model=StyleSaveResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Add a style to the portfolio",
)
async def add_style(
    designer_id: str,
    style: StyleCreate,
    services: ServiceContainer = Depends(get_services),
) -> StyleSaveResponse:
    entry, outcome = await services.portfolio.add_style(designer_id, style)
    return StyleSaveResponse(style=entry, **_save_response(outcome).model_dump())


@router.patch(
    "/{designer_id}/portfolio/{style_id}",
    response_model=StyleSaveResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Update a portfolio style",
)
async def update_style(
    designer_id: str,
    style_id: str,
    patch: StylePatch,
    services: ServiceContainer = Depends(get_services),
) -> StyleSaveResponse:
    entry, outcome = await services.portfolio.update_style(designer_id, style_id, patch)
    return StyleSaveResponse(style=entry, **_save_response(outcome).model_dump())


@router.delete(
    "/{designer_id}/portfolio/{style_id}",
    response_model=SaveResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Remove a portfolio style",
)
async def remove_style(
    designer_id: str,
    style_id: str,
    services: ServiceContainer = Depends(get_services),
) -> SaveResponse:
    return _save_response(await services.portfolio.remove_style(designer_id, style_id))


# ── Settings ──────────────────────────────────────────────────────────────


@router.put("/{designer_id}/reservation-url", response_model=SaveResponse)
async def save_reservation_url(
    designer_id: str,
    body: ReservationUrlBody,
    services: ServiceContainer = Depends(get_services),
) -> SaveResponse:
    return _save_response(await services.portfolio.save_reservation_url(designer_id, body.url))


@router.put("/{designer_id}/profile", response_model=SaveResponse)
async def save_profile(
    designer_id: str,
    profile: DesignerProfile,
    services: ServiceContainer = Depends(get_services),
) -> SaveResponse:
    return _save_response(await services.portfolio.save_profile(designer_id, profile))


@router.put("/{designer_id}/settings", response_model=SaveResponse)
async def save_settings(
    designer_id: str,
    designer_settings: DesignerSettings,
    services: ServiceContainer = Depends(get_services),
) -> SaveResponse:
    return _save_response(await services.portfolio.save_settings(designer_id, designer_settings))


@router.get(
    "/{designer_id}/export",
    responses={404: {"model": ErrorResponse}},
    summary="Export a designer backup",
)
async def export_designer(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, Any]:
    exported = await services.portfolio.export_designer(designer_id)
    return exported.model_dump(mode="json", by_alias=True)

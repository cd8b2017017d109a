"""
Hairfolio Backend: Try-On & Booking Route Handlers
===================================================

What:  Drives the caller's TryOnController for one designer.
How:   The face photo arrives as a multipart upload, is validated and stored
       by FileService, and its `/api/files/...` reference is handed to the
       controller together with the selected style URL.
Who:   Client portfolio page.

Routes:
    POST   /api/designers/{id}/try-on    start (multipart: face_photo, style_url, style_name)
    GET    /api/designers/{id}/try-on    current snapshot
    DELETE /api/designers/{id}/try-on    reset to idle
    POST   /api/designers/{id}/bookings  count a booking, return the reservation link

Error responses (global handlers):
    400  no face photo / no style selected / style not in the portfolio / invalid image
    404  unknown designer
    429  try-on rate limit (middleware)
    502  a pipeline stage failed (body carries the stage and reason)
    503  AI service circuit open
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from pydantic import Field

from hairfolio.dependencies import ServiceContainer, get_client_session, get_services
from hairfolio.exceptions import NotFoundError, ValidationError
from hairfolio.schemas.api import BookingResponse, ErrorResponse, TryOnSnapshot
from hairfolio.schemas.designer import CamelModel
from hairfolio.services.session_registry import ClientSession
from hairfolio.services.tryon import TryOnController, TryOnState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/designers", tags=["Try-On"])


class BookingRequest(CamelModel):
    style_url: str = Field(min_length=1)


async def _controller(
    designer_id: str,
    services: ServiceContainer,
    session: ClientSession,
) -> TryOnController:
    if not await services.portfolio.designer_exists(designer_id):
        raise NotFoundError(resource="designer", resource_id=designer_id)
    return services.sessions.controller(session.session_id, designer_id)


@router.post(
    "/{designer_id}/try-on",
    response_model=TryOnSnapshot,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Try a hairstyle on the client's face photo",
)
async def start_try_on(
    designer_id: str,
    background_tasks: BackgroundTasks,
    face_photo: Optional[UploadFile] = File(default=None, description="Client face photo (PNG, JPEG, WebP)"),
    style_url: Optional[str] = Form(default=None, description="Reference style image URL"),
    style_name: Optional[str] = Form(default=None),
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> TryOnSnapshot:
    controller = await _controller(designer_id, services, session)
    if style_url and style_url.strip():
        entry = await services.portfolio.find_published_style(designer_id, style_url)
        style_url = entry.url
        style_name = style_name or entry.name

    face_ref = None
    if face_photo is not None and face_photo.filename:
        try:
            content = await face_photo.read()
            face_ref = await services.file_service.validate_and_store(
                filename=face_photo.filename,
                content=content,
                content_length=face_photo.size,
            )
        finally:
            await face_photo.close()

    try:
        snapshot = await controller.start_try_on(style_url or "", face_ref, style_name=style_name)
    except ValidationError:
        if face_ref:
            relative = services.file_service.relative_from_url(face_ref)
            background_tasks.add_task(
                services.file_service.cleanup_file,
                str(services.file_service.storage_root / relative),
            )
        raise

    if snapshot.state == TryOnState.ERROR.value and controller.last_error is not None:
        raise controller.last_error
    return snapshot


@router.get("/{designer_id}/try-on", response_model=TryOnSnapshot, summary="Current try-on state")
async def get_try_on(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> TryOnSnapshot:
    controller = await _controller(designer_id, services, session)
    return controller.snapshot()


@router.delete("/{designer_id}/try-on", response_model=TryOnSnapshot, summary="Reset the try-on")
async def reset_try_on(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> TryOnSnapshot:
    controller = await _controller(designer_id, services, session)
    return controller.reset()


@router.post(
    "/{designer_id}/bookings",
    response_model=BookingResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Book the selected style",
)
async def book_now(
    designer_id: str,
    body: BookingRequest,
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> BookingResponse:
    controller = await _controller(designer_id, services, session)
    entry = await services.portfolio.find_published_style(designer_id, body.style_url)
    reservation_url = await controller.book_now(entry.url)
    return BookingResponse(
        style_url=entry.url,
        reservation_url=reservation_url,
        message=None if reservation_url else "This designer has not set up a reservation link yet.",
    )

"""
Hairfolio Backend: Hair Colour Try-On Route Handlers
=====================================================

What:  Drives the caller's ColorTryOnController for one designer.
How:   Same upload handling as the hairstyle try-on; the colour options are
       validated as ColorTryOnOptions before anything is stored.
Who:   Client portfolio page (colour mode).

Routes:
    POST   /api/designers/{id}/color-try-on   start (multipart: face_photo, style_url,
                                              color_type, intensity, color_hex, color_name)
    GET    /api/designers/{id}/color-try-on   current snapshot
    DELETE /api/designers/{id}/color-try-on   reset to idle

Error responses (global handlers):
    400  no face photo / style not in the portfolio / invalid options or image
    404  unknown designer
    429  try-on rate limit (middleware)
    502  a colour stage failed
    503  AI service circuit open
"""

import logging
from typing import Optional

import pydantic
from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile
from pydantic.alias_generators import to_snake

from hairfolio.dependencies import ServiceContainer, get_client_session, get_services
from hairfolio.exceptions import NotFoundError, ValidationError
from hairfolio.schemas.api import ErrorResponse
from hairfolio.schemas.color import ColorTryOnOptions, ColorTryOnSnapshot
from hairfolio.services.color_tryon import ColorTryOnController
from hairfolio.services.session_registry import ClientSession
from hairfolio.services.tryon import TryOnState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/designers", tags=["Colour Try-On"])


async def _color_controller(
    designer_id: str,
    services: ServiceContainer,
    session: ClientSession,
) -> ColorTryOnController:
    if not await services.portfolio.designer_exists(designer_id):
        raise NotFoundError(resource="designer", resource_id=designer_id)
    return services.sessions.color_controller(session.session_id, designer_id)


def _parse_options(**fields: Optional[str]) -> ColorTryOnOptions:
    # Empty form fields mean "not given".
    given = {name: value for name, value in fields.items() if value not in (None, "")}
    try:
        return ColorTryOnOptions(**given)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = first.get("loc") or (None,)
        field = to_snake(str(loc[0])) if loc[0] is not None else None
        raise ValidationError(message=f"Invalid colour option: {first['msg']}", field=field)


@router.post(
    "/{designer_id}/color-try-on",
    response_model=ColorTryOnSnapshot,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
    summary="Recolour the client's hair after a portfolio style",
)
async def start_color_try_on(
    designer_id: str,
    background_tasks: BackgroundTasks,
    face_photo: Optional[UploadFile] = File(default=None, description="Client face photo (PNG, JPEG, WebP)"),
    style_url: Optional[str] = Form(default=None, description="Reference style image URL"),
    color_type: Optional[str] = Form(default=None, description="highlight, full-color, ombre or balayage"),
    intensity: Optional[str] = Form(default=None, description="light, medium or bold"),
    color_hex: Optional[str] = Form(default=None, description="Explicit target colour, #RRGGBB"),
    color_name: Optional[str] = Form(default=None),
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> ColorTryOnSnapshot:
    controller = await _color_controller(designer_id, services, session)
    options = _parse_options(
        color_type=color_type,
        intensity=intensity,
        color_hex=color_hex,
        color_name=color_name,
    )

    style_name = None
    if style_url and style_url.strip():
        entry = await services.portfolio.find_published_style(designer_id, style_url)
        style_url = entry.url
        style_name = entry.name
        if options.color_name is None:
            options = options.model_copy(update={"color_name": entry.name})

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
        snapshot = await controller.start_color_try_on(
            style_url or "", face_ref, options, style_name=style_name
        )
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


@router.get(
    "/{designer_id}/color-try-on",
    response_model=ColorTryOnSnapshot,
    summary="Current colour try-on state",
)
async def get_color_try_on(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> ColorTryOnSnapshot:
    controller = await _color_controller(designer_id, services, session)
    return controller.snapshot()


@router.delete(
    "/{designer_id}/color-try-on",
    response_model=ColorTryOnSnapshot,
    summary="Reset the colour try-on",
)
async def reset_color_try_on(
    designer_id: str,
    services: ServiceContainer = Depends(get_services),
    session: ClientSession = Depends(get_client_session),
) -> ColorTryOnSnapshot:
    controller = await _color_controller(designer_id, services, session)
    return controller.reset()

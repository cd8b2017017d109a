"""
Hairfolio Backend: Stored File Route
=====================================

What:  Serves face photos and generated composites from FileService storage.
Route: GET /api/files/{path}
"""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from hairfolio.dependencies import ServiceContainer, get_services
from hairfolio.schemas.api import ErrorResponse
from hairfolio.services.file_service import mime_type_for

router = APIRouter(prefix="/api/files", tags=["Files"])


@router.get(
    "/{file_path:path}",
    response_class=FileResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch a stored image",
)
async def get_file(
    file_path: str,
    services: ServiceContainer = Depends(get_services),
) -> FileResponse:
    path = services.file_service.resolve(file_path)
    return FileResponse(path, media_type=mime_type_for(file_path))

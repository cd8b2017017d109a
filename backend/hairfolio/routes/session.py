"""
Hairfolio Backend: Client Session Route
========================================

Route: DELETE /api/session   end the caller's browsing session

Ending a session clears its visit markers, so the next portfolio visit is
counted again, and discards all of its try-on controllers.
"""

from typing import Dict

from fastapi import APIRouter, Depends, Request

from hairfolio.dependencies import ServiceContainer, get_services

router = APIRouter(prefix="/api", tags=["Session"])


@router.delete("/session", summary="End the browsing session")
async def end_session(
    request: Request,
    services: ServiceContainer = Depends(get_services),
) -> Dict[str, bool]:
    return {"closed": services.sessions.close(request.state.session_id)}

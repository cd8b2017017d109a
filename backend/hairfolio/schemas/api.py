"""
Hairfolio Backend: API Response Schemas
========================================

What:  Pydantic models for responses that are not stored records.
Who:   Route handlers (response_model) and TryOnController (snapshots).
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from hairfolio.schemas.designer import CamelModel, PortfolioEntry


class TryOnSnapshot(CamelModel):
    """
    Point-in-time view of one try-on controller.

    state is one of: idle, analyzing, generating, done, error.
    """

    state: str
    style_url: Optional[str] = None
    style_name: Optional[str] = None
    keywords: Optional[str] = None
    result_url: Optional[str] = None
    error: Optional[str] = None
    request_token: int = 0


class SaveResponse(CamelModel):
    """Outcome of a designer write. saved is False when only the local mirror was updated."""

    saved: bool
    local_saved: bool = True
    message: Optional[str] = None


class StyleSaveResponse(SaveResponse):
    style: PortfolioEntry


class BookingResponse(CamelModel):
    style_url: str
    reservation_url: Optional[str] = Field(
        default=None,
        description="Designer's booking link; null when none is configured",
    )
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body produced by every global exception handler."""

    error: str = Field(description="Error type identifier, e.g. 'validation_error'")
    message: str = Field(description="Human-readable error description")
    details: Optional[Dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="X-Request-ID for tracing")


class HealthResponse(BaseModel):
    status: str = Field(description="'healthy' or 'degraded'")
    version: str
    checks: Dict[str, str]
    timestamp: str

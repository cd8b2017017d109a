"""
Hairfolio Backend: FastAPI Application Factory
===============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() assembles middleware, exception handlers and routes.
       The lifespan builds the ServiceContainer (unless one was injected,
       as the tests do) and closes it on shutdown.
Who:   uvicorn (`uvicorn hairfolio.main:app`), tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware Chain:                                       │
    │  Rate Limit → Request ID → Logging → Session             │
    │                                                          │
    │  Routes:                                                 │
    │  /api/designers  /api/designers/{id}/try-on  /analytics  │
    │  /api/designers/{id}/color-try-on  /api/files            │
    │  /api/session    /health                                 │
    │                                                          │
    │  Exception Handlers:                                     │
    │  Validation→400 │ NotFound→404 │ RateLimit→429           │
    │  ExternalService→502 │ CircuitOpen/Persistence→503       │
    │  FileStorage→500 │ anything else→500                     │
    └──────────────────────────────────────────────────────────┘
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from hairfolio import __version__
from hairfolio.config import Settings, settings as default_settings
from hairfolio.dependencies import ServiceContainer, build_services
from hairfolio.exceptions import (
    CircuitBreakerOpenError,
    ExternalServiceError,
    FileStorageError,
    HairfolioError,
    NotFoundError,
    PersistenceError,
    RateLimitExceededError,
    ValidationError,
)
from hairfolio.middleware.logging import RequestLoggingMiddleware
from hairfolio.middleware.rate_limit import RateLimitMiddleware
from hairfolio.middleware.request_id import RequestIDMiddleware, request_id_var
from hairfolio.middleware.session import SESSION_HEADER, SessionMiddleware
from hairfolio.routes import analytics, color_tryon, designers, files, health, session, tryon

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once at startup.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup:
        1. Setup logging
        2. Report missing credentials (the server still starts)
        3. Build the service container unless one was injected
    Shutdown:
        Close the container if this lifespan built it.
    """
    app_settings: Settings = app.state.settings
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("Hairfolio Backend %s starting up...", __version__)

    try:
        app_settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Try-on requests will fail until the configuration is fixed.")

    owns_services = getattr(app.state, "services", None) is None
    if owns_services:
        app.state.services = build_services(app_settings)

    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield

    logger.info("Hairfolio Backend shutting down...")
    if owns_services:
        await app.state.services.aclose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details=None) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map application exceptions to HTTP responses.

    Handler hierarchy (most specific class wins):
        ValidationError         → 400
        NotFoundError           → 404
        RateLimitExceededError  → 429
        ExternalServiceError    → 502
        CircuitBreakerOpenError → 503
        PersistenceError        → 503
        FileStorageError        → 500
        HairfolioError (base)   → 500
        Exception (fallback)    → 500, generic message, traceback logged only
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", exc.message))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=_error_body("rate_limit_exceeded", exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("[%s] Circuit breaker open: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=503,
            content=_error_body(
                "service_unavailable",
                exc.message,
                {"stage": exc.stage, "recovery_time": exc.recovery_time},
            ),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(ExternalServiceError)
    async def handle_external_service_error(request: Request, exc: ExternalServiceError):
        logger.error("[%s] Try-on stage '%s' failed: %s", request_id_var.get(""), exc.stage, exc.reason)
        return JSONResponse(
            status_code=502,
            content=_error_body(
                "external_service_error",
                exc.message,
                {"stage": exc.stage, "reason": exc.reason},
            ),
        )

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        logger.error("[%s] Persistence error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=503, content=_error_body("persistence_error", exc.message))

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("[%s] File storage error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(HairfolioError)
    async def handle_application_error(request: Request, exc: HairfolioError):
        logger.error("[%s] Application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    services: Optional[ServiceContainer] = None,
    app_settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built container (tests). Built in the lifespan when None.
        app_settings: Settings override; defaults to the environment settings.
    """
    app_settings = app_settings or (services.settings if services else default_settings)

    app = FastAPI(
        title="Hairfolio API",
        description=(
            "Salon portfolio backend: designers publish hairstyles, clients try them "
            "on virtually with Google Gemini, designers read engagement analytics."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = app_settings
    app.state.services = services

    # ── Register Middleware ───────────────────────────────────────────────
    # Executes in reverse order of addition:
    # RateLimit → RequestID → Logging → Session → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", SESSION_HEADER, "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(SessionMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=app_settings.rate_limit_requests,
        window_seconds=app_settings.rate_limit_window,
    )

    register_exception_handlers(app)

    # designers.router declares /import before /{designer_id}
    app.include_router(designers.router)
    app.include_router(tryon.router)
    app.include_router(color_tryon.router)
    app.include_router(analytics.router)
    app.include_router(files.router)
    app.include_router(session.router)
    app.include_router(health.router)

    return app


app = create_app()

"""
Hairfolio Backend: Service Container & FastAPI Dependencies
============================================================

What:  Explicit construction and teardown of every long-lived service, and
       the FastAPI dependencies that hand them to route handlers.
How:   build_services(settings) wires the production graph (SQL remote
       store, JSON local mirror, Gemini collaborators). assemble_services()
       takes already-built collaborators, which is how tests inject fakes.
       The container lives on app.state and is closed in the lifespan.
Who:   main.py (lifespan), routes (Depends), tests (conftest).

Dependency graph:
    Database ─▶ SqlRemoteStore ─┐
    LocalFallbackStore ─────────┴▶ PersistenceGateway ─┬▶ AnalyticsAggregator ─┐
                                                        └▶ PortfolioService ───┤
    FileService ─▶ ImageLoader ─▶ Gemini describer / composer ─────────────────┴▶ SessionRegistry
                              └▶ Gemini colour analyzer / transformer ───────┘  (TryOnControllers,
                                                                                  ColorTryOnControllers)
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from hairfolio.config import Settings
from hairfolio.database import Database
from hairfolio.services.analytics import AnalyticsAggregator
from hairfolio.services.color_tryon import ColorTryOnController
from hairfolio.services.file_service import FileService
from hairfolio.services.gemini_service import (
    CircuitBreaker,
    GeminiCompositeService,
    GeminiHairColorAnalysisService,
    GeminiHairColorTransformService,
    GeminiStyleDescriptionService,
    configure_gemini,
)
from hairfolio.services.image_loader import ImageLoader
from hairfolio.services.local_store import LocalFallbackStore
from hairfolio.services.persistence import PersistenceGateway
from hairfolio.services.portfolio_service import PortfolioService
from hairfolio.services.remote_store import RemoteStore, SqlRemoteStore
from hairfolio.services.session_registry import ClientSession, SessionRegistry
from hairfolio.services.tryon import TryOnController
from hairfolio.services.tryon_base import (
    CompositeGenerationService,
    HairColorAnalysisService,
    HairColorTransformService,
    StyleDescriptionService,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    gateway: PersistenceGateway
    analytics: AnalyticsAggregator
    portfolio: PortfolioService
    file_service: FileService
    describer: StyleDescriptionService
    composer: CompositeGenerationService
    color_analyzer: HairColorAnalysisService
    color_transformer: HairColorTransformService
    sessions: SessionRegistry
    database: Optional[Database] = None
    image_loader: Optional[ImageLoader] = None

    async def aclose(self) -> None:
        """Release every resource the container owns."""
        self.sessions.close_all()
        if self.image_loader is not None:
            await self.image_loader.aclose()
        if self.database is not None:
            await self.database.dispose()
        logger.info("Service container closed")


def assemble_services(
    settings: Settings,
    remote_store: RemoteStore,
    describer: StyleDescriptionService,
    composer: CompositeGenerationService,
    file_service: FileService,
    color_analyzer: HairColorAnalysisService,
    color_transformer: HairColorTransformService,
    local_store: Optional[LocalFallbackStore] = None,
    database: Optional[Database] = None,
    image_loader: Optional[ImageLoader] = None,
) -> ServiceContainer:
    """Wire the core services around the given collaborators."""
    local = local_store or LocalFallbackStore(
        path=settings.local_store_path,
        collection=settings.local_store_collection,
    )
    gateway = PersistenceGateway(remote_store, local, cas_max_attempts=settings.cas_max_attempts)
    analytics = AnalyticsAggregator(gateway, atomic_counters=settings.atomic_counters)
    portfolio = PortfolioService(gateway)

    def controller_factory(designer_id: str) -> TryOnController:
        return TryOnController(
            designer_id=designer_id,
            analytics=analytics,
            describer=describer,
            composer=composer,
            reservation_lookup=portfolio.get_reservation_url,
        )

    def color_controller_factory(designer_id: str) -> ColorTryOnController:
        return ColorTryOnController(
            designer_id=designer_id,
            analytics=analytics,
            analyzer=color_analyzer,
            transformer=color_transformer,
        )

    sessions = SessionRegistry(
        controller_factory,
        ttl_seconds=settings.session_ttl_seconds,
        color_controller_factory=color_controller_factory,
    )

    return ServiceContainer(
        settings=settings,
        gateway=gateway,
        analytics=analytics,
        portfolio=portfolio,
        file_service=file_service,
        describer=describer,
        composer=composer,
        color_analyzer=color_analyzer,
        color_transformer=color_transformer,
        sessions=sessions,
        database=database,
        image_loader=image_loader,
    )


def build_services(settings: Settings) -> ServiceContainer:
    """Production wiring: SQL remote store, JSON mirror, Gemini collaborators."""
    database = Database(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=settings.db_pool_pre_ping,
        echo=settings.log_level == "DEBUG",
    )
    remote = SqlRemoteStore(database, enabled=settings.remote_store_enabled)

    file_service = FileService(settings.storage_root, max_file_size=settings.max_file_size)
    image_loader = ImageLoader(file_service, timeout=settings.image_fetch_timeout)

    configure_gemini(settings.gemini_api_key)
    describer = GeminiStyleDescriptionService(
        settings.gemini_description_model,
        image_loader,
        CircuitBreaker(settings.cb_failure_threshold, settings.cb_recovery_timeout, stage="describe"),
    )
    composer = GeminiCompositeService(
        settings.gemini_image_model,
        image_loader,
        CircuitBreaker(settings.cb_failure_threshold, settings.cb_recovery_timeout, stage="compose"),
        file_service,
    )
    color_analyzer = GeminiHairColorAnalysisService(
        settings.gemini_description_model,
        image_loader,
        CircuitBreaker(
            settings.cb_failure_threshold, settings.cb_recovery_timeout, stage="color_analysis"
        ),
    )
    color_transformer = GeminiHairColorTransformService(
        settings.gemini_image_model,
        image_loader,
        CircuitBreaker(
            settings.cb_failure_threshold, settings.cb_recovery_timeout, stage="color_transform"
        ),
        file_service,
    )

    logger.info(
        "Services built (remote_store=%s, atomic_counters=%s, describe=%s, compose=%s)",
        "enabled" if settings.remote_store_enabled else "disabled",
        settings.atomic_counters,
        settings.gemini_description_model,
        settings.gemini_image_model,
    )
    return assemble_services(
        settings,
        remote,
        describer,
        composer,
        file_service,
        color_analyzer,
        color_transformer,
        database=database,
        image_loader=image_loader,
    )


# ── FastAPI dependencies ──────────────────────────────────────────────────


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_client_session(request: Request) -> ClientSession:
    """The caller's browsing session (see SessionMiddleware)."""
    services: ServiceContainer = request.app.state.services
    return services.sessions.get(request.state.session_id)

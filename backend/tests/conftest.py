"""
Hairfolio Backend: Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Fakes stand in for the two networked dependencies (remote designer
       store, Gemini collaborators); everything else is the real code.

Fixture Hierarchy:
    Fakes:
    ├── remote_store: InMemoryRemoteStore (yields to the event loop like a real driver)
    ├── describer / composer: FakeDescriber / FakeComposer (scripted results)
    ├── color_analyzer / color_transformer: FakeColorAnalyzer / FakeColorTransformer
    Services:
    ├── local_store, gateway, analytics, portfolio
    ├── file_service: FileService over a temporary directory
    └── services: ServiceContainer wired by assemble_services
    HTTP:
    └── test_client: HTTPX AsyncClient over the ASGI app
"""

import asyncio
import copy
import os
import tempfile
from typing import Any, Dict, List, Mapping, Optional, Tuple

# Override settings for testing BEFORE any hairfolio imports
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-key-not-real"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="hairfolio_test_")
os.environ["LOCAL_STORE_PATH"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from hairfolio.config import Settings
from hairfolio.dependencies import assemble_services
from hairfolio.exceptions import PersistenceError
from hairfolio.schemas.color import ColorAnalysis, ColorTryOnOptions, UserPhotoAnalysis
from hairfolio.schemas.designer import DesignerRecord, PortfolioEntry
from hairfolio.services.analytics import AnalyticsAggregator
from hairfolio.services.file_service import FileService
from hairfolio.services.local_store import LocalFallbackStore
from hairfolio.services.persistence import PersistenceGateway
from hairfolio.services.portfolio_service import PortfolioService
from hairfolio.services.remote_store import RemoteStore
from hairfolio.services.tryon_base import (
    CompositeGenerationService,
    HairColorAnalysisService,
    HairColorTransformService,
    StyleDescriptionService,
)
from hairfolio.utils.documents import apply_field_updates

# Minimal JPEG: Start of Image (FFD8) + JFIF marker + End of Image (FFD9)
JPEG_BYTES = (
    b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    b"\xff\xd9"
)

STYLE_URL = "https://styles.example/wolf.jpg"


# ══════════════════════════════════════════════════════════════════════════
# Fakes
# ══════════════════════════════════════════════════════════════════════════

class InMemoryRemoteStore(RemoteStore):
    """
    RemoteStore over a dict.

    Reads copy the document before yielding and writes yield before storing,
    which reproduces the interleavings of a networked store under asyncio.
    Set `available = False` to make every call raise PersistenceError.
    """

    def __init__(self) -> None:
        self.documents: Dict[str, Tuple[Dict[str, Any], int]] = {}
        self.available = True
        self.writes = 0

    def _check(self, operation: str) -> None:
        if not self.available:
            raise PersistenceError(context={"operation": operation})

    async def get(self, designer_id: str) -> Optional[Dict[str, Any]]:
        found = await self.get_versioned(designer_id)
        return found[0] if found else None

    async def get_versioned(self, designer_id: str):
        self._check("get")
        found = self.documents.get(designer_id)
        snapshot = (copy.deepcopy(found[0]), found[1]) if found else None
        await asyncio.sleep(0)
        return snapshot

    async def set(self, designer_id: str, document: Dict[str, Any]) -> None:
        self._check("set")
        await asyncio.sleep(0)
        version = self.documents[designer_id][1] + 1 if designer_id in self.documents else 1
        self.documents[designer_id] = (copy.deepcopy(document), version)
        self.writes += 1

    async def update_fields(self, designer_id: str, updates: Mapping[str, Any]) -> bool:
        self._check("update_fields")
        await asyncio.sleep(0)
        if designer_id not in self.documents:
            return False
        document, version = self.documents[designer_id]
        self.documents[designer_id] = (apply_field_updates(document, updates), version + 1)
        self.writes += 1
        return True

    async def compare_and_set(self, designer_id, document, expected_version) -> bool:
        self._check("compare_and_set")
        await asyncio.sleep(0)
        current = self.documents.get(designer_id)
        current_version = current[1] if current else None
        if current_version != expected_version:
            return False
        self.documents[designer_id] = (copy.deepcopy(document), (expected_version or 0) + 1)
        self.writes += 1
        return True

    async def health_check(self) -> bool:
        return self.available


class FakeDescriber(StyleDescriptionService):
    """Returns `keywords`, raises `error`, and waits on `gate` when one is set."""

    def __init__(self, keywords: str = "long, wavy, auburn, curtain bangs"):
        self.keywords = keywords
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.calls: List[str] = []
        self.healthy = True

    async def describe(self, image_ref: str) -> str:
        self.calls.append(image_ref)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.keywords

    async def health_check(self) -> bool:
        return self.healthy


class FakeComposer(CompositeGenerationService):
    def __init__(self, result_url: str = "/api/files/results/2026/10/19/result.png"):
        self.result_url = result_url
        self.error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[Tuple[str, str, str]] = []
        self.healthy = True

    async def compose(self, face_ref: str, style_ref: str, keywords: str) -> str:
        self.calls.append((face_ref, style_ref, keywords))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result_url

    async def health_check(self) -> bool:
        return self.healthy


class FakeColorAnalyzer(HairColorAnalysisService):
    """
    Returns `color` and `user`. `error` fails the reference analysis,
    `photo_error` fails only the face photo analysis.
    """

    def __init__(self):
        self.color = ColorAnalysis(
            dominant_colors=["#8B4513", "#D2691E"],
            technique="balayage",
            suitable_skin_tones=["warm", "neutral"],
            compatibility=0.85,
        )
        self.user = UserPhotoAnalysis.model_validate(
            {
                "hairAnalysis": {"currentColor": "black", "texture": "wavy", "clarity": 0.9},
                "skinToneAnalysis": {"type": "warm", "suitableColors": ["copper", "golden brown"]},
            }
        )
        self.error: Optional[Exception] = None
        self.photo_error: Optional[Exception] = None
        self.gate: Optional[asyncio.Event] = None
        self.started = asyncio.Event()
        self.calls: List[str] = []
        self.healthy = True

    async def analyze_color_style(self, image_ref: str) -> ColorAnalysis:
        self.calls.append(image_ref)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.color

    async def analyze_user_photo(self, image_ref: str) -> UserPhotoAnalysis:
        self.calls.append(image_ref)
        if self.photo_error is not None:
            raise self.photo_error
        return self.user

    async def health_check(self) -> bool:
        return self.healthy


class FakeColorTransformer(HairColorTransformService):
    def __init__(self, result_url: str = "/api/files/results/2026/10/19/colour.png"):
        self.result_url = result_url
        self.error: Optional[Exception] = None
        self.calls: List[Tuple[str, UserPhotoAnalysis, ColorAnalysis, ColorTryOnOptions]] = []
        self.healthy = True

    async def apply_color(self, face_ref, user, color, options) -> str:
        self.calls.append((face_ref, user, color, options))
        if self.error is not None:
            raise self.error
        return self.result_url

    async def health_check(self) -> bool:
        return self.healthy


# ══════════════════════════════════════════════════════════════════════════
# Function-Scoped Fixtures (created fresh for each test)
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def temp_storage(tmp_path):
    """A fresh storage directory for file operations."""
    storage_dir = tmp_path / "storage"
    storage_dir.mkdir()
    return str(storage_dir)


@pytest.fixture
def sample_image_bytes():
    return JPEG_BYTES


@pytest.fixture
def test_settings(temp_storage):
    return Settings(
        storage_root=temp_storage,
        local_store_path="",
        gemini_api_key="test-key-not-real",
        rate_limit_requests=30,
        rate_limit_window=3600,
    )


@pytest.fixture
def remote_store():
    return InMemoryRemoteStore()


@pytest.fixture
def local_store():
    return LocalFallbackStore(path=None)


@pytest.fixture
def gateway(remote_store, local_store):
    return PersistenceGateway(remote_store, local_store, cas_max_attempts=10)


@pytest.fixture
def analytics(gateway):
    return AnalyticsAggregator(gateway)


@pytest.fixture
def portfolio(gateway):
    return PortfolioService(gateway)


@pytest.fixture
def file_service(temp_storage):
    return FileService(temp_storage, max_file_size=1_048_576)


@pytest.fixture
def describer():
    return FakeDescriber()


@pytest.fixture
def composer():
    return FakeComposer()


@pytest.fixture
def color_analyzer():
    return FakeColorAnalyzer()


@pytest.fixture
def color_transformer():
    return FakeColorTransformer()


@pytest_asyncio.fixture
async def designer(gateway):
    """A registered designer with an empty record. Returns its id."""
    await gateway.write("kim", DesignerRecord())
    return "kim"


@pytest_asyncio.fixture
async def styled_designer(gateway):
    """A registered designer who has published STYLE_URL as "Wolf cut". Returns its id."""
    record = DesignerRecord(portfolio=[PortfolioEntry(name="Wolf cut", url=STYLE_URL)])
    await gateway.write("kim", record)
    return "kim"


@pytest.fixture
def services(
    test_settings,
    remote_store,
    local_store,
    describer,
    composer,
    file_service,
    color_analyzer,
    color_transformer,
):
    return assemble_services(
        test_settings,
        remote_store,
        describer,
        composer,
        file_service,
        color_analyzer,
        color_transformer,
        local_store=local_store,
    )


@pytest_asyncio.fixture
async def test_client(services):
    """
    HTTPX AsyncClient talking to an app built around the `services` fixture.

    Usage:
        async def test_health(test_client):
            response = await test_client.get("/health")
            assert response.status_code == 200
    """
    from hairfolio.main import create_app

    app = create_app(services=services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

"""
Hairfolio Backend: Image Loader Tests
======================================

What:  Resolution of every supported image reference form.
How:   HTTP downloads go through httpx.MockTransport; no network access.
"""

import base64

import httpx
import pytest
import pytest_asyncio

from hairfolio.exceptions import NotFoundError, ValidationError
from hairfolio.services.image_loader import ImageLoader


def _handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/bob.jpg":
        return httpx.Response(200, content=b"jpeg-bytes", headers={"content-type": "image/jpeg"})
    if request.url.path == "/untyped.png":
        return httpx.Response(200, content=b"png-bytes", headers={"content-type": "application/octet-stream"})
    return httpx.Response(404)


@pytest_asyncio.fixture
async def loader(file_service):
    client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
    image_loader = ImageLoader(file_service, client=client)
    yield image_loader
    await image_loader.aclose()


class TestImageLoader:

    @pytest.mark.asyncio
    async def test_data_url(self, loader):
        payload = base64.b64encode(b"png-bytes").decode()
        blob = await loader.load(f"data:image/png;base64,{payload}")
        assert blob.data == b"png-bytes"
        assert blob.mime_type == "image/png"
        assert blob.as_part() == {"mime_type": "image/png", "data": b"png-bytes"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ref", ["data:image/png,plain", "data:image/png;base64,!!!"])
    async def test_malformed_data_url(self, loader, ref):
        with pytest.raises(ValidationError):
            await loader.load(ref)

    @pytest.mark.asyncio
    async def test_http_download(self, loader):
        blob = await loader.load("https://styles.example/bob.jpg")
        assert blob.data == b"jpeg-bytes"
        assert blob.mime_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_http_mime_guessed_from_url(self, loader):
        blob = await loader.load("https://styles.example/untyped.png")
        assert blob.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self, loader):
        with pytest.raises(httpx.HTTPStatusError):
            await loader.load("https://styles.example/missing.jpg")

    @pytest.mark.asyncio
    async def test_stored_file(self, loader, file_service):
        url = await file_service.store_generated(b"stored", "image/png")
        blob = await loader.load(url)
        assert blob.data == b"stored"
        assert blob.mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_missing_stored_file(self, loader):
        with pytest.raises(NotFoundError):
            await loader.load("/api/files/faces/2026/01/01/missing.jpg")

    @pytest.mark.asyncio
    async def test_server_paths_are_never_read(self, loader, tmp_path):
        secret = tmp_path / "outside_storage.txt"
        secret.write_bytes(b"DB_PASSWORD=hunter2")
        for ref in (str(secret), f"file://{secret}"):
            with pytest.raises(ValidationError):
                await loader.load(ref)

    @pytest.mark.asyncio
    async def test_stored_path_cannot_escape_storage(self, loader):
        with pytest.raises(NotFoundError):
            await loader.load("/api/files/../../../etc/passwd")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ref", ["", "   ", "relative/face.jpg", "ftp://host/face.jpg"])
    async def test_unsupported_references(self, loader, ref):
        with pytest.raises(ValidationError):
            await loader.load(ref)

"""
Hairfolio Backend: Image Reference Loader
==========================================

What:  Turns an image reference into bytes plus a MIME type for the AI
       collaborators.
How:   Supported references:
           data:<mime>;base64,<payload>   decoded in place
           http(s)://...                  downloaded with httpx
           /api/files/<relative path>     read from FileService storage
       Anything else is rejected; server filesystem paths are never read.
Who:   GeminiStyleDescriptionService and GeminiCompositeService.
"""

import base64
import binascii
import logging
import mimetypes
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from hairfolio.exceptions import ValidationError
from hairfolio.services.file_service import FileService, mime_type_for

logger = logging.getLogger(__name__)

_FETCH_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; HairfolioBackend/1.0)",
    "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
}


@dataclass
class ImageBlob:
    data: bytes
    mime_type: str

    def as_part(self) -> Dict[str, Any]:
        """Inline blob accepted by google-generativeai content lists."""
        return {"mime_type": self.mime_type, "data": self.data}


class ImageLoader:
    """Resolves image references. Owns one shared httpx.AsyncClient."""

    def __init__(
        self,
        file_service: FileService,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.file_service = file_service
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers=_FETCH_HEADERS,
        )

    async def load(self, image_ref: str) -> ImageBlob:
        """
        Raises:
            ValidationError for malformed references.
            httpx.HTTPError / OSError / NotFoundError when the image cannot be fetched.
        """
        if not image_ref or not image_ref.strip():
            raise ValidationError(message="Image reference is empty.", field="image_ref")
        image_ref = image_ref.strip()

        if image_ref.startswith("data:"):
            return self._decode_data_url(image_ref)
        if image_ref.startswith(("http://", "https://")):
            return await self._download(image_ref)

        relative = self.file_service.relative_from_url(image_ref)
        if relative is not None:
            data = await self.file_service.read_file(relative)
            return ImageBlob(data=data, mime_type=mime_type_for(relative))

        raise ValidationError(
            message="Unsupported image reference. Use an http(s) URL, data URL or stored file path.",
            field="image_ref",
        )

    @staticmethod
    def _decode_data_url(image_ref: str) -> ImageBlob:
        header, _, payload = image_ref.partition(",")
        if not payload or ";base64" not in header:
            raise ValidationError(message="Malformed data URL.", field="image_ref")
        mime_type = header[len("data:"):].split(";")[0] or "image/png"
        try:
            data = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError):
            raise ValidationError(message="Data URL payload is not valid base64.", field="image_ref")
        return ImageBlob(data=data, mime_type=mime_type)

    async def _download(self, url: str) -> ImageBlob:
        response = await self._client.get(url)
        response.raise_for_status()
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not content_type.startswith("image/"):
            guessed, _ = mimetypes.guess_type(url)
            content_type = guessed or "image/jpeg"
        logger.debug("Fetched %s (%d bytes, %s)", url, len(response.content), content_type)
        return ImageBlob(data=response.content, mime_type=content_type)

    async def aclose(self) -> None:
        await self._client.aclose()

"""
Hairfolio Backend: File Storage Service
========================================

What:  Validates, stores and serves the images the try-on pipeline handles:
       client face photos (uploaded) and generated composites (produced).
How:   Validates extension, size and MIME type, stores files in
       date-organized directories under UUID names, and exposes them as
       `/api/files/<relative path>` references.
Who:   Try-on route (face photo upload), GeminiCompositeService (generated
       images), ImageLoader and the files route (reads).

Security Model:
    1. Extension check:   fast rejection of obviously wrong files
    2. MIME type check:   libmagic inspects header bytes (catches renamed files)
    3. Size check:        bounded by MAX_FILE_SIZE
    4. UUID filename:     no user input in stored paths
    5. Path resolution:   served paths must stay inside the storage root
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles

from hairfolio.exceptions import FileStorageError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Public URL prefix under which stored files are served.
FILES_URL_PREFIX = "/api/files/"

# ── Allowed File Types ────────────────────────────────────────────────────
ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}

_EXTENSION_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
}


def mime_type_for(path: str) -> str:
    """MIME type implied by a file extension (octet-stream when unknown)."""
    return _EXTENSION_MIME.get(Path(path).suffix.lower(), "application/octet-stream")


class FileService:
    """
    Manages the image files of the try-on pipeline.

    Directory Structure:
        storage/
        ├── faces/2026/10/19/<uuid>.jpg        uploaded face photos
        └── results/2026/10/19/<uuid>.png      generated composites
    """

    def __init__(self, storage_root: str, max_file_size: int = 10_485_760):
        self.storage_root = Path(storage_root).resolve()
        self.max_file_size = max_file_size
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    # ══════════════════════════════════════════════════════════════════════
    # Validation
    # ══════════════════════════════════════════════════════════════════════

    def validate_extension(self, filename: str) -> str:
        """Returns the normalized extension; raises ValidationError otherwise."""
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                message=(
                    f"File type '{ext}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="face_photo",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        """
        Checks the Content-Length header first, then the actual byte count.

        Raises:
            ValidationError for empty files or files over the configured limit.
        """
        max_mb = self.max_file_size / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(message="The uploaded photo is empty.", field="face_photo")

        if content_length and content_length > self.max_file_size:
            raise ValidationError(
                message=f"File size exceeds maximum of {max_mb:.0f}MB. Please upload a smaller image.",
                field="face_photo",
                context={"max_size_mb": max_mb, "reported_size": content_length},
            )

        if actual_size > self.max_file_size:
            raise ValidationError(
                message=f"File size ({actual_size / (1024 * 1024):.1f}MB) exceeds maximum of {max_mb:.0f}MB.",
                field="face_photo",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_mime_type(self, file_content: bytes, filename: str) -> str:
        """
        Detects the real MIME type from the file's magic bytes.

        Returns:
            Detected MIME type string (e.g., "image/jpeg")

        Raises:
            ValidationError if the MIME type is not an allowed image type
        """
        try:
            import magic
            mime_type = magic.from_buffer(file_content, mime=True)
        except ImportError:
            # python-magic not installed (e.g., in CI without libmagic)
            logger.warning(
                "python-magic not available; falling back to extension-based type detection. "
                "Install libmagic for production security."
            )
            mime_type = mime_type_for(filename)
        except Exception as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The photo must be a PNG, JPEG or WebP image."
                ),
                field="face_photo",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )

        return mime_type

    # ══════════════════════════════════════════════════════════════════════
    # Storage
    # ══════════════════════════════════════════════════════════════════════

    def _generate_storage_path(self, category: str, extension: str) -> Tuple[Path, str]:
        now = datetime.now(timezone.utc)
        date_dir = now.strftime("%Y/%m/%d")
        relative_path = f"{category}/{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    @staticmethod
    def file_url(relative_path: str) -> str:
        return f"{FILES_URL_PREFIX}{relative_path}"

    async def store_file(self, content: bytes, extension: str, category: str = "faces") -> Tuple[str, str]:
        """
        Writes content to disk under a fresh UUID name.

        Returns:
            (absolute_path, relative_path)

        Raises:
            FileStorageError if directory creation or the write fails.
        """
        absolute_path, relative_path = self._generate_storage_path(category, extension)

        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
            logger.info("File stored: %s (%d bytes)", relative_path, len(content))
            return str(absolute_path), relative_path

        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save image. Please try again.",
                context={"path": relative_path, "os_error": str(e)},
            )

    async def store_generated(self, content: bytes, mime_type: str) -> str:
        """Stores a generated composite and returns its `/api/files/...` URL."""
        extension = ALLOWED_MIME_TYPES.get(mime_type, ".png")
        _, relative_path = await self.store_file(content, extension, category="results")
        return self.file_url(relative_path)

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> str:
        """
        Validates an uploaded face photo and stores it.

        Validation order: extension, size, MIME type (cheapest first).

        Returns:
            The `/api/files/...` URL of the stored photo.
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_mime_type(content, filename)
        _, relative_path = await self.store_file(content, ext, category="faces")
        return self.file_url(relative_path)

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path of a stored file.

        Raises:
            NotFoundError when the path escapes the storage root or is missing.
        """
        candidate = (self.storage_root / relative_path).resolve()
        if self.storage_root not in candidate.parents or not candidate.is_file():
            raise NotFoundError(resource="file", resource_id=relative_path)
        return candidate

    def relative_from_url(self, url: str) -> Optional[str]:
        if url.startswith(FILES_URL_PREFIX):
            return url[len(FILES_URL_PREFIX):]
        return None

    async def read_file(self, relative_path: str) -> bytes:
        path = self.resolve(relative_path)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.error("Failed to read stored file %s: %s", relative_path, str(e))
            raise FileStorageError(
                message="Failed to read stored image.",
                context={"path": relative_path, "os_error": str(e)},
            )

    async def cleanup_file(self, file_path: str) -> None:
        """
        Best-effort removal of a stored file.

        Missing files are ignored; other failures are logged, not raised.
        """
        try:
            path = Path(file_path)
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
            else:
                logger.debug("Cleanup: file already gone: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

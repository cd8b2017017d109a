"""
Hairfolio Backend: Portfolio Service
=====================================

What:  Designer-side record management: signup, portfolio entries,
       reservation link, profile, settings, backup export/import.
How:   Every operation is a typed mutation of DesignerRecord applied
       through the persistence gateway. Save operations return the gateway's
       WriteOutcome, whose `success` is False when the remote write failed
       (the local mirror is still updated).
Who:   Designer routes; TryOnController uses get_reservation_url.
"""

import logging
from typing import Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from hairfolio.exceptions import NotFoundError, ValidationError
from hairfolio.schemas.designer import (
    DesignerExport,
    DesignerProfile,
    DesignerRecord,
    DesignerSettings,
    PortfolioEntry,
    StyleCreate,
    StylePatch,
    now_iso,
)
from hairfolio.services.persistence import PersistenceGateway, WriteOutcome

logger = logging.getLogger(__name__)


class PortfolioService:
    """Designer record operations on top of the persistence gateway."""

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    async def _require(self, designer_id: str) -> DesignerRecord:
        result = await self.gateway.load(designer_id)
        if not result.exists:
            raise NotFoundError(resource="designer", resource_id=designer_id)
        return result.record

    # ── Designers ─────────────────────────────────────────────────────────

    async def register_designer(self, designer_id: str) -> Tuple[DesignerRecord, Optional[WriteOutcome]]:
        """
        Create the empty record for a new designer.

        Returns (record, outcome); outcome is None when the designer already
        existed and nothing was written.
        """
        if not designer_id or not designer_id.strip():
            raise ValidationError(message="Designer id must not be blank.", field="designer_id")

        existing = await self.gateway.load(designer_id)
        if existing.exists:
            return existing.record, None

        record = DesignerRecord()
        outcome = await self.gateway.write(designer_id, record)
        logger.info("Registered designer '%s' (remote_ok=%s)", designer_id, outcome.remote_ok)
        return record, outcome

    async def get_designer(self, designer_id: str) -> DesignerRecord:
        """The stored record, or the empty default shape for unknown designers."""
        return await self.gateway.read(designer_id)

    async def designer_exists(self, designer_id: str) -> bool:
        return await self.gateway.exists(designer_id)

    async def find_published_style(self, designer_id: str, style_url: str) -> PortfolioEntry:
        """
        The portfolio entry whose reference image is `style_url`.

        Try-on and booking analytics are only keyed by published entries.

        Raises:
            NotFoundError: unknown designer.
            ValidationError: the style is not in this designer's portfolio.
        """
        record = await self._require(designer_id)
        entry = record.find_style_by_url(style_url.strip())
        if entry is None:
            raise ValidationError(
                message="The selected style is not part of this designer's portfolio.",
                field="style_url",
            )
        return entry

    # ── Portfolio entries ─────────────────────────────────────────────────

    async def add_style(self, designer_id: str, style: StyleCreate) -> Tuple[PortfolioEntry, WriteOutcome]:
        """Prepend a new entry. Returns (entry, outcome)."""
        await self._require(designer_id)
        entry = PortfolioEntry(**style.model_dump())

        def mutate(record: DesignerRecord) -> None:
            record.portfolio.insert(0, entry)

        outcome = await self.gateway.update(designer_id, mutate)
        logger.info("Added style '%s' to '%s'", entry.id, designer_id)
        return entry, outcome

    async def update_style(
        self,
        designer_id: str,
        style_id: str,
        patch: StylePatch,
    ) -> Tuple[PortfolioEntry, WriteOutcome]:
        """
        Merge the fields sent in `patch` into an entry. The image url never changes.

        Raises:
            NotFoundError when the designer or the entry does not exist.
        """
        record = await self._require(designer_id)
        if record.find_style(style_id) is None:
            raise NotFoundError(resource="style", resource_id=style_id)

        changes = patch.model_dump(exclude_unset=True)
        updated: dict = {}

        def mutate(current: DesignerRecord) -> None:
            entry = current.find_style(style_id)
            if entry is None:
                return
            for field_name, value in changes.items():
                setattr(entry, field_name, value)
            entry.updated_at = now_iso()
            updated["entry"] = entry

        outcome = await self.gateway.update(designer_id, mutate)
        if "entry" not in updated:
            raise NotFoundError(resource="style", resource_id=style_id)
        return updated["entry"], outcome

    async def remove_style(self, designer_id: str, style_id: str) -> WriteOutcome:
        record = await self._require(designer_id)
        if record.find_style(style_id) is None:
            raise NotFoundError(resource="style", resource_id=style_id)

        def mutate(current: DesignerRecord) -> None:
            current.portfolio = [e for e in current.portfolio if e.id != style_id]

        outcome = await self.gateway.update(designer_id, mutate)
        logger.info("Removed style '%s' from '%s'", style_id, designer_id)
        return outcome

    # ── Designer settings ─────────────────────────────────────────────────

    async def save_reservation_url(self, designer_id: str, url: str) -> WriteOutcome:
        """Targeted field write of the booking link. An empty string clears it."""
        outcome = await self.gateway.update_fields(designer_id, {"reservationUrl": url.strip()})
        if outcome is None:
            raise NotFoundError(resource="designer", resource_id=designer_id)
        return outcome

    async def get_reservation_url(self, designer_id: str) -> Optional[str]:
        url = (await self.gateway.read(designer_id)).reservation_url
        return url or None

    async def save_profile(self, designer_id: str, profile: DesignerProfile) -> WriteOutcome:
        await self._require(designer_id)

        def mutate(record: DesignerRecord) -> None:
            record.profile = profile

        return await self.gateway.update(designer_id, mutate)

    async def save_settings(self, designer_id: str, settings: DesignerSettings) -> WriteOutcome:
        await self._require(designer_id)

        def mutate(record: DesignerRecord) -> None:
            record.settings = settings

        return await self.gateway.update(designer_id, mutate)

    # ── Backup ────────────────────────────────────────────────────────────

    async def export_designer(self, designer_id: str) -> DesignerExport:
        """
        Raises:
            NotFoundError when the designer has neither portfolio entries nor a profile.
        """
        record = await self.gateway.read(designer_id)
        if not record.portfolio and record.profile is None:
            raise NotFoundError(resource="designer data", resource_id=designer_id)
        return DesignerExport(designer_name=designer_id, data=record)

    async def import_designer(self, payload: dict) -> Tuple[str, WriteOutcome]:
        """
        Validate an export document and write its record back under its designer name.

        Raises:
            ValidationError for payloads without designerName/data or with an
            invalid record shape.
        """
        try:
            imported = DesignerExport.model_validate(payload)
        except PydanticValidationError as e:
            raise ValidationError(
                message="Invalid import data format.",
                field="data",
                context={"errors": e.error_count()},
            ) from e

        record = imported.data
        record.touch()
        outcome = await self.gateway.write(imported.designer_name, record)
        logger.info(
            "Imported designer '%s' (%d styles, remote_ok=%s)",
            imported.designer_name,
            len(record.portfolio),
            outcome.remote_ok,
        )
        return imported.designer_name, outcome

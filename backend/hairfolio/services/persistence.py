"""
Hairfolio Backend: Persistence Gateway
=======================================

What:  Uniform read/write facade over the remote store and the local mirror.
How:   Reads try the remote store first and fall back to the local mirror.
       Writes always hit the local mirror first, then the remote store, and
       report the two outcomes separately. The mirror is never rolled back.
Who:   AnalyticsAggregator, PortfolioService, the designer routes.

Read path:
    remote hit            → ReadResult(source=REMOTE)
    remote miss / failure → local hit → ReadResult(source=LOCAL)
    nothing anywhere      → empty DesignerRecord, ReadResult(source=DEFAULT)

Update modes:
    update()         whole-record read-modify-write. Two writers racing on
                     one designer can lose an increment (last write wins).
    update_atomic()  optimistic compare-and-set on the remote version; a
                     conflict re-reads and re-applies the mutation, up to
                     cas_max_attempts. Degrades to update() when the remote
                     store is unreachable.
    update_fields()  targeted dotted-path writes on both sinks.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from hairfolio.exceptions import PersistenceError
from hairfolio.schemas.designer import DesignerRecord, now_iso
from hairfolio.services.local_store import LocalFallbackStore
from hairfolio.services.remote_store import RemoteStore
from hairfolio.utils.documents import apply_field_updates, strip_absent

logger = logging.getLogger(__name__)

Mutation = Callable[[DesignerRecord], None]


class ReadSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"
    DEFAULT = "default"


@dataclass
class ReadResult:
    record: DesignerRecord
    source: ReadSource
    version: Optional[int] = None
    remote_error: Optional[str] = None

    @property
    def exists(self) -> bool:
        return self.source is not ReadSource.DEFAULT


@dataclass
class WriteOutcome:
    """Result of a dual-sink write. `success` follows the authoritative sink."""

    local_ok: bool
    remote_ok: bool
    remote_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.remote_ok


class PersistenceGateway:
    """Read/write facade used by every service that touches designer records."""

    def __init__(
        self,
        remote: RemoteStore,
        local: LocalFallbackStore,
        cas_max_attempts: int = 5,
    ):
        self.remote = remote
        self.local = local
        self.cas_max_attempts = cas_max_attempts

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    async def load(self, designer_id: str) -> ReadResult:
        """Read a record and report which sink supplied it."""
        remote_error = None
        try:
            found = await self.remote.get_versioned(designer_id)
        except PersistenceError as e:
            remote_error = e.message
            found = None
            logger.warning(
                "Remote read failed for '%s', falling back to local store: %s",
                designer_id,
                e.message,
            )

        if found is not None:
            document, version = found
            return ReadResult(
                record=DesignerRecord.from_document(document),
                source=ReadSource.REMOTE,
                version=version,
            )

        local = self.local.get(designer_id)
        if local is not None:
            return ReadResult(
                record=DesignerRecord.from_document(local),
                source=ReadSource.LOCAL,
                remote_error=remote_error,
            )

        return ReadResult(
            record=DesignerRecord(),
            source=ReadSource.DEFAULT,
            remote_error=remote_error,
        )

    async def read(self, designer_id: str) -> DesignerRecord:
        """Record for `designer_id`; the empty default shape when nothing is stored."""
        return (await self.load(designer_id)).record

    async def exists(self, designer_id: str) -> bool:
        return (await self.load(designer_id)).exists

    # ══════════════════════════════════════════════════════════════════════
    # Writes
    # ══════════════════════════════════════════════════════════════════════

    async def write(self, designer_id: str, record: DesignerRecord) -> WriteOutcome:
        """Write local mirror, then remote store. Neither failure is raised."""
        document = record.to_document()
        local_ok = self.local.set(designer_id, document)
        if not local_ok:
            logger.error("Local mirror write failed for '%s'", designer_id)

        try:
            await self.remote.set(designer_id, strip_absent(document))
        except PersistenceError as e:
            logger.error(
                "Remote write failed for '%s' (local mirror %s): %s",
                designer_id,
                "kept" if local_ok else "also failed",
                e.message,
            )
            return WriteOutcome(local_ok=local_ok, remote_ok=False, remote_error=e.message)

        return WriteOutcome(local_ok=local_ok, remote_ok=True)

    async def update(
        self,
        designer_id: str,
        mutate: Mutation,
        create: bool = False,
    ) -> Optional[WriteOutcome]:
        """
        Whole-record read-modify-write.

        Returns None without writing when the designer has no record and
        `create` is False.
        """
        current = await self.load(designer_id)
        if not current.exists and not create:
            logger.debug("Skipping update for unknown designer '%s'", designer_id)
            return None
        record = current.record
        mutate(record)
        record.touch()
        return await self.write(designer_id, record)

    async def update_atomic(
        self,
        designer_id: str,
        mutate: Mutation,
        create: bool = False,
    ) -> Optional[WriteOutcome]:
        """
        Compare-and-set update on the remote version.

        The local mirror is written after a successful swap, after a remote
        write failure, and with the last attempt once every attempt has
        conflicted, so an event is never dropped from both sinks.
        """
        for attempt in range(1, self.cas_max_attempts + 1):
            try:
                found = await self.remote.get_versioned(designer_id)
            except PersistenceError as e:
                logger.warning(
                    "Remote unreachable for atomic update of '%s', "
                    "using read-modify-write: %s",
                    designer_id,
                    e.message,
                )
                return await self.update(designer_id, mutate, create=create)

            if found is None:
                local = self.local.get(designer_id)
                if local is None and not create:
                    return None
                record = DesignerRecord.from_document(local) if local else DesignerRecord()
                expected_version = None
            else:
                record = DesignerRecord.from_document(found[0])
                expected_version = found[1]

            mutate(record)
            record.touch()
            document = record.to_document()

            try:
                swapped = await self.remote.compare_and_set(
                    designer_id, strip_absent(document), expected_version
                )
            except PersistenceError as e:
                logger.error("Remote write failed for '%s': %s", designer_id, e.message)
                local_ok = self.local.set(designer_id, document)
                return WriteOutcome(local_ok=local_ok, remote_ok=False, remote_error=e.message)

            if swapped:
                local_ok = self.local.set(designer_id, document)
                return WriteOutcome(local_ok=local_ok, remote_ok=True)

            logger.debug(
                "Version conflict on '%s' (attempt %d/%d), re-reading",
                designer_id,
                attempt,
                self.cas_max_attempts,
            )

        logger.error(
            "Atomic update of '%s' gave up after %d conflicting attempts; "
            "keeping the last attempt in the local mirror",
            designer_id,
            self.cas_max_attempts,
        )
        local_ok = self.local.set(designer_id, document)
        return WriteOutcome(
            local_ok=local_ok,
            remote_ok=False,
            remote_error="Too many concurrent updates to this designer",
        )

    async def update_fields(
        self,
        designer_id: str,
        updates: Mapping[str, Any],
    ) -> Optional[WriteOutcome]:
        """
        Targeted write of camelCase dotted paths, e.g. {"reservationUrl": url}.

        `updatedAt` is refreshed with the same call. Returns None when the
        designer has no record anywhere.
        """
        fields: Dict[str, Any] = {k: v for k, v in updates.items() if v is not None}
        fields.setdefault("updatedAt", now_iso())

        local_current = self.local.get(designer_id)
        if local_current is not None:
            local_ok = self.local.update_fields(designer_id, fields)
        else:
            current = await self.load(designer_id)
            if not current.exists:
                return None
            local_ok = self.local.set(
                designer_id, apply_field_updates(current.record.to_document(), fields)
            )

        try:
            applied = await self.remote.update_fields(designer_id, strip_absent(fields))
            if not applied:
                # Remote has no document yet; seed it from the mirror.
                mirrored = self.local.get(designer_id)
                if mirrored is None:
                    return WriteOutcome(
                        local_ok=local_ok,
                        remote_ok=False,
                        remote_error="Record not found in remote store",
                    )
                await self.remote.set(designer_id, strip_absent(mirrored))
        except PersistenceError as e:
            logger.error("Remote field update failed for '%s': %s", designer_id, e.message)
            return WriteOutcome(local_ok=local_ok, remote_ok=False, remote_error=e.message)

        return WriteOutcome(local_ok=local_ok, remote_ok=True)

"""
Hairfolio Backend: Remote Designer Store
=========================================

What:  Authoritative, networked keyed store for designer records.
How:   RemoteStore is the interface the persistence gateway depends on.
       SqlRemoteStore implements it with async SQLAlchemy over the
       `designers` table (PostgreSQL via asyncpg in production, aiosqlite in
       tests).
Who:   PersistenceGateway only.

Contract:
    get(id)                          → document or None (never raises on not-found)
    get_versioned(id)                → (document, version) or None
    set(id, document)                → upsert, version + 1
    update_fields(id, {path: value}) → targeted write; False when no document
    compare_and_set(id, doc, v)      → write only if the stored version is v
                                       (v=None: only if absent)

Every transport or driver failure is raised as PersistenceError.
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hairfolio.database import Database
from hairfolio.exceptions import PersistenceError
from hairfolio.models.designer import DesignerDocument
from hairfolio.utils.documents import apply_field_updates

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class RemoteStore(ABC):
    """Interface of the authoritative designer store."""

    @abstractmethod
    async def get(self, designer_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    async def get_versioned(self, designer_id: str) -> Optional[Tuple[Document, int]]:
        ...

    @abstractmethod
    async def set(self, designer_id: str, document: Document) -> None:
        ...

    @abstractmethod
    async def update_fields(self, designer_id: str, updates: Mapping[str, Any]) -> bool:
        ...

    @abstractmethod
    async def compare_and_set(
        self,
        designer_id: str,
        document: Document,
        expected_version: Optional[int],
    ) -> bool:
        ...

    async def health_check(self) -> bool:
        return True


class SqlRemoteStore(RemoteStore):
    """
    RemoteStore backed by the `designers` table.

    When constructed with enabled=False every call raises PersistenceError,
    which makes the gateway serve everything from the local mirror.
    """

    def __init__(self, database: Database, enabled: bool = True):
        self._db = database
        self._enabled = enabled

    @asynccontextmanager
    async def _session(self, operation: str, designer_id: str) -> AsyncIterator[AsyncSession]:
        if not self._enabled:
            raise PersistenceError(
                message="The remote designer store is disabled.",
                context={"operation": operation, "designer_id": designer_id},
            )
        try:
            async with self._db.session() as session:
                yield session
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Remote store %s failed for '%s': %s", operation, designer_id, str(e)
            )
            raise PersistenceError(
                context={
                    "operation": operation,
                    "designer_id": designer_id,
                    "error_type": type(e).__name__,
                },
            ) from e

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, designer_id: str) -> Optional[Document]:
        found = await self.get_versioned(designer_id)
        return found[0] if found else None

    async def get_versioned(self, designer_id: str) -> Optional[Tuple[Document, int]]:
        async with self._session("get", designer_id) as session:
            result = await session.execute(
                select(DesignerDocument.data, DesignerDocument.version).where(
                    DesignerDocument.id == designer_id
                )
            )
            row = result.first()
        if row is None:
            return None
        return dict(row.data), row.version

    # ── Writes ────────────────────────────────────────────────────────────

    async def set(self, designer_id: str, document: Document) -> None:
        async with self._session("set", designer_id) as session:
            updated = await session.execute(
                update(DesignerDocument)
                .where(DesignerDocument.id == designer_id)
                .values(data=document, version=DesignerDocument.version + 1)
            )
            if updated.rowcount == 0:
                await session.execute(
                    insert(DesignerDocument).values(id=designer_id, data=document, version=1)
                )
        logger.debug("Remote store wrote designer '%s'", designer_id)

    async def update_fields(self, designer_id: str, updates: Mapping[str, Any]) -> bool:
        async with self._session("update_fields", designer_id) as session:
            result = await session.execute(
                select(DesignerDocument.data, DesignerDocument.version).where(
                    DesignerDocument.id == designer_id
                )
            )
            row = result.first()
            if row is None:
                return False
            new_data = apply_field_updates(row.data, updates)
            await session.execute(
                update(DesignerDocument)
                .where(DesignerDocument.id == designer_id)
                .values(data=new_data, version=DesignerDocument.version + 1)
            )
        return True

    async def compare_and_set(
        self,
        designer_id: str,
        document: Document,
        expected_version: Optional[int],
    ) -> bool:
        if expected_version is None:
            try:
                async with self._session("compare_and_set", designer_id) as session:
                    await session.execute(
                        insert(DesignerDocument).values(
                            id=designer_id, data=document, version=1
                        )
                    )
            except PersistenceError as e:
                # Another writer created the row first.
                if isinstance(e.__cause__, IntegrityError):
                    return False
                raise
            return True

        async with self._session("compare_and_set", designer_id) as session:
            result = await session.execute(
                update(DesignerDocument)
                .where(
                    DesignerDocument.id == designer_id,
                    DesignerDocument.version == expected_version,
                )
                .values(data=document, version=expected_version + 1)
            )
            return result.rowcount == 1

    async def health_check(self) -> bool:
        if not self._enabled:
            return False
        try:
            await self._db.ping()
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Remote store health check failed: %s", str(e))
            return False

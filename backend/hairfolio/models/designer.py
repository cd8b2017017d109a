"""
Hairfolio Backend: Designer Document SQLAlchemy Model
======================================================

What:  ORM model for the `designers` table, the authoritative remote store.
How:   One row per designer. The whole DesignerRecord lives in a JSON column;
       `version` increases on every write and backs compare-and-set updates.
Who:   SqlRemoteStore; Alembic reads the metadata for migrations.

Table Design Rationale:
    - id: designer identifier chosen at signup (not generated)
    - data: JSON (not JSONB) so key order survives a round trip; the order of
      styleViews keys is the tie-break for popularStyles
    - version: optimistic concurrency token, starts at 1
    - Generic column types keep the table usable on SQLite in tests
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import JSON, DateTime, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column

from hairfolio.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DesignerDocument(Base):
    """Stored designer record with its concurrency version."""

    __tablename__ = "designers"

    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Designer identifier",
    )

    data: Mapped[Dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        comment="Serialized DesignerRecord (camelCase keys)",
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=text("1"),
        comment="Incremented on every write; used for compare-and-set",
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<DesignerDocument(id='{self.id}', version={self.version})>"

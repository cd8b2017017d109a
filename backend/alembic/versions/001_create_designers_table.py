"""Create designers table

Revision ID: 001
Revises: None
Create Date: 2026-10-01 00:00:00.000000+00:00

What:  Creates the `designers` table, one JSON document per designer.
How:   Generic column types (JSON, not JSONB) so key order inside the document
       survives a round trip and the same schema runs on SQLite in tests.

Rollback: downgrade() drops the table (all designer data is lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the designers table. See hairfolio/models/designer.py for column docs."""
    op.create_table(
        "designers",

        sa.Column(
            "id",
            sa.String(255),
            nullable=False,
            comment="Designer identifier",
        ),

        # Whole DesignerRecord, camelCase keys
        sa.Column(
            "data",
            sa.JSON(),
            nullable=False,
            comment="Serialized DesignerRecord (camelCase keys)",
        ),

        # Optimistic concurrency token
        sa.Column(
            "version",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("1"),
            comment="Incremented on every write; used for compare-and-set",
        ),

        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),

        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Drop the designers table. Destructive."""
    op.drop_table("designers")

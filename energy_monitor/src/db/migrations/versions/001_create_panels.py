"""
Create the panels registry table.

Revision ID: 001
Revises: None
Create Date: 2026-10-19

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# Revision identifiers used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the panels table keyed by panel_code."""
    op.create_table(
        "panels",
        sa.Column("panel_code", sa.Text(), nullable=False),
        sa.Column("location", sa.Text(), nullable=False),
        sa.Column("floor", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Text(),
            nullable=False,
            server_default=sa.text("'OFFLINE'"),
        ),
        sa.Column("last_online", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("panel_code"),
    )
    op.create_index("ix_panels_floor", "panels", ["floor"])


def downgrade() -> None:
    """Drop the panels table."""
    op.drop_index("ix_panels_floor", table_name="panels")
    op.drop_table("panels")

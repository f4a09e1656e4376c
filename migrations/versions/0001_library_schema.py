"""Initial schema: library

Revision ID: 0001
Revises: None
Create Date: 2026-10-19 00:00:00
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | None = None
depends_on: str | None = None


def _table_exists(name: str) -> bool:
    """Check whether a table already exists in the database."""
    conn = op.get_bind()
    result = conn.execute(
        sa.text("SELECT 1 FROM sqlite_master WHERE type='table' AND name=:n"),
        {"n": name},
    )
    return result.fetchone() is not None


def upgrade() -> None:
    # Guarded so the migration is safe on a DB created by create_all() (stamp scenario).
    if _table_exists("library"):
        return

    op.create_table(
        "library",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("category", sa.String(), nullable=False, server_default=""),
        sa.Column("title", sa.String(), nullable=False, server_default=""),
        sa.Column("path", sa.String(), nullable=False),
        sa.Column("cover", sa.String(), nullable=False, server_default=""),
        sa.Column("cover_data", sa.String(), nullable=False, server_default=""),
        sa.Column("last_modified", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_library_path", "library", ["path"], unique=True)
    op.create_index("ix_library_category", "library", ["category"])
    op.create_index("ix_library_title", "library", ["title"])


def downgrade() -> None:
    op.drop_index("ix_library_title", table_name="library")
    op.drop_index("ix_library_category", table_name="library")
    op.drop_index("ix_library_path", table_name="library")
    op.drop_table("library")

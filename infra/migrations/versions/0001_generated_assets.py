"""Create generated_assets and user_plans.

Revision ID: 0001_generated_assets
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "0001_generated_assets"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_plans",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("plan", sa.Text(), nullable=False, server_default="free"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "generated_assets",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("page_number", sa.Integer(), nullable=True),
        sa.Column("asset_type", sa.Text(), nullable=False),
        sa.Column("storage_bucket", sa.Text(), nullable=False, server_default="generated"),
        sa.Column("storage_path", sa.Text(), nullable=True),
        sa.Column("mime_type", sa.Text(), nullable=False, server_default="image/png"),
        sa.Column("status", sa.Text(), nullable=False, server_default="ready"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("meta", postgresql.JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "asset_type IN ('page_image', 'front_matter', 'pdf', 'zip', 'preview')",
            name="generated_assets_asset_type_check",
        ),
        sa.CheckConstraint("status IN ('ready', 'expired')", name="generated_assets_status_check"),
        sa.CheckConstraint(
            "status <> 'ready' OR storage_path IS NOT NULL",
            name="generated_assets_ready_path_check",
        ),
    )
    op.create_index(
        "generated_assets_page_key",
        "generated_assets",
        ["project_id", "page_number", "asset_type"],
        unique=True,
        postgresql_where=sa.text("page_number IS NOT NULL"),
    )
    op.create_index(
        "generated_assets_expiry_idx",
        "generated_assets",
        ["expires_at"],
        postgresql_where=sa.text("status = 'ready' AND deleted_at IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("generated_assets_expiry_idx", table_name="generated_assets")
    op.drop_index("generated_assets_page_key", table_name="generated_assets")
    op.drop_table("generated_assets")
    op.drop_table("user_plans")

"""create drafts and cleanup leases

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "drafts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("owner_id", sa.String(128), nullable=False),
        sa.Column("stage", sa.String(16), nullable=False),
        sa.Column("stage1_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("stage2_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_edited_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiration_reason", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_drafts_owner_active", "drafts", ["owner_id", "is_deleted", "last_edited_at"])
    op.create_index("ix_drafts_stale", "drafts", ["is_deleted", "last_edited_at"])
    op.create_index("ix_drafts_trash", "drafts", ["is_deleted", "deleted_at"])

    op.create_table(
        "cleanup_leases",
        sa.Column("name", sa.String(64), primary_key=True),
        sa.Column("holder", sa.String(128), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade():
    op.drop_table("cleanup_leases")
    op.drop_index("ix_drafts_trash", table_name="drafts")
    op.drop_index("ix_drafts_stale", table_name="drafts")
    op.drop_index("ix_drafts_owner_active", table_name="drafts")
    op.drop_table("drafts")

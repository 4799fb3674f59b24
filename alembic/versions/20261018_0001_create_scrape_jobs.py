"""create scrape_jobs table

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
_ACTIVE = sa.text("status IN ('pending', 'processing')")


def upgrade() -> None:
    op.create_table(
        "scrape_jobs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("project_id", sa.String(length=64), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("normalized_url", sa.Text(), nullable=False),
        sa.Column("platform", sa.String(length=16), nullable=False),
        sa.Column("job_kind", sa.String(length=16), server_default="scrape", nullable=False),
        sa.Column("extraction_method", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("external_run_id", sa.String(length=128), nullable=True),
        sa.Column("external_dataset_id", sa.String(length=128), nullable=True),
        sa.Column("staged_content", _JSON, nullable=True),
        sa.Column("payload", _JSON, nullable=True),
        sa.Column("error_detail", sa.Text(), nullable=True),
        sa.Column("credits_deducted", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("credits_charged", sa.Integer(), server_default="0", nullable=False),
        sa.Column("fallback_used", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_scrape_jobs_owner_id", "scrape_jobs", ["owner_id"], unique=False)
    op.create_index("ix_scrape_jobs_status", "scrape_jobs", ["status"], unique=False)
    op.create_index(
        "ix_scrape_jobs_owner_project_url",
        "scrape_jobs",
        ["owner_id", "project_id", "normalized_url"],
        unique=False,
    )
    op.create_index(
        "uq_scrape_jobs_active_url",
        "scrape_jobs",
        ["owner_id", "project_id", "normalized_url"],
        unique=True,
        postgresql_where=_ACTIVE,
        sqlite_where=_ACTIVE,
    )


def downgrade() -> None:
    op.drop_index("uq_scrape_jobs_active_url", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_owner_project_url", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_status", table_name="scrape_jobs")
    op.drop_index("ix_scrape_jobs_owner_id", table_name="scrape_jobs")
    op.drop_table("scrape_jobs")

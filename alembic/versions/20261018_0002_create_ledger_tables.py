"""create ledger_accounts and usage_periods tables

Revision ID: 20261018_0002
Revises: 20261018_0001
Create Date: 2026-10-18 09:05:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0002"
down_revision = "20261018_0001"
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def upgrade() -> None:
    op.create_table(
        "ledger_accounts",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("promotional_balance", sa.Integer(), server_default="0", nullable=False),
        sa.Column("allocation_balance", sa.Integer(), server_default="0", nullable=False),
        sa.Column("allocation_cap", sa.Integer(), server_default="0", nullable=False),
        sa.Column("allocation_refreshed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("promotional_balance >= 0", name="ck_ledger_accounts_promotional_non_negative"),
        sa.CheckConstraint("allocation_balance >= 0", name="ck_ledger_accounts_allocation_non_negative"),
        sa.CheckConstraint("allocation_cap >= 0", name="ck_ledger_accounts_allocation_cap_non_negative"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("owner_id"),
    )

    op.create_table(
        "usage_periods",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("account_id", sa.Uuid(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("promotional_credits_used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("allocation_credits_used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("total_credits_used", sa.Integer(), server_default="0", nullable=False),
        sa.Column("usage_details", _JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["ledger_accounts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("account_id", "period_start", name="uq_usage_periods_account_period"),
    )
    op.create_index("ix_usage_periods_account_id", "usage_periods", ["account_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_usage_periods_account_id", table_name="usage_periods")
    op.drop_table("usage_periods")
    op.drop_table("ledger_accounts")

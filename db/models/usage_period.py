"""
db/models/usage_period.py

Monthly credit consumption totals per ledger account.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Any

from sqlalchemy import Date, ForeignKey, Index, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONDocument, TimestampMixin


class UsagePeriod(Base, TimestampMixin):
    __tablename__ = "usage_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("ledger_accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the calendar month",
    )
    promotional_credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    allocation_credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_credits_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    usage_details: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument,
        nullable=False,
        default=dict,
        comment="Per-operation breakdown: {operation: {count, credits}}",
    )

    __table_args__ = (
        UniqueConstraint("account_id", "period_start", name="uq_usage_periods_account_period"),
        Index("ix_usage_periods_account_id", "account_id"),
    )

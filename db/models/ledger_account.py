"""
db/models/ledger_account.py

Credit balances for one owning entity.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, TimestampMixin


class LedgerAccount(Base, TimestampMixin):
    __tablename__ = "ledger_accounts"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    promotional_balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="One-off credits, consumed first",
    )
    allocation_balance: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Periodic pool, reset to allocation_cap on refresh",
    )
    allocation_cap: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    allocation_refreshed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint("promotional_balance >= 0", name="ck_ledger_accounts_promotional_non_negative"),
        CheckConstraint("allocation_balance >= 0", name="ck_ledger_accounts_allocation_non_negative"),
        CheckConstraint("allocation_cap >= 0", name="ck_ledger_accounts_allocation_cap_non_negative"),
    )

    @property
    def total_balance(self) -> int:
        return self.promotional_balance + self.allocation_balance

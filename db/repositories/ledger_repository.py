"""
Repository for ledger accounts and monthly usage periods.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models.ledger_account import LedgerAccount
from db.models.usage_period import UsagePeriod


class LedgerRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_account(
        self,
        *,
        owner_id: str,
        promotional_balance: int = 0,
        allocation_balance: int = 0,
        allocation_cap: int = 0,
    ) -> LedgerAccount:
        account = LedgerAccount(
            owner_id=owner_id,
            promotional_balance=max(0, promotional_balance),
            allocation_balance=max(0, allocation_balance),
            allocation_cap=max(0, allocation_cap),
        )
        self._session.add(account)
        self._session.flush()
        self._session.refresh(account)
        return account

    def get_account(self, account_id: uuid.UUID, *, for_update: bool = False) -> LedgerAccount | None:
        stmt = select(LedgerAccount).where(LedgerAccount.id == account_id)
        return self._first(stmt, for_update=for_update)

    def get_account_by_owner(self, owner_id: str, *, for_update: bool = False) -> LedgerAccount | None:
        stmt = select(LedgerAccount).where(LedgerAccount.owner_id == owner_id)
        return self._first(stmt, for_update=for_update)

    def get_usage_period(self, *, account_id: uuid.UUID, period_start: date) -> UsagePeriod | None:
        stmt = (
            select(UsagePeriod)
            .where(UsagePeriod.account_id == account_id, UsagePeriod.period_start == period_start)
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).first()

    def get_or_create_usage_period(self, *, account_id: uuid.UUID, period_start: date) -> UsagePeriod:
        """
        Fetch the period row, inserting it on first use. A concurrent insert
        of the same (account, period) is absorbed by re-reading after the
        unique constraint fires inside a savepoint.
        """

        existing = self.get_usage_period(account_id=account_id, period_start=period_start)
        if existing is not None:
            return existing

        try:
            with self._session.begin_nested():
                period = UsagePeriod(account_id=account_id, period_start=period_start, usage_details={})
                self._session.add(period)
                self._session.flush()
        except IntegrityError:
            existing = self.get_usage_period(account_id=account_id, period_start=period_start)
            if existing is None:
                raise
            return existing
        return period

    def list_usage_periods(self, *, account_id: uuid.UUID, limit: int = 12) -> list[UsagePeriod]:
        stmt = (
            select(UsagePeriod)
            .where(UsagePeriod.account_id == account_id)
            .order_by(UsagePeriod.period_start.desc())
            .limit(max(1, limit))
        )
        return list(self._session.scalars(stmt).all())

    def _first(self, stmt, *, for_update: bool) -> LedgerAccount | None:
        stmt = stmt.execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.scalars(stmt).first()

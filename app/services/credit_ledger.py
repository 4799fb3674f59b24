"""
Dual-pool credit ledger.

Promotional credits are consumed before the periodic allocation pool.
Deductions are post-hoc: a charge larger than the remaining balance clips
both pools at zero instead of failing, because the work being paid for has
already been done.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from functools import lru_cache

from sqlalchemy.orm import Session

from app.domain.scrape import ChargeResult, LedgerBalance, UsageSummary
from app.logging_utils import log_event
from db.base import utc_now
from db.models.ledger_account import LedgerAccount
from db.models.usage_period import UsagePeriod
from db.repositories.errors import AccountNotFoundError, InvalidCreditAmountError
from db.repositories.ledger_repository import LedgerRepository

logger = logging.getLogger(__name__)

SCRAPE_OPERATION = "content_scrape"


def split_charge(promotional_balance: int, allocation_balance: int, cost: int) -> tuple[int, int]:
    """
    Return (promotional_used, allocation_used) for a charge of `cost`.
    """

    promotional_used = min(max(0, promotional_balance), cost)
    allocation_used = min(max(0, allocation_balance), cost - promotional_used)
    return promotional_used, allocation_used


def period_start_for(moment: datetime | None = None) -> date:
    moment = moment or datetime.now(timezone.utc)
    return date(moment.year, moment.month, 1)


def _to_balance(account: LedgerAccount) -> LedgerBalance:
    return LedgerBalance(
        account_id=account.id,
        owner_id=account.owner_id,
        promotional_balance=account.promotional_balance,
        allocation_balance=account.allocation_balance,
        allocation_cap=account.allocation_cap,
    )


def _to_usage(period: UsagePeriod) -> UsageSummary:
    return UsageSummary(
        period_start=period.period_start,
        promotional_credits_used=period.promotional_credits_used,
        allocation_credits_used=period.allocation_credits_used,
        total_credits_used=period.total_credits_used,
        usage_details=dict(period.usage_details or {}),
    )


class CreditLedger:
    """
    `charge_job` runs inside the caller's transaction so the deduction
    commits or rolls back together with the job's terminal write. The
    maintenance operations (open, grant, refresh) own their transaction.
    """

    def charge_job(
        self,
        *,
        db: Session,
        account_id: uuid.UUID,
        cost: int,
        operation: str = SCRAPE_OPERATION,
        reference: str | None = None,
    ) -> ChargeResult:
        if cost < 0:
            raise InvalidCreditAmountError(f"Charge cost must be non-negative, got {cost}.")

        repository = LedgerRepository(db)
        account = repository.get_account(account_id, for_update=True)
        if account is None:
            raise AccountNotFoundError(f"Ledger account not found: {account_id}")

        promotional_used, allocation_used = split_charge(
            account.promotional_balance,
            account.allocation_balance,
            cost,
        )
        account.promotional_balance = max(0, account.promotional_balance - promotional_used)
        account.allocation_balance = max(0, account.allocation_balance - allocation_used)

        period = repository.get_or_create_usage_period(account_id=account.id, period_start=period_start_for())
        period.promotional_credits_used += promotional_used
        period.allocation_credits_used += allocation_used
        period.total_credits_used += promotional_used + allocation_used
        details = dict(period.usage_details or {})
        entry = dict(details.get(operation) or {"count": 0, "credits": 0})
        entry["count"] = int(entry.get("count", 0)) + 1
        entry["credits"] = int(entry.get("credits", 0)) + promotional_used + allocation_used
        details[operation] = entry
        # Reassign so the JSON column is flagged dirty.
        period.usage_details = details
        db.flush()

        log_event(
            logger,
            logging.INFO,
            "credits_charged",
            account_id=account.id,
            operation=operation,
            reference=reference,
            cost=cost,
            promotional_used=promotional_used,
            allocation_used=allocation_used,
            shortfall=cost - promotional_used - allocation_used,
        )
        return ChargeResult(
            promotional_used=promotional_used,
            allocation_used=allocation_used,
            promotional_balance=account.promotional_balance,
            allocation_balance=account.allocation_balance,
        )

    def get_account_id(self, *, db: Session, owner_id: str) -> uuid.UUID | None:
        account = LedgerRepository(db).get_account_by_owner(owner_id)
        return account.id if account is not None else None

    def get_balance(self, *, db: Session, owner_id: str) -> LedgerBalance | None:
        account = LedgerRepository(db).get_account_by_owner(owner_id)
        return _to_balance(account) if account is not None else None

    def get_current_usage(self, *, db: Session, account_id: uuid.UUID) -> UsageSummary | None:
        period = LedgerRepository(db).get_usage_period(account_id=account_id, period_start=period_start_for())
        return _to_usage(period) if period is not None else None

    def get_usage_history(self, *, db: Session, account_id: uuid.UUID, limit: int = 12) -> list[UsageSummary]:
        return [_to_usage(period) for period in LedgerRepository(db).list_usage_periods(account_id=account_id, limit=limit)]

    def open_account(
        self,
        *,
        db: Session,
        owner_id: str,
        promotional_credits: int = 0,
        allocation_cap: int = 0,
    ) -> LedgerBalance:
        repository = LedgerRepository(db)
        try:
            account = repository.create_account(
                owner_id=owner_id,
                promotional_balance=promotional_credits,
                allocation_balance=allocation_cap,
                allocation_cap=allocation_cap,
            )
            account.allocation_refreshed_at = utc_now()
            balance = _to_balance(account)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return balance

    def grant_promotional_credits(self, *, db: Session, owner_id: str, credits: int) -> LedgerBalance:
        if credits < 0:
            raise InvalidCreditAmountError(f"Granted credits must be non-negative, got {credits}.")
        try:
            account = self._locked_account(db, owner_id)
            account.promotional_balance += credits
            balance = _to_balance(account)
            db.commit()
        except Exception:
            db.rollback()
            raise
        log_event(logger, logging.INFO, "promotional_credits_granted", owner_id=owner_id, credits=credits)
        return balance

    def refresh_allocation(self, *, db: Session, owner_id: str, allocation_cap: int | None = None) -> LedgerBalance:
        """
        Reset the allocation pool to its cap (optionally changing the cap).
        Unused allocation does not roll over.
        """

        if allocation_cap is not None and allocation_cap < 0:
            raise InvalidCreditAmountError(f"Allocation cap must be non-negative, got {allocation_cap}.")
        try:
            account = self._locked_account(db, owner_id)
            if allocation_cap is not None:
                account.allocation_cap = allocation_cap
            account.allocation_balance = account.allocation_cap
            account.allocation_refreshed_at = utc_now()
            balance = _to_balance(account)
            db.commit()
        except Exception:
            db.rollback()
            raise
        log_event(
            logger,
            logging.INFO,
            "allocation_refreshed",
            owner_id=owner_id,
            allocation_cap=balance.allocation_cap,
        )
        return balance

    def _locked_account(self, db: Session, owner_id: str) -> LedgerAccount:
        account = LedgerRepository(db).get_account_by_owner(owner_id, for_update=True)
        if account is None:
            raise AccountNotFoundError(f"Ledger account not found for owner: {owner_id}")
        return account


@lru_cache(maxsize=1)
def get_credit_ledger() -> CreditLedger:
    return CreditLedger()

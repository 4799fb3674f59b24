"""
tests/test_credit_ledger.py

Dual-pool credit ledger: promotional credits drain first, balances clip at
zero, and every charge lands in the current monthly usage period.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

import pytest

from app.services.credit_ledger import CreditLedger, period_start_for, split_charge
from db.repositories.errors import AccountNotFoundError, InvalidCreditAmountError
from db.repositories.ledger_repository import LedgerRepository
from tests.fakes import OWNER_ID


class TestSplitCharge:
    def test_promotional_pool_is_used_first(self) -> None:
        assert split_charge(20, 100, 50) == (20, 30)

    def test_promotional_pool_covers_whole_cost(self) -> None:
        assert split_charge(80, 100, 50) == (50, 0)

    def test_shortfall_is_clipped_not_borrowed(self) -> None:
        assert split_charge(10, 15, 50) == (10, 15)

    def test_empty_pools_charge_nothing(self) -> None:
        assert split_charge(0, 0, 50) == (0, 0)

    def test_zero_cost(self) -> None:
        assert split_charge(20, 100, 0) == (0, 0)


def test_period_start_is_first_of_month() -> None:
    assert period_start_for(datetime(2026, 10, 18, 14, 30, tzinfo=timezone.utc)) == date(2026, 10, 1)


class TestChargeJob:
    def test_charge_splits_across_pools(self, db, ledger: CreditLedger, funded_account) -> None:
        result = ledger.charge_job(db=db, account_id=funded_account.account_id, cost=50, reference="job-1")
        db.commit()

        assert result.promotional_used == 20
        assert result.allocation_used == 30
        assert result.total_used == 50

        balance = ledger.get_balance(db=db, owner_id=OWNER_ID)
        assert balance.promotional_balance == 0
        assert balance.allocation_balance == 70
        assert balance.total == 70

    def test_overdraw_clips_both_pools_at_zero(self, db, ledger: CreditLedger, funded_account) -> None:
        result = ledger.charge_job(db=db, account_id=funded_account.account_id, cost=500)
        db.commit()

        assert result.promotional_used == 20
        assert result.allocation_used == 100
        balance = ledger.get_balance(db=db, owner_id=OWNER_ID)
        assert balance.promotional_balance == 0
        assert balance.allocation_balance == 0

    def test_charge_on_empty_account_still_succeeds(self, db, ledger: CreditLedger) -> None:
        account = ledger.open_account(db=db, owner_id="broke-owner")

        result = ledger.charge_job(db=db, account_id=account.account_id, cost=50)
        db.commit()

        assert result.total_used == 0
        assert ledger.get_balance(db=db, owner_id="broke-owner").total == 0

    def test_usage_period_accumulates_per_operation(self, db, ledger: CreditLedger, funded_account) -> None:
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=50)
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=30)
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=5, operation="transcript_retry")
        db.commit()

        usage = ledger.get_current_usage(db=db, account_id=funded_account.account_id)
        assert usage is not None
        assert usage.period_start == period_start_for()
        assert usage.promotional_credits_used == 20
        assert usage.allocation_credits_used == 65
        assert usage.total_credits_used == 85
        assert usage.usage_details == {
            "content_scrape": {"count": 2, "credits": 80},
            "transcript_retry": {"count": 1, "credits": 5},
        }

    def test_one_usage_row_per_month(self, db, ledger: CreditLedger, funded_account) -> None:
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=1)
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=1)
        db.commit()

        history = ledger.get_usage_history(db=db, account_id=funded_account.account_id)
        assert len(history) == 1

    def test_rollback_discards_charge(self, db, ledger: CreditLedger, funded_account) -> None:
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=50)
        db.rollback()

        assert ledger.get_balance(db=db, owner_id=OWNER_ID).total == 120
        assert ledger.get_current_usage(db=db, account_id=funded_account.account_id) is None

    def test_negative_cost_is_rejected(self, db, ledger: CreditLedger, funded_account) -> None:
        with pytest.raises(InvalidCreditAmountError):
            ledger.charge_job(db=db, account_id=funded_account.account_id, cost=-1)

    def test_unknown_account(self, db, ledger: CreditLedger) -> None:
        with pytest.raises(AccountNotFoundError):
            ledger.charge_job(db=db, account_id=uuid.uuid4(), cost=10)


class TestAccountMaintenance:
    def test_open_account_fills_allocation_to_cap(self, db, ledger: CreditLedger) -> None:
        balance = ledger.open_account(db=db, owner_id="new-owner", promotional_credits=5, allocation_cap=40)

        assert balance.promotional_balance == 5
        assert balance.allocation_balance == 40
        assert balance.allocation_cap == 40
        account = LedgerRepository(db).get_account_by_owner("new-owner")
        assert account.allocation_refreshed_at is not None

    def test_grant_adds_promotional_credits(self, db, ledger: CreditLedger, funded_account) -> None:
        balance = ledger.grant_promotional_credits(db=db, owner_id=OWNER_ID, credits=30)

        assert balance.promotional_balance == 50
        assert balance.allocation_balance == 100

    def test_grant_requires_account(self, db, ledger: CreditLedger) -> None:
        with pytest.raises(AccountNotFoundError):
            ledger.grant_promotional_credits(db=db, owner_id="nobody", credits=10)

    def test_refresh_resets_allocation_without_rollover(self, db, ledger: CreditLedger, funded_account) -> None:
        ledger.charge_job(db=db, account_id=funded_account.account_id, cost=70)
        db.commit()

        balance = ledger.refresh_allocation(db=db, owner_id=OWNER_ID)

        assert balance.promotional_balance == 0
        assert balance.allocation_balance == 100

    def test_refresh_can_change_cap(self, db, ledger: CreditLedger, funded_account) -> None:
        balance = ledger.refresh_allocation(db=db, owner_id=OWNER_ID, allocation_cap=250)

        assert balance.allocation_cap == 250
        assert balance.allocation_balance == 250

    def test_refresh_rejects_negative_cap(self, db, ledger: CreditLedger, funded_account) -> None:
        with pytest.raises(InvalidCreditAmountError):
            ledger.refresh_allocation(db=db, owner_id=OWNER_ID, allocation_cap=-5)

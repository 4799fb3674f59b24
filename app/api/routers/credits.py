"""
Credit balance endpoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_owner_id
from app.schemas.credits import CreditBalanceResponse, UsagePeriodResponse
from app.services.credit_ledger import CreditLedger, get_credit_ledger
from db.session import get_db

router = APIRouter(prefix="/credits", tags=["credits"])


@router.get("/balance", response_model=CreditBalanceResponse)
def get_credit_balance(
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    ledger: CreditLedger = Depends(get_credit_ledger),
) -> CreditBalanceResponse:
    balance = ledger.get_balance(db=db, owner_id=owner_id)
    if balance is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No credit account found for this user.",
        )

    usage = ledger.get_current_usage(db=db, account_id=balance.account_id)
    return CreditBalanceResponse(
        promotional_balance=balance.promotional_balance,
        allocation_balance=balance.allocation_balance,
        allocation_cap=balance.allocation_cap,
        total_balance=balance.total,
        current_period=(
            UsagePeriodResponse(
                period_start=usage.period_start,
                promotional_credits_used=usage.promotional_credits_used,
                allocation_credits_used=usage.allocation_credits_used,
                total_credits_used=usage.total_credits_used,
                usage_details=usage.usage_details,
            )
            if usage is not None
            else None
        ),
    )

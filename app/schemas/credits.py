"""
Schemas for credit balance endpoints.
"""

from __future__ import annotations

from datetime import date
from typing import Any

from pydantic import BaseModel, Field


class UsagePeriodResponse(BaseModel):
    period_start: date
    promotional_credits_used: int
    allocation_credits_used: int
    total_credits_used: int
    usage_details: dict[str, Any] = Field(default_factory=dict)


class CreditBalanceResponse(BaseModel):
    promotional_balance: int
    allocation_balance: int
    allocation_cap: int
    total_balance: int
    current_period: UsagePeriodResponse | None = None

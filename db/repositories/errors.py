"""
Repository-layer exceptions for credit ledger flows.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base exception for credit ledger failures."""


class AccountNotFoundError(LedgerError):
    """Raised when no ledger account exists for the requested owner or id."""


class InvalidCreditAmountError(LedgerError):
    """Raised when a cost or grant is negative."""

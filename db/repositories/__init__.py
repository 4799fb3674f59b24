"""
Repository package exports.
"""

from db.repositories.errors import AccountNotFoundError, InvalidCreditAmountError, LedgerError
from db.repositories.ledger_repository import LedgerRepository
from db.repositories.scrape_job_repository import ScrapeJobRepository

__all__ = [
    "AccountNotFoundError",
    "InvalidCreditAmountError",
    "LedgerError",
    "LedgerRepository",
    "ScrapeJobRepository",
]

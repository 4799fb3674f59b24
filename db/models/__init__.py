"""
Model package exports.

Import all SQLAlchemy models here so metadata registration and Alembic
autogeneration work without extra imports.
"""

from db.models.ledger_account import LedgerAccount
from db.models.scrape_job import (
    ExtractionMethod,
    Platform,
    ScrapeJob,
    ScrapeJobKind,
    ScrapeJobStatus,
)
from db.models.usage_period import UsagePeriod

__all__ = [
    "ExtractionMethod",
    "LedgerAccount",
    "Platform",
    "ScrapeJob",
    "ScrapeJobKind",
    "ScrapeJobStatus",
    "UsagePeriod",
]

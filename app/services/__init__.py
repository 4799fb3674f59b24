"""
app/services package marker.
"""

from app.services.credit_ledger import CreditLedger, get_credit_ledger, split_charge
from app.services.scrape_job_service import ScrapeJobService, get_scrape_job_service

__all__ = [
    "CreditLedger",
    "ScrapeJobService",
    "get_credit_ledger",
    "get_scrape_job_service",
    "split_charge",
]

"""
app/domain/errors.py

Exceptions raised by the scrape pipeline services and mapped to HTTP
responses by the routers.
"""

from __future__ import annotations


class ScrapeRequestError(Exception):
    """Base exception for caller-visible scrape pipeline failures."""


class InvalidRequestError(ScrapeRequestError):
    """Raised when required request fields are missing or malformed."""


class InvalidUrlError(ScrapeRequestError):
    """Raised when a URL is malformed or does not point at a supported content item."""


class UnsupportedPlatformError(ScrapeRequestError):
    """Raised when a URL belongs to a platform the pipeline cannot scrape."""


class UnauthorizedError(ScrapeRequestError):
    """Raised when no verified owner id accompanies the request."""


class ScrapeNotFoundError(ScrapeRequestError):
    """Raised when a job does not exist or belongs to another owner."""


class ScrapeNotReadyError(ScrapeRequestError):
    """Raised when a transcript is requested for a job that has not completed."""


class InsufficientCreditsError(ScrapeRequestError):
    """Raised by the pre-flight balance check before any work is dispatched."""

    def __init__(self, *, needed: int, available: int) -> None:
        super().__init__(f"Insufficient credits. Need {needed}, have {available}.")
        self.needed = needed
        self.available = available

"""
app/api/errors.py

Translation of pipeline exceptions into HTTP errors.
"""

from __future__ import annotations

from fastapi import HTTPException, status

from app.domain.errors import (
    InsufficientCreditsError,
    InvalidRequestError,
    InvalidUrlError,
    ScrapeNotFoundError,
    ScrapeNotReadyError,
    ScrapeRequestError,
    UnauthorizedError,
    UnsupportedPlatformError,
)

_STATUS_BY_ERROR: tuple[tuple[type[ScrapeRequestError], int], ...] = (
    (InvalidUrlError, status.HTTP_400_BAD_REQUEST),
    (UnsupportedPlatformError, status.HTTP_400_BAD_REQUEST),
    (InvalidRequestError, status.HTTP_400_BAD_REQUEST),
    (UnauthorizedError, status.HTTP_401_UNAUTHORIZED),
    (InsufficientCreditsError, status.HTTP_402_PAYMENT_REQUIRED),
    (ScrapeNotFoundError, status.HTTP_404_NOT_FOUND),
    (ScrapeNotReadyError, status.HTTP_409_CONFLICT),
)


def to_http_exception(exc: ScrapeRequestError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            break
    else:
        status_code = status.HTTP_400_BAD_REQUEST

    if isinstance(exc, InsufficientCreditsError):
        return HTTPException(
            status_code=status_code,
            detail={"message": str(exc), "needed": exc.needed, "available": exc.available},
        )
    return HTTPException(status_code=status_code, detail=str(exc))

"""
app/connectors/base.py

Shared HTTP mechanics for the job runner, YouTube Data API and caption
connectors: per-connector throttling, bounded retries with exponential
backoff, and errors that keep the upstream status and body for callers
that classify quota or authorization failures.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from app.config import ExternalHTTPSettings
from app.logging_utils import log_event

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
_MAX_ERROR_BODY_CHARS = 2000


class ConnectorRequestError(RuntimeError):
    """
    Raised when a connector gives up on a request.
    """

    def __init__(self, message: str, *, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BaseConnector:
    """
    Throttled, retrying `requests` client that concrete connectors extend.
    """

    source: str

    def __init__(
        self,
        *,
        source: str,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        self.source = source
        self._session = session or requests.Session()
        self._http = http_settings
        rate = http_settings.rate_limit_per_second
        self._min_interval = 1.0 / rate if rate > 0 else 0.0
        self._last_sent_at = 0.0

    def _request_json(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> Any:
        response = self._send(method=method, url=url, params=params, headers=headers, json_body=json_body)
        try:
            return response.json()
        except ValueError as exc:
            raise ConnectorRequestError(
                f"{self.source}: response was not valid JSON.",
                status_code=response.status_code,
            ) from exc

    def _request_text(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        return self._send(method=method, url=url, params=params, headers=headers).text

    def _send(
        self,
        *,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
    ) -> requests.Response:
        """
        Send one logical request, retrying timeouts, connection resets and
        RETRYABLE_STATUS_CODES up to `max_retries` extra times.

        Any other HTTP error status fails on the first response.
        """

        failure: ConnectorRequestError | None = None
        cause: Exception | None = None
        attempts = self._http.max_retries + 1

        for attempt in range(attempts):
            if attempt:
                delay = self._http.backoff_initial_seconds * (self._http.backoff_multiplier ** (attempt - 1))
                log_event(
                    logger,
                    logging.WARNING,
                    "connector_retry",
                    source=self.source,
                    attempt=attempt,
                    max_retries=self._http.max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(cause),
                )
                time.sleep(delay)

            self._throttle()
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    headers=headers,
                    json=json_body,
                    timeout=self._http.timeout_seconds,
                )
            except (requests.Timeout, requests.ConnectionError) as exc:
                cause = exc
                failure = ConnectorRequestError(f"{self.source}: request failed after retries.")
                continue

            if response.status_code < 400:
                return response

            body = (response.text or "")[:_MAX_ERROR_BODY_CHARS]
            cause = requests.HTTPError(f"HTTP {response.status_code}", response=response)
            if response.status_code not in RETRYABLE_STATUS_CODES:
                log_event(
                    logger,
                    logging.ERROR,
                    "connector_rejected",
                    source=self.source,
                    status_code=response.status_code,
                )
                raise ConnectorRequestError(
                    f"{self.source}: request failed with status {response.status_code}.",
                    status_code=response.status_code,
                    body=body,
                ) from cause
            failure = ConnectorRequestError(
                f"{self.source}: request failed after retries.",
                status_code=response.status_code,
                body=body,
            )

        log_event(logger, logging.ERROR, "connector_exhausted", source=self.source, attempts=attempts, error=str(cause))
        raise failure from cause

    def _throttle(self) -> None:
        if self._min_interval <= 0:
            return
        wait = self._min_interval - (time.monotonic() - self._last_sent_at)
        if wait > 0:
            time.sleep(wait)
        self._last_sent_at = time.monotonic()

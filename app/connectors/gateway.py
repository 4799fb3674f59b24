"""
app/connectors/gateway.py

External Extraction Gateway: one interface over the free platform API and
the paid job runner.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Protocol

from app.config import (
    get_external_http_settings,
    get_job_runner_settings,
    get_youtube_data_settings,
)
from app.connectors.base import ConnectorRequestError
from app.connectors.errors import GatewayError, PlatformContentError
from app.connectors.job_runner_connector import JobRunnerConnector
from app.connectors.normalizer import normalize_runner_item
from app.connectors.youtube_data_connector import YouTubeDataConnector
from app.domain.scrape import ExtractedContent, ParsedContentUrl, RunHandle, RunStatus
from db.models.scrape_job import Platform

logger = logging.getLogger(__name__)


class ExtractionGateway(Protocol):
    def supports_platform_api(self, platform: str) -> bool:
        ...

    def fetch_via_platform_api(self, target: ParsedContentUrl) -> ExtractedContent:
        """Raises PlatformQuotaError (terminal) or any other error (fallback)."""

    def submit_job(self, target: ParsedContentUrl) -> RunHandle:
        ...

    def poll_job(self, run_id: str) -> RunStatus:
        """Raises GatewayError on transient failure."""

    def fetch_job_result(self, run_id: str, *, platform: str, source_url: str) -> ExtractedContent | None:
        """Returns None when the run produced no items. Raises GatewayError on transient failure."""


class ContentExtractionGateway:
    def __init__(
        self,
        *,
        job_runner: JobRunnerConnector,
        youtube_data: YouTubeDataConnector,
    ) -> None:
        self._job_runner = job_runner
        self._youtube_data = youtube_data

    def supports_platform_api(self, platform: str) -> bool:
        return platform == Platform.YOUTUBE and self._youtube_data.configured

    def fetch_via_platform_api(self, target: ParsedContentUrl) -> ExtractedContent:
        if target.platform != Platform.YOUTUBE or not target.content_id:
            raise PlatformContentError(f"No platform API extraction for {target.platform} URLs.")
        return self._youtube_data.fetch_video(video_id=target.content_id, url=target.normalized_url)

    def submit_job(self, target: ParsedContentUrl) -> RunHandle:
        try:
            return self._job_runner.start_run(platform=target.platform, url=target.url)
        except ConnectorRequestError as exc:
            raise GatewayError(str(exc)) from exc

    def poll_job(self, run_id: str) -> RunStatus:
        try:
            return self._job_runner.get_run_status(run_id)
        except ConnectorRequestError as exc:
            raise GatewayError(str(exc)) from exc

    def fetch_job_result(self, run_id: str, *, platform: str, source_url: str) -> ExtractedContent | None:
        try:
            items = self._job_runner.get_run_items(run_id, limit=1)
        except ConnectorRequestError as exc:
            raise GatewayError(str(exc)) from exc
        if not items:
            return None
        return normalize_runner_item(items[0], platform=platform, source_url=source_url)


@lru_cache(maxsize=1)
def get_extraction_gateway() -> ContentExtractionGateway:
    http_settings = get_external_http_settings()
    return ContentExtractionGateway(
        job_runner=JobRunnerConnector(settings=get_job_runner_settings(), http_settings=http_settings),
        youtube_data=YouTubeDataConnector(settings=get_youtube_data_settings(), http_settings=http_settings),
    )

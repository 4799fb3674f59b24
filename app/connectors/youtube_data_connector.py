"""
app/connectors/youtube_data_connector.py

Free, quota-limited extraction path backed by the YouTube Data API v3.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

import requests

from app.config import ExternalHTTPSettings, YouTubeDataSettings
from app.connectors.base import BaseConnector, ConnectorRequestError
from app.connectors.errors import PlatformContentError, PlatformQuotaError
from app.connectors.normalizer import (
    classify_video_type,
    extract_hashtags,
    extract_mentions,
    parse_duration_seconds,
)
from app.domain.scrape import ExtractedContent, PostType
from db.models.scrape_job import Platform

logger = logging.getLogger(__name__)

QUOTA_STATUS_CODES = {401, 403, 429}
QUOTA_REASONS = {"quotaExceeded", "dailyLimitExceeded", "rateLimitExceeded", "keyInvalid", "forbidden"}
THUMBNAIL_PREFERENCE = ("maxres", "standard", "high", "medium", "default")

_CHAPTER_LINE = re.compile(r"^\s*((?:\d{1,2}:)?\d{1,2}:\d{2})\s*[-–—]?\s*(.+?)\s*$")


def best_thumbnail(thumbnails: dict[str, Any] | None) -> str | None:
    for key in THUMBNAIL_PREFERENCE:
        entry = (thumbnails or {}).get(key)
        if isinstance(entry, dict) and entry.get("url"):
            return str(entry["url"])
    return None


def parse_chapters(description: str | None, duration_seconds: int | None) -> list[dict[str, Any]]:
    """
    Build chapters from "MM:SS Title" lines in a video description.
    """

    chapters: list[dict[str, Any]] = []
    for line in (description or "").splitlines():
        match = _CHAPTER_LINE.match(line)
        if match is None:
            continue
        start = parse_duration_seconds(match.group(1))
        title = match.group(2).strip()
        if start is None or not title:
            continue
        chapters.append({"title": title, "start_time": start, "end_time": None})

    for current, following in zip(chapters, chapters[1:]):
        current["end_time"] = following["start_time"]
    if chapters and duration_seconds:
        chapters[-1]["end_time"] = duration_seconds
    return chapters


def _error_reasons(body: str | None) -> set[str]:
    try:
        parsed = json.loads(body or "")
    except ValueError:
        return set()
    errors = (parsed.get("error") or {}).get("errors") if isinstance(parsed, dict) else None
    return {str(error.get("reason")) for error in errors or [] if isinstance(error, dict)}


class YouTubeDataConnector(BaseConnector):
    def __init__(
        self,
        *,
        settings: YouTubeDataSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(source="youtube_data_api", http_settings=http_settings, session=session)
        self._settings = settings

    @property
    def configured(self) -> bool:
        return bool(self._settings.api_key)

    def fetch_video(self, *, video_id: str, url: str) -> ExtractedContent:
        """
        Fetch one video's metadata.

        Raises PlatformQuotaError on quota/authorization rejections and
        PlatformContentError when the video cannot be read for other reasons.
        """

        if not self._settings.api_key:
            raise PlatformQuotaError("YouTube Data API key is not configured.")

        try:
            body = self._request_json(
                method="GET",
                url=f"{self._settings.base_url.rstrip('/')}/videos",
                params={
                    "part": "snippet,statistics,contentDetails",
                    "id": video_id,
                    "key": self._settings.api_key,
                },
            )
        except ConnectorRequestError as exc:
            reasons = _error_reasons(exc.body)
            if exc.status_code in QUOTA_STATUS_CODES or reasons & QUOTA_REASONS:
                raise PlatformQuotaError(
                    f"YouTube Data API rejected the request (status={exc.status_code}, "
                    f"reasons={sorted(reasons) or 'unknown'})."
                ) from exc
            raise PlatformContentError(f"YouTube Data API request failed: {exc}") from exc

        items = body.get("items") if isinstance(body, dict) else None
        if not items:
            raise PlatformContentError(f"No YouTube video found with id {video_id}.")
        return self.to_content(items[0], url=url)

    @staticmethod
    def to_content(video: dict[str, Any], *, url: str) -> ExtractedContent:
        snippet = video.get("snippet") or {}
        statistics = video.get("statistics") or {}
        details = video.get("contentDetails") or {}
        description = snippet.get("description") or ""
        duration = parse_duration_seconds(details.get("duration"))

        return ExtractedContent(
            platform=Platform.YOUTUBE,
            url=url,
            title=snippet.get("title"),
            description=description or None,
            author=snippet.get("channelTitle"),
            author_name=snippet.get("channelTitle"),
            author_id=snippet.get("channelId"),
            video_id=video.get("id"),
            duration_seconds=duration,
            upload_date=snippet.get("publishedAt"),
            thumbnail_url=best_thumbnail(snippet.get("thumbnails")),
            post_type=PostType.VIDEO,
            video_type=classify_video_type(duration, url),
            metrics={
                "views": int(statistics.get("viewCount") or 0),
                "likes": int(statistics.get("likeCount") or 0),
                "comments": int(statistics.get("commentCount") or 0),
                "shares": 0,
            },
            hashtags=extract_hashtags(description),
            mentions=extract_mentions(description),
            chapters=parse_chapters(description, duration),
            raw_data=video,
        )

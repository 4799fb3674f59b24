"""
tests/test_connectors.py

HTTP connectors against a scripted requests session: job runner run
lifecycle, YouTube Data API error classification and the gateway's
transient-error wrapping.
"""

from __future__ import annotations

import json
from typing import Any

import pytest
import requests

from app.config import ExternalHTTPSettings, JobRunnerSettings, YouTubeDataSettings
from app.connectors.base import ConnectorRequestError
from app.connectors.errors import GatewayError, PlatformContentError, PlatformQuotaError
from app.connectors.gateway import ContentExtractionGateway
from app.connectors.job_runner_connector import JobRunnerConnector, build_run_input, map_run_status
from app.connectors.youtube_data_connector import YouTubeDataConnector, parse_chapters
from app.domain.scrape import ParsedContentUrl, RunState, VideoType

HTTP_SETTINGS = ExternalHTTPSettings(
    timeout_seconds=5.0,
    max_retries=1,
    backoff_initial_seconds=0.0,
    backoff_multiplier=1.0,
    rate_limit_per_second=0.0,
)


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)


class FakeSession:
    def __init__(self, *responses: FakeResponse | Exception) -> None:
        self._responses = list(responses)
        self.requests: list[dict[str, Any]] = []

    def request(self, **kwargs: Any) -> FakeResponse:
        self.requests.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _runner(session: FakeSession, token: str | None = "secret") -> JobRunnerConnector:
    return JobRunnerConnector(
        settings=JobRunnerSettings(api_token=token),
        http_settings=HTTP_SETTINGS,
        session=session,
    )


def _youtube(session: FakeSession, key: str | None = "yt-key") -> YouTubeDataConnector:
    return YouTubeDataConnector(
        settings=YouTubeDataSettings(api_key=key),
        http_settings=HTTP_SETTINGS,
        session=session,
    )


class TestRunStatusMapping:
    @pytest.mark.parametrize(
        ("raw", "state"),
        [
            ("READY", RunState.RUNNING),
            ("RUNNING", RunState.RUNNING),
            ("TIMING-OUT", RunState.RUNNING),
            ("ABORTING", RunState.RUNNING),
            ("SUCCEEDED", RunState.SUCCEEDED),
            ("FAILED", RunState.FAILED),
            ("TIMED-OUT", RunState.TIMED_OUT),
            ("ABORTED", RunState.ABORTED),
            ("succeeded", RunState.SUCCEEDED),
            ("SOMETHING-NEW", RunState.RUNNING),
            ("", RunState.RUNNING),
        ],
    )
    def test_map_run_status(self, raw: str, state: str) -> None:
        assert map_run_status(raw).state == state

    def test_raw_status_is_kept_for_error_messages(self) -> None:
        assert map_run_status("timed-out").raw_status == "TIMED-OUT"

    def test_run_inputs(self) -> None:
        assert build_run_input("youtube", "u") == {"queries": ["u"]}
        assert build_run_input("instagram", "u") == {"username": ["u"], "resultsLimit": 30}
        assert build_run_input("tiktok", "u") == {"postURLs": ["u"], "resultsPerPage": 100}
        with pytest.raises(ValueError):
            build_run_input("vimeo", "u")


class TestJobRunnerConnector:
    def test_start_run(self) -> None:
        session = FakeSession(FakeResponse(201, {"data": {"id": "run-9", "defaultDatasetId": "ds-9"}}))

        handle = _runner(session).start_run(platform="tiktok", url="https://www.tiktok.com/@c/video/1")

        assert handle.run_id == "run-9"
        assert handle.dataset_id == "ds-9"
        sent = session.requests[0]
        assert sent["method"] == "POST"
        assert sent["url"] == "https://api.apify.com/v2/acts/clockworks~tiktok-video-scraper/runs"
        assert sent["headers"] == {"Authorization": "Bearer secret"}
        assert sent["json"] == {"postURLs": ["https://www.tiktok.com/@c/video/1"], "resultsPerPage": 100}

    def test_start_run_without_run_id(self) -> None:
        session = FakeSession(FakeResponse(201, {"data": {}}))

        with pytest.raises(ConnectorRequestError):
            _runner(session).start_run(platform="tiktok", url="u")

    def test_missing_token_fails_before_request(self) -> None:
        session = FakeSession()

        with pytest.raises(ConnectorRequestError):
            _runner(session, token=None).start_run(platform="tiktok", url="u")
        assert session.requests == []

    def test_run_status(self) -> None:
        session = FakeSession(FakeResponse(200, {"data": {"id": "run-9", "status": "SUCCEEDED"}}))

        status = _runner(session).get_run_status("run-9")

        assert status.state == RunState.SUCCEEDED
        assert session.requests[0]["url"] == "https://api.apify.com/v2/actor-runs/run-9"

    def test_run_items(self) -> None:
        session = FakeSession(FakeResponse(200, [{"id": "1"}, "junk"]))

        items = _runner(session).get_run_items("run-9")

        assert items == [{"id": "1"}]
        assert session.requests[0]["params"]["limit"] == 1

    def test_retryable_status_is_retried(self) -> None:
        session = FakeSession(
            FakeResponse(503, text="unavailable"),
            FakeResponse(200, {"data": {"status": "RUNNING"}}),
        )

        status = _runner(session).get_run_status("run-9")

        assert status.state == RunState.RUNNING
        assert len(session.requests) == 2

    def test_exhausted_retries_raise(self) -> None:
        session = FakeSession(requests.ConnectionError("reset"), requests.Timeout("slow"))

        with pytest.raises(ConnectorRequestError):
            _runner(session).get_run_status("run-9")


class TestYouTubeDataConnector:
    VIDEO = {
        "id": "dQw4w9WgXcQ",
        "snippet": {
            "title": "Lecture",
            "description": "Intro #learn\n0:00 Start\n10:00 Middle part\n20:30 Wrap up",
            "channelTitle": "Lecture Hall",
            "channelId": "UC1",
            "publishedAt": "2024-01-01T00:00:00Z",
            "thumbnails": {"high": {"url": "https://img/high.jpg"}, "default": {"url": "https://img/d.jpg"}},
        },
        "statistics": {"viewCount": "100", "likeCount": "7", "commentCount": "2"},
        "contentDetails": {"duration": "PT25M"},
    }

    def test_fetch_video(self) -> None:
        session = FakeSession(FakeResponse(200, {"items": [self.VIDEO]}))

        content = _youtube(session).fetch_video(video_id="dQw4w9WgXcQ", url="https://www.youtube.com/watch?v=dQw4w9WgXcQ")

        assert content.title == "Lecture"
        assert content.author_name == "Lecture Hall"
        assert content.duration_seconds == 1500
        assert content.video_type == VideoType.LONG_FORM
        assert content.thumbnail_url == "https://img/high.jpg"
        assert content.metrics == {"views": 100, "likes": 7, "comments": 2, "shares": 0}
        assert content.hashtags == ["#learn"]
        assert [chapter["start_time"] for chapter in content.chapters] == [0, 600, 1230]
        assert content.chapters[-1]["end_time"] == 1500
        assert session.requests[0]["params"]["id"] == "dQw4w9WgXcQ"

    def test_quota_status_is_terminal(self) -> None:
        body = json.dumps({"error": {"errors": [{"reason": "quotaExceeded"}]}})
        session = FakeSession(FakeResponse(403, text=body))

        with pytest.raises(PlatformQuotaError):
            _youtube(session).fetch_video(video_id="x", url="u")

    def test_quota_reason_on_other_status_is_terminal(self) -> None:
        body = json.dumps({"error": {"errors": [{"reason": "dailyLimitExceeded"}]}})
        session = FakeSession(FakeResponse(400, text=body))

        with pytest.raises(PlatformQuotaError):
            _youtube(session).fetch_video(video_id="x", url="u")

    def test_missing_key_is_terminal(self) -> None:
        with pytest.raises(PlatformQuotaError):
            _youtube(FakeSession(), key=None).fetch_video(video_id="x", url="u")

    def test_not_found_allows_fallback(self) -> None:
        session = FakeSession(FakeResponse(404, text="{}"))

        with pytest.raises(PlatformContentError):
            _youtube(session).fetch_video(video_id="x", url="u")

    def test_empty_items_allows_fallback(self) -> None:
        session = FakeSession(FakeResponse(200, {"items": []}))

        with pytest.raises(PlatformContentError):
            _youtube(session).fetch_video(video_id="x", url="u")


def test_parse_chapters_without_timestamps() -> None:
    assert parse_chapters("just a description", 100) == []


class TestGateway:
    TARGET = ParsedContentUrl(
        url="https://www.tiktok.com/@c/video/1",
        normalized_url="https://www.tiktok.com/@c/video/1",
        platform="tiktok",
        content_id="1",
    )

    def _gateway(self, runner_session: FakeSession, youtube_key: str | None = "yt-key") -> ContentExtractionGateway:
        return ContentExtractionGateway(
            job_runner=_runner(runner_session),
            youtube_data=_youtube(FakeSession(), key=youtube_key),
        )

    def test_platform_api_support(self) -> None:
        assert self._gateway(FakeSession()).supports_platform_api("youtube") is True
        assert self._gateway(FakeSession()).supports_platform_api("tiktok") is False
        assert self._gateway(FakeSession(), youtube_key=None).supports_platform_api("youtube") is False

    def test_platform_api_rejects_other_platforms(self) -> None:
        with pytest.raises(PlatformContentError):
            self._gateway(FakeSession()).fetch_via_platform_api(self.TARGET)

    def test_runner_errors_become_transient(self) -> None:
        session = FakeSession(FakeResponse(500, text="oops"), FakeResponse(502, text="oops"))

        with pytest.raises(GatewayError):
            self._gateway(session).poll_job("run-1")

    def test_empty_dataset_is_no_content(self) -> None:
        session = FakeSession(FakeResponse(200, []))

        assert self._gateway(session).fetch_job_result("run-1", platform="tiktok", source_url="u") is None

    def test_dataset_item_is_normalized(self) -> None:
        session = FakeSession(FakeResponse(200, [{"id": "1", "text": "hi #there", "playCount": 5}]))

        content = self._gateway(session).fetch_job_result("run-1", platform="tiktok", source_url="u")

        assert content.platform == "tiktok"
        assert content.url == "u"
        assert content.hashtags == ["#there"]
        assert content.metrics["views"] == 5

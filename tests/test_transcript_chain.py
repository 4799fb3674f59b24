"""
tests/test_transcript_chain.py

Transcript resolution: strategy ordering, short-circuiting, failure
isolation and the two sentinel outcomes.
"""

from __future__ import annotations

import time

import pytest
from youtube_transcript_api import TranscriptsDisabled

from app.config import TranscriptSettings
from app.domain.scrape import ExtractedContent, TranscriptAttempt
from app.transcripts.chain import TranscriptResolutionChain
from app.transcripts.strategies import (
    IMAGE_POST_SENTINEL,
    NO_CAPTIONS_SENTINEL,
    AudioTranscriptionStrategy,
    CaptionServiceStrategy,
    CaptionTrackStrategy,
    ImagePostSentinelStrategy,
    MediaUrlTranscriptionStrategy,
    NoCaptionsSentinelStrategy,
    ResolutionContext,
    TranscriptStrategy,
    build_transcription_prompt,
    find_media_url,
)

VIDEO_ID = "dQw4w9WgXcQ"


class RecordingStrategy(TranscriptStrategy):
    def __init__(self, source: str, *, text: str | None = None, error: Exception | None = None, delay: float = 0.0):
        self.source = source
        self.timeout_seconds = 1.0
        self._text = text
        self._error = error
        self._delay = delay
        self.calls = 0

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        self.calls += 1
        if self._delay:
            time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        if self._text is None:
            return self.failure("nothing here")
        return self.success(self._text)


class FakeCaptionConnector:
    def __init__(self, document: str) -> None:
        self.document = document
        self.urls: list[str] = []

    def fetch_track(self, base_url: str) -> str:
        self.urls.append(base_url)
        return self.document


class FakeTranscriptApi:
    def __init__(self, *, snippets=None, error: Exception | None = None) -> None:
        self._snippets = snippets or []
        self._error = error

    def fetch(self, video_id, languages=("en",)):
        if self._error is not None:
            raise self._error
        return self._snippets

    def list(self, video_id):
        return []


class Snippet:
    def __init__(self, text: str) -> None:
        self.text = text


class FakeSpeechToText:
    def __init__(self, text: str = "spoken words") -> None:
        self.text = text
        self.calls: list[dict] = []

    def transcribe(self, *, audio: bytes, filename: str, prompt: str | None = None) -> str:
        self.calls.append({"audio": audio, "filename": filename, "prompt": prompt})
        return self.text


class FakeAudioSource:
    def __init__(self) -> None:
        self.downloads: list[tuple[str, int]] = []
        self.splits: list[tuple[int, int]] = []

    def download(self, url: str, *, max_bytes: int) -> bytes:
        self.downloads.append((url, max_bytes))
        return b"audio-bytes"

    def resolve_youtube_audio(self, video_url: str) -> str:
        return f"https://audio.example.com/{video_url.rsplit('=', 1)[-1]}.m4a"

    def split(self, audio: bytes, *, chunk_seconds: int, total_seconds: int) -> list[bytes]:
        self.splits.append((chunk_seconds, total_seconds))
        return [b"part-1", b"part-2", b"part-3"]


def _youtube(**overrides) -> ExtractedContent:
    values = {
        "platform": "youtube",
        "url": f"https://www.youtube.com/watch?v={VIDEO_ID}",
        "video_id": VIDEO_ID,
        "title": "Video",
    }
    values.update(overrides)
    return ExtractedContent(**values)


def _chain(*strategies: TranscriptStrategy, platform: str = "youtube") -> TranscriptResolutionChain:
    return TranscriptResolutionChain(strategies_by_platform={platform: strategies})


class TestChainOrdering:
    def test_first_success_short_circuits(self) -> None:
        first = RecordingStrategy("first")
        second = RecordingStrategy("second", text="from second")
        third = RecordingStrategy("third", text="from third")

        resolution = _chain(first, second, third).resolve(_youtube(), "youtube")

        assert resolution.text == "from second"
        assert resolution.source == "second"
        assert [attempt.source for attempt in resolution.attempts] == ["scraper", "first", "second"]
        assert third.calls == 0

    def test_scraper_transcript_wins(self) -> None:
        later = RecordingStrategy("later", text="should not run")

        resolution = _chain(later).resolve(_youtube(transcript="  carried along  "), "youtube")

        assert resolution.text == "carried along"
        assert resolution.source == "scraper"
        assert later.calls == 0

    def test_exceptions_are_isolated(self) -> None:
        broken = RecordingStrategy("broken", error=RuntimeError("network down"))
        fallback = RecordingStrategy("fallback", text="recovered")

        resolution = _chain(broken, fallback).resolve(_youtube(), "youtube")

        assert resolution.text == "recovered"
        assert resolution.attempts[1].error == "RuntimeError: network down"

    def test_slow_strategy_times_out(self) -> None:
        slow = RecordingStrategy("slow", text="too late", delay=0.5)
        slow.timeout_seconds = 0.05
        fast = RecordingStrategy("fast", text="in time")

        resolution = _chain(slow, fast).resolve(_youtube(), "youtube")

        assert resolution.text == "in time"
        assert "timed out" in resolution.attempts[1].error

    def test_hung_strategies_do_not_starve_later_resolutions(self) -> None:
        hung = []
        for idx in range(6):
            strategy = RecordingStrategy(f"hung-{idx}", text="never", delay=1.0)
            strategy.timeout_seconds = 0.05
            hung.append(strategy)
        chain = _chain(*hung)

        first = chain.resolve(_youtube(), "youtube")
        second = chain.resolve(_youtube(transcript="already here"), "youtube")

        assert first.text is None
        assert second.text == "already here"
        assert second.source == "scraper"
        assert len(second.attempts) == 1

    def test_timeout_starts_when_the_strategy_runs(self) -> None:
        hung = RecordingStrategy("hung", text="never", delay=1.0)
        hung.timeout_seconds = 0.05
        later = RecordingStrategy("later", text="made it", delay=0.1)
        later.timeout_seconds = 0.5
        chain = _chain(hung, later)

        chain.resolve(_youtube(), "youtube")
        resolution = chain.resolve(_youtube(), "youtube")

        assert resolution.text == "made it"

    def test_all_failures_resolve_to_none(self) -> None:
        resolution = _chain(
            RecordingStrategy("a"),
            RecordingStrategy("b", error=ValueError("bad")),
        ).resolve(_youtube(), "youtube")

        assert resolution.resolved is False
        assert resolution.text is None
        assert resolution.source is None
        assert len(resolution.attempts) == 3

    def test_unknown_platform_only_runs_leading_strategies(self) -> None:
        resolution = _chain(RecordingStrategy("yt", text="x")).resolve(_youtube(platform="vimeo"), "vimeo")

        assert resolution.text is None
        assert [attempt.source for attempt in resolution.attempts] == ["scraper"]


class TestNoCaptionsSentinel:
    def test_disabled_captions_yield_sentinel(self) -> None:
        chain = _chain(
            CaptionTrackStrategy(connector=FakeCaptionConnector("")),
            CaptionServiceStrategy(api_factory=lambda: FakeTranscriptApi(error=TranscriptsDisabled(VIDEO_ID))),
            RecordingStrategy("audio", error=RuntimeError("audio unavailable")),
            NoCaptionsSentinelStrategy(),
        )

        resolution = chain.resolve(_youtube(), "youtube")

        assert resolution.text == NO_CAPTIONS_SENTINEL
        assert resolution.source == "no_captions"

    def test_empty_track_list_yields_sentinel(self) -> None:
        chain = _chain(
            CaptionTrackStrategy(connector=FakeCaptionConnector("")),
            NoCaptionsSentinelStrategy(),
        )

        resolution = chain.resolve(_youtube(raw_data={"captionTracks": []}), "youtube")

        assert resolution.text == NO_CAPTIONS_SENTINEL

    def test_unknown_caption_state_stays_unresolved(self) -> None:
        chain = _chain(
            CaptionTrackStrategy(connector=FakeCaptionConnector("")),
            CaptionServiceStrategy(api_factory=lambda: FakeTranscriptApi(error=RuntimeError("blocked"))),
            NoCaptionsSentinelStrategy(),
        )

        resolution = chain.resolve(_youtube(), "youtube")

        assert resolution.text is None

    def test_tracks_present_but_unfetchable_do_not_yield_sentinel(self) -> None:
        chain = _chain(
            CaptionTrackStrategy(connector=FakeCaptionConnector("")),
            NoCaptionsSentinelStrategy(),
        )
        raw = {"captionTracks": [{"baseUrl": "https://captions.example.com/en", "languageCode": "en"}]}

        resolution = chain.resolve(_youtube(raw_data=raw), "youtube")

        assert resolution.text is None


class TestCaptionStrategies:
    def test_caption_track_downloads_preferred_track(self) -> None:
        connector = FakeCaptionConnector('<transcript><text start="0">Hello &amp; welcome</text></transcript>')
        raw = {
            "captionTracks": [
                {"baseUrl": "https://captions.example.com/de", "languageCode": "de"},
                {"baseUrl": "https://captions.example.com/en", "languageCode": "en"},
            ]
        }

        resolution = _chain(CaptionTrackStrategy(connector=connector)).resolve(_youtube(raw_data=raw), "youtube")

        assert resolution.text == "Hello & welcome"
        assert connector.urls == ["https://captions.example.com/en"]

    def test_caption_service_joins_snippets(self) -> None:
        api = FakeTranscriptApi(snippets=[Snippet("first line"), Snippet(" second line ")])

        resolution = _chain(CaptionServiceStrategy(api_factory=lambda: api)).resolve(_youtube(), "youtube")

        assert resolution.text == "first line second line"
        assert resolution.source == "caption_service"

    def test_caption_service_needs_video_id(self) -> None:
        context = ResolutionContext(platform="youtube")

        attempt = CaptionServiceStrategy(api_factory=FakeTranscriptApi).attempt(_youtube(video_id=None), context)

        assert attempt.succeeded is False


class TestAudioTranscription:
    def test_short_video_is_transcribed_whole(self) -> None:
        speech, audio = FakeSpeechToText(), FakeAudioSource()
        strategy = AudioTranscriptionStrategy(speech_to_text=speech, audio_source=audio, settings=TranscriptSettings())

        attempt = strategy.attempt(_youtube(duration_seconds=300), ResolutionContext(platform="youtube"))

        assert attempt.text == "spoken words"
        assert len(speech.calls) == 1
        assert audio.splits == []

    def test_long_video_skipped_without_long_form_mode(self) -> None:
        speech, audio = FakeSpeechToText(), FakeAudioSource()
        strategy = AudioTranscriptionStrategy(speech_to_text=speech, audio_source=audio, settings=TranscriptSettings())

        attempt = strategy.attempt(_youtube(duration_seconds=1800), ResolutionContext(platform="youtube"))

        assert attempt.succeeded is False
        assert "exceeds" in attempt.error
        assert audio.downloads == []

    def test_long_form_mode_transcribes_in_chunks(self) -> None:
        speech, audio = FakeSpeechToText("part"), FakeAudioSource()
        settings = TranscriptSettings(long_form_enabled=True, chunk_seconds=600)
        strategy = AudioTranscriptionStrategy(speech_to_text=speech, audio_source=audio, settings=settings)

        attempt = strategy.attempt(_youtube(duration_seconds=1800), ResolutionContext(platform="youtube"))

        assert attempt.text == "part part part"
        assert audio.splits == [(600, 1800)]
        assert audio.downloads[0][1] == settings.max_audio_bytes * 3

    def test_long_form_timeout_scales_with_chunks(self) -> None:
        settings = TranscriptSettings(long_form_enabled=True, chunk_seconds=600, audio_timeout_seconds=120.0)
        strategy = AudioTranscriptionStrategy(
            speech_to_text=FakeSpeechToText(),
            audio_source=FakeAudioSource(),
            settings=settings,
        )

        assert strategy.timeout_for(_youtube(duration_seconds=300)) == 120.0
        assert strategy.timeout_for(_youtube(duration_seconds=1800)) == 360.0
        assert strategy.timeout_for(_youtube(duration_seconds=5000)) == 120.0

    def test_long_form_mode_still_has_a_ceiling(self) -> None:
        speech, audio = FakeSpeechToText(), FakeAudioSource()
        settings = TranscriptSettings(long_form_enabled=True, long_form_max_duration_seconds=3600)
        strategy = AudioTranscriptionStrategy(speech_to_text=speech, audio_source=audio, settings=settings)

        attempt = strategy.attempt(_youtube(duration_seconds=7200), ResolutionContext(platform="youtube"))

        assert attempt.succeeded is False
        assert audio.downloads == []


class TestMediaPosts:
    def _chain(self, speech: FakeSpeechToText, platform: str) -> TranscriptResolutionChain:
        return _chain(
            MediaUrlTranscriptionStrategy(
                speech_to_text=speech,
                audio_source=FakeAudioSource(),
                settings=TranscriptSettings(),
            ),
            ImagePostSentinelStrategy(),
            platform=platform,
        )

    def test_image_post_yields_sentinel(self) -> None:
        content = ExtractedContent(platform="instagram", url="https://www.instagram.com/p/abc/", post_type="image")

        resolution = self._chain(FakeSpeechToText(), "instagram").resolve(content, "instagram")

        assert resolution.text == IMAGE_POST_SENTINEL
        assert resolution.source == "image_post"

    def test_video_post_is_transcribed_with_prompt(self) -> None:
        speech = FakeSpeechToText("caption audio")
        content = ExtractedContent(
            platform="tiktok",
            url="https://www.tiktok.com/@creator/video/1",
            title="Morning routine",
            author="creator",
            hashtags=["#morning", "#routine"],
            video_url="https://cdn.example.com/v.mp4",
            post_type="video",
        )

        resolution = self._chain(speech, "tiktok").resolve(content, "tiktok")

        assert resolution.text == "caption audio"
        assert resolution.source == "media_transcription"
        assert speech.calls[0]["prompt"] == "Title: Morning routine. Creator: creator. Topics: #morning, #routine"

    def test_video_without_media_url_is_unresolved(self) -> None:
        content = ExtractedContent(platform="tiktok", url="https://www.tiktok.com/@c/video/1", post_type="video")

        resolution = self._chain(FakeSpeechToText(), "tiktok").resolve(content, "tiktok")

        assert resolution.text is None

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ({"videoUrl": "https://cdn/a.mp4"}, "https://cdn/a.mp4"),
            (
                {"streamingData": {"formats": [{"mimeType": 'video/mp4; codecs="avc1"', "url": "https://cdn/b.mp4"}]}},
                "https://cdn/b.mp4",
            ),
            ({}, None),
        ],
    )
    def test_find_media_url(self, raw: dict, expected: str | None) -> None:
        content = ExtractedContent(platform="instagram", url="https://www.instagram.com/p/x/", raw_data=raw)

        assert find_media_url(content) == expected


def test_prompt_is_none_without_metadata() -> None:
    assert build_transcription_prompt(ExtractedContent(platform="tiktok", url="u")) is None

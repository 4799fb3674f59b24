"""
app/transcripts/strategies.py

Transcript strategies. Each strategy makes one attempt and reports the
outcome as a TranscriptAttempt; raising is allowed (the chain treats it as
a failed attempt) but expected failures are returned, not raised.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from youtube_transcript_api import NoTranscriptFound, TranscriptsDisabled, YouTubeTranscriptApi

from app.config import TranscriptSettings
from app.connectors.caption_connector import CaptionConnector
from app.domain.scrape import ExtractedContent, PostType, TranscriptAttempt
from app.transcripts.captions import caption_tracks_from_raw, parse_caption_document, select_caption_track
from app.transcripts.speech_to_text import AudioSource, SpeechToText

logger = logging.getLogger(__name__)

NO_CAPTIONS_SENTINEL = "[Transcript not available - this video has no captions]"
IMAGE_POST_SENTINEL = "[No transcript - this is an image post]"
SENTINELS = frozenset({NO_CAPTIONS_SENTINEL, IMAGE_POST_SENTINEL})


@dataclass
class ResolutionContext:
    """
    Evidence gathered by earlier strategies in one chain run.

    `caption_track_count` stays None until some strategy positively learns
    how many caption tracks the video has.
    """

    platform: str
    caption_track_count: int | None = None
    attempts: list[TranscriptAttempt] = field(default_factory=list)

    def record_caption_tracks(self, count: int) -> None:
        if self.caption_track_count is None or count > self.caption_track_count:
            self.caption_track_count = count


class TranscriptStrategy(ABC):
    source: str = "unknown"
    timeout_seconds: float = 15.0
    # Pure in-memory checks run on the caller thread, outside any timeout.
    runs_inline: bool = False

    @abstractmethod
    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        ...

    def timeout_for(self, content: ExtractedContent) -> float:
        return self.timeout_seconds

    def success(self, text: str) -> TranscriptAttempt:
        return TranscriptAttempt(source=self.source, text=text.strip())

    def failure(self, error: str) -> TranscriptAttempt:
        return TranscriptAttempt(source=self.source, error=error)


class ScraperTranscriptStrategy(TranscriptStrategy):
    """Accept a transcript the extraction already carried."""

    source = "scraper"
    runs_inline = True

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        if content.transcript and content.transcript.strip():
            return self.success(content.transcript)
        return self.failure("extraction carried no transcript")


class CaptionTrackStrategy(TranscriptStrategy):
    """Download the caption track referenced by the scraper's raw payload."""

    source = "caption_track"

    def __init__(self, *, connector: CaptionConnector, language: str = "en", timeout_seconds: float = 15.0) -> None:
        self._connector = connector
        self._language = language
        self.timeout_seconds = timeout_seconds

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        tracks = caption_tracks_from_raw(content.raw_data or {})
        if tracks is None:
            return self.failure("no caption-track metadata")
        context.record_caption_tracks(len(tracks))

        track = select_caption_track(tracks, self._language)
        if track is None:
            return self.failure("caption-track metadata lists no usable tracks")

        text = parse_caption_document(self._connector.fetch_track(str(track["baseUrl"])))
        if not text:
            return self.failure("caption track was empty")
        return self.success(text)


def _default_transcript_api() -> Any:
    return YouTubeTranscriptApi()


def _snippets_text(fetched: Any) -> str:
    return " ".join(
        str(getattr(snippet, "text", "")).strip() for snippet in fetched if getattr(snippet, "text", "")
    ).strip()


class CaptionServiceStrategy(TranscriptStrategy):
    """
    Fetch captions by video id through youtube-transcript-api, preferring
    the configured language and falling back to any available track.
    """

    source = "caption_service"

    def __init__(
        self,
        *,
        language: str = "en",
        timeout_seconds: float = 15.0,
        api_factory: Callable[[], Any] = _default_transcript_api,
    ) -> None:
        self._languages = [language] if language == "en" else [language, "en"]
        if "en" in self._languages:
            self._languages += ["en-US", "en-GB"]
        self.timeout_seconds = timeout_seconds
        self._api_factory = api_factory

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        if not content.video_id:
            return self.failure("no video id")

        api = self._api_factory()
        try:
            text = _snippets_text(api.fetch(content.video_id, languages=self._languages))
        except TranscriptsDisabled:
            context.record_caption_tracks(0)
            return self.failure("captions are disabled for this video")
        except NoTranscriptFound:
            available = list(api.list(content.video_id))
            context.record_caption_tracks(len(available))
            if not available:
                return self.failure("video has no caption tracks")
            text = _snippets_text(available[0].fetch())

        if not text:
            return self.failure("caption service returned an empty transcript")
        return self.success(text)


def build_transcription_prompt(content: ExtractedContent) -> str | None:
    parts: list[str] = []
    if content.title:
        parts.append(f"Title: {content.title}")
    if content.author_name or content.author:
        parts.append(f"Creator: {content.author_name or content.author}")
    if content.hashtags:
        parts.append(f"Topics: {', '.join(content.hashtags[:10])}")
    return ". ".join(parts) or None


class AudioTranscriptionStrategy(TranscriptStrategy):
    """
    Speech-to-text of a YouTube video's audio, bounded by duration.

    Videos longer than `max_audio_duration_seconds` are skipped unless
    long-form mode is on, in which case videos up to
    `long_form_max_duration_seconds` are transcribed in chunks.
    """

    source = "audio_transcription"

    def __init__(
        self,
        *,
        speech_to_text: SpeechToText,
        audio_source: AudioSource,
        settings: TranscriptSettings,
    ) -> None:
        self._speech_to_text = speech_to_text
        self._audio_source = audio_source
        self._settings = settings
        self.timeout_seconds = settings.audio_timeout_seconds

    def chunk_count(self, content: ExtractedContent) -> int:
        """Number of speech-to-text calls a long-form attempt will make; 1 otherwise."""
        duration = content.duration_seconds
        if (
            not self._settings.long_form_enabled
            or duration is None
            or duration <= self._settings.max_audio_duration_seconds
            or duration > self._settings.long_form_max_duration_seconds
        ):
            return 1
        return max(1, math.ceil(duration / self._settings.chunk_seconds))

    def timeout_for(self, content: ExtractedContent) -> float:
        # Each chunk is a full download-and-transcribe budget of its own.
        return self.timeout_seconds * self.chunk_count(content)

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        if not content.url:
            return self.failure("no watchable URL")

        duration = content.duration_seconds
        chunked = False
        if duration is not None and duration > self._settings.max_audio_duration_seconds:
            if not self._settings.long_form_enabled:
                return self.failure(
                    f"duration {duration}s exceeds the {self._settings.max_audio_duration_seconds}s transcription limit"
                )
            if duration > self._settings.long_form_max_duration_seconds:
                return self.failure(
                    f"duration {duration}s exceeds the {self._settings.long_form_max_duration_seconds}s long-form limit"
                )
            chunked = True

        audio_url = self._audio_source.resolve_youtube_audio(content.url)
        max_bytes = self._settings.max_audio_bytes
        if chunked:
            max_bytes *= self.chunk_count(content)
        audio = self._audio_source.download(audio_url, max_bytes=max_bytes)

        if not chunked:
            text = self._speech_to_text.transcribe(audio=audio, filename="audio.m4a")
        else:
            pieces = self._audio_source.split(
                audio,
                chunk_seconds=self._settings.chunk_seconds,
                total_seconds=int(duration or 0),
            )
            text = " ".join(
                part
                for part in (
                    self._speech_to_text.transcribe(audio=piece, filename=f"chunk_{idx:03d}.mp3").strip()
                    for idx, piece in enumerate(pieces)
                )
                if part
            )

        if not text:
            return self.failure("speech-to-text returned no text")
        return self.success(text)


class NoCaptionsSentinelStrategy(TranscriptStrategy):
    """Report a video confirmed to have zero caption tracks."""

    source = "no_captions"
    runs_inline = True

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        if context.caption_track_count == 0:
            return self.success(NO_CAPTIONS_SENTINEL)
        return self.failure("caption availability not confirmed as zero")


def find_media_url(content: ExtractedContent) -> str | None:
    if content.video_url:
        return content.video_url

    raw = content.raw_data or {}
    for key in ("videoUrl", "video_url", "videoUrlNoWatermark", "video_url_no_watermark"):
        value = raw.get(key)
        if isinstance(value, str) and value:
            return value

    for fmt in (raw.get("streamingData") or {}).get("formats") or []:
        if isinstance(fmt, dict) and "video/mp4" in str(fmt.get("mimeType") or "") and fmt.get("url"):
            return str(fmt["url"])
    return None


class MediaUrlTranscriptionStrategy(TranscriptStrategy):
    """Speech-to-text of a directly downloadable media file."""

    source = "media_transcription"

    def __init__(
        self,
        *,
        speech_to_text: SpeechToText,
        audio_source: AudioSource,
        settings: TranscriptSettings,
    ) -> None:
        self._speech_to_text = speech_to_text
        self._audio_source = audio_source
        self._settings = settings
        self.timeout_seconds = settings.audio_timeout_seconds

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        media_url = find_media_url(content)
        if media_url is None:
            return self.failure("no direct media URL")

        duration = content.duration_seconds
        if duration is not None and duration > self._settings.max_audio_duration_seconds:
            return self.failure(f"duration {duration}s exceeds the transcription limit")

        media = self._audio_source.download(media_url, max_bytes=self._settings.max_audio_bytes)
        text = self._speech_to_text.transcribe(
            audio=media,
            filename="media.mp4",
            prompt=build_transcription_prompt(content),
        )
        if not text:
            return self.failure("speech-to-text returned no text")
        return self.success(text)


class ImagePostSentinelStrategy(TranscriptStrategy):
    """Report a still-image post, which has nothing to transcribe."""

    source = "image_post"
    runs_inline = True

    def attempt(self, content: ExtractedContent, context: ResolutionContext) -> TranscriptAttempt:
        if find_media_url(content) is None and content.post_type in PostType.STILL:
            return self.success(IMAGE_POST_SENTINEL)
        return self.failure("not an image post")

"""
app/transcripts/chain.py

Ordered, short-circuiting transcript resolution.

`resolve` never raises: every strategy failure, exception or timeout is
logged and the chain moves on. The result is a transcript, a sentinel, or
None meaning "unresolved, may be retried later".
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from functools import lru_cache

from app.config import (
    get_external_http_settings,
    get_transcript_settings,
    get_transcription_settings,
)
from app.connectors.caption_connector import CaptionConnector
from app.domain.scrape import ExtractedContent, TranscriptAttempt, TranscriptResolution
from app.logging_utils import elapsed_ms, log_event
from app.transcripts.speech_to_text import MediaAudioSource, OpenAICompatibleSpeechToText
from app.transcripts.strategies import (
    AudioTranscriptionStrategy,
    CaptionServiceStrategy,
    CaptionTrackStrategy,
    ImagePostSentinelStrategy,
    MediaUrlTranscriptionStrategy,
    NoCaptionsSentinelStrategy,
    ResolutionContext,
    ScraperTranscriptStrategy,
    TranscriptStrategy,
)
from db.models.scrape_job import Platform

logger = logging.getLogger(__name__)


class TranscriptResolutionChain:
    """
    Runs the platform-independent leading strategies, then the platform's
    own strategies, stopping at the first success.
    """

    def __init__(
        self,
        *,
        strategies_by_platform: Mapping[str, Sequence[TranscriptStrategy]],
        leading_strategies: Sequence[TranscriptStrategy] | None = None,
    ) -> None:
        self._strategies_by_platform = {key: tuple(value) for key, value in strategies_by_platform.items()}
        self._leading = tuple(leading_strategies) if leading_strategies is not None else (ScraperTranscriptStrategy(),)

    def strategies_for(self, platform: str) -> tuple[TranscriptStrategy, ...]:
        return self._leading + self._strategies_by_platform.get(platform, ())

    def resolve(self, content: ExtractedContent, platform: str) -> TranscriptResolution:
        started = time.monotonic()
        context = ResolutionContext(platform=platform)
        for strategy in self.strategies_for(platform):
            attempt = self._run(strategy, content, context)
            context.attempts.append(attempt)
            if attempt.succeeded:
                log_event(
                    logger,
                    logging.INFO,
                    "transcript_resolved",
                    platform=platform,
                    source=attempt.source,
                    attempts=len(context.attempts),
                    duration_ms=elapsed_ms(started),
                )
                return TranscriptResolution(
                    text=attempt.text,
                    source=attempt.source,
                    attempts=tuple(context.attempts),
                )

        log_event(
            logger,
            logging.INFO,
            "transcript_unresolved",
            platform=platform,
            errors={attempt.source: attempt.error for attempt in context.attempts},
            duration_ms=elapsed_ms(started),
        )
        return TranscriptResolution(text=None, source=None, attempts=tuple(context.attempts))

    def _run(
        self,
        strategy: TranscriptStrategy,
        content: ExtractedContent,
        context: ResolutionContext,
    ) -> TranscriptAttempt:
        if strategy.runs_inline:
            try:
                attempt = strategy.attempt(content, context)
            except Exception as exc:
                logger.warning("Transcript strategy failed source=%s error=%s", strategy.source, exc)
                return TranscriptAttempt(source=strategy.source, error=f"{type(exc).__name__}: {exc}")
        else:
            attempt = self._run_bounded(strategy, content, context)

        if not isinstance(attempt, TranscriptAttempt):
            return TranscriptAttempt(source=strategy.source, error="strategy returned no attempt")
        if not attempt.succeeded:
            logger.debug("Transcript strategy declined source=%s reason=%s", strategy.source, attempt.error)
        return attempt

    def _run_bounded(
        self,
        strategy: TranscriptStrategy,
        content: ExtractedContent,
        context: ResolutionContext,
    ) -> TranscriptAttempt:
        """
        Run one network-bound attempt on its own worker thread so its
        timeout starts when it starts running. A worker that outlives its
        timeout is abandoned, never reused by a later attempt.
        """

        timeout_seconds = strategy.timeout_for(content)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"transcript-{strategy.source}")
        try:
            future = executor.submit(strategy.attempt, content, context)
            return future.result(timeout=timeout_seconds)
        except FutureTimeoutError:
            log_event(
                logger,
                logging.WARNING,
                "transcript_strategy_timed_out",
                source=strategy.source,
                timeout_seconds=timeout_seconds,
            )
            return TranscriptAttempt(source=strategy.source, error=f"timed out after {timeout_seconds}s")
        except Exception as exc:
            logger.warning("Transcript strategy failed source=%s error=%s", strategy.source, exc)
            return TranscriptAttempt(source=strategy.source, error=f"{type(exc).__name__}: {exc}")
        finally:
            executor.shutdown(wait=False, cancel_futures=True)


def build_transcript_chain() -> TranscriptResolutionChain:
    settings = get_transcript_settings()
    http_settings = get_external_http_settings()
    speech_to_text = OpenAICompatibleSpeechToText(
        get_transcription_settings(),
        timeout_seconds=settings.audio_timeout_seconds,
    )
    audio_source = MediaAudioSource(timeout_seconds=settings.audio_timeout_seconds)
    caption_connector = CaptionConnector(http_settings=http_settings)

    media_strategies: tuple[TranscriptStrategy, ...] = (
        MediaUrlTranscriptionStrategy(speech_to_text=speech_to_text, audio_source=audio_source, settings=settings),
        ImagePostSentinelStrategy(),
    )
    return TranscriptResolutionChain(
        strategies_by_platform={
            Platform.YOUTUBE: (
                CaptionTrackStrategy(
                    connector=caption_connector,
                    language=settings.language,
                    timeout_seconds=settings.caption_timeout_seconds,
                ),
                CaptionServiceStrategy(
                    language=settings.language,
                    timeout_seconds=settings.caption_timeout_seconds,
                ),
                AudioTranscriptionStrategy(
                    speech_to_text=speech_to_text,
                    audio_source=audio_source,
                    settings=settings,
                ),
                NoCaptionsSentinelStrategy(),
            ),
            Platform.INSTAGRAM: media_strategies,
            Platform.TIKTOK: media_strategies,
        },
    )


@lru_cache(maxsize=1)
def get_transcript_chain() -> TranscriptResolutionChain:
    return build_transcript_chain()

"""
app/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from db.config import load_env_files

GROQ_OPENAI_COMPATIBLE_URL = "https://api.groq.com/openai/v1"


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value; blank strings count as unset.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for external connectors.
    """

    timeout_seconds: float = 15.0
    max_retries: int = 3
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0
    rate_limit_per_second: float = 5.0


@dataclass(frozen=True)
class ScrapeSettings:
    """
    Job lifecycle and pricing settings.
    """

    job_runner_cost: int = 50
    platform_api_cost: int = 0
    prefer_platform_api: bool = True
    preflight_credit_check: bool = True
    duplicate_window_hours: int = 24
    pending_grace_seconds: int = 120


@dataclass(frozen=True)
class TranscriptSettings:
    """
    Transcript resolution chain settings.
    """

    caption_timeout_seconds: float = 15.0
    audio_timeout_seconds: float = 120.0  # per transcription call; long-form scales by chunk count
    max_audio_duration_seconds: int = 600
    long_form_enabled: bool = False
    long_form_max_duration_seconds: int = 3600
    chunk_seconds: int = 600
    max_audio_bytes: int = 25 * 1024 * 1024
    language: str = "en"
    analysis_chunk_chars: int = 3000


@dataclass(frozen=True)
class TranscriptionSettings:
    """
    OpenAI-compatible speech-to-text endpoint settings.
    """

    api_key: str | None = None
    base_url: str = GROQ_OPENAI_COMPATIBLE_URL
    model: str = "whisper-large-v3-turbo"


@dataclass(frozen=True)
class JobRunnerSettings:
    """
    Hosted scraping job runner (Apify-style REST API) settings.
    """

    api_token: str | None = None
    base_url: str = "https://api.apify.com/v2"
    actors: dict[str, str] = field(
        default_factory=lambda: {
            "youtube": "stefanie-rink/youtube-scraper",
            "instagram": "apify/instagram-post-scraper",
            "tiktok": "clockworks/tiktok-video-scraper",
        }
    )


@dataclass(frozen=True)
class YouTubeDataSettings:
    """
    Quota-limited YouTube Data API v3 settings.
    """

    api_key: str | None = None
    base_url: str = "https://www.googleapis.com/youtube/v3"


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=max(1.0, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 15.0)),
        max_retries=max(0, _get_int_env("EXTERNAL_HTTP_MAX_RETRIES", 3)),
        backoff_initial_seconds=max(0.1, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
        rate_limit_per_second=max(0.1, _get_float_env("EXTERNAL_HTTP_RATE_LIMIT_PER_SECOND", 5.0)),
    )


@lru_cache(maxsize=1)
def get_scrape_settings() -> ScrapeSettings:
    return ScrapeSettings(
        job_runner_cost=max(0, _get_int_env("SCRAPE_COST_CREDITS", 50)),
        platform_api_cost=max(0, _get_int_env("PLATFORM_API_COST_CREDITS", 0)),
        prefer_platform_api=_get_bool_env("PREFER_PLATFORM_API", True),
        preflight_credit_check=_get_bool_env("SCRAPE_PREFLIGHT_CREDIT_CHECK", True),
        duplicate_window_hours=max(0, _get_int_env("SCRAPE_DUPLICATE_WINDOW_HOURS", 24)),
        pending_grace_seconds=max(0, _get_int_env("SCRAPE_PENDING_GRACE_SECONDS", 120)),
    )


@lru_cache(maxsize=1)
def get_transcript_settings() -> TranscriptSettings:
    """
    Return transcript chain settings from environment variables.
    """

    return TranscriptSettings(
        caption_timeout_seconds=max(1.0, _get_float_env("TRANSCRIPT_CAPTION_TIMEOUT_SECONDS", 15.0)),
        audio_timeout_seconds=max(1.0, _get_float_env("TRANSCRIPT_AUDIO_TIMEOUT_SECONDS", 120.0)),
        max_audio_duration_seconds=max(1, _get_int_env("TRANSCRIPT_MAX_AUDIO_DURATION_SECONDS", 600)),
        long_form_enabled=_get_bool_env("TRANSCRIPT_LONG_FORM_ENABLED", False),
        long_form_max_duration_seconds=max(1, _get_int_env("TRANSCRIPT_LONG_FORM_MAX_DURATION_SECONDS", 3600)),
        chunk_seconds=max(30, _get_int_env("TRANSCRIPT_CHUNK_SECONDS", 600)),
        max_audio_bytes=max(1024, _get_int_env("TRANSCRIPT_MAX_AUDIO_BYTES", 25 * 1024 * 1024)),
        language=_get_str_env("TRANSCRIPT_LANGUAGE", "en"),
        analysis_chunk_chars=max(500, _get_int_env("TRANSCRIPT_ANALYSIS_CHUNK_CHARS", 3000)),
    )


@lru_cache(maxsize=1)
def get_transcription_settings() -> TranscriptionSettings:
    return TranscriptionSettings(
        api_key=_get_optional_str_env("TRANSCRIPTION_API_KEY") or _get_optional_str_env("GROQ_API_KEY"),
        base_url=_get_str_env("TRANSCRIPTION_BASE_URL", GROQ_OPENAI_COMPATIBLE_URL),
        model=_get_str_env("TRANSCRIPTION_MODEL", "whisper-large-v3-turbo"),
    )


@lru_cache(maxsize=1)
def get_job_runner_settings() -> JobRunnerSettings:
    defaults = JobRunnerSettings()
    return JobRunnerSettings(
        api_token=_get_optional_str_env("JOB_RUNNER_API_TOKEN") or _get_optional_str_env("APIFY_API_TOKEN"),
        base_url=_get_str_env("JOB_RUNNER_BASE_URL", defaults.base_url),
        actors={
            platform: _get_str_env(f"JOB_RUNNER_{platform.upper()}_ACTOR", actor_id)
            for platform, actor_id in defaults.actors.items()
        },
    )


@lru_cache(maxsize=1)
def get_youtube_data_settings() -> YouTubeDataSettings:
    return YouTubeDataSettings(
        api_key=_get_optional_str_env("YOUTUBE_API_KEY"),
        base_url=_get_str_env("YOUTUBE_API_BASE_URL", "https://www.googleapis.com/youtube/v3"),
    )

"""
app/domain/scrape.py

Domain models shared by the extraction gateway, transcript chain, ledger
and job lifecycle controller.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from typing import Any


class RunState:
    """
    Normalized job-runner run states.
    """

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ABORTED = "aborted"

    FAILURES = (FAILED, TIMED_OUT, ABORTED)


class PostType:
    VIDEO = "video"
    IMAGE = "image"
    CAROUSEL = "carousel"

    STILL = (IMAGE, CAROUSEL)


class VideoType:
    SHORT = "short"
    REGULAR = "regular"
    LONG_FORM = "long-form"


@dataclass(frozen=True)
class ParsedContentUrl:
    """
    A validated content URL and what it points at.
    """

    url: str
    normalized_url: str
    platform: str
    content_id: str | None = None


@dataclass(frozen=True)
class RunHandle:
    run_id: str
    dataset_id: str | None = None


@dataclass(frozen=True)
class RunStatus:
    state: str
    raw_status: str

    @property
    def is_terminal(self) -> bool:
        return self.state != RunState.RUNNING


@dataclass
class ExtractedContent:
    """
    Normalized content extracted from one post or video.
    """

    platform: str
    url: str
    title: str | None = None
    description: str | None = None
    author: str | None = None
    author_name: str | None = None
    author_id: str | None = None
    video_id: str | None = None
    duration_seconds: int | None = None
    upload_date: str | None = None
    thumbnail_url: str | None = None
    video_url: str | None = None
    post_type: str | None = None
    video_type: str | None = None
    metrics: dict[str, int] = field(default_factory=dict)
    hashtags: list[str] = field(default_factory=list)
    mentions: list[str] = field(default_factory=list)
    chapters: list[dict[str, Any]] = field(default_factory=list)
    top_comments: list[dict[str, Any]] = field(default_factory=list)
    transcript: str | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractedContent:
        """
        Rebuild content from a stored dict, ignoring keys this class does
        not know about (payloads carry extra transcript fields).
        """

        known = {item.name for item in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        values.setdefault("platform", data.get("platform") or "")
        values.setdefault("url", data.get("url") or "")
        return cls(**values)


@dataclass(frozen=True)
class TranscriptAttempt:
    """
    Outcome of one transcript strategy. `text` is set on success, `error`
    on failure; never both.
    """

    source: str
    text: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return bool(self.text and self.text.strip())


@dataclass(frozen=True)
class TranscriptResolution:
    text: str | None
    source: str | None
    attempts: tuple[TranscriptAttempt, ...] = ()

    @property
    def resolved(self) -> bool:
        return self.text is not None


@dataclass(frozen=True)
class ChargeResult:
    promotional_used: int
    allocation_used: int
    promotional_balance: int
    allocation_balance: int

    @property
    def total_used(self) -> int:
        return self.promotional_used + self.allocation_used


@dataclass(frozen=True)
class LedgerBalance:
    account_id: uuid.UUID
    owner_id: str
    promotional_balance: int
    allocation_balance: int
    allocation_cap: int

    @property
    def total(self) -> int:
        return self.promotional_balance + self.allocation_balance


@dataclass(frozen=True)
class UsageSummary:
    period_start: Any
    promotional_credits_used: int
    allocation_credits_used: int
    total_credits_used: int
    usage_details: dict[str, Any]


@dataclass(frozen=True)
class ScrapeSnapshot:
    """
    Caller-facing view of a scrape job. `payload` is only set for completed
    jobs and `error_detail` only for failed ones.
    """

    job_id: uuid.UUID
    status: str
    platform: str
    method: str
    job_kind: str
    source_url: str
    credits_deducted: bool
    created_at: datetime | None = None
    completed_at: datetime | None = None
    payload: dict[str, Any] | None = None
    error_detail: str | None = None
    duplicate: bool = False
    transcript_retry_available: bool = False


@dataclass(frozen=True)
class TranscriptFetchResult:
    job_id: uuid.UUID
    transcript: str | None
    source: str | None
    cached: bool

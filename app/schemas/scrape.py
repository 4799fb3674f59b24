"""
Schemas for content scrape, status and transcript endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field


class ScrapeRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    project_id: str = Field(min_length=1, max_length=64)
    method: Literal["platform-api", "job-runner"] | None = Field(
        default=None,
        description="Preferred extraction method. Defaults to the server's platform-API preference.",
    )


class ScrapeAcceptedResponse(BaseModel):
    job_id: UUID
    status: str
    method: str
    platform: str
    duplicate: bool = False
    created_at: datetime | None = None


class ScrapeStatusResponse(BaseModel):
    job_id: UUID
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
    transcript_retry_available: bool = False


class TranscriptResponse(BaseModel):
    job_id: UUID
    transcript: str | None = None
    source: str | None = None
    cached: bool = False


class PrefilledContent(BaseModel):
    title: str | None = None
    description: str | None = None
    author: str | None = None
    author_name: str | None = None
    author_id: str | None = None
    video_id: str | None = None
    duration_seconds: int | None = Field(default=None, ge=0)
    upload_date: str | None = None
    thumbnail_url: str | None = None
    video_url: str | None = None
    post_type: str | None = None
    video_type: str | None = None
    metrics: dict[str, int] = Field(default_factory=dict)
    hashtags: list[str] = Field(default_factory=list)
    mentions: list[str] = Field(default_factory=list)
    transcript: str | None = None
    raw_data: dict[str, Any] = Field(default_factory=dict)


class PrefilledScrapeRequest(BaseModel):
    url: str = Field(min_length=1, max_length=2048)
    project_id: str = Field(min_length=1, max_length=64)
    content: PrefilledContent = Field(default_factory=PrefilledContent)

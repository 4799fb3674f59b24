"""
db/models/scrape_job.py

One row per content scrape submission, tracked from dispatch to a terminal state.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, Uuid, false, text
from sqlalchemy.orm import Mapped, mapped_column

from db.base import Base, JSONDocument, TimestampMixin


class ScrapeJobStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ACTIVE = (PENDING, PROCESSING)
    TERMINAL = (COMPLETED, FAILED)


class ScrapeJobKind:
    SCRAPE = "scrape"
    PREFILLED = "prefilled"


class ExtractionMethod:
    PLATFORM_API = "platform-api"
    JOB_RUNNER = "job-runner"
    # Content registered from another flow; never dispatched.
    PREFILLED = "prefilled"

    ALL = (PLATFORM_API, JOB_RUNNER)


class Platform:
    YOUTUBE = "youtube"
    INSTAGRAM = "instagram"
    TIKTOK = "tiktok"

    ALL = (YOUTUBE, INSTAGRAM, TIKTOK)


_ACTIVE_STATUS_CLAUSE = text("status IN ('pending', 'processing')")


class ScrapeJob(Base, TimestampMixin):
    __tablename__ = "scrape_jobs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    normalized_url: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Canonical URL used for duplicate detection",
    )
    platform: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="youtube, instagram, tiktok",
    )
    job_kind: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ScrapeJobKind.SCRAPE,
        server_default=ScrapeJobKind.SCRAPE,
    )
    extraction_method: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="platform-api, job-runner, prefilled",
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ScrapeJobStatus.PENDING,
    )
    external_run_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    external_dataset_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    staged_content: Mapped[dict[str, Any] | None] = mapped_column(
        JSONDocument,
        nullable=True,
        comment="Content returned synchronously by the platform API, awaiting finalize",
    )
    payload: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    credits_deducted: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    credits_charged: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    fallback_used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_scrape_jobs_owner_id", "owner_id"),
        Index("ix_scrape_jobs_status", "status"),
        Index("ix_scrape_jobs_owner_project_url", "owner_id", "project_id", "normalized_url"),
        Index(
            "uq_scrape_jobs_active_url",
            "owner_id",
            "project_id",
            "normalized_url",
            unique=True,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
        ),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in ScrapeJobStatus.TERMINAL

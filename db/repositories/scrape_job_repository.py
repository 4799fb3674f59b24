"""
Repository for scrape job persistence and conditional lifecycle transitions.

Transitions are single `UPDATE ... WHERE status = <expected>` statements so
that concurrent pollers cannot both move a job. Each transition returns
whether a row matched; callers re-read the job afterwards when they need
its new state. Nothing here commits.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import Select, or_, select, update
from sqlalchemy.orm import Session

from db.base import utc_now
from db.models.scrape_job import ScrapeJob, ScrapeJobKind, ScrapeJobStatus


class ScrapeJobRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def create_job(
        self,
        *,
        owner_id: str,
        project_id: str,
        source_url: str,
        normalized_url: str,
        platform: str,
        extraction_method: str,
        job_kind: str = ScrapeJobKind.SCRAPE,
        status: str = ScrapeJobStatus.PENDING,
        payload: dict[str, Any] | None = None,
    ) -> ScrapeJob:
        job = ScrapeJob(
            owner_id=owner_id,
            project_id=project_id,
            source_url=source_url,
            normalized_url=normalized_url,
            platform=platform,
            extraction_method=extraction_method,
            job_kind=job_kind,
            status=status,
            payload=payload,
            completed_at=utc_now() if status == ScrapeJobStatus.COMPLETED else None,
        )
        self._session.add(job)
        self._session.flush()
        self._session.refresh(job)
        return job

    def get_job(self, job_id: uuid.UUID, *, refresh: bool = False) -> ScrapeJob | None:
        return self._session.get(ScrapeJob, job_id, populate_existing=refresh)

    def get_job_for_owner(self, *, job_id: uuid.UUID, owner_id: str) -> ScrapeJob | None:
        stmt = (
            select(ScrapeJob)
            .where(ScrapeJob.id == job_id, ScrapeJob.owner_id == owner_id)
            .execution_options(populate_existing=True)
        )
        return self._session.scalars(stmt).first()

    def find_reusable_job(
        self,
        *,
        owner_id: str,
        project_id: str,
        normalized_url: str,
        completed_since: datetime | None,
    ) -> ScrapeJob | None:
        """
        Return an active job for the same target, or one completed after
        `completed_since`. Active jobs take precedence over completed ones.
        """

        conditions = [ScrapeJob.status.in_(ScrapeJobStatus.ACTIVE)]
        if completed_since is not None:
            conditions.append(
                (ScrapeJob.status == ScrapeJobStatus.COMPLETED) & (ScrapeJob.created_at >= completed_since)
            )

        stmt: Select[tuple[ScrapeJob]] = (
            select(ScrapeJob)
            .where(
                ScrapeJob.owner_id == owner_id,
                ScrapeJob.project_id == project_id,
                ScrapeJob.normalized_url == normalized_url,
                ScrapeJob.job_kind == ScrapeJobKind.SCRAPE,
                or_(*conditions),
            )
            .order_by(ScrapeJob.created_at.desc())
            .execution_options(populate_existing=True)
        )
        candidates = list(self._session.scalars(stmt).all())
        for job in candidates:
            if job.status in ScrapeJobStatus.ACTIVE:
                return job
        return candidates[0] if candidates else None

    def list_jobs_for_owner(
        self,
        *,
        owner_id: str,
        project_id: str | None = None,
        limit: int = 50,
    ) -> list[ScrapeJob]:
        stmt = select(ScrapeJob).where(ScrapeJob.owner_id == owner_id)
        if project_id:
            stmt = stmt.where(ScrapeJob.project_id == project_id)
        stmt = stmt.order_by(ScrapeJob.created_at.desc()).limit(max(1, limit))
        return list(self._session.scalars(stmt).all())

    def mark_processing(
        self,
        *,
        job_id: uuid.UUID,
        external_run_id: str | None = None,
        external_dataset_id: str | None = None,
        staged_content: dict[str, Any] | None = None,
    ) -> bool:
        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.PENDING,),
            status=ScrapeJobStatus.PROCESSING,
            external_run_id=external_run_id,
            external_dataset_id=external_dataset_id,
            staged_content=staged_content,
        )

    def mark_failed(self, *, job_id: uuid.UUID, error_detail: str) -> bool:
        return self._transition(
            job_id,
            from_statuses=ScrapeJobStatus.ACTIVE,
            status=ScrapeJobStatus.FAILED,
            error_detail=error_detail[:2000],
            staged_content=None,
            completed_at=utc_now(),
        )

    def fail_abandoned_pending(self, *, job_id: uuid.UUID, created_before: datetime, error_detail: str) -> bool:
        """
        Fail a job whose dispatch never finished. Only matches a job still
        pending that was created before `created_before`.
        """

        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.PENDING,),
            extra_conditions=(ScrapeJob.created_at <= created_before,),
            status=ScrapeJobStatus.FAILED,
            error_detail=error_detail[:2000],
            completed_at=utc_now(),
        )

    def update_failure_detail(self, *, job_id: uuid.UUID, error_detail: str) -> bool:
        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.FAILED,),
            error_detail=error_detail[:2000],
        )

    def reopen_for_fallback(
        self,
        *,
        job_id: uuid.UUID,
        extraction_method: str,
        external_run_id: str,
        external_dataset_id: str | None = None,
    ) -> bool:
        """
        The one permitted edge out of `failed`. Guarded by `fallback_used`
        so it can be taken at most once per job.
        """

        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.FAILED,),
            extra_conditions=(ScrapeJob.fallback_used.is_(False),),
            status=ScrapeJobStatus.PROCESSING,
            extraction_method=extraction_method,
            external_run_id=external_run_id,
            external_dataset_id=external_dataset_id,
            fallback_used=True,
            error_detail=None,
            completed_at=None,
        )

    def complete_job(
        self,
        *,
        job_id: uuid.UUID,
        payload: dict[str, Any],
        credits_charged: int,
    ) -> bool:
        """
        Move a processing job to completed and flag its credits as deducted.
        Returns False when another caller already finalized the job.
        """

        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.PROCESSING,),
            extra_conditions=(ScrapeJob.credits_deducted.is_(False),),
            status=ScrapeJobStatus.COMPLETED,
            payload=payload,
            staged_content=None,
            error_detail=None,
            credits_deducted=True,
            credits_charged=credits_charged,
            completed_at=utc_now(),
        )

    def record_credits_charged(self, *, job_id: uuid.UUID, credits_charged: int) -> bool:
        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.COMPLETED,),
            credits_charged=credits_charged,
        )

    def replace_completed_payload(self, *, job_id: uuid.UUID, payload: dict[str, Any]) -> bool:
        return self._transition(
            job_id,
            from_statuses=(ScrapeJobStatus.COMPLETED,),
            payload=payload,
        )

    def _transition(
        self,
        job_id: uuid.UUID,
        *,
        from_statuses: Iterable[str],
        extra_conditions: Iterable[Any] = (),
        **values: Any,
    ) -> bool:
        stmt = (
            update(ScrapeJob)
            .where(
                ScrapeJob.id == job_id,
                ScrapeJob.status.in_(tuple(from_statuses)),
                *extra_conditions,
            )
            .values(updated_at=utc_now(), **values)
            .execution_options(synchronize_session=False)
        )
        result = self._session.execute(stmt)
        return result.rowcount == 1

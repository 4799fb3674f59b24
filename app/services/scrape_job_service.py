"""
Job lifecycle controller for content scrapes.

Jobs move pending -> processing -> completed | failed, plus a single
failed -> processing edge when the free platform API fails for a reason
other than quota/authorization and the job is retried on the job runner.

There is no background worker: a job only advances when its owner polls
it. Every transition is a conditional update, and the completion write and
the credit deduction commit in one transaction guarded by
`credits_deducted`, so repeated or concurrent polls charge a job at most
once.

A job still pending after the grace period was abandoned mid-dispatch; the
next poll or resubmission fails it so the URL can be scraped again.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import (
    ScrapeSettings,
    TranscriptSettings,
    get_scrape_settings,
    get_transcript_settings,
)
from app.connectors.errors import GatewayError, PlatformQuotaError
from app.connectors.gateway import ExtractionGateway, get_extraction_gateway
from app.domain.errors import (
    InsufficientCreditsError,
    InvalidRequestError,
    ScrapeNotFoundError,
    ScrapeNotReadyError,
    UnauthorizedError,
)
from app.domain.scrape import (
    ExtractedContent,
    ParsedContentUrl,
    RunState,
    ScrapeSnapshot,
    TranscriptFetchResult,
    TranscriptResolution,
    VideoType,
)
from app.logging_utils import log_event
from app.services.credit_ledger import CreditLedger, get_credit_ledger
from app.transcripts.captions import split_transcript
from app.transcripts.chain import TranscriptResolutionChain, get_transcript_chain
from app.transcripts.strategies import SENTINELS
from app.validators.url_validator import parse_content_url
from db.base import utc_now
from db.models.scrape_job import (
    ExtractionMethod,
    ScrapeJob,
    ScrapeJobKind,
    ScrapeJobStatus,
)
from db.repositories.errors import AccountNotFoundError
from db.repositories.scrape_job_repository import ScrapeJobRepository

logger = logging.getLogger(__name__)

NO_CONTENT_DETAIL = "No content found at the provided URL"
QUOTA_HINT = "The free platform API is over quota or rejected the credentials; retry later or use the job-runner method."
ABANDONED_DISPATCH_DETAIL = "Dispatch never completed; submit the URL again."


def to_snapshot(job: ScrapeJob, *, duplicate: bool = False) -> ScrapeSnapshot:
    completed = job.status == ScrapeJobStatus.COMPLETED
    payload = job.payload if completed else None
    return ScrapeSnapshot(
        job_id=job.id,
        status=job.status,
        platform=job.platform,
        method=job.extraction_method,
        job_kind=job.job_kind,
        source_url=job.source_url,
        credits_deducted=job.credits_deducted,
        created_at=job.created_at,
        completed_at=job.completed_at,
        payload=payload,
        error_detail=job.error_detail if job.status == ScrapeJobStatus.FAILED else None,
        duplicate=duplicate,
        transcript_retry_available=completed and (payload or {}).get("transcript") is None,
    )


class ScrapeJobService:
    def __init__(
        self,
        *,
        gateway: ExtractionGateway | None = None,
        transcript_chain: TranscriptResolutionChain | None = None,
        ledger: CreditLedger | None = None,
        settings: ScrapeSettings | None = None,
        transcript_settings: TranscriptSettings | None = None,
    ) -> None:
        self._gateway = gateway or get_extraction_gateway()
        self._transcript_chain = transcript_chain or get_transcript_chain()
        self._ledger = ledger or get_credit_ledger()
        self._settings = settings or get_scrape_settings()
        self._transcript_settings = transcript_settings or get_transcript_settings()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_scrape(
        self,
        *,
        db: Session,
        owner_id: str | None,
        project_id: str | None,
        url: str,
        method_preference: str | None = None,
    ) -> ScrapeSnapshot:
        owner_id = self._require_owner(owner_id)
        project_id = self._require_project(project_id)
        if method_preference is not None and method_preference not in ExtractionMethod.ALL:
            raise InvalidRequestError(
                f"Unknown extraction method '{method_preference}'. Allowed: {list(ExtractionMethod.ALL)}."
            )

        target = parse_content_url(url)
        method = self._choose_method(target.platform, method_preference)
        repository = ScrapeJobRepository(db)

        existing = repository.find_reusable_job(
            owner_id=owner_id,
            project_id=project_id,
            normalized_url=target.normalized_url,
            completed_since=self._duplicate_cutoff(),
        )
        if (
            existing is not None
            and existing.status == ScrapeJobStatus.PENDING
            and self._expire_abandoned_pending(db=db, job_id=existing.id)
        ):
            existing = repository.find_reusable_job(
                owner_id=owner_id,
                project_id=project_id,
                normalized_url=target.normalized_url,
                completed_since=self._duplicate_cutoff(),
            )
        if existing is not None:
            log_event(
                logger,
                logging.INFO,
                "scrape_duplicate_returned",
                job_id=existing.id,
                status=existing.status,
                owner_id=owner_id,
            )
            return to_snapshot(existing, duplicate=True)

        self._check_credits(db=db, owner_id=owner_id, method=method)

        try:
            job = repository.create_job(
                owner_id=owner_id,
                project_id=project_id,
                source_url=target.url,
                normalized_url=target.normalized_url,
                platform=target.platform,
                extraction_method=method,
            )
            job_id = job.id
            db.commit()
        except IntegrityError:
            # Lost a race with an identical submission; return the winner.
            db.rollback()
            existing = repository.find_reusable_job(
                owner_id=owner_id,
                project_id=project_id,
                normalized_url=target.normalized_url,
                completed_since=None,
            )
            if existing is None:
                raise
            return to_snapshot(existing, duplicate=True)

        log_event(
            logger,
            logging.INFO,
            "scrape_created",
            job_id=job_id,
            owner_id=owner_id,
            platform=target.platform,
            method=method,
        )
        if method == ExtractionMethod.PLATFORM_API:
            return self._dispatch_platform_api(db=db, job_id=job_id, target=target)
        return self._dispatch_job_runner(db=db, job_id=job_id, target=target)

    def register_prefilled_content(
        self,
        *,
        db: Session,
        owner_id: str | None,
        project_id: str | None,
        url: str,
        content: dict[str, Any],
    ) -> ScrapeSnapshot:
        """
        Record content that another flow already extracted. The job is
        created completed, is never dispatched and is never charged.
        """

        owner_id = self._require_owner(owner_id)
        project_id = self._require_project(project_id)
        target = parse_content_url(url)

        extracted = ExtractedContent.from_dict(
            {**content, "platform": target.platform, "url": content.get("url") or target.normalized_url}
        )
        payload = extracted.to_dict()
        payload["transcript_source"] = "prefilled" if extracted.transcript else None

        repository = ScrapeJobRepository(db)
        try:
            job = repository.create_job(
                owner_id=owner_id,
                project_id=project_id,
                source_url=target.url,
                normalized_url=target.normalized_url,
                platform=target.platform,
                extraction_method=ExtractionMethod.PREFILLED,
                job_kind=ScrapeJobKind.PREFILLED,
                status=ScrapeJobStatus.COMPLETED,
                payload=payload,
            )
            snapshot = to_snapshot(job)
            db.commit()
        except Exception:
            db.rollback()
            raise

        log_event(logger, logging.INFO, "prefilled_content_registered", job_id=snapshot.job_id, owner_id=owner_id)
        return snapshot

    # ------------------------------------------------------------------
    # Poll
    # ------------------------------------------------------------------

    def get_scrape_status(self, *, db: Session, job_id: uuid.UUID, owner_id: str | None) -> ScrapeSnapshot:
        job = self._get_owned_job(db=db, job_id=job_id, owner_id=owner_id)

        if job.status == ScrapeJobStatus.PENDING:
            if self._expire_abandoned_pending(db=db, job_id=job.id):
                return self._snapshot(db, job.id)
            return to_snapshot(job)
        if job.is_terminal:
            return to_snapshot(job)

        if job.extraction_method == ExtractionMethod.JOB_RUNNER:
            return self._advance_runner_job(db=db, job=job)

        if job.staged_content:
            return self._finalize(db=db, job_id=job.id, content=ExtractedContent.from_dict(job.staged_content))
        return to_snapshot(job)

    def _advance_runner_job(self, *, db: Session, job: ScrapeJob) -> ScrapeSnapshot:
        if not job.external_run_id:
            return to_snapshot(job)

        job_id, run_id = job.id, job.external_run_id
        platform, source_url = job.platform, job.source_url
        db.commit()

        try:
            run = self._gateway.poll_job(run_id)
        except GatewayError as exc:
            logger.warning("Transient job runner poll error job_id=%s run_id=%s error=%s", job_id, run_id, exc)
            return self._snapshot(db, job_id)

        log_event(
            logger,
            logging.INFO,
            "runner_state_observed",
            job_id=job_id,
            run_id=run_id,
            state=run.state,
            raw_status=run.raw_status,
        )
        if run.state == RunState.RUNNING:
            return self._snapshot(db, job_id)

        if run.state in RunState.FAILURES:
            self._fail_job(db=db, job_id=job_id, error_detail=f"Scraping failed with status: {run.raw_status or run.state}")
            return self._snapshot(db, job_id)

        try:
            content = self._gateway.fetch_job_result(run_id, platform=platform, source_url=source_url)
        except GatewayError as exc:
            logger.warning("Transient job runner result error job_id=%s run_id=%s error=%s", job_id, run_id, exc)
            return self._snapshot(db, job_id)

        if content is None:
            self._fail_job(db=db, job_id=job_id, error_detail=NO_CONTENT_DETAIL)
            return self._snapshot(db, job_id)
        return self._finalize(db=db, job_id=job_id, content=content)

    # ------------------------------------------------------------------
    # Finalize
    # ------------------------------------------------------------------

    def _finalize(self, *, db: Session, job_id: uuid.UUID, content: ExtractedContent) -> ScrapeSnapshot:
        repository = ScrapeJobRepository(db)
        job = repository.get_job(job_id, refresh=True)
        if job is None:
            raise ScrapeNotFoundError(f"Scrape job not found: {job_id}")
        if job.status != ScrapeJobStatus.PROCESSING or job.credits_deducted:
            return to_snapshot(job)

        owner_id, platform, method = job.owner_id, job.platform, job.extraction_method
        # No transaction is held open across the transcript network calls.
        db.commit()

        resolution = self._transcript_chain.resolve(content, platform)
        payload = {**content.to_dict(), **self._transcript_fields(content, resolution)}
        cost = self._cost_for(method)

        try:
            claimed = repository.complete_job(job_id=job_id, payload=payload, credits_charged=cost)
            if not claimed:
                db.rollback()
                log_event(logger, logging.INFO, "finalize_skipped", job_id=job_id, reason="already_finalized")
                return self._snapshot(db, job_id)

            account_id = self._ledger.get_account_id(db=db, owner_id=owner_id)
            if account_id is not None:
                charge = self._ledger.charge_job(db=db, account_id=account_id, cost=cost, reference=str(job_id))
                charged = charge.total_used
                if charged != cost:
                    repository.record_credits_charged(job_id=job_id, credits_charged=charged)
            elif cost > 0:
                raise AccountNotFoundError(f"Ledger account not found for owner: {owner_id}")
            else:
                charged = 0
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Finalize failed, job stays processing id=%s", job_id)
            return self._snapshot(db, job_id)

        log_event(
            logger,
            logging.INFO,
            "scrape_completed",
            job_id=job_id,
            method=method,
            cost=cost,
            charged=charged,
            transcript_source=resolution.source,
        )
        return self._snapshot(db, job_id)

    def _transcript_fields(self, content: ExtractedContent, resolution: TranscriptResolution) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "transcript": resolution.text,
            "transcript_source": resolution.source,
        }
        text = resolution.text
        chunk_chars = self._transcript_settings.analysis_chunk_chars
        if (
            text
            and text not in SENTINELS
            and content.video_type == VideoType.LONG_FORM
            and len(text) > chunk_chars * 2
        ):
            fields["transcript_chunks"] = split_transcript(text, chunk_chars)
        return fields

    # ------------------------------------------------------------------
    # Transcript retry
    # ------------------------------------------------------------------

    def fetch_transcript(self, *, db: Session, job_id: uuid.UUID, owner_id: str | None) -> TranscriptFetchResult:
        """
        Retry transcript resolution for a completed job. Never charges.
        """

        job = self._get_owned_job(db=db, job_id=job_id, owner_id=owner_id)
        if job.status != ScrapeJobStatus.COMPLETED:
            raise ScrapeNotReadyError(
                f"Scrape is {job.status}; a transcript can only be fetched once it has completed."
            )

        payload = dict(job.payload or {})
        if payload.get("transcript"):
            return TranscriptFetchResult(
                job_id=job.id,
                transcript=payload["transcript"],
                source=payload.get("transcript_source"),
                cached=True,
            )

        content = ExtractedContent.from_dict(
            {**payload, "platform": job.platform, "url": payload.get("url") or job.source_url}
        )
        platform = job.platform
        db.commit()

        resolution = self._transcript_chain.resolve(content, platform)
        if not resolution.resolved:
            return TranscriptFetchResult(job_id=job_id, transcript=None, source=None, cached=False)

        try:
            ScrapeJobRepository(db).replace_completed_payload(
                job_id=job_id,
                payload={**payload, **self._transcript_fields(content, resolution)},
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        log_event(logger, logging.INFO, "transcript_backfilled", job_id=job_id, source=resolution.source)
        return TranscriptFetchResult(job_id=job_id, transcript=resolution.text, source=resolution.source, cached=False)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _dispatch_platform_api(self, *, db: Session, job_id: uuid.UUID, target: ParsedContentUrl) -> ScrapeSnapshot:
        repository = ScrapeJobRepository(db)
        try:
            content = self._gateway.fetch_via_platform_api(target)
        except PlatformQuotaError as exc:
            self._fail_job(db=db, job_id=job_id, error_detail=f"{exc} {QUOTA_HINT}")
            return self._snapshot(db, job_id)
        except Exception as exc:
            error_detail = f"Platform API extraction failed: {exc}"
            self._fail_job(db=db, job_id=job_id, error_detail=error_detail)
            return self._fallback_to_job_runner(db=db, job_id=job_id, target=target, error_detail=error_detail)

        repository.mark_processing(job_id=job_id, staged_content=content.to_dict())
        db.commit()
        return self._finalize(db=db, job_id=job_id, content=content)

    def _dispatch_job_runner(self, *, db: Session, job_id: uuid.UUID, target: ParsedContentUrl) -> ScrapeSnapshot:
        try:
            handle = self._gateway.submit_job(target)
        except Exception as exc:
            self._fail_job(db=db, job_id=job_id, error_detail=f"Failed to start scraping job: {exc}")
            return self._snapshot(db, job_id)

        ScrapeJobRepository(db).mark_processing(
            job_id=job_id,
            external_run_id=handle.run_id,
            external_dataset_id=handle.dataset_id,
        )
        db.commit()
        return self._snapshot(db, job_id)

    def _fallback_to_job_runner(
        self,
        *,
        db: Session,
        job_id: uuid.UUID,
        target: ParsedContentUrl,
        error_detail: str,
    ) -> ScrapeSnapshot:
        repository = ScrapeJobRepository(db)
        try:
            handle = self._gateway.submit_job(target)
        except Exception as exc:
            repository.update_failure_detail(
                job_id=job_id,
                error_detail=f"{error_detail}; job-runner fallback could not start: {exc}",
            )
            db.commit()
            return self._snapshot(db, job_id)

        try:
            reopened = repository.reopen_for_fallback(
                job_id=job_id,
                extraction_method=ExtractionMethod.JOB_RUNNER,
                external_run_id=handle.run_id,
                external_dataset_id=handle.dataset_id,
            )
            db.commit()
        except IntegrityError:
            # A new submission for the same target became active while this
            # job sat in failed; it owns the URL now.
            db.rollback()
            log_event(
                logger,
                logging.WARNING,
                "scrape_fallback_superseded",
                job_id=job_id,
                orphaned_run_id=handle.run_id,
            )
            job = repository.get_job(job_id, refresh=True)
            winner = repository.find_reusable_job(
                owner_id=job.owner_id,
                project_id=job.project_id,
                normalized_url=target.normalized_url,
                completed_since=None,
            )
            if winner is None:
                return to_snapshot(job)
            return to_snapshot(winner, duplicate=True)

        log_event(
            logger,
            logging.WARNING,
            "scrape_method_fallback",
            job_id=job_id,
            run_id=handle.run_id,
            reopened=reopened,
            reason=error_detail,
        )
        return self._snapshot(db, job_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail_job(self, *, db: Session, job_id: uuid.UUID, error_detail: str) -> None:
        try:
            moved = ScrapeJobRepository(db).mark_failed(job_id=job_id, error_detail=error_detail)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to persist failed scrape state id=%s", job_id)
            raise
        log_event(logger, logging.WARNING, "scrape_failed", job_id=job_id, error_detail=error_detail, moved=moved)

    def _expire_abandoned_pending(self, *, db: Session, job_id: uuid.UUID) -> bool:
        """
        Fail a job left pending past the grace period, which means the
        request that created it died before dispatching.
        """

        cutoff = utc_now() - timedelta(seconds=self._settings.pending_grace_seconds)
        try:
            moved = ScrapeJobRepository(db).fail_abandoned_pending(
                job_id=job_id,
                created_before=cutoff,
                error_detail=ABANDONED_DISPATCH_DETAIL,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        if moved:
            log_event(logger, logging.WARNING, "scrape_dispatch_abandoned", job_id=job_id)
        return moved

    def _snapshot(self, db: Session, job_id: uuid.UUID) -> ScrapeSnapshot:
        job = ScrapeJobRepository(db).get_job(job_id, refresh=True)
        if job is None:
            raise ScrapeNotFoundError(f"Scrape job not found: {job_id}")
        return to_snapshot(job)

    def _get_owned_job(self, *, db: Session, job_id: uuid.UUID, owner_id: str | None) -> ScrapeJob:
        owner_id = self._require_owner(owner_id)
        job = ScrapeJobRepository(db).get_job_for_owner(job_id=job_id, owner_id=owner_id)
        if job is None:
            raise ScrapeNotFoundError(f"Scrape job not found: {job_id}")
        return job

    def _choose_method(self, platform: str, preference: str | None) -> str:
        wants_platform_api = (
            self._settings.prefer_platform_api if preference is None else preference == ExtractionMethod.PLATFORM_API
        )
        if wants_platform_api and self._gateway.supports_platform_api(platform):
            return ExtractionMethod.PLATFORM_API
        return ExtractionMethod.JOB_RUNNER

    def _cost_for(self, method: str) -> int:
        if method == ExtractionMethod.PLATFORM_API:
            return self._settings.platform_api_cost
        if method == ExtractionMethod.PREFILLED:
            return 0
        return self._settings.job_runner_cost

    def _check_credits(self, *, db: Session, owner_id: str, method: str) -> None:
        cost = self._cost_for(method)
        if not self._settings.preflight_credit_check or cost <= 0:
            return
        balance = self._ledger.get_balance(db=db, owner_id=owner_id)
        available = balance.total if balance is not None else 0
        if available < cost:
            log_event(
                logger,
                logging.INFO,
                "scrape_rejected_insufficient_credits",
                owner_id=owner_id,
                needed=cost,
                available=available,
            )
            raise InsufficientCreditsError(needed=cost, available=available)

    def _duplicate_cutoff(self) -> datetime | None:
        if self._settings.duplicate_window_hours <= 0:
            return None
        return utc_now() - timedelta(hours=self._settings.duplicate_window_hours)

    @staticmethod
    def _require_owner(owner_id: str | None) -> str:
        if owner_id is None or not str(owner_id).strip():
            raise UnauthorizedError("A verified user id is required.")
        return str(owner_id).strip()

    @staticmethod
    def _require_project(project_id: str | None) -> str:
        if project_id is None or not str(project_id).strip():
            raise InvalidRequestError("project_id is required.")
        return str(project_id).strip()


@lru_cache(maxsize=1)
def get_scrape_job_service() -> ScrapeJobService:
    return ScrapeJobService()

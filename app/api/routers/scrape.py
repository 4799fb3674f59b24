"""
Content scrape, status polling and transcript endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_owner_id
from app.api.errors import to_http_exception
from app.domain.errors import ScrapeRequestError
from app.domain.scrape import ScrapeSnapshot
from app.schemas.scrape import (
    PrefilledScrapeRequest,
    ScrapeAcceptedResponse,
    ScrapeRequest,
    ScrapeStatusResponse,
    TranscriptResponse,
)
from app.services.scrape_job_service import ScrapeJobService, get_scrape_job_service
from db.session import get_db

router = APIRouter(prefix="/content", tags=["content-scrape"])


@router.post(
    "/scrape",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ScrapeAcceptedResponse,
)
def create_scrape(
    request: ScrapeRequest,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    service: ScrapeJobService = Depends(get_scrape_job_service),
) -> ScrapeAcceptedResponse:
    try:
        snapshot = service.create_scrape(
            db=db,
            owner_id=owner_id,
            project_id=request.project_id,
            url=request.url,
            method_preference=request.method,
        )
    except ScrapeRequestError as exc:
        raise to_http_exception(exc) from exc
    return _to_accepted_response(snapshot)


@router.post(
    "/scrape/prefilled",
    status_code=status.HTTP_201_CREATED,
    response_model=ScrapeStatusResponse,
)
def register_prefilled_scrape(
    request: PrefilledScrapeRequest,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    service: ScrapeJobService = Depends(get_scrape_job_service),
) -> ScrapeStatusResponse:
    try:
        snapshot = service.register_prefilled_content(
            db=db,
            owner_id=owner_id,
            project_id=request.project_id,
            url=request.url,
            content=request.content.model_dump(),
        )
    except ScrapeRequestError as exc:
        raise to_http_exception(exc) from exc
    return _to_status_response(snapshot)


@router.get("/scrape/{job_id}/status", response_model=ScrapeStatusResponse)
def get_scrape_status(
    job_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    service: ScrapeJobService = Depends(get_scrape_job_service),
) -> ScrapeStatusResponse:
    try:
        snapshot = service.get_scrape_status(db=db, job_id=job_id, owner_id=owner_id)
    except ScrapeRequestError as exc:
        raise to_http_exception(exc) from exc
    return _to_status_response(snapshot)


@router.post("/transcript/{job_id}", response_model=TranscriptResponse)
def fetch_transcript(
    job_id: UUID,
    owner_id: str = Depends(get_owner_id),
    db: Session = Depends(get_db),
    service: ScrapeJobService = Depends(get_scrape_job_service),
) -> TranscriptResponse:
    try:
        result = service.fetch_transcript(db=db, job_id=job_id, owner_id=owner_id)
    except ScrapeRequestError as exc:
        raise to_http_exception(exc) from exc
    return TranscriptResponse(
        job_id=result.job_id,
        transcript=result.transcript,
        source=result.source,
        cached=result.cached,
    )


def _to_accepted_response(snapshot: ScrapeSnapshot) -> ScrapeAcceptedResponse:
    return ScrapeAcceptedResponse(
        job_id=snapshot.job_id,
        status=snapshot.status,
        method=snapshot.method,
        platform=snapshot.platform,
        duplicate=snapshot.duplicate,
        created_at=snapshot.created_at,
    )


def _to_status_response(snapshot: ScrapeSnapshot) -> ScrapeStatusResponse:
    return ScrapeStatusResponse(
        job_id=snapshot.job_id,
        status=snapshot.status,
        platform=snapshot.platform,
        method=snapshot.method,
        job_kind=snapshot.job_kind,
        source_url=snapshot.source_url,
        credits_deducted=snapshot.credits_deducted,
        created_at=snapshot.created_at,
        completed_at=snapshot.completed_at,
        payload=snapshot.payload,
        error_detail=snapshot.error_detail,
        transcript_retry_available=snapshot.transcript_retry_available,
    )

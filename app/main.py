from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.logging_utils import log_event


def _validate_env() -> None:
    """
    Validate required environment variables at startup.

    Raises RuntimeError listing every missing variable so the operator can
    fix all problems in one restart cycle. Optional integrations (platform
    API key, transcription key) only produce warnings because the pipeline
    degrades around them.
    """

    from db.config import load_env_files

    load_env_files()

    errors: list[str] = []

    database_url = os.getenv("DATABASE_URL", "").strip()
    cloud_database_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    local_database_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if not (database_url or cloud_database_url or local_database_url):
        errors.append(
            "No database URL configured. Set DATABASE_URL, CLOUD_DATABASE_URL or LOCAL_DATABASE_URL."
        )

    runner_token = os.getenv("JOB_RUNNER_API_TOKEN", "").strip() or os.getenv("APIFY_API_TOKEN", "").strip()
    if not runner_token:
        errors.append("JOB_RUNNER_API_TOKEN is not set. The job runner is required for every platform.")

    if errors:
        raise RuntimeError(
            "Startup validation failed, missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    log = logging.getLogger(__name__)
    if not os.getenv("YOUTUBE_API_KEY", "").strip():
        log.warning("YOUTUBE_API_KEY is not set; YouTube scrapes will use the job runner only.")
    if not (os.getenv("TRANSCRIPTION_API_KEY", "").strip() or os.getenv("GROQ_API_KEY", "").strip()):
        log.warning("TRANSCRIPTION_API_KEY is not set; speech-to-text transcript strategies will be skipped.")


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _verify_database() -> None:
    """
    Refuse to serve traffic when the database is unreachable or a table
    the jobs and ledger need is missing. Never migrates; run
    'alembic upgrade head' first.
    """

    from sqlalchemy import inspect as sa_inspect
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.base import Base
    from db.models import LedgerAccount, ScrapeJob, UsagePeriod  # noqa: F401
    from db.session import get_engine

    log = logging.getLogger(__name__)
    engine = get_engine()
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
            present = set(sa_inspect(connection).get_table_names())
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc

    missing = sorted(set(Base.metadata.tables) - present)
    if missing:
        log_event(log, logging.CRITICAL, "schema_tables_missing", tables=missing)
        raise RuntimeError(
            f"Missing table(s): {', '.join(missing)}. Run 'alembic upgrade head' and restart."
        )
    log_event(log, logging.INFO, "database_ready", tables=len(present))


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    _verify_database()
    yield


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _configure_logging()
    _validate_env()

    application = FastAPI(
        title="Content Acquisition API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import credits_router, scrape_router

    application.include_router(scrape_router)
    application.include_router(credits_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    return application


app = create_app()

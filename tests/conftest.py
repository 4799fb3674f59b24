"""
tests/conftest.py

Shared fixtures: a throwaway SQLite database per test, the fake gateway and
transcript chain, and a service wired to them.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.config import ScrapeSettings, TranscriptSettings
from app.services.credit_ledger import CreditLedger
from app.services.scrape_job_service import ScrapeJobService
from db.base import Base
from db.session import build_session_factory, create_db_engine
from tests.fakes import OWNER_ID, FakeGateway, FakeTranscriptChain


@pytest.fixture()
def engine(tmp_path) -> Generator[Engine, None, None]:
    engine = create_db_engine(f"sqlite:///{tmp_path / 'content.db'}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture()
def chain() -> FakeTranscriptChain:
    return FakeTranscriptChain()


@pytest.fixture()
def ledger() -> CreditLedger:
    return CreditLedger()


@pytest.fixture()
def scrape_settings() -> ScrapeSettings:
    return ScrapeSettings(
        job_runner_cost=50,
        platform_api_cost=0,
        prefer_platform_api=True,
        preflight_credit_check=True,
        duplicate_window_hours=24,
    )


@pytest.fixture()
def service(
    gateway: FakeGateway,
    chain: FakeTranscriptChain,
    ledger: CreditLedger,
    scrape_settings: ScrapeSettings,
) -> ScrapeJobService:
    return ScrapeJobService(
        gateway=gateway,
        transcript_chain=chain,
        ledger=ledger,
        settings=scrape_settings,
        transcript_settings=TranscriptSettings(),
    )


@pytest.fixture()
def funded_account(db: Session, ledger: CreditLedger):
    """20 promotional credits plus a 100 credit allocation."""
    return ledger.open_account(db=db, owner_id=OWNER_ID, promotional_credits=20, allocation_cap=100)

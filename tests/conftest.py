from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from rental_tax_filer.config.settings import ContactDetails, RunConfig
from rental_tax_filer.db.engine import session_scope_for
from rental_tax_filer.db.migrations import ensure_schema
from rental_tax_filer.db.repositories.bookings import BookingRepository
from rental_tax_filer.schemas.booking import BookingCandidate


@pytest.fixture()
def engine(tmp_path):
    # File-backed so the pipeline's own short sessions see each other's commits.
    eng = create_engine(f"sqlite+pysqlite:///{tmp_path / 'bookings.db'}", future=True)
    ensure_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session(engine):
    SessionLocal = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def session_scope(engine):
    return session_scope_for(engine)


@pytest.fixture()
def run_config(tmp_path) -> RunConfig:
    return RunConfig(
        dry_run=True,
        max_login_wait_ms=10_000,
        poll_interval_ms=1_000,
        audit_evidence_dir=tmp_path / "audit_logs",
        settle_ms=0,
        slow_mo_ms=0,
        contact=ContactDetails(phone="2101234567", mobile="6971234567", email="host@example.com"),
    )


def _candidate(**overrides) -> BookingCandidate:
    data = {
        "guest_name": "John Doe",
        "check_in": date(2024, 5, 1),
        "check_out": date(2024, 5, 5),
        "total_payout": Decimal("450.00"),
        "platform_id": "HM-12345678",
    }
    data.update(overrides)
    return BookingCandidate(**data)


@pytest.fixture()
def make_candidate():
    return _candidate


@pytest.fixture()
def seed(session_scope):
    """Inserts bookings in their own committed transaction; returns their ids in order."""

    def _seed(*candidates: BookingCandidate) -> list[int]:
        with session_scope() as s:
            repo = BookingRepository(s)
            for c in candidates:
                repo.insert(c)
            return [repo.get_by_platform_id(c.platform_id).id for c in candidates]

    return _seed

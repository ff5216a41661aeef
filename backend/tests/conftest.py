# backend/tests/conftest.py
"""
Pytest configuration for the reservation engine.

Every test gets a fresh in-memory SQLite database with the full schema and a
frozen clock. PostgreSQL-only behaviour (exclusion constraints, advisory
transaction locks) is exercised through fakes in the repository tests.
"""

import os
import sys

# CRITICAL: Set testing mode BEFORE any app imports!
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

# Add the backend directory to Python path so imports work
backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from datetime import datetime, time
from typing import Iterator, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import ulid

from app.core.timezone_utils import day_of_week
from app.database import Base
import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.models.reservation import Reservation, ReservationStatus
from app.models.staff_availability import StaffAvailability
from tests.factories.reservation_factories import BOOKING_DAY, TENANT_ID, FrozenClock


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def make_reservation(db):
    """Insert a committed reservation directly, bypassing the services."""

    def _make(
        start_at: datetime,
        end_at: datetime,
        *,
        tenant_id: str = TENANT_ID,
        status: str = ReservationStatus.CONFIRMED.value,
        staff_id: Optional[str] = None,
        location_id: Optional[str] = None,
        **extra,
    ) -> Reservation:
        reservation = Reservation(
            id=str(ulid.ULID()),
            tenant_id=tenant_id,
            start_at=start_at,
            end_at=end_at,
            status=status,
            staff_id=staff_id,
            location_id=location_id,
            source=extra.pop("source", "internal"),
            **extra,
        )
        db.add(reservation)
        db.commit()
        return reservation

    return _make


@pytest.fixture
def add_availability(db):
    """Insert a weekday schedule for a staff member (Monday by default)."""

    def _add(
        staff_id: str,
        start: time = time(9, 0),
        end: time = time(17, 0),
        *,
        tenant_id: str = TENANT_ID,
        weekday: Optional[int] = None,
        break_start: Optional[time] = None,
        break_end: Optional[time] = None,
        is_available: bool = True,
    ) -> StaffAvailability:
        row = StaffAvailability(
            id=str(ulid.ULID()),
            tenant_id=tenant_id,
            staff_id=staff_id,
            day_of_week=day_of_week(BOOKING_DAY) if weekday is None else weekday,
            start_time=start,
            end_time=end,
            break_start=break_start,
            break_end=break_end,
            is_available=is_available,
        )
        db.add(row)
        db.commit()
        return row

    return _add

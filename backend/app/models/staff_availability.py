# backend/app/models/staff_availability.py
"""
Staff availability model.

One row per (tenant, staff member, weekday) with the working window and an
optional break. Configured by tenant administrators; read-only to the
reservation engine.

Weekdays are Sunday-based: 0 = Sunday ... 6 = Saturday.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, Index, Integer, String, Time, UniqueConstraint
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import UTCDateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class StaffAvailability(Base):
    """Working hours and break for one staff member on one weekday."""

    __tablename__ = "staff_availability"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(64), nullable=False)
    staff_id = Column(String(64), nullable=False)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_start = Column(Time, nullable=True)
    break_end = Column(Time, nullable=True)
    is_available = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=_now_utc)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "staff_id", "day_of_week", name="uq_staff_availability_staff_day"
        ),
        CheckConstraint("day_of_week >= 0 AND day_of_week <= 6", name="ck_staff_availability_day"),
        CheckConstraint("start_time < end_time", name="ck_staff_availability_window"),
        CheckConstraint(
            "(break_start IS NULL AND break_end IS NULL) OR "
            "(break_start IS NOT NULL AND break_end IS NOT NULL "
            "AND break_start >= start_time AND break_start < break_end "
            "AND break_end <= end_time)",
            name="ck_staff_availability_break_within_window",
        ),
        Index("idx_staff_availability_tenant_staff", "tenant_id", "staff_id"),
    )

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_end is not None

    def __repr__(self) -> str:
        return (
            f"<StaffAvailability staff={self.staff_id} day={self.day_of_week} "
            f"{self.start_time}-{self.end_time}>"
        )

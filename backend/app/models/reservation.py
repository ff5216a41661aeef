# backend/app/models/reservation.py
"""
Reservation model.

A reservation occupies the half-open window [start_at, end_at) for a tenant,
optionally pinned to one staff resource and/or one location resource.
Reservations are never deleted; cancellation is a status change.

On PostgreSQL the migration adds btree_gist exclusion constraints
(reservations_no_overlap_per_staff / reservations_no_overlap_per_location)
as the storage-level guarantee against double booking.
"""

from datetime import datetime, timezone
from enum import Enum
import logging

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import JSONType, UTCDateTime

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class ReservationStatus(str, Enum):
    """Reservation lifecycle statuses."""

    PENDING = "pending"  # Public bookings awaiting confirmation
    CONFIRMED = "confirmed"  # Default for staff-initiated bookings
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Only these statuses occupy a slot
ACTIVE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


class ReservationSource(str, Enum):
    INTERNAL = "internal"
    PUBLIC_BOOKING = "public_booking"


class Reservation(Base):
    """A committed booking of a time window."""

    __tablename__ = "reservations"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(64), nullable=False, index=True)

    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    status = Column(String(20), nullable=False, default=ReservationStatus.CONFIRMED.value, index=True)

    # Contended resources
    staff_id = Column(String(64), nullable=True, index=True)
    location_id = Column(String(64), nullable=True, index=True)

    service_id = Column(String(64), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    customer_email = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    source = Column(String(30), nullable=False, default=ReservationSource.INTERNAL.value)
    metadata_json = Column("metadata", JSONType, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=_now_utc, server_default=func.now())
    updated_at = Column(UTCDateTime, nullable=True, onupdate=_now_utc)
    cancelled_at = Column(UTCDateTime, nullable=True)

    logs = relationship("ReservationLog", back_populates="reservation", lazy="select")
    reminders = relationship("ReservationReminder", back_populates="reservation", lazy="select")

    __table_args__ = (
        CheckConstraint("start_at < end_at", name="ck_reservations_time_order"),
        CheckConstraint(
            "status IN ('pending','confirmed','cancelled','completed')",
            name="ck_reservations_status",
        ),
        Index("idx_reservations_tenant_window", "tenant_id", "start_at", "end_at"),
        Index("idx_reservations_tenant_staff", "tenant_id", "staff_id"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def resource_id(self) -> str | None:
        """Staff assignment wins over location when both are present."""
        return self.staff_id or self.location_id

    def overlaps(self, start_at: datetime, end_at: datetime) -> bool:
        """Half-open overlap: touching boundaries do not conflict."""
        return start_at < self.end_at and end_at > self.start_at

    def __repr__(self) -> str:
        return f"<Reservation {self.id} {self.start_at}-{self.end_at} {self.status}>"


class ReservationLog(Base):
    """Audit trail row written after reservation changes."""

    __tablename__ = "reservation_logs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    reservation_id = Column(String(26), ForeignKey("reservations.id"), nullable=True, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    action = Column(String(30), nullable=False)
    actor_id = Column(String(64), nullable=True)
    actor_role = Column(String(30), nullable=True)
    notes = Column(JSONType, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc, server_default=func.now())

    reservation = relationship("Reservation", back_populates="logs")


class ReservationReminder(Base):
    """Scheduled reminder for an upcoming reservation."""

    __tablename__ = "reservation_reminders"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(64), nullable=False, index=True)
    reservation_id = Column(String(26), ForeignKey("reservations.id"), nullable=False, index=True)
    remind_at = Column(UTCDateTime, nullable=False, index=True)
    method = Column(String(30), nullable=False, default="whatsapp")
    status = Column(String(20), nullable=False, default="pending")
    reason = Column(String(20), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc, server_default=func.now())

    reservation = relationship("Reservation", back_populates="reminders")


class ReservationServiceLine(Base):
    """Service line item attached to a reservation."""

    __tablename__ = "reservation_services"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    reservation_id = Column(String(26), ForeignKey("reservations.id"), nullable=False, index=True)
    service_id = Column(String(64), nullable=False)
    tenant_id = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc, server_default=func.now())

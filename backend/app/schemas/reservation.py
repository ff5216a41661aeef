# backend/app/schemas/reservation.py
"""
Reservation engine schemas.

Typed request/response shapes for lock acquisition, conflict detection and
reservation creation. Conflicts are classified by the ConflictType enum.
Ordering checks (start before end) are left to the services so they surface
as ValidationException rather than schema errors.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .base import StandardizedModel, StrictRequestModel, coerce_utc


class ConflictType(str, Enum):
    """Why a proposed window was rejected."""

    TIME_OVERLAP = "time_overlap"
    RESOURCE_DOUBLE_BOOKING = "resource_double_booking"
    STAFF_UNAVAILABLE = "staff_unavailable"


class BookingConflict(BaseModel):
    """One reason a window cannot be booked."""

    model_config = ConfigDict(frozen=True)

    reservation_id: Optional[str] = Field(
        None, description="Conflicting reservation; empty for staff unavailability"
    )
    start_at: datetime
    end_at: datetime
    resource_id: Optional[str] = None
    conflict_type: ConflictType


class ConflictResult(BaseModel):
    """Outcome of a conflict check."""

    has_conflict: bool
    conflicts: List[BookingConflict] = Field(default_factory=list)

    @classmethod
    def from_conflicts(cls, conflicts: List[BookingConflict]) -> "ConflictResult":
        return cls(has_conflict=bool(conflicts), conflicts=conflicts)

    def of_type(self, conflict_type: ConflictType) -> List[BookingConflict]:
        return [c for c in self.conflicts if c.conflict_type == conflict_type]


class SlotLockGrant(BaseModel):
    """Opaque handle returned by a successful lock acquisition."""

    lock_id: str
    slot_key: str
    expires_at: datetime
    renewed: bool = False


class OpenWindow(BaseModel):
    """Candidate window produced by the alternative-slot search."""

    start_at: datetime
    end_at: datetime
    available: bool


class ReservationActor(BaseModel):
    """Who initiated a change; recorded in the audit log."""

    id: Optional[str] = None
    role: Optional[str] = None


class ReservationCreate(StrictRequestModel):
    """Internal reservation request."""

    start_at: datetime = Field(..., description="Start instant (inclusive)")
    end_at: datetime = Field(..., description="End instant (exclusive)")
    status: Literal["pending", "confirmed"] = Field(
        "confirmed", description="Initial status of the persisted reservation"
    )
    staff_id: Optional[str] = Field(None, max_length=64)
    location_id: Optional[str] = Field(None, max_length=64)
    service_id: Optional[str] = Field(None, max_length=64)
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_phone: Optional[str] = Field(None, max_length=50)
    customer_email: Optional[EmailStr] = None
    notes: Optional[str] = Field(None, max_length=2000)
    source: Literal["internal", "public_booking"] = "internal"
    metadata: Optional[Dict[str, Any]] = None

    _normalize_times = field_validator("start_at", "end_at", mode="after")(coerce_utc)

    @field_validator("staff_id", "location_id", "service_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class PublicBookingCreate(StrictRequestModel):
    """Unauthenticated storefront booking request."""

    start_at: datetime
    duration_minutes: Optional[int] = Field(None, ge=5, le=720)
    staff_id: Optional[str] = Field(None, max_length=64)
    service_id: Optional[str] = Field(None, max_length=64)
    customer_name: str = Field(..., min_length=1, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=2000)
    session_id: Optional[str] = Field(None, max_length=128)

    _normalize_start = field_validator("start_at", mode="after")(coerce_utc)


class ConflictCheckRequest(StrictRequestModel):
    """Read-only conflict preview."""

    start_at: datetime
    end_at: datetime
    resource_ids: Optional[List[str]] = None
    staff_ids: Optional[List[str]] = Field(
        None,
        description="Which resource_ids are staff members; defaults to all of them",
    )
    exclude_reservation_id: Optional[str] = None

    _normalize_times = field_validator("start_at", "end_at", mode="after")(coerce_utc)


class RescheduleRequest(StrictRequestModel):
    start_at: datetime
    end_at: datetime
    session_id: Optional[str] = Field(None, max_length=128)

    _normalize_times = field_validator("start_at", "end_at", mode="after")(coerce_utc)


class CancelRequest(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=500)


class SlotLockRequest(StrictRequestModel):
    start_at: datetime
    end_at: datetime
    resource_id: Optional[str] = Field(None, max_length=64)
    session_id: Optional[str] = Field(None, max_length=128)
    ttl_minutes: Optional[int] = Field(None, ge=1)

    _normalize_times = field_validator("start_at", "end_at", mode="after")(coerce_utc)


class ReservationResponse(StandardizedModel):
    """Reservation as returned to API callers."""

    id: str
    tenant_id: str
    start_at: datetime
    end_at: datetime
    status: str
    staff_id: Optional[str] = None
    location_id: Optional[str] = None
    service_id: Optional[str] = None
    customer_name: Optional[str] = None
    source: str
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

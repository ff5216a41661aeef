# backend/app/schemas/__init__.py
"""
Pydantic schemas for the reservation engine.

Request DTOs forbid unknown fields; response DTOs read ORM attributes.
"""

from .base import StandardizedModel, StrictRequestModel
from .reservation import (
    BookingConflict,
    CancelRequest,
    ConflictCheckRequest,
    ConflictResult,
    ConflictType,
    OpenWindow,
    PublicBookingCreate,
    ReservationActor,
    ReservationCreate,
    ReservationResponse,
    RescheduleRequest,
    SlotLockGrant,
    SlotLockRequest,
)

__all__ = [
    # Base
    "StandardizedModel",
    "StrictRequestModel",
    # Conflicts
    "BookingConflict",
    "ConflictCheckRequest",
    "ConflictResult",
    "ConflictType",
    "OpenWindow",
    # Reservations
    "CancelRequest",
    "PublicBookingCreate",
    "ReservationActor",
    "ReservationCreate",
    "ReservationResponse",
    "RescheduleRequest",
    # Slot locks
    "SlotLockGrant",
    "SlotLockRequest",
]

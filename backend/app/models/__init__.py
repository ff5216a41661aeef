"""
Database models for the reservation engine.

- Reservations and their side-effect rows (audit log, reminders, service lines)
- Advisory slot locks
- Staff availability windows
- Background job outbox
"""

from .background_job import BackgroundJob
from .reservation import (
    ACTIVE_STATUSES,
    Reservation,
    ReservationLog,
    ReservationReminder,
    ReservationServiceLine,
    ReservationSource,
    ReservationStatus,
)
from .slot_lock import SlotLock
from .staff_availability import StaffAvailability

__all__ = [
    "ACTIVE_STATUSES",
    "BackgroundJob",
    "Reservation",
    "ReservationLog",
    "ReservationReminder",
    "ReservationServiceLine",
    "ReservationSource",
    "ReservationStatus",
    "SlotLock",
    "StaffAvailability",
]

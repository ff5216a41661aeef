"""Domain events queued to the background job outbox."""

from app.events.publisher import EventPublisher
from app.events.reservation_events import (
    ReservationCancelled,
    ReservationCreated,
    ReservationRescheduled,
)

__all__ = [
    "EventPublisher",
    "ReservationCancelled",
    "ReservationCreated",
    "ReservationRescheduled",
]

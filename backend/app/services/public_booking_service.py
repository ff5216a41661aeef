# backend/app/services/public_booking_service.py
"""
Public (unauthenticated) booking entry point.

Storefront requests have no other admission control, so every attempt is
wrapped in a short slot lock. Bookings land as pending and are confirmed by
staff later. A lock conflict is retried a limited number of times after a
short pause; anything else is surfaced as-is.
"""

from datetime import timedelta
import logging
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import SlotLockedException
from ..models.reservation import Reservation, ReservationSource, ReservationStatus
from ..schemas.reservation import PublicBookingCreate, ReservationActor, ReservationCreate
from .base import BaseService
from .reservation_creator import ReservationCreator

logger = logging.getLogger(__name__)


class PublicBookingService(BaseService):
    """Lock-wrapped reservation creation for the public booking page."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        *,
        creator: Optional[ReservationCreator] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(db, clock)
        self.creator = creator or ReservationCreator(db, clock=self.clock)
        self._sleep = sleep

    @staticmethod
    def to_reservation_request(booking: PublicBookingCreate) -> ReservationCreate:
        minutes = booking.duration_minutes or settings.default_service_duration_minutes
        return ReservationCreate(
            start_at=booking.start_at,
            end_at=booking.start_at + timedelta(minutes=minutes),
            status=ReservationStatus.PENDING.value,
            staff_id=booking.staff_id,
            service_id=booking.service_id,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            customer_phone=booking.customer_phone,
            notes=booking.notes,
            source=ReservationSource.PUBLIC_BOOKING.value,
        )

    @BaseService.measure_operation("create_public_booking")
    def book(self, tenant_id: str, booking: PublicBookingCreate) -> Reservation:
        """
        Create a pending reservation for a storefront customer.

        Raises:
            SlotLockedException: still locked after the configured retries
            BookingConflictException: the window is taken or staff unavailable
        """
        request = self.to_reservation_request(booking)
        actor = ReservationActor(id=None, role="public")
        retries_left = settings.public_booking_lock_retries

        while True:
            try:
                return self.creator.create(
                    tenant_id,
                    request,
                    actor,
                    use_slot_lock=True,
                    lock_ttl=timedelta(minutes=settings.public_booking_lock_ttl_minutes),
                    session_id=booking.session_id,
                )
            except SlotLockedException:
                if retries_left <= 0:
                    raise
                retries_left -= 1
                logger.info(
                    "public_booking_lock_retry",
                    extra={"tenant_id": tenant_id, "retries_left": retries_left},
                )
                self._sleep(settings.public_booking_lock_retry_delay_ms / 1000.0)

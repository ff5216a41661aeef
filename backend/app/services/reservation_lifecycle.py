# backend/app/services/reservation_lifecycle.py
"""
Reservation lifecycle operations after creation: lookup, cancel, reschedule.

Reservations are never deleted. Cancelling is a status change, and a
cancelled reservation stops participating in conflict checks immediately.
"""

from datetime import datetime
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    PersistenceException,
    RepositoryException,
    UniqueViolation,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..events.publisher import EventPublisher
from ..events.reservation_events import ReservationCancelled, ReservationRescheduled
from ..models.reservation import Reservation, ReservationStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from ..schemas.reservation import ReservationActor
from .base import BaseService
from .conflict_detector import ConflictDetector
from .reservation_creator import conflict_message_for_constraint
from .slot_lock_manager import SlotLockManager

logger = logging.getLogger(__name__)


class ReservationLifecycleService(BaseService):
    """Cancel and reschedule committed reservations."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        *,
        reservation_repository: Optional[ReservationRepository] = None,
        conflict_detector: Optional[ConflictDetector] = None,
        lock_manager: Optional[SlotLockManager] = None,
        event_publisher: Optional[EventPublisher] = None,
    ):
        super().__init__(db, clock)
        self.reservation_repository = (
            reservation_repository or RepositoryFactory.create_reservation_repository(db)
        )
        self.conflict_detector = conflict_detector or ConflictDetector(
            db, clock=self.clock, reservation_repository=self.reservation_repository
        )
        self.lock_manager = lock_manager or SlotLockManager(db, clock=self.clock)
        self.event_publisher = event_publisher or EventPublisher(
            RepositoryFactory.create_job_repository(db), clock=self.clock
        )

    def get(self, tenant_id: str, reservation_id: str) -> Reservation:
        """Tenant-scoped lookup; another tenant's reservation is simply not found."""
        try:
            reservation = self.reservation_repository.get_for_tenant(tenant_id, reservation_id)
        except RepositoryException as exc:
            raise PersistenceException("Failed to load reservation") from exc
        if reservation is None:
            raise NotFoundException(
                "Reservation not found", details={"reservation_id": reservation_id}
            )
        return reservation

    @BaseService.measure_operation("cancel_reservation")
    def cancel(
        self,
        tenant_id: str,
        reservation_id: str,
        actor: Optional[ReservationActor] = None,
        reason: Optional[str] = None,
    ) -> Reservation:
        """
        Cancel a reservation.

        Cancelling twice returns the already-cancelled reservation unchanged.
        Completed reservations cannot be cancelled.
        """
        reservation = self.get(tenant_id, reservation_id)
        if reservation.status == ReservationStatus.CANCELLED.value:
            return reservation
        if reservation.status == ReservationStatus.COMPLETED.value:
            raise ValidationException(
                "Completed reservations cannot be cancelled",
                details={"reservation_id": reservation_id},
            )

        now = self.clock.now()
        try:
            with self.transaction():
                self.reservation_repository.update(
                    reservation, status=ReservationStatus.CANCELLED.value, cancelled_at=now
                )
                self.reservation_repository.add_log(
                    reservation_id=reservation.id,
                    tenant_id=tenant_id,
                    action="cancelled",
                    actor_id=actor.id if actor else None,
                    actor_role=actor.role if actor else None,
                    notes={"reason": reason} if reason else None,
                )
        except RepositoryException as exc:
            raise PersistenceException("Failed to cancel reservation") from exc

        prometheus_metrics.inc_reservations_cancelled()
        try:
            with self.transaction():
                self.event_publisher.publish(
                    ReservationCancelled(
                        reservation_id=reservation.id,
                        tenant_id=tenant_id,
                        cancelled_at=now,
                        cancelled_by=actor.id if actor else None,
                        reason=reason,
                    )
                )
        except Exception as exc:
            logger.error(
                "reservation_event_publish_failed",
                extra={"reservation_id": reservation.id, "event": "ReservationCancelled", "error": str(exc)},
            )

        self.log_operation("reservation_cancelled", tenant_id=tenant_id, reservation_id=reservation.id)
        return reservation

    @BaseService.measure_operation("reschedule_reservation")
    def reschedule(
        self,
        tenant_id: str,
        reservation_id: str,
        new_start: datetime,
        new_end: datetime,
        actor: Optional[ReservationActor] = None,
        session_id: Optional[str] = None,
    ) -> Reservation:
        """
        Move an active reservation to a new window on the same resources.

        The new window is held with a slot lock while it is checked and
        written; the reservation's own current window is ignored by the check.
        """
        reservation = self.get(tenant_id, reservation_id)
        if not reservation.is_active:
            raise ValidationException(
                "Only pending or confirmed reservations can be rescheduled",
                details={"reservation_id": reservation_id, "status": reservation.status},
            )
        if new_start is None or new_end is None:
            raise ValidationException("start_at and end_at are required")
        new_start, new_end = ensure_utc(new_start), ensure_utc(new_end)
        if new_start >= new_end:
            raise ValidationException("start_at must be before end_at")

        previous_start, previous_end = reservation.start_at, reservation.end_at
        resource_ids = [r for r in (reservation.staff_id, reservation.location_id) if r]
        staff_ids = [reservation.staff_id] if reservation.staff_id else []

        with self.lock_manager.hold_slot(
            tenant_id,
            new_start,
            new_end,
            resource_id=reservation.resource_id,
            session_id=session_id,
        ):
            result = self.conflict_detector.check_conflicts(
                tenant_id,
                new_start,
                new_end,
                resource_ids=resource_ids or None,
                exclude_reservation_id=reservation.id,
                staff_ids=staff_ids,
            )
            if result.has_conflict:
                raise BookingConflictException(conflicts=result.conflicts)

            try:
                with self.transaction():
                    self.reservation_repository.lock_tenant_for_write(tenant_id)
                    racing = self.reservation_repository.find_overlapping(
                        tenant_id,
                        new_start,
                        new_end,
                        resource_ids=resource_ids or None,
                        exclude_reservation_id=reservation.id,
                    )
                    if racing:
                        raise BookingConflictException(
                            conflicts=ConflictDetector.overlapping_conflicts(
                                racing, bool(resource_ids)
                            )
                        )
                    self.reservation_repository.update(
                        reservation, start_at=new_start, end_at=new_end
                    )
                    self.reservation_repository.add_log(
                        reservation_id=reservation.id,
                        tenant_id=tenant_id,
                        action="rescheduled",
                        actor_id=actor.id if actor else None,
                        actor_role=actor.role if actor else None,
                        notes={
                            "previous_start_at": previous_start.isoformat(),
                            "previous_end_at": previous_end.isoformat(),
                        },
                    )
            except UniqueViolation as exc:
                message, _scope = conflict_message_for_constraint(exc.constraint_name)
                raise BookingConflictException(
                    message, details={"constraint": exc.constraint_name}
                ) from exc
            except RepositoryException as exc:
                raise PersistenceException("Failed to reschedule reservation") from exc

        try:
            with self.transaction():
                self.event_publisher.publish(
                    ReservationRescheduled(
                        reservation_id=reservation.id,
                        tenant_id=tenant_id,
                        previous_start_at=previous_start,
                        previous_end_at=previous_end,
                        start_at=new_start,
                        end_at=new_end,
                    )
                )
        except Exception as exc:
            logger.error(
                "reservation_event_publish_failed",
                extra={"reservation_id": reservation.id, "event": "ReservationRescheduled", "error": str(exc)},
            )

        self.log_operation(
            "reservation_rescheduled", tenant_id=tenant_id, reservation_id=reservation.id
        )
        return reservation

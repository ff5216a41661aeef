# backend/app/services/reservation_creator.py
"""
Reservation Creator

Single entry point that turns a ReservationCreate request into a committed
Reservation or a typed error. Each request walks the CreationStage machine:

    VALIDATING -> LOCKING -> CHECKING_CONFLICTS -> CHECKING_AVAILABILITY
        -> PERSISTING -> COMPLETED

and any failure moves it to FAILED. A slot lock taken in LOCKING is always
released before the call returns.

The conflict pre-check is advisory. The persist step serialises writers for
the tenant, re-runs the overlap query inside the transaction and relies on
the store's exclusion constraints, so a reservation is never double booked
even when no slot lock was taken.
"""

from datetime import datetime, timedelta
from enum import Enum
import logging
import time
from typing import Callable, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session
import ulid

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import (
    BookingConflictException,
    PersistenceException,
    RepositoryException,
    UniqueViolation,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc
from ..events.publisher import EventPublisher
from ..events.reservation_events import ReservationCreated
from ..models.reservation import Reservation, ReservationStatus
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.reservation_repository import (
    LOCATION_OVERLAP_CONSTRAINT,
    STAFF_OVERLAP_CONSTRAINT,
    ReservationRepository,
)
from ..schemas.reservation import (
    BookingConflict,
    ReservationActor,
    ReservationCreate,
    SlotLockGrant,
)
from .base import BaseService
from .conflict_detector import ConflictDetector
from .slot_lock_manager import SlotLockManager, TTLArg

logger = logging.getLogger(__name__)

GENERIC_CONFLICT_MESSAGE = "This time slot conflicts with an existing booking"
STAFF_CONFLICT_MESSAGE = "This staff member already has a booking that overlaps this time"
LOCATION_CONFLICT_MESSAGE = "This location is already booked for an overlapping time"

CREATABLE_STATUSES = (ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value)


class CreationStage(str, Enum):
    VALIDATING = "validating"
    LOCKING = "locking"
    CHECKING_CONFLICTS = "checking_conflicts"
    CHECKING_AVAILABILITY = "checking_availability"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    FAILED = "failed"


class UsageCounters(Protocol):
    """Per-tenant usage accounting. Must not block."""

    def increment_reservations(self, tenant_id: str) -> None:
        ...


class PrometheusUsageCounters:
    """Default usage counters backed by the Prometheus registry."""

    def increment_reservations(self, tenant_id: str) -> None:
        prometheus_metrics.inc_tenant_usage(tenant_id)


def conflict_message_for_constraint(constraint_name: Optional[str]) -> Tuple[str, Optional[str]]:
    """Map a store constraint name to a user-facing message and conflict scope."""
    if constraint_name == STAFF_OVERLAP_CONSTRAINT:
        return STAFF_CONFLICT_MESSAGE, "staff"
    if constraint_name == LOCATION_OVERLAP_CONSTRAINT:
        return LOCATION_CONFLICT_MESSAGE, "location"
    return GENERIC_CONFLICT_MESSAGE, None


class ReservationCreator(BaseService):
    """Orchestrates validation, optional locking, conflict checks and persistence."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        *,
        reservation_repository: Optional[ReservationRepository] = None,
        conflict_detector: Optional[ConflictDetector] = None,
        lock_manager: Optional[SlotLockManager] = None,
        event_publisher: Optional[EventPublisher] = None,
        usage_counters: Optional[UsageCounters] = None,
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
        self.usage_counters: UsageCounters = usage_counters or PrometheusUsageCounters()

    def _advance(self, stage: CreationStage, tenant_id: str, **context) -> CreationStage:
        self.logger.debug(
            "reservation_stage", extra={"stage": stage.value, "tenant_id": tenant_id, **context}
        )
        return stage

    @staticmethod
    def _validate(tenant_id: str, request: ReservationCreate) -> None:
        if not tenant_id or not str(tenant_id).strip():
            raise ValidationException("tenant_id is required")
        if request.start_at is None or request.end_at is None:
            raise ValidationException("start_at and end_at are required")
        if ensure_utc(request.start_at) >= ensure_utc(request.end_at):
            raise ValidationException(
                "start_at must be before end_at",
                details={
                    "start_at": request.start_at.isoformat(),
                    "end_at": request.end_at.isoformat(),
                },
            )
        if request.status not in CREATABLE_STATUSES:
            raise ValidationException(
                f"Reservations can only be created as {' or '.join(CREATABLE_STATUSES)}"
            )

    @staticmethod
    def resource_scope(request: ReservationCreate) -> Tuple[List[str], List[str]]:
        """
        (resource_ids, staff_ids) for the conflict check.

        A requested staff member scopes the check to that person (and the
        location, when one is also given). A location alone scopes to the
        location. Nothing requested means tenant-wide.
        """
        if request.staff_id:
            resource_ids = [request.staff_id]
            if request.location_id:
                resource_ids.append(request.location_id)
            return resource_ids, [request.staff_id]
        if request.location_id:
            return [request.location_id], []
        return [], []

    @BaseService.measure_operation("create_reservation")
    def create(
        self,
        tenant_id: str,
        request: ReservationCreate,
        actor: Optional[ReservationActor] = None,
        *,
        use_slot_lock: Optional[bool] = None,
        lock_ttl: TTLArg = None,
        session_id: Optional[str] = None,
    ) -> Reservation:
        """
        Create a reservation.

        Args:
            tenant_id: Tenant the reservation belongs to
            request: Window, resources, customer details and initial status
            actor: Who is creating it, for the audit log
            use_slot_lock: Wrap the check-then-insert in a slot lock;
                defaults to settings.lock_internal_reservations
            lock_ttl: Lock lifetime when locking
            session_id: Lock owner; lets a caller renew a lock it already holds

        Returns:
            The committed reservation

        Raises:
            ValidationException: malformed request
            SlotLockedException: another session holds the slot
            BookingConflictException: overlapping reservations or unavailable staff
            PersistenceException: the store failed
        """
        started = time.monotonic()
        stage = self._advance(CreationStage.VALIDATING, tenant_id)
        grant: Optional[SlotLockGrant] = None
        locking = settings.lock_internal_reservations if use_slot_lock is None else use_slot_lock

        try:
            self._validate(tenant_id, request)
            start_at, end_at = ensure_utc(request.start_at), ensure_utc(request.end_at)
            resource_ids, staff_ids = self.resource_scope(request)

            if locking:
                stage = self._advance(CreationStage.LOCKING, tenant_id)
                grant = self.lock_manager.acquire_lock(
                    tenant_id,
                    start_at,
                    end_at,
                    resource_id=request.staff_id or request.location_id,
                    session_id=session_id,
                    ttl=lock_ttl,
                )

            stage = self._advance(CreationStage.CHECKING_CONFLICTS, tenant_id)
            result = self.conflict_detector.check_conflicts(
                tenant_id,
                start_at,
                end_at,
                resource_ids=resource_ids or None,
                staff_ids=staff_ids,
            )
            if staff_ids:
                stage = self._advance(
                    CreationStage.CHECKING_AVAILABILITY, tenant_id, staff_ids=staff_ids
                )
            if result.has_conflict:
                raise BookingConflictException(conflicts=result.conflicts)

            stage = self._advance(CreationStage.PERSISTING, tenant_id)
            reservation = self._persist(tenant_id, request, resource_ids)

            prometheus_metrics.record_reservation_created(reservation.source, reservation.status)
            self._handle_post_reservation_tasks(reservation, actor)
            stage = self._advance(CreationStage.COMPLETED, tenant_id, reservation_id=reservation.id)
        except Exception as exc:
            self._advance(
                CreationStage.FAILED,
                tenant_id,
                failed_stage=stage.value,
                error_type=type(exc).__name__,
            )
            prometheus_metrics.observe_reservation_creation(time.monotonic() - started, "failed")
            raise
        finally:
            if grant is not None:
                self.lock_manager.release_quietly(grant.lock_id)

        prometheus_metrics.observe_reservation_creation(time.monotonic() - started, "created")
        self.log_operation(
            "reservation_created",
            tenant_id=tenant_id,
            reservation_id=reservation.id,
            source=reservation.source,
            locked=grant is not None,
        )
        return reservation

    def _persist(
        self, tenant_id: str, request: ReservationCreate, resource_ids: List[str]
    ) -> Reservation:
        start_at, end_at = ensure_utc(request.start_at), ensure_utc(request.end_at)
        try:
            with self.transaction():
                self.reservation_repository.lock_tenant_for_write(tenant_id)
                # Re-check under the tenant write lock; the pre-check may be stale
                racing = self.reservation_repository.find_overlapping(
                    tenant_id, start_at, end_at, resource_ids=resource_ids or None
                )
                if racing:
                    raise BookingConflictException(
                        conflicts=ConflictDetector.overlapping_conflicts(
                            racing, bool(resource_ids)
                        )
                    )
                reservation = self.reservation_repository.create(
                    id=str(ulid.ULID()),
                    tenant_id=tenant_id,
                    start_at=start_at,
                    end_at=end_at,
                    status=request.status,
                    staff_id=request.staff_id,
                    location_id=request.location_id,
                    service_id=request.service_id,
                    customer_name=request.customer_name,
                    customer_phone=request.customer_phone,
                    customer_email=request.customer_email,
                    notes=request.notes,
                    source=request.source,
                    metadata_json=request.metadata,
                )
        except UniqueViolation as exc:
            message, scope = conflict_message_for_constraint(exc.constraint_name)
            details = {"constraint": exc.constraint_name}
            if scope:
                details["conflict_scope"] = scope
            raise BookingConflictException(
                message,
                conflicts=self._committed_conflicts(tenant_id, start_at, end_at, resource_ids),
                details=details,
            ) from exc
        except RepositoryException as exc:
            raise PersistenceException("Failed to persist reservation") from exc
        return reservation

    def _committed_conflicts(
        self, tenant_id: str, start_at: datetime, end_at: datetime, resource_ids: List[str]
    ) -> List[BookingConflict]:
        """Reservations that won the race, looked up after the rollback."""
        try:
            rows = self.reservation_repository.find_overlapping(
                tenant_id, start_at, end_at, resource_ids=resource_ids or None
            )
        except RepositoryException:
            self.logger.warning(
                "conflict_lookup_failed", extra={"tenant_id": tenant_id}, exc_info=True
            )
            return []
        return ConflictDetector.overlapping_conflicts(rows, bool(resource_ids))

    # Post-persistence side effects

    def _best_effort(self, effect: str, reservation: Reservation, action: Callable[[], object]) -> None:
        try:
            with self.transaction():
                action()
        except Exception as exc:
            self.logger.error(
                "reservation_side_effect_failed",
                extra={
                    "effect": effect,
                    "reservation_id": reservation.id,
                    "tenant_id": reservation.tenant_id,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    def _handle_post_reservation_tasks(
        self, reservation: Reservation, actor: Optional[ReservationActor]
    ) -> None:
        """Fire-and-forget effects; the reservation is already committed."""
        self._best_effort(
            "event",
            reservation,
            lambda: self.event_publisher.publish(
                ReservationCreated(
                    reservation_id=reservation.id,
                    tenant_id=reservation.tenant_id,
                    start_at=reservation.start_at,
                    end_at=reservation.end_at,
                    staff_id=reservation.staff_id,
                    location_id=reservation.location_id,
                )
            ),
        )
        self._best_effort(
            "usage_counter",
            reservation,
            lambda: self.usage_counters.increment_reservations(reservation.tenant_id),
        )
        self._best_effort(
            "audit_log",
            reservation,
            lambda: self.reservation_repository.add_log(
                reservation_id=reservation.id,
                tenant_id=reservation.tenant_id,
                action="created",
                actor_id=actor.id if actor else None,
                actor_role=actor.role if actor else None,
                notes={"source": reservation.source, "status": reservation.status},
            ),
        )
        self._best_effort("reminders", reservation, lambda: self._schedule_reminders(reservation))
        if reservation.service_id:
            self._best_effort(
                "service_line",
                reservation,
                lambda: self.reservation_repository.attach_service(
                    reservation_id=reservation.id,
                    service_id=reservation.service_id,
                    tenant_id=reservation.tenant_id,
                    quantity=1,
                ),
            )

    def _schedule_reminders(self, reservation: Reservation) -> int:
        """Queue reminders that are still in the future; returns how many."""
        now = self.clock.now()
        scheduled = 0
        for hours in settings.reminder_offsets_hours:
            remind_at = ensure_utc(reservation.start_at) - timedelta(hours=hours)
            if remind_at <= now:
                continue
            self.reservation_repository.add_reminder(
                tenant_id=reservation.tenant_id,
                reservation_id=reservation.id,
                remind_at=remind_at,
                method=settings.reminder_method,
                status="pending",
                reason=f"{hours}h",
            )
            scheduled += 1
        return scheduled

# backend/app/services/conflict_detector.py
"""
Conflict Detector

Decides whether a proposed window would collide with existing reservations.

Intervals are half-open: [s1, e1) and [s2, e2) conflict iff s1 < e2 and
e1 > s2, so back-to-back reservations never conflict. Only pending and
confirmed reservations participate.

Scoping:
- no resource ids: tenant-wide. Every overlapping reservation conflicts
  (time_overlap), since an unassigned booking may later be given any resource.
- resource ids: only reservations on those staff/location ids conflict
  (resource_double_booking), and staff schedules are checked as well
  (staff_unavailable).
"""

from datetime import datetime, timedelta
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import PersistenceException, RepositoryException, ValidationException
from ..core.timezone_utils import day_of_week, ensure_utc
from ..models.reservation import Reservation
from ..models.staff_availability import StaffAvailability
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.reservation_repository import ReservationRepository
from ..schemas.reservation import BookingConflict, ConflictResult, ConflictType, OpenWindow
from .base import BaseService
from .staff_availability import StaffAvailabilityValidator

logger = logging.getLogger(__name__)


def normalize_resource_ids(resource_ids: Optional[Iterable[str]]) -> List[str]:
    """
    Strip, drop blanks and de-duplicate while keeping order.

    An explicitly supplied list with nothing usable in it is rejected rather
    than silently widened to a tenant-wide check.
    """
    if resource_ids is None:
        return []
    supplied = list(resource_ids)
    if not supplied:
        return []

    cleaned: List[str] = []
    for value in supplied:
        if not isinstance(value, str):
            raise ValidationException("Resource ids must be strings")
        value = value.strip()
        if value and value not in cleaned:
            cleaned.append(value)
    if not cleaned:
        raise ValidationException("Resource ids must not be blank")
    return cleaned


class ConflictDetector(BaseService):
    """Overlap detection scoped by resource, plus staff availability."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        reservation_repository: Optional[ReservationRepository] = None,
        availability_validator: Optional[StaffAvailabilityValidator] = None,
    ):
        super().__init__(db, clock)
        self.reservation_repository = (
            reservation_repository or RepositoryFactory.create_reservation_repository(db)
        )
        self.availability_validator = availability_validator or StaffAvailabilityValidator(
            db, clock=self.clock
        )

    @staticmethod
    def _validate_window(tenant_id: str, start_at: datetime, end_at: datetime) -> None:
        if not tenant_id or not str(tenant_id).strip():
            raise ValidationException("tenant_id is required")
        if start_at is None or end_at is None:
            raise ValidationException("start_at and end_at are required")
        if ensure_utc(start_at) >= ensure_utc(end_at):
            raise ValidationException("start_at must be before end_at")

    @staticmethod
    def overlapping_conflicts(
        reservations: Iterable[Reservation], scoped: bool
    ) -> List[BookingConflict]:
        """Convert overlapping reservations into conflict entries."""
        conflict_type = (
            ConflictType.RESOURCE_DOUBLE_BOOKING if scoped else ConflictType.TIME_OVERLAP
        )
        return [
            BookingConflict(
                reservation_id=reservation.id,
                start_at=reservation.start_at,
                end_at=reservation.end_at,
                resource_id=reservation.resource_id,
                conflict_type=conflict_type,
            )
            for reservation in reservations
        ]

    @BaseService.measure_operation("check_conflicts")
    def check_conflicts(
        self,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        resource_ids: Optional[Iterable[str]] = None,
        exclude_reservation_id: Optional[str] = None,
        staff_ids: Optional[Iterable[str]] = None,
    ) -> ConflictResult:
        """
        Check a window for conflicts.

        Args:
            tenant_id: Tenant scope
            start_at: Window start (inclusive)
            end_at: Window end (exclusive)
            resource_ids: Staff and/or location ids to scope the check to;
                omitted or empty means tenant-wide
            exclude_reservation_id: Reservation being modified, ignored
            staff_ids: Ids whose schedules are validated; defaults to
                ``resource_ids``. Pass an explicit list when some resource
                ids are locations.

        Returns:
            ConflictResult with every conflict found

        Raises:
            ValidationException: bad tenant, window or resource ids
            PersistenceException: the store failed
        """
        self._validate_window(tenant_id, start_at, end_at)
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        ids = normalize_resource_ids(resource_ids)
        scoped = bool(ids)

        try:
            overlapping = self.reservation_repository.find_overlapping(
                tenant_id,
                start_at,
                end_at,
                resource_ids=ids or None,
                exclude_reservation_id=exclude_reservation_id,
            )
        except RepositoryException as exc:
            raise PersistenceException("Failed to query reservations for conflicts") from exc

        conflicts = self.overlapping_conflicts(overlapping, scoped)

        if scoped:
            to_validate = ids if staff_ids is None else normalize_resource_ids(staff_ids)
            if to_validate:
                conflicts.extend(
                    self.availability_validator.check_availability(
                        tenant_id, to_validate, start_at, end_at
                    )
                )

        result = ConflictResult.from_conflicts(conflicts)
        prometheus_metrics.record_conflict_check(
            "conflict" if result.has_conflict else "clear",
            [c.conflict_type.value for c in conflicts],
        )
        if result.has_conflict:
            logger.info(
                "reservation_conflict_detected",
                extra={
                    "tenant_id": tenant_id,
                    "start_at": start_at.isoformat(),
                    "end_at": end_at.isoformat(),
                    "resource_ids": ids,
                    "conflict_count": len(conflicts),
                    "conflict_types": sorted({c.conflict_type.value for c in conflicts}),
                },
            )
        return result

    @BaseService.measure_operation("find_open_windows")
    def find_open_windows(
        self,
        tenant_id: str,
        window_start: datetime,
        window_end: datetime,
        duration: timedelta,
        step: Optional[timedelta] = None,
        resource_ids: Optional[Iterable[str]] = None,
    ) -> List[OpenWindow]:
        """
        Walk candidate windows of ``duration`` every ``step`` inside the range.

        One range query feeds every candidate. When exactly one resource id is
        given it is treated as a staff member and candidates must also fit
        that person's schedule.
        """
        self._validate_window(tenant_id, window_start, window_end)
        window_start, window_end = ensure_utc(window_start), ensure_utc(window_end)
        step = step or timedelta(minutes=settings.slot_interval_minutes)
        if duration <= timedelta(0) or step <= timedelta(0):
            raise ValidationException("duration and step must be positive")

        ids = normalize_resource_ids(resource_ids)
        try:
            busy = self.reservation_repository.find_overlapping(
                tenant_id, window_start, window_end, resource_ids=ids or None
            )
        except RepositoryException as exc:
            raise PersistenceException("Failed to query reservations for open windows") from exc

        staff_id = ids[0] if len(ids) == 1 else None
        schedules: Dict[int, Optional[StaffAvailability]] = {}

        windows: List[OpenWindow] = []
        cursor = window_start
        while cursor + duration <= window_end:
            candidate_end = cursor + duration
            available = not any(r.overlaps(cursor, candidate_end) for r in busy)
            if available and staff_id is not None:
                weekday = day_of_week(cursor, self.availability_validator.timezone_name)
                if weekday not in schedules:
                    try:
                        rows = self.availability_validator.availability_repository.get_for_day(
                            tenant_id, [staff_id], weekday
                        )
                    except RepositoryException as exc:
                        raise PersistenceException("Failed to load staff availability") from exc
                    schedules[weekday] = rows.get(staff_id)
                available = self.availability_validator.fits_schedule(
                    schedules[weekday], cursor, candidate_end
                )
            windows.append(OpenWindow(start_at=cursor, end_at=candidate_end, available=available))
            cursor += step
        return windows

# backend/app/services/staff_availability.py
"""
Staff Availability Validator

Checks a proposed window against each staff member's schedule for the
weekday the window starts on (availability timezone, Sunday = 0).

A staff member is unavailable when they have no schedule row for that day,
the row is switched off, the window is not contained in working hours, or
the window overlaps their break. Windows that run past midnight are judged
against the start day only, so they never fit a working day.
"""

from datetime import datetime
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.clock import Clock
from ..core.exceptions import PersistenceException, RepositoryException
from ..core.timezone_utils import day_of_week, ensure_utc, minutes_of_day, time_to_minutes
from ..models.staff_availability import StaffAvailability
from ..repositories.factory import RepositoryFactory
from ..repositories.staff_availability_repository import StaffAvailabilityRepository
from ..schemas.reservation import BookingConflict, ConflictType
from .base import BaseService

logger = logging.getLogger(__name__)


def _dedupe(staff_ids: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for staff_id in staff_ids:
        if staff_id and staff_id not in seen:
            seen.append(staff_id)
    return seen


class StaffAvailabilityValidator(BaseService):
    """Working-hours and break validation for staff resources."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        availability_repository: Optional[StaffAvailabilityRepository] = None,
        timezone_name: Optional[str] = None,
    ):
        super().__init__(db, clock)
        self.availability_repository = (
            availability_repository or RepositoryFactory.create_staff_availability_repository(db)
        )
        self.timezone_name = timezone_name

    @BaseService.measure_operation("check_staff_availability")
    def check_availability(
        self,
        tenant_id: str,
        staff_ids: Iterable[str],
        start_at: datetime,
        end_at: datetime,
    ) -> List[BookingConflict]:
        """
        Return one staff_unavailable conflict per failed rule per staff id.

        A single window can fail both working hours and the break for the
        same staff member; both are reported.
        """
        ids = _dedupe(staff_ids)
        if not ids:
            return []

        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        weekday = day_of_week(start_at, self.timezone_name)
        try:
            schedules = self.availability_repository.get_for_day(tenant_id, ids, weekday)
        except RepositoryException as exc:
            raise PersistenceException("Failed to load staff availability") from exc

        start_minute = minutes_of_day(start_at, tz_name=self.timezone_name)
        # End is measured on the start day's clock
        end_minute = minutes_of_day(end_at, anchor=start_at, tz_name=self.timezone_name)

        conflicts: List[BookingConflict] = []
        for staff_id in ids:
            reasons = self._violations(schedules.get(staff_id), start_minute, end_minute)
            for reason in reasons:
                logger.debug(
                    "staff_unavailable",
                    extra={
                        "tenant_id": tenant_id,
                        "staff_id": staff_id,
                        "day_of_week": weekday,
                        "reason": reason,
                    },
                )
                conflicts.append(
                    BookingConflict(
                        reservation_id=None,
                        start_at=start_at,
                        end_at=end_at,
                        resource_id=staff_id,
                        conflict_type=ConflictType.STAFF_UNAVAILABLE,
                    )
                )
        return conflicts

    @staticmethod
    def _violations(
        schedule: Optional[StaffAvailability], start_minute: int, end_minute: int
    ) -> List[str]:
        if schedule is None:
            return ["no_schedule"]
        if not schedule.is_available:
            return ["day_off"]

        reasons = []
        work_start = time_to_minutes(schedule.start_time)
        work_end = time_to_minutes(schedule.end_time)
        if start_minute < work_start or end_minute > work_end:
            reasons.append("outside_working_hours")

        if schedule.has_break:
            break_start = time_to_minutes(schedule.break_start)
            break_end = time_to_minutes(schedule.break_end)
            if start_minute < break_end and end_minute > break_start:
                reasons.append("overlaps_break")
        return reasons

    def fits_schedule(
        self, schedule: Optional[StaffAvailability], start_at: datetime, end_at: datetime
    ) -> bool:
        """In-memory variant used when scanning many candidate windows for one staff member."""
        start_minute = minutes_of_day(start_at, tz_name=self.timezone_name)
        end_minute = minutes_of_day(end_at, anchor=start_at, tz_name=self.timezone_name)
        return not self._violations(schedule, start_minute, end_minute)

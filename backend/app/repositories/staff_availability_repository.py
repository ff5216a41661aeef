"""Read access to staff working hours."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.staff_availability import StaffAvailability
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class StaffAvailabilityRepository(BaseRepository[StaffAvailability]):
    """Per-weekday schedules, keyed by staff id."""

    def __init__(self, db: Session):
        super().__init__(db, StaffAvailability)

    def get_for_day(
        self, tenant_id: str, staff_ids: Iterable[str], day_of_week: int
    ) -> Dict[str, StaffAvailability]:
        """
        Schedule rows for the given staff members on one weekday.

        Staff without a row are simply absent from the result.
        """
        ids = list(staff_ids)
        if not ids:
            return {}
        try:
            rows = cast(
                List[StaffAvailability],
                self.db.query(StaffAvailability)
                .filter(
                    StaffAvailability.tenant_id == tenant_id,
                    StaffAvailability.staff_id.in_(ids),
                    StaffAvailability.day_of_week == day_of_week,
                )
                .all(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load staff availability: %s", str(exc))
            raise RepositoryException("Failed to load staff availability") from exc
        return {row.staff_id: row for row in rows}

# backend/app/repositories/reservation_repository.py
"""
Reservation Repository

Range queries and writes for committed reservations. Overlap uses the
half-open rule ``existing.start_at < end AND existing.end_at > start`` so
back-to-back reservations never collide. Only pending and confirmed
reservations occupy a slot.
"""

from datetime import datetime
import hashlib
import logging
from typing import Iterable, List, Optional, cast

from sqlalchemy import or_, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..models.reservation import (
    ACTIVE_STATUSES,
    Reservation,
    ReservationLog,
    ReservationReminder,
    ReservationServiceLine,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

STAFF_OVERLAP_CONSTRAINT = "reservations_no_overlap_per_staff"
LOCATION_OVERLAP_CONSTRAINT = "reservations_no_overlap_per_location"

# Matches no rows but still acquires the SQLite RESERVED lock
SQLITE_WRITE_LOCK_STATEMENT = "UPDATE reservations SET id = id WHERE 1 = 0"


def tenant_lock_key(tenant_id: str) -> int:
    """Signed 64-bit key for pg_advisory_xact_lock derived from the tenant id."""
    digest = hashlib.sha256(f"reservations:{tenant_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


class ReservationRepository(BaseRepository[Reservation]):
    """Data access for reservations and their side-effect rows."""

    known_constraints = (STAFF_OVERLAP_CONSTRAINT, LOCATION_OVERLAP_CONSTRAINT)

    def __init__(self, db: Session):
        super().__init__(db, Reservation)
        self.logger = logging.getLogger(__name__)

    # Conflict queries

    def _active_window_query(
        self,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        resource_ids: Optional[Iterable[str]] = None,
        exclude_reservation_id: Optional[str] = None,
    ) -> Query:
        query = self.db.query(Reservation).filter(
            Reservation.tenant_id == tenant_id,
            Reservation.status.in_(ACTIVE_STATUSES),
            Reservation.start_at < end_at,
            Reservation.end_at > start_at,
        )
        ids = list(resource_ids or [])
        if ids:
            query = query.filter(
                or_(Reservation.staff_id.in_(ids), Reservation.location_id.in_(ids))
            )
        if exclude_reservation_id:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return query

    def find_overlapping(
        self,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        resource_ids: Optional[Iterable[str]] = None,
        exclude_reservation_id: Optional[str] = None,
    ) -> List[Reservation]:
        """
        Active reservations overlapping [start_at, end_at).

        Args:
            tenant_id: Tenant scope
            start_at: Window start (inclusive)
            end_at: Window end (exclusive)
            resource_ids: When given, only reservations whose staff_id or
                location_id is in the set are returned
            exclude_reservation_id: Reservation being modified

        Returns:
            Overlapping reservations ordered by start time
        """
        try:
            query = self._active_window_query(
                tenant_id, start_at, end_at, resource_ids, exclude_reservation_id
            )
            return cast(List[Reservation], query.order_by(Reservation.start_at).all())
        except SQLAlchemyError as e:
            self.logger.error(f"Error finding overlapping reservations: {str(e)}")
            raise RepositoryException(f"Failed to query overlapping reservations: {str(e)}") from e

    def get_for_tenant(self, tenant_id: str, reservation_id: str) -> Optional[Reservation]:
        try:
            return cast(
                Optional[Reservation],
                self.db.query(Reservation)
                .filter(Reservation.tenant_id == tenant_id, Reservation.id == reservation_id)
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting reservation {reservation_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve reservation: {str(e)}") from e

    def lock_tenant_for_write(self, tenant_id: str) -> None:
        """
        Serialise reservation writers until the transaction ends.

        PostgreSQL takes a per-tenant advisory transaction lock. SQLite has no
        row or advisory locks, so a no-op UPDATE takes the database write lock
        instead; pysqlite opens its transaction on that statement, so the
        overlap re-check that follows reads under the lock. Must be the first
        statement of the write transaction.
        """
        dialect = self.dialect_name
        try:
            if dialect == "postgresql":
                self.db.execute(
                    text("SELECT pg_advisory_xact_lock(:key)"), {"key": tenant_lock_key(tenant_id)}
                )
            elif dialect == "sqlite":
                self.db.execute(text(SQLITE_WRITE_LOCK_STATEMENT))
        except SQLAlchemyError as e:
            self.logger.error(f"Error taking tenant write lock for {tenant_id}: {str(e)}")
            raise RepositoryException(f"Failed to serialise reservation write: {str(e)}") from e

    # Side-effect rows

    def add_log(self, **kwargs) -> ReservationLog:
        return self._add(ReservationLog(**kwargs))

    def add_reminder(self, **kwargs) -> ReservationReminder:
        return self._add(ReservationReminder(**kwargs))

    def attach_service(self, **kwargs) -> ReservationServiceLine:
        return self._add(ReservationServiceLine(**kwargs))

    def _add(self, row):
        try:
            self.db.add(row)
            self.db.flush()
            return row
        except SQLAlchemyError as e:
            self.logger.error(f"Error writing {type(row).__name__}: {str(e)}")
            self.db.rollback()
            raise RepositoryException(f"Failed to write {type(row).__name__}: {str(e)}") from e

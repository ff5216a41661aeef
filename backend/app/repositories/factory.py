# backend/app/repositories/factory.py
"""
Repository Factory for the reservation engine.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .job_repository import JobRepository
    from .reservation_repository import ReservationRepository
    from .slot_lock_repository import SlotLockRepository
    from .staff_availability_repository import StaffAvailabilityRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_reservation_repository(db: Session) -> "ReservationRepository":
        """Create repository for reservation range queries and writes."""
        from .reservation_repository import ReservationRepository

        return ReservationRepository(db)

    @staticmethod
    def create_slot_lock_repository(db: Session) -> "SlotLockRepository":
        """Create repository for advisory slot locks."""
        from .slot_lock_repository import SlotLockRepository

        return SlotLockRepository(db)

    @staticmethod
    def create_staff_availability_repository(db: Session) -> "StaffAvailabilityRepository":
        """Create repository for staff working hours."""
        from .staff_availability_repository import StaffAvailabilityRepository

        return StaffAvailabilityRepository(db)

    @staticmethod
    def create_job_repository(db: Session) -> "JobRepository":
        """Create repository for the background job outbox."""
        from .job_repository import JobRepository

        return JobRepository(db)

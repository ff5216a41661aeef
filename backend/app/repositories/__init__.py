# backend/app/repositories/__init__.py
"""
Repository layer for the reservation engine.

Key Components:
- BaseRepository: Foundation for all repositories with shared error translation
- RepositoryFactory: Factory for creating repository instances
- ReservationRepository: Range queries, guarded inserts, side-effect rows
- SlotLockRepository: Advisory lock rows keyed by (tenant_id, slot_key)
- StaffAvailabilityRepository: Per-weekday staff schedules
- JobRepository: Background job outbox

Usage:
    from app.repositories import RepositoryFactory

    # In a service:
    repository = RepositoryFactory.create_reservation_repository(db)
    overlapping = repository.find_overlapping(tenant_id, start_at, end_at)
"""

from .base_repository import BaseRepository
from .factory import RepositoryFactory
from .job_repository import JobRepository
from .reservation_repository import ReservationRepository
from .slot_lock_repository import SlotLockRepository
from .staff_availability_repository import StaffAvailabilityRepository

__all__ = [
    "BaseRepository",
    "JobRepository",
    "RepositoryFactory",
    "ReservationRepository",
    "SlotLockRepository",
    "StaffAvailabilityRepository",
]

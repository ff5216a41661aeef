# backend/app/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets fresh service objects bound to its own session.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from ...core.clock import Clock, system_clock
from ...schemas.reservation import ReservationActor
from ...services.conflict_detector import ConflictDetector
from ...services.public_booking_service import PublicBookingService
from ...services.reservation_creator import ReservationCreator
from ...services.reservation_lifecycle import ReservationLifecycleService
from ...services.slot_lock_manager import SlotLockManager
from .database import get_db


def get_clock() -> Clock:
    """Time source for services; overridden in tests."""
    return system_clock


def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Optional[ReservationActor]:
    """Audit identity forwarded by the gateway, if any."""
    if not x_actor_id and not x_actor_role:
        return None
    return ReservationActor(id=x_actor_id, role=x_actor_role)


def get_slot_lock_manager(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> SlotLockManager:
    return SlotLockManager(db, clock=clock)


def get_conflict_detector(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ConflictDetector:
    return ConflictDetector(db, clock=clock)


def get_reservation_creator(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ReservationCreator:
    return ReservationCreator(db, clock=clock)


def get_public_booking_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> PublicBookingService:
    return PublicBookingService(db, clock=clock)


def get_reservation_lifecycle_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ReservationLifecycleService:
    return ReservationLifecycleService(db, clock=clock)

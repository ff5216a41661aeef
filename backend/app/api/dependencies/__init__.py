# backend/app/api/dependencies/__init__.py
"""
Central export point for all dependencies.

This module re-exports all dependencies from submodules
for convenient access throughout the application.
"""

from .database import get_db
from .services import (
    get_actor,
    get_clock,
    get_conflict_detector,
    get_public_booking_service,
    get_reservation_creator,
    get_reservation_lifecycle_service,
    get_slot_lock_manager,
)

__all__ = [
    # Database
    "get_db",
    # Services
    "get_actor",
    "get_clock",
    "get_conflict_detector",
    "get_public_booking_service",
    "get_reservation_creator",
    "get_reservation_lifecycle_service",
    "get_slot_lock_manager",
]

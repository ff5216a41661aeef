# backend/app/tasks/beat_schedule.py
"""
Celery Beat schedule configuration for the reservation engine.
"""

from datetime import timedelta
from typing import Any

from app.core.config import settings

# Main beat schedule configuration
CELERYBEAT_SCHEDULE: dict[str, dict[str, Any]] = {
    # Expired advisory locks - frequent, cheap delete
    "cleanup-expired-slot-locks": {
        "task": "slot_locks.cleanup_expired",
        "schedule": timedelta(seconds=settings.slot_lock_sweep_interval_seconds),
        "options": {
            "queue": "maintenance",
            "priority": 5,
            # A missed sweep is superseded by the next one
            "expires": settings.slot_lock_sweep_interval_seconds,
        },
    },
}

# Schedule configuration for different environments
SCHEDULE_CONFIG: dict[str, dict[str, dict[str, Any]]] = {
    "production": CELERYBEAT_SCHEDULE,
    "development": {
        "cleanup-expired-slot-locks": {
            **CELERYBEAT_SCHEDULE["cleanup-expired-slot-locks"],
            "options": {"queue": "celery", "priority": 5},
        },
    },
}


def get_beat_schedule(environment: str = "production") -> dict[str, dict[str, Any]]:
    """
    Get the beat schedule for the specified environment.

    Args:
        environment: The environment name (production, development, testing)

    Returns:
        Mapping of task name to Celery beat configuration dict
    """
    # Start from the base schedule, then apply environment-specific overrides
    base: dict[str, dict[str, Any]] = dict(CELERYBEAT_SCHEDULE)
    overrides = SCHEDULE_CONFIG.get(environment)
    if overrides:
        base.update(overrides)
    return base

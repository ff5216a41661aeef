# backend/app/tasks/__init__.py
"""
Celery tasks package for the reservation engine.

This package contains the periodic maintenance tasks, currently the
expired slot lock sweep.
"""

from app.tasks.celery_app import BaseTask, celery_app
from app.tasks.slot_lock_maintenance import cleanup_expired_slot_locks

__all__ = [
    "BaseTask",
    "celery_app",
    "cleanup_expired_slot_locks",
]

# This allows running celery with: celery -A app.tasks worker

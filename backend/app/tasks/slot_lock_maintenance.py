# backend/app/tasks/slot_lock_maintenance.py
"""
Periodic slot lock sweep.

Expired locks already stop blocking acquirers; sweeping just keeps the
slot_locks table small.
"""

import logging
from typing import Any, Callable, Dict, TypeVar, cast

from celery import shared_task

from app.database import get_db_session
from app.services.slot_lock_manager import SlotLockManager

logger = logging.getLogger(__name__)

_TaskFunc = TypeVar("_TaskFunc", bound=Callable[..., Any])


def _typed_shared_task(*args: Any, **kwargs: Any) -> Callable[[_TaskFunc], _TaskFunc]:
    """Typed wrapper for Celery's shared_task decorator."""
    return cast(Callable[[_TaskFunc], _TaskFunc], shared_task(*args, **kwargs))


@_typed_shared_task(name="slot_locks.cleanup_expired", ignore_result=True)
def cleanup_expired_slot_locks() -> Dict[str, int]:
    """Delete every slot lock whose expiry has passed."""
    with get_db_session() as db:
        removed = SlotLockManager(db).cleanup_expired_locks()
    logger.info("[SLOT-LOCKS] Swept %d expired locks", removed)
    return {"removed": removed}

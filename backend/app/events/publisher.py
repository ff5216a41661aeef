"""Event publisher - writes reservation events to the background job outbox."""
from datetime import datetime
import logging
from typing import Any, Dict, Optional, Protocol

from app.core.clock import Clock, system_clock
from app.core.timezone_utils import isoformat_utc
from app.repositories.job_repository import JobRepository

logger = logging.getLogger(__name__)

EVENT_JOB_PREFIX = "event:"


class Event(Protocol):
    """Protocol for event types."""

    def to_dict(self) -> Dict[str, Any]:
        ...


def job_type_for(event: Event) -> str:
    return f"{EVENT_JOB_PREFIX}{type(event).__name__}"


class EventPublisher:
    """Queues reservation events in the caller's transaction."""

    def __init__(self, job_repository: JobRepository, clock: Optional[Clock] = None):
        self.job_repo = job_repository
        self.clock: Clock = clock or system_clock

    def publish(self, event: Event) -> str:
        """
        Queue an event; returns the job id.

        The job becomes visible to the worker once the surrounding transaction
        commits. Datetimes are written as UTC ISO-8601 strings and the payload
        is stamped with ``occurred_at``.
        """
        payload = {
            key: isoformat_utc(value) if isinstance(value, datetime) else value
            for key, value in event.to_dict().items()
        }
        payload.setdefault("occurred_at", isoformat_utc(self.clock.now()))

        job_id = self.job_repo.enqueue(type=job_type_for(event), payload=payload)
        logger.debug(
            "reservation_event_queued",
            extra={
                "task_id": job_id,
                "event": type(event).__name__,
                "tenant_id": payload.get("tenant_id"),
            },
        )
        return job_id

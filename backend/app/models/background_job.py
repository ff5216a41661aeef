"""Outbox table for domain events processed by the background worker."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from ..database import Base
from .types import JSONType, UTCDateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BackgroundJob(Base):
    """Persisted background job entry for retryable workflows."""

    __tablename__ = "background_jobs"

    id = Column(String, primary_key=True, index=True)
    type = Column(String, nullable=False)
    payload = Column(JSONType, nullable=False)
    status = Column(String(20), nullable=False, default="queued")
    attempts = Column(Integer, nullable=False, default=0)
    available_at = Column(UTCDateTime, nullable=False, default=_now_utc)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

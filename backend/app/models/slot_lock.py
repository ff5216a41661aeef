"""Advisory slot lock table."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Index, String, UniqueConstraint
from sqlalchemy.sql import func
import ulid

from ..database import Base
from .types import UTCDateTime


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class SlotLock(Base):
    """
    Short-lived exclusivity marker for one (tenant, window, resource) slot.

    The unique constraint on (tenant_id, slot_key) is what makes "create if
    absent" atomic; expired rows are purged for a key before a new insert.
    """

    __tablename__ = "slot_locks"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    tenant_id = Column(String(64), nullable=False)
    slot_key = Column(String(64), nullable=False)
    resource_id = Column(String(64), nullable=True)
    session_id = Column(String(128), nullable=True)
    expires_at = Column(UTCDateTime, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_now_utc, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("tenant_id", "slot_key", name="uq_slot_locks_tenant_slot_key"),
        Index("idx_slot_locks_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<SlotLock {self.id} key={self.slot_key[:12]} expires={self.expires_at}>"

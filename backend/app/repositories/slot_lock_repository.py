"""Repository for advisory slot lock rows."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.slot_lock import SlotLock
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class SlotLockRepository(BaseRepository[SlotLock]):
    """Data access helpers for the slot_locks table."""

    known_constraints = ("uq_slot_locks_tenant_slot_key", "slot_locks.slot_key")

    def __init__(self, db: Session):
        super().__init__(db, SlotLock)

    def find_live(self, tenant_id: str, slot_key: str, now: datetime) -> List[SlotLock]:
        """Locks for the key whose expiry is still in the future."""
        try:
            return cast(
                List[SlotLock],
                self.db.query(SlotLock)
                .filter(
                    SlotLock.tenant_id == tenant_id,
                    SlotLock.slot_key == slot_key,
                    SlotLock.expires_at > now,
                )
                .all(),
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to load live slot locks: %s", str(exc))
            raise RepositoryException("Failed to load slot locks") from exc

    def purge_expired_for_key(self, tenant_id: str, slot_key: str, now: datetime) -> int:
        """Delete dead rows for one key so a fresh insert can claim it."""
        try:
            return int(
                self.db.query(SlotLock)
                .filter(
                    SlotLock.tenant_id == tenant_id,
                    SlotLock.slot_key == slot_key,
                    SlotLock.expires_at <= now,
                )
                .delete(synchronize_session=False)
            )
        except SQLAlchemyError as exc:
            self.logger.error("Failed to purge expired slot locks: %s", str(exc))
            raise RepositoryException("Failed to purge expired slot locks") from exc

    def extend(self, lock: SlotLock, expires_at: datetime) -> SlotLock:
        return self.update(lock, expires_at=expires_at)

    def delete_by_id(self, lock_id: str) -> bool:
        """Remove a lock row; False when it did not exist."""
        try:
            deleted = (
                self.db.query(SlotLock)
                .filter(SlotLock.id == lock_id)
                .delete(synchronize_session=False)
            )
            return bool(deleted)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to delete slot lock %s: %s", lock_id, str(exc))
            raise RepositoryException("Failed to delete slot lock") from exc

    def delete_expired(self, now: datetime, tenant_id: Optional[str] = None) -> int:
        """Sweep every lock whose expiry has passed."""
        try:
            query = self.db.query(SlotLock).filter(SlotLock.expires_at <= now)
            if tenant_id:
                query = query.filter(SlotLock.tenant_id == tenant_id)
            return int(query.delete(synchronize_session=False))
        except SQLAlchemyError as exc:
            self.logger.error("Failed to sweep expired slot locks: %s", str(exc))
            raise RepositoryException("Failed to sweep expired slot locks") from exc

# backend/app/services/slot_lock_manager.py
"""
Slot Lock Manager

Short-lived advisory locks over (tenant, window, resource) slots. A lock is
a row in slot_locks; the (tenant_id, slot_key) unique constraint makes the
insert the arbitration point, so two sessions racing for the same slot get
exactly one winner and one SlotLockedException.

Locks are a fast-fail optimisation for write paths, not the correctness
guarantee for reservations. Expiry is the only timeout; nothing here waits
or retries.
"""

from contextlib import contextmanager
from datetime import datetime, timedelta
import hashlib
import logging
from typing import Iterator, Optional, Union

from sqlalchemy.orm import Session
import ulid

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import (
    PersistenceException,
    RepositoryException,
    SlotLockedException,
    UniqueViolation,
    ValidationException,
)
from ..core.timezone_utils import ensure_utc, isoformat_utc
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..repositories.slot_lock_repository import SlotLockRepository
from ..schemas.reservation import SlotLockGrant
from .base import BaseService

logger = logging.getLogger(__name__)

TTLArg = Union[timedelta, int, float, None]


def compute_slot_key(
    tenant_id: str, start_at: datetime, end_at: datetime, resource_id: Optional[str] = None
) -> str:
    """
    Deterministic key for a slot.

    Instants are rendered in UTC at second precision so the same window
    always hashes the same regardless of the caller's offset.
    """
    parts = [tenant_id, isoformat_utc(start_at), isoformat_utc(end_at)]
    if resource_id:
        parts.append(resource_id)
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


class SlotLockManager(BaseService):
    """Acquire, renew, release and sweep advisory slot locks."""

    def __init__(
        self,
        db: Session,
        clock: Optional[Clock] = None,
        lock_repository: Optional[SlotLockRepository] = None,
    ):
        super().__init__(db, clock)
        self.lock_repository = lock_repository or RepositoryFactory.create_slot_lock_repository(db)

    def _resolve_ttl(self, ttl: TTLArg) -> timedelta:
        if ttl is None:
            ttl = timedelta(minutes=settings.slot_lock_default_ttl_minutes)
        elif isinstance(ttl, (int, float)) and not isinstance(ttl, bool):
            ttl = timedelta(minutes=ttl)
        elif not isinstance(ttl, timedelta):
            raise ValidationException(
                "Lock TTL must be a timedelta or a number of minutes", code="INVALID_TTL"
            )
        if ttl <= timedelta(0):
            raise ValidationException("Lock TTL must be positive", code="INVALID_TTL")
        max_ttl = timedelta(minutes=settings.slot_lock_max_ttl_minutes)
        return min(ttl, max_ttl)

    @BaseService.measure_operation("acquire_slot_lock")
    def acquire_lock(
        self,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        resource_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ttl: TTLArg = None,
    ) -> SlotLockGrant:
        """
        Claim the slot for ``ttl`` (default 10 minutes, capped at 30).

        A live lock held by the same non-empty session is renewed in place and
        keeps its id. Any other live lock makes this call fail immediately.

        Raises:
            ValidationException: blank tenant, inverted window, non-positive TTL
            SlotLockedException: another session holds a live lock on the slot
            PersistenceException: the store failed
        """
        if not tenant_id or not str(tenant_id).strip():
            raise ValidationException("tenant_id is required")
        start_at, end_at = ensure_utc(start_at), ensure_utc(end_at)
        if start_at >= end_at:
            raise ValidationException("Lock window must start before it ends")

        lifetime = self._resolve_ttl(ttl)
        slot_key = compute_slot_key(tenant_id, start_at, end_at, resource_id)
        now = self.clock.now()
        expires_at = now + lifetime
        log_context = {"tenant_id": tenant_id, "slot_key": slot_key, "resource_id": resource_id}

        try:
            live = self.lock_repository.find_live(tenant_id, slot_key, now)
        except RepositoryException as exc:
            prometheus_metrics.record_slot_lock("acquire", "error")
            raise PersistenceException("Failed to read slot locks") from exc

        if live:
            holder = live[0]
            if session_id and holder.session_id == session_id:
                return self._renew(holder, expires_at, log_context)
            prometheus_metrics.record_slot_lock("acquire", "locked")
            logger.info("slot_lock_conflict", extra=log_context)
            raise SlotLockedException(slot_key, expires_at=holder.expires_at.isoformat())

        try:
            with self.transaction():
                self.lock_repository.purge_expired_for_key(tenant_id, slot_key, now)
                lock = self.lock_repository.create(
                    id=str(ulid.ULID()),
                    tenant_id=tenant_id,
                    slot_key=slot_key,
                    resource_id=resource_id,
                    session_id=session_id,
                    expires_at=expires_at,
                )
        except UniqueViolation as exc:
            # Lost the race to a concurrent acquirer
            prometheus_metrics.record_slot_lock("acquire", "locked")
            logger.info("slot_lock_conflict", extra={**log_context, "race": True})
            raise SlotLockedException(slot_key) from exc
        except RepositoryException as exc:
            prometheus_metrics.record_slot_lock("acquire", "error")
            raise PersistenceException("Failed to acquire slot lock") from exc

        prometheus_metrics.record_slot_lock("acquire", "success")
        logger.info(
            "slot_lock_acquired",
            extra={**log_context, "lock_id": lock.id, "expires_at": expires_at.isoformat()},
        )
        return SlotLockGrant(lock_id=lock.id, slot_key=slot_key, expires_at=expires_at)

    def _renew(self, lock, expires_at: datetime, log_context: dict) -> SlotLockGrant:
        try:
            with self.transaction():
                self.lock_repository.extend(lock, expires_at)
        except RepositoryException as exc:
            prometheus_metrics.record_slot_lock("renew", "error")
            raise PersistenceException("Failed to renew slot lock") from exc

        prometheus_metrics.record_slot_lock("renew", "success")
        logger.info("slot_lock_renewed", extra={**log_context, "lock_id": lock.id})
        return SlotLockGrant(
            lock_id=lock.id, slot_key=lock.slot_key, expires_at=expires_at, renewed=True
        )

    @BaseService.measure_operation("release_slot_lock")
    def release_lock(self, lock_id: Optional[str]) -> None:
        """
        Drop a lock. Unknown, already released and expired ids are not errors.

        Raises:
            PersistenceException: the store failed
        """
        if not lock_id:
            return
        try:
            with self.transaction():
                deleted = self.lock_repository.delete_by_id(lock_id)
        except RepositoryException as exc:
            prometheus_metrics.record_slot_lock("release", "error")
            raise PersistenceException("Failed to release slot lock") from exc

        prometheus_metrics.record_slot_lock("release", "success")
        logger.debug("slot_lock_released", extra={"lock_id": lock_id, "deleted": deleted})

    @BaseService.measure_operation("cleanup_expired_slot_locks")
    def cleanup_expired_locks(self, tenant_id: Optional[str] = None) -> int:
        """Delete every lock whose expiry has passed; returns how many went."""
        now = self.clock.now()
        try:
            with self.transaction():
                removed = self.lock_repository.delete_expired(now, tenant_id=tenant_id)
        except RepositoryException as exc:
            prometheus_metrics.record_slot_lock("sweep", "error")
            raise PersistenceException("Failed to sweep expired slot locks") from exc

        prometheus_metrics.record_slot_lock("sweep", "success")
        if removed:
            logger.info("slot_locks_swept", extra={"removed": removed})
        return removed

    def release_quietly(self, lock_id: Optional[str]) -> None:
        """Release for cleanup paths: failures are logged, never raised."""
        try:
            self.release_lock(lock_id)
        except Exception as exc:
            logger.error(
                "slot_lock_release_failed",
                extra={"lock_id": lock_id, "error": str(exc), "error_type": type(exc).__name__},
            )

    @contextmanager
    def hold_slot(
        self,
        tenant_id: str,
        start_at: datetime,
        end_at: datetime,
        resource_id: Optional[str] = None,
        session_id: Optional[str] = None,
        ttl: TTLArg = None,
    ) -> Iterator[SlotLockGrant]:
        """
        Hold the slot for the duration of the ``with`` block.

        Release is always attempted on exit; a failed release is logged and
        never replaces an exception raised inside the block.
        """
        grant = self.acquire_lock(
            tenant_id, start_at, end_at, resource_id=resource_id, session_id=session_id, ttl=ttl
        )
        try:
            yield grant
        finally:
            self.release_quietly(grant.lock_id)

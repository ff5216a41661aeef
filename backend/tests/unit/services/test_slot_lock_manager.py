# backend/tests/unit/services/test_slot_lock_manager.py
"""
Tests for SlotLockManager: acquisition, renewal, release, expiry and sweep.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from app.core.exceptions import (
    PersistenceException,
    RepositoryException,
    SlotLockedException,
    ValidationException,
)
from app.models.slot_lock import SlotLock
from app.repositories.slot_lock_repository import SlotLockRepository
from app.services.slot_lock_manager import SlotLockManager, compute_slot_key
from tests.factories.reservation_factories import OTHER_TENANT_ID, TENANT_ID, at


@pytest.fixture
def manager(db, clock):
    return SlotLockManager(db, clock=clock)


class TestComputeSlotKey:
    def test_same_instant_in_different_offsets_hashes_the_same(self):
        start = at(10)
        end = at(11)
        plus_two = timezone(timedelta(hours=2))
        assert compute_slot_key(TENANT_ID, start, end) == compute_slot_key(
            TENANT_ID, start.astimezone(plus_two), end.astimezone(plus_two)
        )

    def test_resource_and_tenant_change_the_key(self):
        base = compute_slot_key(TENANT_ID, at(10), at(11))
        assert compute_slot_key(TENANT_ID, at(10), at(11), "staff-a") != base
        assert compute_slot_key(OTHER_TENANT_ID, at(10), at(11)) != base

    def test_key_is_sha256_hex(self):
        key = compute_slot_key(TENANT_ID, at(10), at(11), "staff-a")
        assert len(key) == 64
        int(key, 16)


class TestAcquireLock:
    def test_acquire_returns_grant_with_default_ttl(self, manager, clock, db):
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11), resource_id="staff-a")

        assert grant.lock_id
        assert grant.renewed is False
        assert grant.expires_at == clock.now() + timedelta(minutes=10)
        assert grant.slot_key == compute_slot_key(TENANT_ID, at(10), at(11), "staff-a")
        assert db.query(SlotLock).count() == 1

    def test_second_session_is_rejected_while_lock_is_live(self, manager):
        manager.acquire_lock(TENANT_ID, at(10), at(11), "staff-a", session_id="s1")

        with pytest.raises(SlotLockedException) as exc_info:
            manager.acquire_lock(TENANT_ID, at(10), at(11), "staff-a", session_id="s2")

        assert exc_info.value.code == "SLOT_LOCKED"
        assert exc_info.value.details["slot_key"] == exc_info.value.slot_key

    def test_anonymous_callers_never_share_a_lock(self, manager):
        manager.acquire_lock(TENANT_ID, at(10), at(11))
        with pytest.raises(SlotLockedException):
            manager.acquire_lock(TENANT_ID, at(10), at(11))

    def test_same_session_renews_in_place(self, manager, clock, db):
        first = manager.acquire_lock(TENANT_ID, at(10), at(11), "staff-a", session_id="s1")
        clock.advance(minutes=5)

        second = manager.acquire_lock(TENANT_ID, at(10), at(11), "staff-a", session_id="s1")

        assert second.lock_id == first.lock_id
        assert second.renewed is True
        assert second.expires_at == clock.now() + timedelta(minutes=10)
        assert db.query(SlotLock).count() == 1

    def test_expired_lock_can_be_taken_by_another_session(self, manager, clock, db):
        first = manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s1", ttl=1)
        clock.advance(minutes=1)

        second = manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s2")

        assert second.lock_id != first.lock_id
        locks = db.query(SlotLock).all()
        assert [lock.id for lock in locks] == [second.lock_id]

    def test_different_resources_do_not_contend(self, manager):
        manager.acquire_lock(TENANT_ID, at(10), at(11), "staff-a")
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11), "staff-b")
        assert grant.lock_id

    def test_ttl_is_clamped_to_maximum(self, manager, clock):
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=timedelta(hours=2))
        assert grant.expires_at == clock.now() + timedelta(minutes=30)

    def test_ttl_accepts_minutes(self, manager, clock):
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=3)
        assert grant.expires_at == clock.now() + timedelta(minutes=3)

    @pytest.mark.parametrize("ttl,expected", [(5.0, timedelta(minutes=5)), (2.5, timedelta(seconds=150))])
    def test_ttl_accepts_fractional_minutes(self, manager, clock, ttl, expected):
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=ttl)
        assert grant.expires_at == clock.now() + expected

    @pytest.mark.parametrize("ttl", ["5", True, [5]])
    def test_ttl_of_wrong_type_is_rejected(self, manager, ttl):
        with pytest.raises(ValidationException) as exc_info:
            manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=ttl)
        assert exc_info.value.code == "INVALID_TTL"

    @pytest.mark.parametrize("ttl", [0, -5, timedelta(0), timedelta(seconds=-1)])
    def test_non_positive_ttl_is_rejected(self, manager, ttl):
        with pytest.raises(ValidationException):
            manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=ttl)

    def test_inverted_window_is_rejected(self, manager):
        with pytest.raises(ValidationException):
            manager.acquire_lock(TENANT_ID, at(11), at(10))

    def test_blank_tenant_is_rejected(self, manager):
        with pytest.raises(ValidationException):
            manager.acquire_lock("  ", at(10), at(11))

    def test_insert_race_surfaces_as_slot_locked(self, db, clock):
        """A row committed between the live check and the insert loses the race cleanly."""
        repo = SlotLockRepository(db)
        repo.find_live = Mock(return_value=[])  # type: ignore[method-assign]
        manager = SlotLockManager(db, clock=clock, lock_repository=repo)
        manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s1")

        with pytest.raises(SlotLockedException):
            manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s2")

        assert db.query(SlotLock).count() == 1

    def test_store_failure_is_persistence_error(self, db, clock):
        repo = Mock(spec=SlotLockRepository)
        repo.find_live.side_effect = RepositoryException("boom")
        manager = SlotLockManager(db, clock=clock, lock_repository=repo)

        with pytest.raises(PersistenceException):
            manager.acquire_lock(TENANT_ID, at(10), at(11))


class TestReleaseLock:
    def test_release_frees_the_slot(self, manager, db):
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s1")
        manager.release_lock(grant.lock_id)

        assert db.query(SlotLock).count() == 0
        assert manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s2").lock_id

    def test_release_is_idempotent(self, manager):
        grant = manager.acquire_lock(TENANT_ID, at(10), at(11))
        manager.release_lock(grant.lock_id)
        manager.release_lock(grant.lock_id)
        manager.release_lock("01UNKNOWNLOCKID0000000000")

    @pytest.mark.parametrize("lock_id", [None, ""])
    def test_release_without_id_is_a_no_op(self, db, clock, lock_id):
        repo = Mock(spec=SlotLockRepository)
        SlotLockManager(db, clock=clock, lock_repository=repo).release_lock(lock_id)
        repo.delete_by_id.assert_not_called()

    def test_release_store_failure_raises(self, db, clock):
        repo = Mock(spec=SlotLockRepository)
        repo.delete_by_id.side_effect = RepositoryException("boom")
        manager = SlotLockManager(db, clock=clock, lock_repository=repo)
        with pytest.raises(PersistenceException):
            manager.release_lock("lock-1")

    def test_release_quietly_swallows_failures(self, db, clock, caplog):
        repo = Mock(spec=SlotLockRepository)
        repo.delete_by_id.side_effect = RepositoryException("boom")
        manager = SlotLockManager(db, clock=clock, lock_repository=repo)

        manager.release_quietly("lock-1")

        assert any(record.getMessage() == "slot_lock_release_failed" for record in caplog.records)


class TestHoldSlot:
    def test_lock_is_released_after_block(self, manager, db):
        with manager.hold_slot(TENANT_ID, at(10), at(11), "staff-a") as grant:
            assert db.query(SlotLock).filter(SlotLock.id == grant.lock_id).count() == 1
        assert db.query(SlotLock).count() == 0

    def test_lock_is_released_when_block_raises(self, manager, db):
        with pytest.raises(RuntimeError):
            with manager.hold_slot(TENANT_ID, at(10), at(11)):
                raise RuntimeError("inside")
        assert db.query(SlotLock).count() == 0

    def test_contended_slot_raises_before_entering(self, manager):
        entered = False
        manager.acquire_lock(TENANT_ID, at(10), at(11), session_id="s1")
        with pytest.raises(SlotLockedException):
            with manager.hold_slot(TENANT_ID, at(10), at(11), session_id="s2"):
                entered = True
        assert entered is False


class TestCleanupExpiredLocks:
    def test_sweep_removes_only_expired(self, manager, clock, db):
        manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=1)
        live = manager.acquire_lock(TENANT_ID, at(12), at(13), ttl=20)
        clock.advance(minutes=5)

        removed = manager.cleanup_expired_locks()

        assert removed == 1
        assert [lock.id for lock in db.query(SlotLock).all()] == [live.lock_id]

    def test_sweep_can_be_scoped_to_a_tenant(self, manager, clock, db):
        manager.acquire_lock(TENANT_ID, at(10), at(11), ttl=1)
        manager.acquire_lock(OTHER_TENANT_ID, at(10), at(11), ttl=1)
        clock.advance(minutes=2)

        assert manager.cleanup_expired_locks(tenant_id=TENANT_ID) == 1
        assert db.query(SlotLock).one().tenant_id == OTHER_TENANT_ID

    def test_sweep_with_nothing_expired(self, manager):
        assert manager.cleanup_expired_locks() == 0


def test_lock_expiry_is_stored_in_utc(manager, db):
    grant = manager.acquire_lock(TENANT_ID, at(10), at(11))
    stored = db.query(SlotLock).one()
    assert stored.expires_at.tzinfo is not None
    assert stored.expires_at == grant.expires_at
    assert isinstance(stored.expires_at, datetime)

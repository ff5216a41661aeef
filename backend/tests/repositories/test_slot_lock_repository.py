# backend/tests/repositories/test_slot_lock_repository.py
from datetime import timedelta

import pytest
import ulid

from app.core.exceptions import UniqueViolation
from app.models.slot_lock import SlotLock
from app.repositories.slot_lock_repository import SlotLockRepository
from app.repositories.staff_availability_repository import StaffAvailabilityRepository
from tests.factories.reservation_factories import NOW, TENANT_ID


def _create(repo: SlotLockRepository, key: str, expires_in: timedelta, tenant_id: str = TENANT_ID):
    return repo.create(
        id=str(ulid.ULID()), tenant_id=tenant_id, slot_key=key, expires_at=NOW + expires_in
    )


def test_unique_key_per_tenant(db):
    repo = SlotLockRepository(db)
    _create(repo, "k1", timedelta(minutes=5))
    db.commit()

    with pytest.raises(UniqueViolation):
        _create(repo, "k1", timedelta(minutes=5))

    _create(repo, "k1", timedelta(minutes=5), tenant_id="tenant-2")
    db.commit()
    assert db.query(SlotLock).count() == 2


def test_find_live_and_purge(db):
    repo = SlotLockRepository(db)
    _create(repo, "dead", timedelta(minutes=-1))
    _create(repo, "live", timedelta(minutes=1))
    db.commit()

    assert repo.find_live(TENANT_ID, "dead", NOW) == []
    assert len(repo.find_live(TENANT_ID, "live", NOW)) == 1
    assert repo.purge_expired_for_key(TENANT_ID, "dead", NOW) == 1
    assert repo.purge_expired_for_key(TENANT_ID, "live", NOW) == 0


def test_delete_by_id_reports_existence(db):
    repo = SlotLockRepository(db)
    lock = _create(repo, "k1", timedelta(minutes=5))
    db.commit()

    assert repo.delete_by_id(lock.id) is True
    assert repo.delete_by_id(lock.id) is False


def test_extend_and_delete_expired(db):
    repo = SlotLockRepository(db)
    lock = _create(repo, "k1", timedelta(minutes=1))
    _create(repo, "k2", timedelta(minutes=1))
    db.commit()

    repo.extend(lock, NOW + timedelta(minutes=10))
    db.commit()

    assert repo.delete_expired(NOW + timedelta(minutes=2)) == 1
    assert db.query(SlotLock).one().id == lock.id


def test_staff_availability_lookup_by_day(db, add_availability):
    row = add_availability("staff-a")
    add_availability("staff-b", weekday=(row.day_of_week + 1) % 7)
    repo = StaffAvailabilityRepository(db)

    found = repo.get_for_day(TENANT_ID, ["staff-a", "staff-b"], row.day_of_week)

    assert list(found) == ["staff-a"]
    assert repo.get_for_day(TENANT_ID, [], row.day_of_week) == {}

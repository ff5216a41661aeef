# backend/tests/unit/services/test_reservation_lifecycle.py
"""
Tests for ReservationLifecycleService: lookup, cancel and reschedule.
"""

from unittest.mock import Mock

import pytest

from app.core.exceptions import (
    BookingConflictException,
    NotFoundException,
    SlotLockedException,
    ValidationException,
)
from app.events.publisher import EventPublisher
from app.models.background_job import BackgroundJob
from app.models.reservation import ReservationLog, ReservationStatus
from app.models.slot_lock import SlotLock
from app.schemas.reservation import ReservationActor
from app.services.conflict_detector import ConflictDetector
from app.services.reservation_lifecycle import ReservationLifecycleService
from app.services.slot_lock_manager import SlotLockManager
from tests.factories.reservation_factories import OTHER_TENANT_ID, TENANT_ID, at


@pytest.fixture
def lifecycle(db, clock):
    return ReservationLifecycleService(db, clock=clock)


class TestGet:
    def test_returns_tenant_reservation(self, lifecycle, make_reservation):
        existing = make_reservation(at(10), at(11))
        assert lifecycle.get(TENANT_ID, existing.id).id == existing.id

    def test_other_tenant_is_not_found(self, lifecycle, make_reservation):
        existing = make_reservation(at(10), at(11), tenant_id=OTHER_TENANT_ID)
        with pytest.raises(NotFoundException):
            lifecycle.get(TENANT_ID, existing.id)


class TestCancel:
    def test_cancel_frees_the_slot(self, lifecycle, make_reservation, clock, db):
        existing = make_reservation(at(10), at(11))
        actor = ReservationActor(id="user-1", role="staff")

        cancelled = lifecycle.cancel(TENANT_ID, existing.id, actor, reason="customer asked")

        assert cancelled.status == ReservationStatus.CANCELLED.value
        assert cancelled.cancelled_at == clock.now()
        detector = ConflictDetector(db, clock=clock)
        assert detector.check_conflicts(TENANT_ID, at(10), at(11)).has_conflict is False

        log = db.query(ReservationLog).one()
        assert log.action == "cancelled"
        assert log.actor_id == "user-1"
        assert log.notes == {"reason": "customer asked"}

        job = db.query(BackgroundJob).one()
        assert job.type == "event:ReservationCancelled"
        assert job.payload["cancelled_by"] == "user-1"

    def test_cancel_is_idempotent(self, lifecycle, make_reservation, clock, db):
        existing = make_reservation(at(10), at(11))
        first = lifecycle.cancel(TENANT_ID, existing.id)
        clock.advance(hours=1)

        second = lifecycle.cancel(TENANT_ID, existing.id)

        assert second.cancelled_at == first.cancelled_at
        assert db.query(ReservationLog).count() == 1

    def test_completed_cannot_be_cancelled(self, lifecycle, make_reservation):
        existing = make_reservation(at(10), at(11), status=ReservationStatus.COMPLETED.value)
        with pytest.raises(ValidationException):
            lifecycle.cancel(TENANT_ID, existing.id)

    def test_unknown_reservation(self, lifecycle):
        with pytest.raises(NotFoundException):
            lifecycle.cancel(TENANT_ID, "01UNKNOWN0000000000000000")

    def test_event_failure_does_not_undo_cancel(self, db, clock, make_reservation):
        publisher = Mock(spec=EventPublisher)
        publisher.publish.side_effect = RuntimeError("outbox down")
        lifecycle = ReservationLifecycleService(db, clock=clock, event_publisher=publisher)
        existing = make_reservation(at(10), at(11))

        cancelled = lifecycle.cancel(TENANT_ID, existing.id)

        assert cancelled.status == ReservationStatus.CANCELLED.value


class TestReschedule:
    def test_moves_to_a_free_window(self, lifecycle, make_reservation, add_availability, db):
        add_availability("staff-a")
        existing = make_reservation(at(10), at(11), staff_id="staff-a")

        moved = lifecycle.reschedule(TENANT_ID, existing.id, at(14), at(15))

        assert moved.start_at == at(14)
        assert moved.end_at == at(15)
        assert db.query(SlotLock).count() == 0
        log = db.query(ReservationLog).one()
        assert log.action == "rescheduled"
        assert log.notes["previous_start_at"] == at(10).isoformat()
        job = db.query(BackgroundJob).one()
        assert job.type == "event:ReservationRescheduled"

    def test_overlapping_its_own_window_is_allowed(
        self, lifecycle, make_reservation, add_availability
    ):
        add_availability("staff-a")
        existing = make_reservation(at(10), at(11), staff_id="staff-a")

        moved = lifecycle.reschedule(TENANT_ID, existing.id, at(10, 30), at(11, 30))

        assert moved.start_at == at(10, 30)

    def test_conflict_with_another_reservation(
        self, lifecycle, make_reservation, add_availability
    ):
        add_availability("staff-a")
        existing = make_reservation(at(10), at(11), staff_id="staff-a")
        make_reservation(at(14), at(15), staff_id="staff-a")

        with pytest.raises(BookingConflictException):
            lifecycle.reschedule(TENANT_ID, existing.id, at(14, 30), at(15, 30))

        assert lifecycle.get(TENANT_ID, existing.id).start_at == at(10)

    def test_outside_working_hours_is_rejected(
        self, lifecycle, make_reservation, add_availability
    ):
        add_availability("staff-a")
        existing = make_reservation(at(10), at(11), staff_id="staff-a")

        with pytest.raises(BookingConflictException):
            lifecycle.reschedule(TENANT_ID, existing.id, at(18), at(19))

    def test_held_window_is_rejected(self, lifecycle, make_reservation, clock, db):
        existing = make_reservation(at(10), at(11))
        SlotLockManager(db, clock=clock).acquire_lock(
            TENANT_ID, at(14), at(15), session_id="checkout-1"
        )

        with pytest.raises(SlotLockedException):
            lifecycle.reschedule(TENANT_ID, existing.id, at(14), at(15), session_id="other")

    def test_cancelled_cannot_be_rescheduled(self, lifecycle, make_reservation):
        existing = make_reservation(at(10), at(11), status=ReservationStatus.CANCELLED.value)
        with pytest.raises(ValidationException):
            lifecycle.reschedule(TENANT_ID, existing.id, at(14), at(15))

    def test_inverted_window_is_rejected(self, lifecycle, make_reservation):
        existing = make_reservation(at(10), at(11))
        with pytest.raises(ValidationException):
            lifecycle.reschedule(TENANT_ID, existing.id, at(15), at(14))

# backend/tests/unit/services/test_conflict_detector.py
"""
Tests for ConflictDetector: half-open overlap, resource scoping, status
filtering and the open-window search.
"""

from datetime import time, timedelta
from unittest.mock import Mock

import pytest

from app.core.exceptions import PersistenceException, RepositoryException, ValidationException
from app.models.reservation import ReservationStatus
from app.repositories.reservation_repository import ReservationRepository
from app.schemas.reservation import ConflictType
from app.services.conflict_detector import ConflictDetector, normalize_resource_ids
from tests.factories.reservation_factories import OTHER_TENANT_ID, TENANT_ID, at


@pytest.fixture
def detector(db, clock):
    return ConflictDetector(db, clock=clock)


class TestNormalizeResourceIds:
    def test_none_and_empty_mean_tenant_wide(self):
        assert normalize_resource_ids(None) == []
        assert normalize_resource_ids([]) == []

    def test_strips_and_dedupes_in_order(self):
        assert normalize_resource_ids([" b ", "a", "b", ""]) == ["b", "a"]

    def test_all_blank_is_rejected(self):
        with pytest.raises(ValidationException):
            normalize_resource_ids(["", "  "])

    def test_non_string_is_rejected(self):
        with pytest.raises(ValidationException):
            normalize_resource_ids([42])  # type: ignore[list-item]


class TestTenantWide:
    def test_overlap_is_time_overlap(self, detector, make_reservation):
        existing = make_reservation(at(10), at(11), staff_id="staff-a")

        result = detector.check_conflicts(TENANT_ID, at(10, 30), at(11, 30))

        assert result.has_conflict is True
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.conflict_type == ConflictType.TIME_OVERLAP
        assert conflict.reservation_id == existing.id
        assert conflict.resource_id == "staff-a"
        assert conflict.start_at == at(10)
        assert conflict.end_at == at(11)

    @pytest.mark.parametrize(
        "start,end",
        [
            ((11, 0), (12, 0)),  # starts when the existing one ends
            ((9, 0), (10, 0)),  # ends when the existing one starts
        ],
    )
    def test_touching_boundaries_do_not_conflict(self, detector, make_reservation, start, end):
        make_reservation(at(10), at(11))
        result = detector.check_conflicts(TENANT_ID, at(*start), at(*end))
        assert result.has_conflict is False
        assert result.conflicts == []

    def test_containment_both_ways_conflicts(self, detector, make_reservation):
        make_reservation(at(10), at(12))
        assert detector.check_conflicts(TENANT_ID, at(10, 30), at(11)).has_conflict
        assert detector.check_conflicts(TENANT_ID, at(9), at(13)).has_conflict

    @pytest.mark.parametrize(
        "status", [ReservationStatus.CANCELLED.value, ReservationStatus.COMPLETED.value]
    )
    def test_inactive_reservations_are_ignored(self, detector, make_reservation, status):
        make_reservation(at(10), at(11), status=status)
        assert detector.check_conflicts(TENANT_ID, at(10), at(11)).has_conflict is False

    def test_pending_reservations_participate(self, detector, make_reservation):
        make_reservation(at(10), at(11), status=ReservationStatus.PENDING.value)
        assert detector.check_conflicts(TENANT_ID, at(10), at(11)).has_conflict is True

    def test_other_tenants_are_invisible(self, detector, make_reservation):
        make_reservation(at(10), at(11), tenant_id=OTHER_TENANT_ID)
        assert detector.check_conflicts(TENANT_ID, at(10), at(11)).has_conflict is False

    def test_excluded_reservation_is_skipped(self, detector, make_reservation):
        existing = make_reservation(at(10), at(11))
        result = detector.check_conflicts(
            TENANT_ID, at(10), at(11), exclude_reservation_id=existing.id
        )
        assert result.has_conflict is False

    def test_conflicts_are_ordered_by_start(self, detector, make_reservation):
        late = make_reservation(at(11), at(12))
        early = make_reservation(at(9), at(10, 30))
        result = detector.check_conflicts(TENANT_ID, at(10), at(11, 30))
        assert [c.reservation_id for c in result.conflicts] == [early.id, late.id]


class TestResourceScoped:
    def test_same_staff_is_double_booking(self, detector, make_reservation, add_availability):
        add_availability("staff-a")
        existing = make_reservation(at(10), at(11), staff_id="staff-a")

        result = detector.check_conflicts(TENANT_ID, at(10, 30), at(11, 30), ["staff-a"])

        assert result.has_conflict is True
        assert len(result.conflicts) == 1
        assert result.conflicts[0].conflict_type == ConflictType.RESOURCE_DOUBLE_BOOKING
        assert result.conflicts[0].reservation_id == existing.id

    def test_other_staff_is_not_a_conflict(self, detector, make_reservation, add_availability):
        add_availability("staff-b")
        make_reservation(at(10), at(11), staff_id="staff-a")
        result = detector.check_conflicts(TENANT_ID, at(10), at(11), ["staff-b"])
        assert result.has_conflict is False

    def test_unassigned_reservation_is_not_a_conflict(
        self, detector, make_reservation, add_availability
    ):
        add_availability("staff-a")
        make_reservation(at(10), at(11))
        result = detector.check_conflicts(TENANT_ID, at(10), at(11), ["staff-a"])
        assert result.has_conflict is False

    def test_location_match_reports_location(self, detector, make_reservation):
        make_reservation(at(10), at(11), location_id="room-1")
        result = detector.check_conflicts(
            TENANT_ID, at(10), at(11), ["room-1"], staff_ids=[]
        )
        assert result.conflicts[0].resource_id == "room-1"
        assert result.conflicts[0].conflict_type == ConflictType.RESOURCE_DOUBLE_BOOKING

    def test_staff_wins_as_reported_resource(self, detector, make_reservation):
        make_reservation(at(10), at(11), staff_id="staff-a", location_id="room-1")
        result = detector.check_conflicts(
            TENANT_ID, at(10), at(11), ["room-1"], staff_ids=[]
        )
        assert result.conflicts[0].resource_id == "staff-a"

    def test_unavailable_staff_is_reported(self, detector):
        result = detector.check_conflicts(TENANT_ID, at(10), at(11), ["staff-a"])

        assert result.has_conflict is True
        assert [c.conflict_type for c in result.conflicts] == [ConflictType.STAFF_UNAVAILABLE]

    def test_overlap_and_unavailability_are_combined(
        self, detector, make_reservation, add_availability
    ):
        add_availability("staff-a", time(9, 0), time(11, 0))
        make_reservation(at(10), at(11), staff_id="staff-a")

        result = detector.check_conflicts(TENANT_ID, at(10, 30), at(11, 30), ["staff-a"])

        assert len(result.of_type(ConflictType.RESOURCE_DOUBLE_BOOKING)) == 1
        assert len(result.of_type(ConflictType.STAFF_UNAVAILABLE)) == 1

    def test_staff_ids_limit_availability_checks(self, detector):
        result = detector.check_conflicts(
            TENANT_ID, at(10), at(11), ["staff-a", "room-1"], staff_ids=["staff-a"]
        )
        assert [c.resource_id for c in result.conflicts] == ["staff-a"]

    def test_blank_resource_ids_are_rejected(self, detector):
        with pytest.raises(ValidationException):
            detector.check_conflicts(TENANT_ID, at(10), at(11), ["  "])


class TestValidation:
    @pytest.mark.parametrize("start,end", [((11, 0), (10, 0)), ((10, 0), (10, 0))])
    def test_window_must_be_ordered(self, detector, start, end):
        with pytest.raises(ValidationException):
            detector.check_conflicts(TENANT_ID, at(*start), at(*end))

    def test_tenant_is_required(self, detector):
        with pytest.raises(ValidationException):
            detector.check_conflicts("", at(10), at(11))

    def test_store_failure_is_persistence_error(self, db, clock):
        repo = Mock(spec=ReservationRepository)
        repo.find_overlapping.side_effect = RepositoryException("boom")
        detector = ConflictDetector(db, clock=clock, reservation_repository=repo)

        with pytest.raises(PersistenceException):
            detector.check_conflicts(TENANT_ID, at(10), at(11))


class TestFindOpenWindows:
    def test_marks_busy_candidates(self, detector, make_reservation):
        make_reservation(at(10), at(11))

        windows = detector.find_open_windows(TENANT_ID, at(9), at(12), timedelta(hours=1))

        assert [(w.start_at, w.available) for w in windows] == [
            (at(9), True),
            (at(9, 30), False),
            (at(10), False),
            (at(10, 30), False),
            (at(11), True),
        ]
        assert all(w.end_at - w.start_at == timedelta(hours=1) for w in windows)

    def test_custom_step(self, detector):
        windows = detector.find_open_windows(
            TENANT_ID, at(9), at(12), timedelta(hours=1), step=timedelta(hours=1)
        )
        assert [w.start_at for w in windows] == [at(9), at(10), at(11)]
        assert all(w.available for w in windows)

    def test_single_staff_uses_schedule(self, detector, make_reservation, add_availability):
        add_availability("staff-a", time(9, 0), time(11, 0))
        make_reservation(at(9), at(10), staff_id="staff-b")

        windows = detector.find_open_windows(
            TENANT_ID,
            at(9),
            at(12),
            timedelta(hours=1),
            step=timedelta(hours=1),
            resource_ids=["staff-a"],
        )

        assert [w.available for w in windows] == [True, True, False]

    def test_duration_must_be_positive(self, detector):
        with pytest.raises(ValidationException):
            detector.find_open_windows(TENANT_ID, at(9), at(12), timedelta(0))

    def test_duration_longer_than_range_yields_nothing(self, detector):
        assert detector.find_open_windows(TENANT_ID, at(9), at(10), timedelta(hours=2)) == []

from datetime import date, timedelta

import pytest

from reservas.core.config import settings
from reservas.core.exceptions import (BookingValidationError, NotFoundError, PermissionDeniedError,
                                      SlotConflictError)
from reservas.db import schemas
from reservas.services.availability import Interval, Proposal, RejectionReason
from tests.conftest import NOW, at


@pytest.fixture
def diego(make_user):
    return make_user("Prof. Diego")


@pytest.fixture
def ana(make_user):
    return make_user("Prof. Ana")


@pytest.fixture
def lab_b(make_environment):
    return make_environment("Lab B")


def test_create_reservation_is_persisted(booking, store, diego, lab_b):
    created = booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9), at(1, 10)))

    assert created.id is not None
    assert created.status == "approved"
    assert created.user_name == "Prof. Diego"
    assert created.environment_name == "Lab B"
    assert (created.start_time, created.end_time) == (at(1, 9), at(1, 10))
    assert store.get_reservation(created.id) == created


def test_conflict_reports_the_occupant(booking, store, diego, ana, lab_b):
    existing = booking.create_reservation(Proposal(lab_b.id, ana.id, at(1, 9), at(1, 10)))

    with pytest.raises(SlotConflictError) as excinfo:
        booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9, 30), at(1, 10, 30)))

    conflict = excinfo.value.conflict
    assert excinfo.value.reason == RejectionReason.SLOT_CONFLICT.value
    assert conflict.reservation_id == existing.id
    assert conflict.occupant_name == "Prof. Ana"
    assert conflict.environment_name == "Lab B"
    assert "Prof. Ana" in excinfo.value.message
    assert len(store.list_reservations(environment_id=lab_b.id)) == 1


def test_back_to_back_reservations_are_accepted(booking, store, diego, ana, lab_b):
    booking.create_reservation(Proposal(lab_b.id, ana.id, at(1, 9), at(1, 10)))
    booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 10), at(1, 11)))

    assert len(store.list_reservations(environment_id=lab_b.id)) == 2


def test_validation_errors_are_not_conflicts(booking, diego, lab_b):
    with pytest.raises(BookingValidationError) as excinfo:
        booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 10), at(1, 9)))
    assert excinfo.value.reason == RejectionReason.INVERTED_INTERVAL.value

    with pytest.raises(BookingValidationError) as excinfo:
        booking.create_reservation(Proposal(lab_b.id, diego.id, NOW - timedelta(days=1), NOW - timedelta(hours=23)))
    assert excinfo.value.reason == RejectionReason.PAST_DATED.value


def test_unknown_environment_is_not_found(booking, diego):
    with pytest.raises(NotFoundError):
        booking.create_reservation(Proposal(999, diego.id, at(1, 9), at(1, 10)))


def test_batch_is_all_or_nothing(booking, store, diego, lab_b, make_environment):
    lab_c = make_environment("Lab C")
    proposals = [
        Proposal(lab_b.id, diego.id, at(4, 9), at(4, 10)),
        Proposal(lab_b.id, diego.id, at(4, 9, 30), at(4, 10, 30)),
        Proposal(lab_c.id, diego.id, at(4, 9), at(4, 10)),
    ]

    with pytest.raises(SlotConflictError) as excinfo:
        booking.create_reservations(proposals)

    assert excinfo.value.rejection.index == 1
    assert store.list_reservations() == []


def test_batch_of_disjoint_reservations(booking, store, diego, lab_b):
    created = booking.create_reservations([
        Proposal(lab_b.id, diego.id, at(4, 9), at(4, 10)),
        Proposal(lab_b.id, diego.id, at(4, 10), at(4, 11)),
    ])
    assert [r.start_time for r in created] == [at(4, 9), at(4, 10)]
    assert len(store.list_reservations()) == 2


def test_storage_guard_catches_stale_snapshot(booking, store, diego, ana, lab_b, monkeypatch):
    existing = booking.create_reservation(Proposal(lab_b.id, ana.id, at(1, 9), at(1, 10)))

    real_snapshot = booking._snapshot
    calls = []

    def stale_then_fresh(proposals, exclude_reservation_id=None):
        calls.append(1)
        if len(calls) == 1:
            return []
        return real_snapshot(proposals, exclude_reservation_id)

    monkeypatch.setattr(booking, "_snapshot", stale_then_fresh)

    with pytest.raises(SlotConflictError) as excinfo:
        booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9, 30), at(1, 10, 30)))

    assert excinfo.value.conflict.reservation_id == existing.id
    assert excinfo.value.conflict.occupant_name == "Prof. Ana"
    assert len(store.list_reservations(environment_id=lab_b.id)) == 1


def test_reschedule_can_overlap_its_own_old_slot(booking, diego, lab_b):
    created = booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9), at(1, 10)))

    moved = booking.reschedule(created.id, schemas.ReservationUpdate(start_time=at(1, 9, 30), end_time=at(1, 10, 30)))

    assert moved.id == created.id
    assert (moved.start_time, moved.end_time) == (at(1, 9, 30), at(1, 10, 30))


def test_reschedule_into_occupied_slot_is_rejected(booking, store, diego, ana, lab_b):
    booking.create_reservation(Proposal(lab_b.id, ana.id, at(1, 9), at(1, 10)))
    mine = booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 14), at(1, 15)))

    with pytest.raises(SlotConflictError):
        booking.reschedule(mine.id, schemas.ReservationUpdate(start_time=at(1, 9, 30), end_time=at(1, 10, 30)))

    assert store.get_reservation(mine.id).start_time == at(1, 14)


def test_cancel_permissions(booking, store, make_user, diego, ana, lab_b):
    coordinator = make_user("Coord. Paula", role="coordenador")
    first = booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9), at(1, 10)))
    second = booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 11), at(1, 12)))

    with pytest.raises(PermissionDeniedError):
        booking.cancel_reservation(first.id, ana)

    assert booking.cancel_reservation(first.id, diego).id == first.id
    booking.cancel_reservation(second.id, coordinator)
    assert store.list_reservations() == []


def test_freed_slot_can_be_booked_again(booking, diego, ana, lab_b):
    first = booking.create_reservation(Proposal(lab_b.id, ana.id, at(1, 9), at(1, 10)))
    booking.cancel_reservation(first.id, ana)

    again = booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9), at(1, 10)))
    assert again.user_id == diego.id


@pytest.mark.parametrize("role, allowed", [
    ("professor", True),
    ("coordenador", True),
    ("aluno", False),
])
def test_build_proposal_books_for_self(booking, make_user, ana, role, allowed):
    actor = make_user(f"Usuario {role}", role=role)
    request = schemas.ReservationCreate(environment_id=1, user_id=ana.id, start_time=at(1, 9), end_time=at(1, 10))

    if allowed:
        assert booking.build_proposal(actor, request).user_id == actor.id
    else:
        with pytest.raises(PermissionDeniedError):
            booking.build_proposal(actor, request)


def test_admin_books_on_behalf_of_others(booking, make_user, ana):
    admin = make_user("Admin", role="admin")
    request = schemas.ReservationCreate(environment_id=1, user_id=ana.id, start_time=at(1, 9), end_time=at(1, 10))
    assert booking.build_proposal(admin, request).user_id == ana.id


def test_backfill_is_admin_only(booking, make_user, diego, lab_b):
    admin = make_user("Admin", role="admin")
    past = Proposal(lab_b.id, diego.id, NOW - timedelta(days=3), NOW - timedelta(days=3) + timedelta(hours=1))

    with pytest.raises(PermissionDeniedError):
        booking.backfill_reservation(diego, past)

    created = booking.backfill_reservation(admin, past)
    assert created.start_time == past.start


def test_weekly_reservations(booking, store, diego, lab_b):
    created = booking.create_weekly(Proposal(lab_b.id, diego.id, at(5, 9), at(5, 10)), date(2024, 3, 19))

    assert [r.start_time for r in created] == [at(5, 9), at(12, 9), at(19, 9)]
    assert len(store.list_reservations(environment_id=lab_b.id)) == 3


def test_weekly_reservations_are_atomic(booking, store, diego, ana, lab_b):
    booking.create_reservation(Proposal(lab_b.id, ana.id, at(12, 9), at(12, 10)))

    with pytest.raises(SlotConflictError) as excinfo:
        booking.create_weekly(Proposal(lab_b.id, diego.id, at(5, 9), at(5, 10)), date(2024, 3, 19))

    assert excinfo.value.rejection.index == 1
    assert len(store.list_reservations(environment_id=lab_b.id)) == 1


def test_calendar_month_groups_by_day_and_includes_spanning_reservations(booking, diego, lab_b):
    booking.create_reservation(Proposal(lab_b.id, diego.id, at(29, 22, month=2), at(1, 2)), allow_past=True)
    booking.create_reservation(Proposal(lab_b.id, diego.id, at(4, 9), at(4, 10)))
    booking.create_reservation(Proposal(lab_b.id, diego.id, at(4, 14), at(4, 15)))
    booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9, month=4), at(1, 10, month=4)))

    calendar = booking.calendar_month(2024, 3)

    assert [day.day for day in calendar.days] == [date(2024, 2, 29), date(2024, 3, 4)]
    assert [len(day.reservas) for day in calendar.days] == [1, 2]


def test_available_environments(booking, store, diego, make_environment):
    projector = store.create_resource("Projetor")
    lab_a = make_environment("Lab A", [projector.id])
    lab_b = make_environment("Lab B", [projector.id])
    make_environment("Lab C")
    booking.create_reservation(Proposal(lab_b.id, diego.id, at(1, 9), at(1, 10)))

    free = booking.available_environments(Interval(at(1, 9, 30), at(1, 10, 30)), [projector.id])
    assert [env.id for env in free] == [lab_a.id]

    everything = booking.available_environments(Interval(at(1, 10), at(1, 11)))
    assert [env.name for env in everything] == ["Lab A", "Lab B", "Lab C"]

    assert booking.available_environments(Interval(at(1, 11), at(1, 10))) == []


def test_weekly_reservations_respect_the_week_limit(booking, store, diego, lab_b, monkeypatch):
    monkeypatch.setattr(settings, "MAX_RECURRENCE_WEEKS", 3)
    proposal = Proposal(lab_b.id, diego.id, at(5, 9), at(5, 10))

    with pytest.raises(BookingValidationError) as excinfo:
        booking.create_weekly(proposal, date(2024, 3, 26))
    assert excinfo.value.reason == RejectionReason.RECURRENCE_TOO_LONG.value
    assert store.list_reservations() == []

    assert len(booking.create_weekly(proposal, date(2024, 3, 19))) == 3


def test_weekly_reservations_with_distant_limit_are_rejected(booking, store, diego, lab_b):
    with pytest.raises(BookingValidationError) as excinfo:
        booking.create_weekly(Proposal(lab_b.id, diego.id, at(5, 9), at(5, 10)), date(9999, 12, 31))
    assert excinfo.value.reason == RejectionReason.RECURRENCE_TOO_LONG.value
    assert store.list_reservations() == []

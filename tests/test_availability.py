from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from reservas.db import schemas
from reservas.services.availability import (Accepted, Interval, Proposal, Rejection, RejectionReason,
                                            filter_available, overlaps, validate_batch,
                                            validate_reservation_request, weekly_occurrence_count,
                                            weekly_occurrences)
from tests.conftest import NOW, at

PROJECTOR = schemas.Resource(id=1, name="Projetor")
WHITEBOARD = schemas.Resource(id=2, name="Quadro Branco")
COMPUTERS = schemas.Resource(id=3, name="Computadores")


def environment(env_id, name, resources=()):
    return schemas.Environment(id=env_id, name=name, type_id=1, resources=list(resources))


def reservation(res_id, env_id, start, end, status="approved", user_name="Prof. Diego", env_name=None):
    return schemas.Reservation(id=res_id, environment_id=env_id, user_id=1, start_time=start, end_time=end,
                               status=status, user_name=user_name, environment_name=env_name)


LAB_A = environment(1, "Lab A", [PROJECTOR, WHITEBOARD])
LAB_B = environment(2, "Lab B", [PROJECTOR, COMPUTERS])
LAB_C = environment(3, "Lab C", [])


# --- overlaps ---

@pytest.mark.parametrize("a, b, expected", [
    (Interval(at(1, 9), at(1, 10)), Interval(at(1, 9, 30), at(1, 10, 30)), True),
    (Interval(at(1, 9), at(1, 12)), Interval(at(1, 10), at(1, 11)), True),
    (Interval(at(1, 9), at(1, 10)), Interval(at(1, 9), at(1, 10)), True),
    (Interval(at(1, 9), at(1, 10)), Interval(at(1, 10), at(1, 11)), False),
    (Interval(at(1, 9), at(1, 10)), Interval(at(1, 14), at(1, 15)), False),
])
def test_overlaps_is_symmetric(a, b, expected):
    assert overlaps(a, b) is expected
    assert overlaps(b, a) is expected


def test_adjacent_intervals_do_not_overlap():
    morning = Interval(at(1, 9), at(1, 10))
    next_slot = Interval(at(1, 10), at(1, 11))
    assert not overlaps(morning, next_slot)


# --- filter_available ---

def test_filter_available_removes_occupied_environments_and_keeps_order():
    existing = [reservation(1, LAB_B.id, at(1, 9), at(1, 10))]
    result = filter_available([LAB_C, LAB_B, LAB_A], Interval(at(1, 9, 30), at(1, 10, 30)), [], existing)
    assert [env.name for env in result] == ["Lab C", "Lab A"]


def test_filter_available_requires_all_resources():
    result = filter_available([LAB_A, LAB_B, LAB_C], Interval(at(1, 9), at(1, 10)),
                              [PROJECTOR.id, COMPUTERS.id], [])
    assert [env.name for env in result] == ["Lab B"]


def test_filter_available_without_required_resources_matches_time_only_filter():
    existing = [reservation(1, LAB_A.id, at(1, 8), at(1, 9, 30))]
    interval = Interval(at(1, 9), at(1, 10))
    time_only = [env for env in [LAB_A, LAB_B, LAB_C]
                 if not any(r.environment_id == env.id and overlaps(Interval(r.start_time, r.end_time), interval)
                            for r in existing)]
    assert filter_available([LAB_A, LAB_B, LAB_C], interval, [], existing) == time_only


def test_filter_available_ignores_cancelled_reservations():
    existing = [reservation(1, LAB_A.id, at(1, 9), at(1, 10), status="cancelled")]
    result = filter_available([LAB_A], Interval(at(1, 9), at(1, 10)), [], existing)
    assert result == [LAB_A]


@pytest.mark.parametrize("interval", [
    Interval(at(1, 10), at(1, 10)),
    Interval(at(1, 11), at(1, 10)),
])
def test_filter_available_with_degenerate_interval_is_empty(interval):
    assert filter_available([LAB_A, LAB_B], interval, [], []) == []


def test_filter_available_partition_is_exact():
    existing = [
        reservation(1, LAB_A.id, at(1, 8), at(1, 9)),
        reservation(2, LAB_B.id, at(1, 9, 45), at(1, 11)),
    ]
    interval = Interval(at(1, 9), at(1, 10))
    candidates = [LAB_A, LAB_B, LAB_C]
    available = filter_available(candidates, interval, [], existing)

    for env in candidates:
        busy = any(r.environment_id == env.id and overlaps(Interval(r.start_time, r.end_time), interval)
                   for r in existing)
        assert (env in available) is (not busy)


# --- validate_reservation_request ---

def test_missing_selection_is_rejected_first():
    result = validate_reservation_request(Proposal(None, 1, at(1, 10), at(1, 9)), [], NOW)
    assert isinstance(result, Rejection)
    assert result.reason == RejectionReason.MISSING_SELECTION


def test_inverted_interval_wins_over_conflict():
    existing = [reservation(1, LAB_B.id, at(1, 9), at(1, 10))]
    result = validate_reservation_request(Proposal(LAB_B.id, 1, at(1, 10), at(1, 9, 30)), existing, NOW)
    assert result.reason == RejectionReason.INVERTED_INTERVAL


def test_zero_length_interval_is_inverted():
    result = validate_reservation_request(Proposal(LAB_B.id, 1, at(1, 9), at(1, 9)), [], NOW)
    assert result.reason == RejectionReason.INVERTED_INTERVAL


def test_past_dated_start_is_rejected_unless_allowed():
    past = Proposal(LAB_B.id, 1, NOW - timedelta(hours=2), NOW - timedelta(hours=1))
    assert validate_reservation_request(past, [], NOW).reason == RejectionReason.PAST_DATED
    assert isinstance(validate_reservation_request(past, [], NOW, allow_past=True), Accepted)


def test_lab_b_scenario():
    existing = [reservation(10, LAB_B.id, at(1, 9), at(1, 10), user_name="Prof. Ana", env_name="Lab B")]

    overlapping = validate_reservation_request(Proposal(LAB_B.id, 2, at(1, 9, 30), at(1, 10, 30)), existing, NOW)
    assert overlapping.reason == RejectionReason.SLOT_CONFLICT
    assert overlapping.conflict.reservation_id == 10
    assert overlapping.conflict.occupant_name == "Prof. Ana"
    assert (overlapping.conflict.start, overlapping.conflict.end) == (at(1, 9), at(1, 10))
    assert "Prof. Ana" in overlapping.message and "09:00" in overlapping.message

    adjacent = validate_reservation_request(Proposal(LAB_B.id, 2, at(1, 10), at(1, 11)), existing, NOW)
    assert isinstance(adjacent, Accepted)

    other_room = validate_reservation_request(Proposal(LAB_C.id, 2, at(1, 10), at(1, 11)), existing, NOW)
    assert isinstance(other_room, Accepted)


def test_reschedule_ignores_the_reservation_itself():
    existing = [reservation(10, LAB_B.id, at(1, 9), at(1, 10))]
    moved = Proposal(LAB_B.id, 1, at(1, 9, 30), at(1, 10, 30))
    result = validate_reservation_request(moved, existing, NOW, exclude_reservation_id=10)
    assert isinstance(result, Accepted)


def test_cancelled_reservation_does_not_block_the_slot():
    existing = [reservation(10, LAB_B.id, at(1, 9), at(1, 10), status="cancelled")]
    result = validate_reservation_request(Proposal(LAB_B.id, 1, at(1, 9), at(1, 10)), existing, NOW)
    assert isinstance(result, Accepted)


# --- validate_batch ---

def test_batch_rejects_internal_overlap():
    proposals = [
        Proposal(LAB_A.id, 1, at(5, 9), at(5, 10)),
        Proposal(LAB_A.id, 1, at(5, 9, 30), at(5, 11)),
        Proposal(LAB_B.id, 1, at(5, 9), at(5, 10)),
    ]
    result = validate_batch(proposals, [], NOW)
    assert isinstance(result, Rejection)
    assert result.reason == RejectionReason.SLOT_CONFLICT
    assert result.index == 1
    assert result.conflict.reservation_id is None


def test_batch_reports_position_of_conflict_with_existing():
    existing = [reservation(1, LAB_B.id, at(6, 9), at(6, 10))]
    proposals = [
        Proposal(LAB_B.id, 1, at(5, 9), at(5, 10)),
        Proposal(LAB_B.id, 1, at(6, 9), at(6, 10)),
    ]
    result = validate_batch(proposals, existing, NOW)
    assert result.index == 1
    assert result.conflict.reservation_id == 1


def test_batch_of_disjoint_proposals_is_accepted():
    proposals = [
        Proposal(LAB_A.id, 1, at(5, 9), at(5, 10)),
        Proposal(LAB_A.id, 1, at(5, 10), at(5, 11)),
        Proposal(LAB_B.id, 1, at(5, 9), at(5, 10)),
    ]
    result = validate_batch(proposals, [], NOW)
    assert [accepted.proposal for accepted in result] == proposals


# --- weekly_occurrences ---

def test_weekly_occurrences_until_is_inclusive():
    proposal = Proposal(LAB_A.id, 1, at(5, 9), at(5, 10))
    occurrences = weekly_occurrences(proposal, date(2024, 3, 26))
    assert [o.start.day for o in occurrences] == [5, 12, 19, 26]
    assert all(o.end - o.start == timedelta(hours=1) for o in occurrences)


def test_weekly_occurrences_keep_local_wall_clock_across_dst():
    new_york = ZoneInfo("America/New_York")
    start = datetime(2024, 3, 5, 9, 0, tzinfo=new_york)
    proposal = Proposal(LAB_A.id, 1, start.astimezone(timezone.utc), (start + timedelta(hours=1)).astimezone(timezone.utc))

    first, second = weekly_occurrences(proposal, date(2024, 3, 12), tz=new_york)
    assert first.start.astimezone(new_york).hour == 9
    assert second.start.astimezone(new_york).hour == 9
    assert first.start.hour == 14 and second.start.hour == 13


def test_weekly_occurrence_count_matches_expansion():
    proposal = Proposal(LAB_A.id, 1, at(5, 9), at(5, 10))
    until = date(2024, 5, 7)
    assert weekly_occurrence_count(proposal, until) == len(weekly_occurrences(proposal, until)) == 10


def test_weekly_occurrence_count_before_first_day_is_zero():
    proposal = Proposal(LAB_A.id, 1, at(5, 9), at(5, 10))
    assert weekly_occurrence_count(proposal, date(2024, 3, 4)) == 0
    assert weekly_occurrences(proposal, date(2024, 3, 4)) == []


def test_weekly_occurrence_count_for_distant_limit_does_not_expand():
    proposal = Proposal(LAB_A.id, 1, at(5, 9), at(5, 10))
    assert weekly_occurrence_count(proposal, date(9999, 12, 31)) > 400000

from datetime import time

import pytest

from lesson_scheduling.core.errors import (
    InvalidTransition,
    PermissionDenied,
    SlotConflict,
    StaleState,
    ValidationFailed,
)
from lesson_scheduling.models import EntityType, LessonRequest, RequestStatus, ScheduleSlot, TicketStatus
from lesson_scheduling.services import lifecycle
from lesson_scheduling.services.assignment import assign_resource
from lesson_scheduling.services.slots import initialize_schedule, list_slots, set_slot_availability

from conftest import ADMIN, LESSON_DAY, NINE


@pytest.fixture()
def pending(db, roster, student_actor):
    request, _ = lifecycle.create_lesson_request(
        db,
        student_actor,
        roster["student"].id,
        roster["cfi"].id,
        roster["aircraft"].id,
        LESSON_DAY,
        NINE,
    )
    return request


@pytest.fixture()
def second_cfi(make_cfi):
    return make_cfi(name="Bob Hoover", user_id="cfi-2")


def _holders(db, entity_type, entity_id):
    db.expire_all()
    return [
        s.lesson_request_id
        for s in db.query(ScheduleSlot).filter(
            ScheduleSlot.entity_type == entity_type, ScheduleSlot.entity_id == entity_id
        )
    ]


def test_assign_sets_resources_and_reserves_slots(db, roster, pending, second_cfi):
    request = assign_resource(db, ADMIN, pending.id, cfi_id=second_cfi.id, aircraft_id=roster["aircraft"].id)

    assert request.status == RequestStatus.ASSIGNED
    assert request.cfi_id == second_cfi.id
    ticket = lifecycle.ticket_for(db, request)
    assert ticket.status == TicketStatus.ASSIGNED
    assert ticket.cfi_id == second_cfi.id
    assert _holders(db, EntityType.CFI, second_cfi.id) == [pending.id]
    assert _holders(db, EntityType.AIRCRAFT, roster["aircraft"].id) == [pending.id]


def test_assign_requires_a_resource(db, pending):
    with pytest.raises(ValidationFailed):
        assign_resource(db, ADMIN, pending.id)


@pytest.mark.parametrize("advance", ["assign", "approve"])
def test_assign_refuses_requests_past_pending(db, roster, pending, cfi_actor, advance):
    if advance == "assign":
        assign_resource(db, ADMIN, pending.id, aircraft_id=roster["aircraft"].id)
    else:
        lifecycle.approve_request(db, cfi_actor, pending.id)

    with pytest.raises(InvalidTransition):
        assign_resource(db, ADMIN, pending.id, cfi_id=roster["cfi"].id)


def test_assign_conflict_rolls_back_everything(db, roster, pending, second_cfi):
    aircraft = roster["aircraft"]
    initialize_schedule(db, ADMIN, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, num_days=1, start_hour=9, end_hour=10)
    set_slot_availability(db, ADMIN, list_slots(db, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, LESSON_DAY)[0].id, False)

    with pytest.raises(SlotConflict):
        assign_resource(db, ADMIN, pending.id, cfi_id=second_cfi.id, aircraft_id=aircraft.id)

    db.expire_all()
    request = db.get(LessonRequest, pending.id)
    assert request.status == RequestStatus.PENDING
    assert request.cfi_id == roster["cfi"].id
    assert lifecycle.ticket_for(db, request).status == TicketStatus.PENDING
    assert _holders(db, EntityType.CFI, second_cfi.id) == []


def test_instructor_can_only_assign_self(db, roster, pending, second_cfi, cfi_actor):
    with pytest.raises(PermissionDenied):
        assign_resource(db, cfi_actor, pending.id, cfi_id=second_cfi.id)

    request = assign_resource(db, cfi_actor, pending.id, cfi_id=roster["cfi"].id)
    assert request.status == RequestStatus.ASSIGNED


def test_student_cannot_assign(db, roster, pending, student_actor):
    with pytest.raises(PermissionDenied):
        assign_resource(db, student_actor, pending.id, aircraft_id=roster["aircraft"].id)


def test_assign_with_stale_version(db, roster, pending):
    with pytest.raises(StaleState):
        assign_resource(db, ADMIN, pending.id, aircraft_id=roster["aircraft"].id, expected_version=7)


def test_approval_after_assignment_moves_the_hold(db, roster, pending, second_cfi):
    assign_resource(db, ADMIN, pending.id, cfi_id=second_cfi.id)
    lifecycle.propose_modification(db, ADMIN, pending.id, "Moving to ten", modified_start_time=time(10))
    lifecycle.accept_modification(db, ADMIN, pending.id)

    db.expire_all()
    held = db.query(ScheduleSlot).filter(ScheduleSlot.lesson_request_id == pending.id).all()
    assert {(s.entity_type, s.start_time) for s in held} == {
        (EntityType.CFI, time(10)),
        (EntityType.AIRCRAFT, time(10)),
    }
    nine = (
        db.query(ScheduleSlot)
        .filter(ScheduleSlot.entity_id == second_cfi.id, ScheduleSlot.start_time == NINE)
        .one()
    )
    assert nine.is_available is True

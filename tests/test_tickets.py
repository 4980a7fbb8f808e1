import re
from datetime import time

import pytest

from lesson_scheduling.core.errors import InvalidTransition, NotFound, PermissionDenied, StaleState
from lesson_scheduling.core.rbac import Actor, Role
from lesson_scheduling.models import EntityType, LessonRequest, RequestStatus, ScheduleSlot, TicketStatus
from lesson_scheduling.services import lifecycle
from lesson_scheduling.services import tickets as tickets_service

from conftest import ADMIN, LESSON_DAY, NINE


@pytest.fixture()
def created(db, roster, student_actor):
    return lifecycle.create_lesson_request(
        db, student_actor, roster["student"].id, roster["cfi"].id, roster["aircraft"].id, LESSON_DAY, NINE
    )


def _request(db, request_id):
    db.expire_all()
    return db.get(LessonRequest, request_id)


def test_ticket_number_format():
    number = tickets_service.generate_ticket_number("3f2a-41c0-9e1d-00000000abcd", prefix="TK")
    assert re.fullmatch(r"TK\d{6}ABCD", number)


def test_ticket_resolves_back_to_request(db, created, student_actor):
    request, ticket = created

    found = tickets_service.get_ticket_by_number(db, student_actor, ticket.ticket_number)

    assert found.id == ticket.id
    assert found.lesson_request_id == request.id
    assert found.status.value == request.status.value == "pending"


def test_advance_moves_ticket_and_request_together(db, created, cfi_actor):
    request, ticket = created

    ticket = tickets_service.advance_ticket(db, cfi_actor, ticket.id, TicketStatus.ACCEPTED)

    assert ticket.status == TicketStatus.ACCEPTED
    stored = _request(db, request.id)
    assert stored.status == RequestStatus.ACCEPTED
    assert stored.approved_at is not None
    assert db.query(ScheduleSlot).filter(ScheduleSlot.lesson_request_id == request.id).count() == 2

    tickets_service.advance_ticket(db, cfi_actor, ticket.id, TicketStatus.IN_PROGRESS)
    ticket = tickets_service.advance_ticket(db, cfi_actor, ticket.id, TicketStatus.COMPLETED)
    assert ticket.status == TicketStatus.COMPLETED
    assert _request(db, request.id).status == RequestStatus.COMPLETED


def test_advance_through_assigned(db, created):
    request, ticket = created

    tickets_service.advance_ticket(db, ADMIN, ticket.id, TicketStatus.ASSIGNED)
    assert _request(db, request.id).status == RequestStatus.ASSIGNED
    held = db.query(ScheduleSlot).filter(ScheduleSlot.lesson_request_id == request.id).all()
    assert {(s.entity_type, s.entity_id) for s in held} == {
        (EntityType.CFI, request.cfi_id),
        (EntityType.AIRCRAFT, request.aircraft_id),
    }

    tickets_service.advance_ticket(db, ADMIN, ticket.id, TicketStatus.REJECTED)
    stored = _request(db, request.id)
    assert stored.status == RequestStatus.REJECTED
    assert stored.rejected_at is not None
    assert db.query(ScheduleSlot).filter(ScheduleSlot.lesson_request_id == request.id).count() == 0


@pytest.mark.parametrize("target", [TicketStatus.IN_PROGRESS, TicketStatus.COMPLETED, TicketStatus.PENDING])
def test_advance_rejects_skipped_states(db, created, target):
    request, ticket = created

    with pytest.raises(InvalidTransition):
        tickets_service.advance_ticket(db, ADMIN, ticket.id, target)

    assert _request(db, request.id).status == RequestStatus.PENDING


def test_cfi_cannot_accept_own_counter_proposal_through_ticket(db, created, cfi_actor):
    request, ticket = created
    lifecycle.propose_modification(db, cfi_actor, request.id, "Ten works better", modified_start_time=time(10))

    with pytest.raises(InvalidTransition):
        tickets_service.advance_ticket(db, cfi_actor, ticket.id, TicketStatus.ACCEPTED)

    assert _request(db, request.id).status == RequestStatus.STUDENT_REVIEWING
    assert db.query(ScheduleSlot).filter(ScheduleSlot.lesson_request_id == request.id).count() == 0

    # withdrawing the proposal stays open to the CFI
    tickets_service.advance_ticket(db, cfi_actor, ticket.id, TicketStatus.REJECTED)
    assert _request(db, request.id).status == RequestStatus.REJECTED


def test_advance_checks_version(db, created):
    _, ticket = created
    with pytest.raises(StaleState):
        tickets_service.advance_ticket(db, ADMIN, ticket.id, TicketStatus.ACCEPTED, expected_version=2)


def test_students_cannot_advance(db, created, student_actor):
    _, ticket = created
    with pytest.raises(PermissionDenied):
        tickets_service.advance_ticket(db, student_actor, ticket.id, TicketStatus.ACCEPTED)


def test_unknown_ticket(db, student_actor):
    with pytest.raises(NotFound):
        tickets_service.get_ticket(db, student_actor, "missing")
    with pytest.raises(NotFound):
        tickets_service.advance_ticket(db, ADMIN, "missing", TicketStatus.ACCEPTED)


def test_list_tickets_is_scoped(db, created, cfi_actor, make_cfi):
    make_cfi(name="Other", user_id="cfi-2")
    _, ticket = created

    assert [t.id for t in tickets_service.list_tickets(db, cfi_actor)] == [ticket.id]
    assert tickets_service.list_tickets(db, Actor("cfi-2", Role.INSTRUCTOR)) == []
    assert tickets_service.list_tickets(db, ADMIN, TicketStatus.ACCEPTED) == []

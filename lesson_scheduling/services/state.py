"""
Lesson request / ticket state machine.

A request and its ticket are two views of one lesson; every status change
goes through `apply_request_status`, which also keeps the ticket and the
reserved slots in step inside the caller's transaction.
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import NamedTuple

from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import InvalidTransition, NotFound, StaleState
from lesson_scheduling.models import (
    EntityType,
    LessonRequest,
    LessonTicket,
    RequestStatus,
    TicketStatus,
)
from lesson_scheduling.services.slots import release_request_slots, reserve_slot

REQUEST_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {
        RequestStatus.ASSIGNED,
        RequestStatus.ACCEPTED,
        RequestStatus.REJECTED,
        RequestStatus.STUDENT_REVIEWING,
    },
    RequestStatus.ASSIGNED: {
        RequestStatus.ACCEPTED,
        RequestStatus.REJECTED,
        RequestStatus.STUDENT_REVIEWING,
    },
    RequestStatus.STUDENT_REVIEWING: {
        RequestStatus.ACCEPTED,
        RequestStatus.DENIED,
        RequestStatus.REJECTED,
    },
    RequestStatus.ACCEPTED: {RequestStatus.IN_PROGRESS},
    RequestStatus.IN_PROGRESS: {RequestStatus.COMPLETED},
    RequestStatus.COMPLETED: set(),
    RequestStatus.REJECTED: set(),
    RequestStatus.DENIED: set(),
}

TICKET_TRANSITIONS: dict[TicketStatus, set[TicketStatus]] = {
    TicketStatus.PENDING: {TicketStatus.ASSIGNED, TicketStatus.ACCEPTED, TicketStatus.REJECTED},
    TicketStatus.ASSIGNED: {TicketStatus.ACCEPTED, TicketStatus.REJECTED},
    TicketStatus.ACCEPTED: {TicketStatus.IN_PROGRESS},
    TicketStatus.IN_PROGRESS: {TicketStatus.COMPLETED},
    TicketStatus.REJECTED: set(),
    TicketStatus.COMPLETED: set(),
}

# None: the ticket keeps its current status
TICKET_STATUS_FOR_REQUEST: dict[RequestStatus, TicketStatus | None] = {
    RequestStatus.PENDING: TicketStatus.PENDING,
    RequestStatus.ASSIGNED: TicketStatus.ASSIGNED,
    RequestStatus.STUDENT_REVIEWING: None,
    RequestStatus.ACCEPTED: TicketStatus.ACCEPTED,
    RequestStatus.REJECTED: TicketStatus.REJECTED,
    RequestStatus.DENIED: TicketStatus.REJECTED,
    RequestStatus.IN_PROGRESS: TicketStatus.IN_PROGRESS,
    RequestStatus.COMPLETED: TicketStatus.COMPLETED,
}


class Booking(NamedTuple):
    cfi_id: str
    aircraft_id: str
    date: date
    start_time: time
    end_time: time


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def booking_for(request: LessonRequest) -> Booking:
    """Effective lesson: the counter-proposal once there is one, else the original ask."""
    if request.has_modification:
        return Booking(
            cfi_id=request.modified_cfi_id or request.cfi_id,
            aircraft_id=request.modified_aircraft_id or request.aircraft_id,
            date=request.modified_date,
            start_time=request.modified_start_time,
            end_time=request.modified_end_time,
        )
    return Booking(
        cfi_id=request.cfi_id,
        aircraft_id=request.aircraft_id,
        date=request.requested_date,
        start_time=request.requested_start_time,
        end_time=request.requested_end_time,
    )


BOOKED_STATUSES = frozenset({RequestStatus.ACCEPTED, RequestStatus.IN_PROGRESS, RequestStatus.COMPLETED})


def acting_cfi_id(request: LessonRequest) -> str:
    """
    CFI who answers for the request.

    Until a lesson is booked that is the requested CFI, who also owns any
    counter-proposal. Once booked it is the CFI holding the slot, which is
    the proposed one when the student took a proposal naming another CFI.
    """
    if request.status in BOOKED_STATUSES:
        return booking_for(request).cfi_id
    return request.cfi_id


def load_request(db: Session, request_id: str) -> LessonRequest:
    request = db.get(LessonRequest, request_id)
    if request is None:
        raise NotFound(f"Lesson request {request_id} not found")
    return request


def load_ticket_for(db: Session, request_id: str) -> LessonTicket | None:
    return db.query(LessonTicket).filter(LessonTicket.lesson_request_id == request_id).first()


def check_version(record, expected_version: int | None) -> None:
    if expected_version is not None and record.version != expected_version:
        raise StaleState(
            f"Version mismatch. Expected {record.version}, got {expected_version}. "
            "The record may have been modified by another user."
        )


def ensure_request_transition(request: LessonRequest, target: RequestStatus) -> None:
    if target not in REQUEST_TRANSITIONS[request.status]:
        raise InvalidTransition(
            f"Cannot move lesson request from {request.status.value} to {target.value}"
        )


def ensure_ticket_transition(ticket: LessonTicket, target: TicketStatus) -> None:
    if target not in TICKET_TRANSITIONS[ticket.status]:
        raise InvalidTransition(
            f"Cannot move ticket {ticket.ticket_number} from {ticket.status.value} to {target.value}"
        )


def reserve_booking(db: Session, request: LessonRequest) -> Booking:
    """Hold the CFI and aircraft slots for the request's effective lesson."""
    booking = booking_for(request)
    # an earlier hold (e.g. from assignment at the original time) is replaced
    release_request_slots(db, request.id)
    reserve_slot(db, EntityType.CFI, booking.cfi_id, booking.date, booking.start_time, request.id)
    reserve_slot(db, EntityType.AIRCRAFT, booking.aircraft_id, booking.date, booking.start_time, request.id)
    return booking


def sync_ticket(db: Session, request: LessonRequest) -> LessonTicket | None:
    ticket = load_ticket_for(db, request.id)
    if ticket is None:
        return None
    target = TICKET_STATUS_FOR_REQUEST[request.status]
    if target is None:
        return ticket
    booking = booking_for(request)
    if ticket.status != target:
        ticket.status = target
    if ticket.cfi_id != booking.cfi_id:
        ticket.cfi_id = booking.cfi_id
    if ticket.aircraft_id != booking.aircraft_id:
        ticket.aircraft_id = booking.aircraft_id
    return ticket


def apply_request_status(db: Session, request: LessonRequest, target: RequestStatus) -> LessonTicket | None:
    """
    Move a request to `target` with its side effects, then mirror the ticket.

    accepted reserves the effective CFI/aircraft slots; rejected and denied
    release whatever the request held.
    """
    ensure_request_transition(request, target)
    request.status = target

    if target == RequestStatus.ACCEPTED:
        request.approved_at = utcnow()
        reserve_booking(db, request)
    elif target in (RequestStatus.REJECTED, RequestStatus.DENIED):
        if target == RequestStatus.REJECTED:
            request.rejected_at = utcnow()
        release_request_slots(db, request.id)
    elif target == RequestStatus.COMPLETED:
        request.completed_at = utcnow()

    return sync_ticket(db, request)

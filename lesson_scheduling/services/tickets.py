from __future__ import annotations

import logging
import time

from sqlalchemy.orm import Session

from lesson_scheduling.core.config import settings
from lesson_scheduling.core.errors import InvalidTransition, NotFound
from lesson_scheduling.core.rbac import Actor, ensure
from lesson_scheduling.models import LessonRequest, LessonTicket, RequestStatus, TicketStatus
from lesson_scheduling.services import audit as audit_service
from lesson_scheduling.services import notifications as notifications_service
from lesson_scheduling.services.assignment import assign_resource
from lesson_scheduling.services.state import (
    acting_cfi_id,
    apply_request_status,
    check_version,
    ensure_ticket_transition,
    load_request,
)
from lesson_scheduling.services.transaction import UnitOfWork

logger = logging.getLogger(__name__)


def generate_ticket_number(request_id: str, prefix: str | None = None) -> str:
    """e.g. LR482913A1F0: prefix, last 6 digits of epoch millis, last 4 of the request id."""
    prefix = settings.TICKET_PREFIX if prefix is None else prefix
    timestamp = str(int(time.time() * 1000))[-6:]
    short_id = request_id.replace("-", "")[-4:].upper()
    return f"{prefix}{timestamp}{short_id}"


def create_ticket_for(db: Session, request: LessonRequest) -> LessonTicket:
    """Add the pending ticket mirroring a freshly created request (no commit)."""
    ticket = LessonTicket(
        ticket_number=generate_ticket_number(request.id),
        lesson_request_id=request.id,
        student_id=request.student_id,
        cfi_id=request.cfi_id,
        aircraft_id=request.aircraft_id,
        status=TicketStatus.PENDING,
    )
    db.add(ticket)
    return ticket


def get_ticket(db: Session, actor: Actor, ticket_id: str) -> LessonTicket:
    ticket = db.get(LessonTicket, ticket_id)
    if ticket is None:
        raise NotFound(f"Ticket {ticket_id} not found")
    _ensure_visible(db, actor, ticket)
    return ticket


def get_ticket_by_number(db: Session, actor: Actor, ticket_number: str) -> LessonTicket:
    ticket = db.query(LessonTicket).filter(LessonTicket.ticket_number == ticket_number).first()
    if ticket is None:
        raise NotFound(f"Ticket {ticket_number} not found")
    _ensure_visible(db, actor, ticket)
    return ticket


def list_tickets(db: Session, actor: Actor, status: TicketStatus | None = None) -> list[LessonTicket]:
    query = actor.policy.scope(db, actor, db.query(LessonTicket), LessonTicket.student_id, LessonTicket.cfi_id)
    if status is not None:
        query = query.filter(LessonTicket.status == status)
    return query.order_by(LessonTicket.created_at.desc(), LessonTicket.ticket_number.desc()).all()


def _ensure_visible(db: Session, actor: Actor, ticket: LessonTicket) -> None:
    policy = actor.policy
    ensure(
        policy.acts_for_student(db, actor, ticket.student_id)
        or (ticket.cfi_id is not None and policy.acts_for_cfi(db, actor, ticket.cfi_id)),
        "Not allowed to view this ticket",
    )


def advance_ticket(
    db: Session,
    actor: Actor,
    ticket_id: str,
    new_status: TicketStatus,
    expected_version: int | None = None,
) -> LessonTicket:
    """
    Move a ticket and its lesson request to `new_status` in one transaction.

    Both state machines must allow the move. Assigning goes through
    `assign_resource` with the requested CFI and aircraft, so their slots are
    held exactly as for an explicit assignment. Accepting reserves the
    lesson's slots; rejecting releases them.
    """
    ticket = db.get(LessonTicket, ticket_id)
    if ticket is None:
        raise NotFound(f"Ticket {ticket_id} not found")
    check_version(ticket, expected_version)
    request = load_request(db, ticket.lesson_request_id)
    ensure(
        actor.policy.acts_for_cfi(db, actor, acting_cfi_id(request)),
        "Only the ticket's CFI or an administrator can update it",
    )
    ensure_ticket_transition(ticket, new_status)
    if new_status == TicketStatus.ACCEPTED and request.status == RequestStatus.STUDENT_REVIEWING:
        # only the student can take a counter-proposal
        raise InvalidTransition("A counter-proposal is awaiting the student's answer")
    if new_status == TicketStatus.ASSIGNED:
        assign_resource(db, actor, request.id, cfi_id=request.cfi_id, aircraft_id=request.aircraft_id)
        db.refresh(ticket)
        return ticket
    previous = ticket.status

    with UnitOfWork(db) as uow:
        apply_request_status(db, request, RequestStatus(new_status.value))
        ticket.status = new_status

        notifications_service.send_to_student(
            db,
            request.student_id,
            f"Your lesson ticket {ticket.ticket_number} is now {new_status.value.replace('_', ' ')}.",
        )
        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="ticket_advanced",
            resource_type="lesson_ticket",
            resource_id=ticket.id,
            details=f"{ticket.ticket_number}: {previous.value} -> {new_status.value}",
        )
        uow.publish(
            "ticket_advanced",
            {
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "lesson_request_id": request.id,
                "status": new_status.value,
            },
        )

    logger.info("Ticket %s advanced %s -> %s", ticket.ticket_number, previous.value, new_status.value)
    db.refresh(ticket)
    return ticket

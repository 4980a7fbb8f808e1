"""
Lesson request lifecycle.

pending -> assigned -> accepted -> in_progress -> completed, with the
counter-proposal branch through student_reviewing and the terminal
rejected / denied states. Each operation is one transaction that also
updates the paired ticket, the reserved slots, the audit log and the
counterpart's notifications.
"""
from __future__ import annotations

import logging
from datetime import date, time

from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import InvalidTransition, SlotConflict, ValidationFailed
from lesson_scheduling.core.rbac import Actor, ensure
from lesson_scheduling.models import EntityType, LessonRequest, LessonTicket, RequestStatus
from lesson_scheduling.services import audit as audit_service
from lesson_scheduling.services import notifications as notifications_service
from lesson_scheduling.services.availability import is_free
from lesson_scheduling.services.roster import get_active_entity
from lesson_scheduling.services.state import (
    apply_request_status,
    acting_cfi_id,
    booking_for,
    check_version,
    ensure_request_transition,
    load_request,
    load_ticket_for,
)
from lesson_scheduling.services.tickets import create_ticket_for
from lesson_scheduling.services.transaction import UnitOfWork
from lesson_scheduling.utils.timefmt import format_time, one_hour_after

logger = logging.getLogger(__name__)

DEFAULT_APPROVAL_MESSAGE = "Lesson request accepted"
DEFAULT_ACCEPT_MODIFICATION_MESSAGE = "Modification accepted"


def _when(day: date, start: time) -> str:
    return f"{day.isoformat()} {format_time(start)[:5]}"


def _ensure_free(db: Session, entity_type: EntityType, entity, day: date, start: time,
                 request_id: str | None = None) -> None:
    if not is_free(db, entity_type, entity.id, day, start, ignore_request_id=request_id):
        raise SlotConflict(f"{entity.label} is not available on {_when(day, start)}")


def _event(request: LessonRequest) -> dict:
    return {
        "lesson_request_id": request.id,
        "student_id": request.student_id,
        "cfi_id": request.cfi_id,
        "aircraft_id": request.aircraft_id,
        "status": request.status.value,
    }


# =====================
# Queries
# =====================

def get_lesson_request(db: Session, actor: Actor, request_id: str) -> LessonRequest:
    request = load_request(db, request_id)
    policy = actor.policy
    ensure(
        policy.acts_for_student(db, actor, request.student_id)
        or policy.acts_for_cfi(db, actor, request.cfi_id)
        or (request.modified_cfi_id is not None and policy.acts_for_cfi(db, actor, request.modified_cfi_id)),
        "Not allowed to view this lesson request",
    )
    return request


def list_lesson_requests(
    db: Session,
    actor: Actor,
    status: RequestStatus | None = None,
) -> list[LessonRequest]:
    query = actor.policy.scope(
        db,
        actor,
        db.query(LessonRequest),
        LessonRequest.student_id,
        LessonRequest.cfi_id,
        LessonRequest.modified_cfi_id,
    )
    if status is not None:
        query = query.filter(LessonRequest.status == status)
    return query.order_by(LessonRequest.created_at.desc(), LessonRequest.id).all()


def ticket_for(db: Session, request: LessonRequest) -> LessonTicket | None:
    return load_ticket_for(db, request.id)


# =====================
# Creation
# =====================

def create_lesson_request(
    db: Session,
    actor: Actor,
    student_id: str,
    cfi_id: str,
    aircraft_id: str,
    requested_date: date,
    requested_start_time: time,
    student_message: str | None = None,
) -> tuple[LessonRequest, LessonTicket]:
    """Create a pending request for a one-hour lesson together with its ticket."""
    ensure(
        actor.policy.acts_for_student(db, actor, student_id),
        "Students can only request lessons for themselves",
    )
    student = get_active_entity(db, EntityType.STUDENT, student_id)
    cfi = get_active_entity(db, EntityType.CFI, cfi_id)
    aircraft = get_active_entity(db, EntityType.AIRCRAFT, aircraft_id)
    requested_end_time = one_hour_after(requested_start_time)

    _ensure_free(db, EntityType.CFI, cfi, requested_date, requested_start_time)
    _ensure_free(db, EntityType.AIRCRAFT, aircraft, requested_date, requested_start_time)

    with UnitOfWork(db) as uow:
        request = LessonRequest(
            student_id=student.id,
            cfi_id=cfi.id,
            aircraft_id=aircraft.id,
            requested_date=requested_date,
            requested_start_time=requested_start_time,
            requested_end_time=requested_end_time,
            status=RequestStatus.PENDING,
            student_message=(student_message or "").strip() or None,
        )
        db.add(request)
        db.flush()
        ticket = create_ticket_for(db, request)
        db.flush()

        notifications_service.send_to_cfi(
            db,
            cfi.id,
            f"New lesson request from {student.label} for {_when(requested_date, requested_start_time)} "
            f"in {aircraft.label} (ticket {ticket.ticket_number}).",
        )
        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="lesson_request_created",
            resource_type="lesson_request",
            resource_id=request.id,
            details=f"ticket {ticket.ticket_number}, {_when(requested_date, requested_start_time)}",
        )
        uow.publish("lesson_request_created", {**_event(request), "ticket_number": ticket.ticket_number})

    logger.info("Lesson request %s created (ticket %s)", request.id, ticket.ticket_number)
    db.refresh(request)
    db.refresh(ticket)
    return request, ticket


# =====================
# CFI actions
# =====================

def _load_for_cfi(db: Session, actor: Actor, request_id: str, expected_version: int | None) -> LessonRequest:
    request = load_request(db, request_id)
    check_version(request, expected_version)
    ensure(
        actor.policy.acts_for_cfi(db, actor, acting_cfi_id(request)),
        "Only the lesson's CFI or an administrator can act on this request",
    )
    return request


def _load_for_student(db: Session, actor: Actor, request_id: str, expected_version: int | None) -> LessonRequest:
    request = load_request(db, request_id)
    check_version(request, expected_version)
    ensure(
        actor.policy.acts_for_student(db, actor, request.student_id),
        "Only the requesting student or an administrator can act on this request",
    )
    return request


def _transition(
    db: Session,
    actor: Actor,
    request: LessonRequest,
    target: RequestStatus,
    action: str,
    notify_student: str | None = None,
    notify_cfi: str | None = None,
) -> LessonRequest:
    previous = request.status
    with UnitOfWork(db) as uow:
        apply_request_status(db, request, target)
        if notify_student:
            notifications_service.send_to_student(db, request.student_id, notify_student)
        if notify_cfi:
            notifications_service.send_to_cfi(db, booking_for(request).cfi_id, notify_cfi)
        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action=action,
            resource_type="lesson_request",
            resource_id=request.id,
            details=f"{previous.value} -> {target.value}",
        )
        uow.publish(action, _event(request))

    logger.info("Lesson request %s: %s -> %s", request.id, previous.value, target.value)
    db.refresh(request)
    return request


def approve_request(
    db: Session,
    actor: Actor,
    request_id: str,
    cfi_message: str | None = None,
    expected_version: int | None = None,
) -> LessonRequest:
    """CFI accepts the request as asked; the CFI and aircraft slots get reserved."""
    request = _load_for_cfi(db, actor, request_id, expected_version)
    ensure_request_transition(request, RequestStatus.ACCEPTED)
    if request.status == RequestStatus.STUDENT_REVIEWING:
        raise InvalidTransition("A counter-proposal is awaiting the student's answer")
    request.cfi_message = (cfi_message or "").strip() or DEFAULT_APPROVAL_MESSAGE
    when = _when(request.requested_date, request.requested_start_time)
    return _transition(
        db, actor, request, RequestStatus.ACCEPTED, "lesson_request_approved",
        notify_student=f"Your lesson on {when} was accepted.",
    )


def reject_request(
    db: Session,
    actor: Actor,
    request_id: str,
    cfi_message: str | None = None,
    expected_version: int | None = None,
) -> LessonRequest:
    request = _load_for_cfi(db, actor, request_id, expected_version)
    ensure_request_transition(request, RequestStatus.REJECTED)
    if cfi_message and cfi_message.strip():
        request.cfi_message = cfi_message.strip()
    when = _when(request.requested_date, request.requested_start_time)
    return _transition(
        db, actor, request, RequestStatus.REJECTED, "lesson_request_rejected",
        notify_student=f"Your lesson request for {when} was rejected.",
    )


def propose_modification(
    db: Session,
    actor: Actor,
    request_id: str,
    cfi_message: str | None,
    modified_date: date | None = None,
    modified_start_time: time | None = None,
    modified_cfi_id: str | None = None,
    modified_aircraft_id: str | None = None,
    expected_version: int | None = None,
) -> LessonRequest:
    """
    CFI counter-proposes a different time, CFI or aircraft.

    Fields left out keep the requested values. A message explaining the
    change is mandatory.
    """
    request = _load_for_cfi(db, actor, request_id, expected_version)
    message = (cfi_message or "").strip()
    if not message:
        raise ValidationFailed("Please provide a message explaining the changes")
    ensure_request_transition(request, RequestStatus.STUDENT_REVIEWING)

    day = modified_date or request.requested_date
    start = modified_start_time or request.requested_start_time
    cfi = get_active_entity(db, EntityType.CFI, modified_cfi_id or request.cfi_id)
    aircraft = get_active_entity(db, EntityType.AIRCRAFT, modified_aircraft_id or request.aircraft_id)
    end = one_hour_after(start)
    _ensure_free(db, EntityType.CFI, cfi, day, start, request_id=request.id)
    _ensure_free(db, EntityType.AIRCRAFT, aircraft, day, start, request_id=request.id)

    request.modified_date = day
    request.modified_start_time = start
    request.modified_end_time = end
    request.modified_cfi_id = cfi.id
    request.modified_aircraft_id = aircraft.id
    request.cfi_message = message
    return _transition(
        db, actor, request, RequestStatus.STUDENT_REVIEWING, "lesson_request_modified",
        notify_student=f"Your CFI proposed a change: {_when(day, start)} with {cfi.label} in {aircraft.label}.",
    )


def start_lesson(
    db: Session,
    actor: Actor,
    request_id: str,
    expected_version: int | None = None,
) -> LessonRequest:
    request = _load_for_cfi(db, actor, request_id, expected_version)
    return _transition(db, actor, request, RequestStatus.IN_PROGRESS, "lesson_started")


def complete_lesson(
    db: Session,
    actor: Actor,
    request_id: str,
    expected_version: int | None = None,
) -> LessonRequest:
    request = _load_for_cfi(db, actor, request_id, expected_version)
    return _transition(
        db, actor, request, RequestStatus.COMPLETED, "lesson_completed",
        notify_student="Your lesson was marked completed.",
    )


# =====================
# Student actions
# =====================

def accept_modification(
    db: Session,
    actor: Actor,
    request_id: str,
    student_message: str | None = None,
    expected_version: int | None = None,
) -> LessonRequest:
    """
    Student takes the counter-proposal. Availability is checked again here:
    if the proposed CFI or aircraft was booked in the meantime the
    reservation fails and the request stays in student_reviewing.
    """
    request = _load_for_student(db, actor, request_id, expected_version)
    if request.status != RequestStatus.STUDENT_REVIEWING:
        raise InvalidTransition("There is no modification to accept")
    request.student_message = (student_message or "").strip() or DEFAULT_ACCEPT_MODIFICATION_MESSAGE
    return _transition(
        db, actor, request, RequestStatus.ACCEPTED, "modification_accepted",
        notify_cfi="The student accepted your proposed lesson change.",
    )


def deny_modification(
    db: Session,
    actor: Actor,
    request_id: str,
    student_message: str | None,
    expected_version: int | None = None,
) -> LessonRequest:
    request = _load_for_student(db, actor, request_id, expected_version)
    if request.status != RequestStatus.STUDENT_REVIEWING:
        raise InvalidTransition("There is no modification to deny")
    message = (student_message or "").strip()
    if not message:
        raise ValidationFailed("Please provide a reason for denying the modification")
    request.student_message = message
    return _transition(
        db, actor, request, RequestStatus.DENIED, "modification_denied",
        notify_cfi=f"The student denied your proposed lesson change: {message}",
    )

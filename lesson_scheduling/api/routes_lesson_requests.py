from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import NotFound
from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db
from lesson_scheduling.models import RequestStatus
from lesson_scheduling.api.schemas_lessons import (
    AssignmentRequest,
    CFIMessageAction,
    LessonRequestCreate,
    LessonRequestCreated,
    LessonRequestRead,
    LessonTicketRead,
    ModificationProposal,
    StudentMessageAction,
    VersionedAction,
)
from lesson_scheduling.services import lifecycle
from lesson_scheduling.services.assignment import assign_resource

router = APIRouter(prefix="/lesson-requests", tags=["lesson-requests"])


@router.post("", response_model=LessonRequestCreated, status_code=201)
def create_lesson_request(
    body: LessonRequestCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Student asks for a one-hour lesson; the ticket is created with it."""
    request, ticket = lifecycle.create_lesson_request(
        db,
        actor,
        student_id=body.student_id,
        cfi_id=body.cfi_id,
        aircraft_id=body.aircraft_id,
        requested_date=body.requested_date,
        requested_start_time=body.requested_start_time.replace(microsecond=0),
        student_message=body.student_message,
    )
    return LessonRequestCreated(
        request=LessonRequestRead.model_validate(request),
        ticket=LessonTicketRead.model_validate(ticket),
    )


@router.get("", response_model=List[LessonRequestRead])
def list_lesson_requests(
    status: RequestStatus | None = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Requests visible to the caller, newest first."""
    return lifecycle.list_lesson_requests(db, actor, status)


@router.get("/{request_id}", response_model=LessonRequestRead)
def get_lesson_request(request_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return lifecycle.get_lesson_request(db, actor, request_id)


@router.get("/{request_id}/ticket", response_model=LessonTicketRead)
def get_lesson_request_ticket(request_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    request = lifecycle.get_lesson_request(db, actor, request_id)
    ticket = lifecycle.ticket_for(db, request)
    if ticket is None:
        raise NotFound(f"No ticket for lesson request {request_id}")
    return ticket


# ========= CFI actions =========

@router.post("/{request_id}/approve", response_model=LessonRequestRead)
def approve(
    request_id: str,
    body: CFIMessageAction | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    body = body or CFIMessageAction()
    return lifecycle.approve_request(db, actor, request_id, body.cfi_message, body.expected_version)


@router.post("/{request_id}/reject", response_model=LessonRequestRead)
def reject(
    request_id: str,
    body: CFIMessageAction | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    body = body or CFIMessageAction()
    return lifecycle.reject_request(db, actor, request_id, body.cfi_message, body.expected_version)


@router.post("/{request_id}/modify", response_model=LessonRequestRead)
def modify(
    request_id: str,
    body: ModificationProposal,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """CFI counter-proposal: new time, CFI or aircraft plus a mandatory message."""
    return lifecycle.propose_modification(
        db,
        actor,
        request_id,
        cfi_message=body.cfi_message,
        modified_date=body.modified_date,
        modified_start_time=body.modified_start_time.replace(microsecond=0) if body.modified_start_time else None,
        modified_cfi_id=body.modified_cfi_id,
        modified_aircraft_id=body.modified_aircraft_id,
        expected_version=body.expected_version,
    )


@router.post("/{request_id}/assign", response_model=LessonRequestRead)
def assign(
    request_id: str,
    body: AssignmentRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return assign_resource(
        db,
        actor,
        request_id,
        cfi_id=body.cfi_id,
        aircraft_id=body.aircraft_id,
        expected_version=body.expected_version,
    )


@router.post("/{request_id}/start", response_model=LessonRequestRead)
def start(
    request_id: str,
    body: VersionedAction | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    body = body or VersionedAction()
    return lifecycle.start_lesson(db, actor, request_id, body.expected_version)


@router.post("/{request_id}/complete", response_model=LessonRequestRead)
def complete(
    request_id: str,
    body: VersionedAction | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    body = body or VersionedAction()
    return lifecycle.complete_lesson(db, actor, request_id, body.expected_version)


# ========= Student actions =========

@router.post("/{request_id}/accept-modification", response_model=LessonRequestRead)
def accept_modification(
    request_id: str,
    body: StudentMessageAction | None = None,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    body = body or StudentMessageAction()
    return lifecycle.accept_modification(db, actor, request_id, body.student_message, body.expected_version)


@router.post("/{request_id}/deny-modification", response_model=LessonRequestRead)
def deny_modification(
    request_id: str,
    body: StudentMessageAction,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return lifecycle.deny_modification(db, actor, request_id, body.student_message, body.expected_version)

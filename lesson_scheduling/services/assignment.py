"""
Binding a CFI and/or aircraft to a pending lesson request.

The request update, the ticket update and the slot reservations are a single
transaction: either the resources are assigned and their slots held, or
nothing changes.
"""
from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import InvalidTransition, ValidationFailed
from lesson_scheduling.core.rbac import Actor, ensure
from lesson_scheduling.models import EntityType, RequestStatus
from lesson_scheduling.services import audit as audit_service
from lesson_scheduling.services import notifications as notifications_service
from lesson_scheduling.services.roster import get_active_entity
from lesson_scheduling.services.slots import reserve_slot
from lesson_scheduling.services.state import apply_request_status, check_version, load_request
from lesson_scheduling.services.transaction import UnitOfWork
from lesson_scheduling.utils.timefmt import format_time

logger = logging.getLogger(__name__)


def assign_resource(
    db: Session,
    actor: Actor,
    request_id: str,
    cfi_id: str | None = None,
    aircraft_id: str | None = None,
    expected_version: int | None = None,
):
    """
    Assign a CFI and/or aircraft to a pending request and reserve their slots.

    Requests that already moved past pending are refused rather than
    overwritten. Raises SlotConflict if either resource is taken at the
    requested hour.
    """
    if not cfi_id and not aircraft_id:
        raise ValidationFailed("Select a CFI or an aircraft to assign")

    request = load_request(db, request_id)
    check_version(request, expected_version)
    ensure(
        actor.policy.can_assign(db, actor, cfi_id or request.cfi_id),
        "Not allowed to assign resources to this request",
    )
    if request.status != RequestStatus.PENDING:
        raise InvalidTransition(
            f"Lesson request is already {request.status.value}; "
            "resources can only be assigned while it is pending"
        )

    cfi = get_active_entity(db, EntityType.CFI, cfi_id) if cfi_id else None
    aircraft = get_active_entity(db, EntityType.AIRCRAFT, aircraft_id) if aircraft_id else None
    day = request.requested_date
    start = request.requested_start_time

    with UnitOfWork(db) as uow:
        if cfi is not None:
            request.cfi_id = cfi.id
        if aircraft is not None:
            request.aircraft_id = aircraft.id
        apply_request_status(db, request, RequestStatus.ASSIGNED)

        if cfi is not None:
            reserve_slot(db, EntityType.CFI, cfi.id, day, start, request.id)
        if aircraft is not None:
            reserve_slot(db, EntityType.AIRCRAFT, aircraft.id, day, start, request.id)

        assigned = ", ".join(e.label for e in (cfi, aircraft) if e is not None)
        when = f"{day.isoformat()} {format_time(start)[:5]}"
        notifications_service.send_to_student(
            db, request.student_id, f"Your lesson on {when} was assigned: {assigned}."
        )
        if cfi is not None:
            notifications_service.send_to_cfi(db, cfi.id, f"You were assigned a lesson on {when}.")
        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="resources_assigned",
            resource_type="lesson_request",
            resource_id=request.id,
            details=assigned,
        )
        uow.publish(
            "resources_assigned",
            {
                "lesson_request_id": request.id,
                "cfi_id": request.cfi_id,
                "aircraft_id": request.aircraft_id,
            },
        )

    logger.info("Lesson request %s assigned: %s", request_id, assigned)
    db.refresh(request)
    return request

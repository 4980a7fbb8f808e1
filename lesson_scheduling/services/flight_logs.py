"""Completed flight records (Hobbs times) and the lesson they close."""
from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import InvalidTransition, ValidationFailed
from lesson_scheduling.core.rbac import Actor, ensure
from lesson_scheduling.models import EntityType, FlightLog, RequestStatus
from lesson_scheduling.services import audit as audit_service
from lesson_scheduling.services.roster import get_active_entity
from lesson_scheduling.services.state import apply_request_status, booking_for, load_request
from lesson_scheduling.services.transaction import UnitOfWork

logger = logging.getLogger(__name__)


def complete_flight(
    db: Session,
    actor: Actor,
    student_id: str,
    aircraft_id: str,
    flight_date: date,
    hobbs_in: float,
    hobbs_out: float,
    cfi_id: str | None = None,
    is_solo: bool = False,
    ground_instruction: float | None = None,
    description: str | None = None,
    lesson_request_id: str | None = None,
) -> FlightLog:
    """
    Log a flight. When it belongs to an in-progress lesson, that lesson and
    its ticket are completed in the same transaction.
    """
    if hobbs_out <= hobbs_in:
        raise ValidationFailed("Hobbs Out must be greater than Hobbs In")
    if not is_solo and not cfi_id:
        raise ValidationFailed("Please select a CFI or check Solo flight")
    ground = ground_instruction or 0.0
    if ground < 0:
        raise ValidationFailed("Ground instruction cannot be negative")

    policy = actor.policy
    ensure(
        policy.acts_for_student(db, actor, student_id)
        or (cfi_id is not None and policy.acts_for_cfi(db, actor, cfi_id)),
        "Not allowed to log this flight",
    )
    get_active_entity(db, EntityType.STUDENT, student_id)
    get_active_entity(db, EntityType.AIRCRAFT, aircraft_id)
    if cfi_id and not is_solo:
        get_active_entity(db, EntityType.CFI, cfi_id)

    request = None
    if lesson_request_id:
        request = load_request(db, lesson_request_id)
        if request.student_id != student_id:
            raise ValidationFailed("The lesson belongs to a different student")
        if request.status != RequestStatus.IN_PROGRESS:
            raise InvalidTransition(
                f"Only an in-progress lesson can be completed (lesson is {request.status.value})"
            )
        if booking_for(request).aircraft_id != aircraft_id:
            raise ValidationFailed("The aircraft does not match the lesson")

    with UnitOfWork(db) as uow:
        log = FlightLog(
            student_id=student_id,
            cfi_id=None if is_solo else cfi_id,
            aircraft_id=aircraft_id,
            lesson_request_id=lesson_request_id,
            flight_date=flight_date,
            hobbs_in=hobbs_in,
            hobbs_out=hobbs_out,
            ground_instruction=ground,
            is_solo=is_solo,
            description=(description or "").strip() or None,
        )
        db.add(log)
        if request is not None:
            apply_request_status(db, request, RequestStatus.COMPLETED)
        db.flush()

        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="flight_completed",
            resource_type="flight_log",
            resource_id=log.id,
            details=f"{log.flight_hours:.1f} h, lesson {lesson_request_id or '-'}",
        )
        uow.publish(
            "flight_completed",
            {
                "flight_log_id": log.id,
                "student_id": student_id,
                "aircraft_id": aircraft_id,
                "lesson_request_id": lesson_request_id,
                "flight_hours": log.flight_hours,
            },
        )

    logger.info("Flight %s logged (%.1f h)", log.id, log.flight_hours)
    db.refresh(log)
    return log


def list_flight_logs(db: Session, actor: Actor, student_id: str | None = None) -> list[FlightLog]:
    query = actor.policy.scope(db, actor, db.query(FlightLog), FlightLog.student_id, FlightLog.cfi_id)
    if student_id:
        query = query.filter(FlightLog.student_id == student_id)
    return query.order_by(FlightLog.flight_date.desc(), FlightLog.created_at.desc()).all()

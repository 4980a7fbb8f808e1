"""
Schedule slots: bulk initialization, administrative blocking and the
conditional reservation used by lesson approval and assignment.
"""
from __future__ import annotations

import logging
from datetime import date, time, timedelta

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lesson_scheduling.core.config import settings
from lesson_scheduling.core.errors import NotFound, SlotConflict, ValidationFailed
from lesson_scheduling.core.rbac import Actor, ensure
from lesson_scheduling.models import EntityType, ScheduleSlot
from lesson_scheduling.services import audit as audit_service
from lesson_scheduling.services.roster import get_entity, label_for
from lesson_scheduling.services.transaction import UnitOfWork
from lesson_scheduling.utils.timefmt import format_time, hour_start, one_hour_after

logger = logging.getLogger(__name__)

MAX_SCHEDULE_DAYS = 90


def initialize_schedule(
    db: Session,
    actor: Actor,
    entity_type: EntityType,
    entity_id: str,
    start_date: date,
    num_days: int | None = None,
    start_hour: int | None = None,
    end_hour: int | None = None,
) -> dict:
    """
    Create one open slot per hour in [start_hour, end_hour) for each of
    `num_days` days starting at `start_date`.

    Slots that already exist keep their current availability; only the
    missing ones are created. Returns {"created": n, "skipped": m}.
    """
    num_days = settings.DEFAULT_SCHEDULE_DAYS if num_days is None else num_days
    start_hour = settings.DEFAULT_START_HOUR if start_hour is None else start_hour
    end_hour = settings.DEFAULT_END_HOUR if end_hour is None else end_hour

    if not 1 <= num_days <= MAX_SCHEDULE_DAYS:
        raise ValidationFailed(f"num_days must be between 1 and {MAX_SCHEDULE_DAYS}")
    # the last slot has to end by midnight
    if not 0 <= start_hour < end_hour <= 23:
        raise ValidationFailed("Hours must satisfy 0 <= start_hour < end_hour <= 23")

    ensure(
        actor.policy.can_manage_schedule(db, actor, entity_type, entity_id),
        "Not allowed to manage this schedule",
    )
    entity = get_entity(db, entity_type, entity_id)

    end_date = start_date + timedelta(days=num_days - 1)
    existing = {
        (row.date, row.start_time)
        for row in db.query(ScheduleSlot.date, ScheduleSlot.start_time)
        .filter(
            ScheduleSlot.entity_type == entity_type,
            ScheduleSlot.entity_id == entity_id,
            ScheduleSlot.date >= start_date,
            ScheduleSlot.date <= end_date,
        )
        .all()
    }

    created = 0
    skipped = 0
    with UnitOfWork(db) as uow:
        for offset in range(num_days):
            day = start_date + timedelta(days=offset)
            for hour in range(start_hour, end_hour):
                start = hour_start(hour)
                if (day, start) in existing:
                    skipped += 1
                    continue
                db.add(
                    ScheduleSlot(
                        entity_type=entity_type,
                        entity_id=entity_id,
                        date=day,
                        start_time=start,
                        end_time=one_hour_after(start),
                        is_available=True,
                    )
                )
                created += 1

        try:
            db.flush()
        except IntegrityError as e:
            raise SlotConflict("Schedule is being initialized concurrently; try again") from e

        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="schedule_initialized",
            resource_type=entity_type.value,
            resource_id=entity_id,
            details=f"{entity.label}: {created} slots created, {skipped} kept, "
            f"{start_date.isoformat()} +{num_days}d {start_hour:02d}-{end_hour:02d}h",
        )
        uow.publish(
            "schedule_initialized",
            {"entity_type": entity_type.value, "entity_id": entity_id, "created": created},
        )

    logger.info(
        "Initialized %s %s schedule: %d created, %d skipped", entity_type.value, entity_id, created, skipped
    )
    return {"created": created, "skipped": skipped}


def list_slots(
    db: Session,
    entity_type: EntityType,
    entity_id: str,
    from_date: date,
    to_date: date,
    only_available: bool = False,
) -> list[ScheduleSlot]:
    if from_date > to_date:
        raise ValidationFailed("from_date must be before or equal to to_date")
    query = db.query(ScheduleSlot).filter(
        ScheduleSlot.entity_type == entity_type,
        ScheduleSlot.entity_id == entity_id,
        ScheduleSlot.date >= from_date,
        ScheduleSlot.date <= to_date,
    )
    if only_available:
        query = query.filter(ScheduleSlot.is_available.is_(True))
    return query.order_by(ScheduleSlot.date, ScheduleSlot.start_time).all()


def set_slot_availability(db: Session, actor: Actor, slot_id: str, is_available: bool) -> ScheduleSlot:
    """Administrative block/unblock of a single slot."""
    slot = db.get(ScheduleSlot, slot_id)
    if slot is None:
        raise NotFound(f"Slot {slot_id} not found")
    ensure(
        actor.policy.can_manage_schedule(db, actor, slot.entity_type, slot.entity_id),
        "Not allowed to manage this schedule",
    )
    if is_available and slot.lesson_request_id:
        raise SlotConflict(
            f"Slot is held by lesson request {slot.lesson_request_id}; "
            "reject or deny that request to release it"
        )

    with UnitOfWork(db):
        write = update(ScheduleSlot).where(ScheduleSlot.id == slot.id)
        if is_available:
            # a reservation may have landed since the slot was read
            write = write.where(ScheduleSlot.lesson_request_id.is_(None))
        result = db.execute(
            write.values(is_available=is_available).execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            raise SlotConflict("Slot was reserved by a lesson request; reject or deny that request to release it")
        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action="slot_unblocked" if is_available else "slot_blocked",
            resource_type="schedule_slot",
            resource_id=slot.id,
            details=f"{slot.entity_type.value} {slot.entity_id} {slot.date} {format_time(slot.start_time)}",
        )
    db.refresh(slot)
    return slot


# =====================
# Reservation primitives (run inside the caller's transaction)
# =====================

def reserve_slot(
    db: Session,
    entity_type: EntityType,
    entity_id: str,
    day: date,
    start: time,
    lesson_request_id: str,
) -> None:
    """
    Mark the (entity, day, start) slot as held by `lesson_request_id`.

    The slot is taken with a conditional UPDATE so two reservations of the
    same open slot cannot both succeed; a missing slot is created already
    reserved and the unique key rejects a concurrent duplicate.
    Raises SlotConflict when another reservation or block owns the slot.
    """
    key = (
        ScheduleSlot.entity_type == entity_type,
        ScheduleSlot.entity_id == entity_id,
        ScheduleSlot.date == day,
        ScheduleSlot.start_time == start,
    )
    result = db.execute(
        update(ScheduleSlot)
        .where(*key)
        .where(
            or_(
                ScheduleSlot.is_available.is_(True),
                ScheduleSlot.lesson_request_id == lesson_request_id,
            )
        )
        .values(is_available=False, lesson_request_id=lesson_request_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return

    conflict_message = (
        f"{label_for(db, entity_type, entity_id)} is not available on "
        f"{day.isoformat()} at {format_time(start)}"
    )
    if db.query(ScheduleSlot.id).filter(*key).first() is not None:
        logger.warning("Slot conflict: %s", conflict_message)
        raise SlotConflict(conflict_message)

    db.add(
        ScheduleSlot(
            entity_type=entity_type,
            entity_id=entity_id,
            date=day,
            start_time=start,
            end_time=one_hour_after(start),
            is_available=False,
            lesson_request_id=lesson_request_id,
        )
    )
    try:
        db.flush()
    except IntegrityError as e:
        logger.warning("Slot conflict on insert: %s", conflict_message)
        raise SlotConflict(conflict_message) from e


def release_request_slots(db: Session, lesson_request_id: str) -> int:
    """Reopen every slot held by a lesson request. Returns how many were released."""
    result = db.execute(
        update(ScheduleSlot)
        .where(ScheduleSlot.lesson_request_id == lesson_request_id)
        .values(is_available=True, lesson_request_id=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0

"""Which aircraft, CFIs or students are free for a given hour."""
from __future__ import annotations

from datetime import date, time
from typing import NamedTuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from lesson_scheduling.models import EntityType, ScheduleSlot
from lesson_scheduling.services.roster import list_roster


class FreeEntity(NamedTuple):
    id: str
    label: str


def blocked_ids(
    db: Session,
    entity_type: EntityType,
    day: date,
    start: time,
    ignore_request_id: str | None = None,
) -> set[str]:
    """Ids with an unavailable slot at exactly (day, start)."""
    query = db.query(ScheduleSlot.entity_id).filter(
        ScheduleSlot.entity_type == entity_type,
        ScheduleSlot.date == day,
        ScheduleSlot.start_time == start,
        ScheduleSlot.is_available.is_(False),
    )
    if ignore_request_id is not None:
        # slots held by this very request do not count against it
        query = query.filter(
            or_(
                ScheduleSlot.lesson_request_id.is_(None),
                ScheduleSlot.lesson_request_id != ignore_request_id,
            )
        )
    return {row[0] for row in query.all()}


def resolve_availability(
    db: Session,
    day: date,
    start: time,
    entity_type: EntityType,
) -> list[FreeEntity]:
    """
    Active roster of `entity_type` minus the entities blocked at (day, start).

    Entities without any slot record count as free. Read-only.
    """
    roster = list_roster(db, entity_type, active_only=True)
    if not roster:
        return []
    blocked = blocked_ids(db, entity_type, day, start)
    free = [FreeEntity(id=e.id, label=e.label) for e in roster if e.id not in blocked]
    return sorted(free, key=lambda f: (f.label.lower(), f.id))


def resolve_lesson_options(db: Session, day: date, start: time) -> dict[str, list[FreeEntity]]:
    """Free CFIs and aircraft for one hour, as the lesson request form needs them."""
    return {
        "cfis": resolve_availability(db, day, start, EntityType.CFI),
        "aircraft": resolve_availability(db, day, start, EntityType.AIRCRAFT),
    }


def is_free(
    db: Session,
    entity_type: EntityType,
    entity_id: str,
    day: date,
    start: time,
    ignore_request_id: str | None = None,
) -> bool:
    return entity_id not in blocked_ids(db, entity_type, day, start, ignore_request_id)

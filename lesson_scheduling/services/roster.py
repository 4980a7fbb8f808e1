from __future__ import annotations

from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import NotFound, ValidationFailed
from lesson_scheduling.models import Aircraft, CFI, EntityType, Student

ROSTER_MODELS = {
    EntityType.AIRCRAFT: Aircraft,
    EntityType.CFI: CFI,
    EntityType.STUDENT: Student,
}

_LABELS = {
    EntityType.AIRCRAFT: "Aircraft",
    EntityType.CFI: "CFI",
    EntityType.STUDENT: "Student",
}


def get_entity(db: Session, entity_type: EntityType, entity_id: str):
    model = ROSTER_MODELS[entity_type]
    entity = db.get(model, entity_id)
    if entity is None:
        raise NotFound(f"{_LABELS[entity_type]} {entity_id} not found")
    return entity


def get_active_entity(db: Session, entity_type: EntityType, entity_id: str):
    entity = get_entity(db, entity_type, entity_id)
    if not entity.is_active:
        raise ValidationFailed(f"{_LABELS[entity_type]} {entity.label} is not active")
    return entity


def list_roster(db: Session, entity_type: EntityType, active_only: bool = True) -> list:
    model = ROSTER_MODELS[entity_type]
    query = db.query(model)
    if active_only:
        query = query.filter(model.is_active.is_(True))
    return query.all()


def label_for(db: Session, entity_type: EntityType, entity_id: str | None) -> str:
    if not entity_id:
        return "-"
    entity = db.get(ROSTER_MODELS[entity_type], entity_id)
    return entity.label if entity else f"Unknown {_LABELS[entity_type]}"

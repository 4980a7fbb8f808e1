from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor, require_roles
from lesson_scheduling.db import get_db
from lesson_scheduling.models import Aircraft, CFI, EntityType, Student
from lesson_scheduling.api.schemas_roster import (
    ActiveUpdate,
    AircraftCreate,
    AircraftOut,
    CFICreate,
    CFIOut,
    StudentCreate,
    StudentOut,
)
from lesson_scheduling.services import audit as audit_service
from lesson_scheduling.services.roster import get_entity, list_roster

router = APIRouter(tags=["roster"])

admin_only = require_roles(["administrator"])


def _create(db: Session, actor: Actor, entity, entity_type: EntityType):
    db.add(entity)
    try:
        db.flush()
        audit_service.log_action(
            db,
            user_id=actor.user_id,
            action=f"{entity_type.value}_created",
            resource_type=entity_type.value,
            resource_id=entity.id,
            details=entity.label,
        )
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"{entity_type.value} already exists")
    db.refresh(entity)
    return entity


def _set_active(db: Session, actor: Actor, entity_type: EntityType, entity_id: str, is_active: bool):
    entity = get_entity(db, entity_type, entity_id)
    entity.is_active = is_active
    audit_service.log_action(
        db,
        user_id=actor.user_id,
        action=f"{entity_type.value}_{'activated' if is_active else 'deactivated'}",
        resource_type=entity_type.value,
        resource_id=entity.id,
    )
    db.commit()
    db.refresh(entity)
    return entity


# ========= Students =========

@router.post("/students", response_model=StudentOut, status_code=201)
def create_student(body: StudentCreate, db: Session = Depends(get_db), actor: Actor = Depends(admin_only)):
    return _create(db, actor, Student(**body.model_dump()), EntityType.STUDENT)


@router.get("/students", response_model=list[StudentOut])
def list_students(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(require_roles(["instructor"])),
):
    return list_roster(db, EntityType.STUDENT, active_only=active_only)


@router.patch("/students/{student_id}", response_model=StudentOut)
def update_student(
    student_id: str, body: ActiveUpdate, db: Session = Depends(get_db), actor: Actor = Depends(admin_only)
):
    return _set_active(db, actor, EntityType.STUDENT, student_id, body.is_active)


# ========= CFIs =========

@router.post("/cfis", response_model=CFIOut, status_code=201)
def create_cfi(body: CFICreate, db: Session = Depends(get_db), actor: Actor = Depends(admin_only)):
    return _create(db, actor, CFI(**body.model_dump()), EntityType.CFI)


@router.get("/cfis", response_model=list[CFIOut])
def list_cfis(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return list_roster(db, EntityType.CFI, active_only=active_only)


@router.patch("/cfis/{cfi_id}", response_model=CFIOut)
def update_cfi(cfi_id: str, body: ActiveUpdate, db: Session = Depends(get_db), actor: Actor = Depends(admin_only)):
    return _set_active(db, actor, EntityType.CFI, cfi_id, body.is_active)


# ========= Aircraft =========

@router.post("/aircraft", response_model=AircraftOut, status_code=201)
def create_aircraft(body: AircraftCreate, db: Session = Depends(get_db), actor: Actor = Depends(admin_only)):
    return _create(db, actor, Aircraft(**body.model_dump()), EntityType.AIRCRAFT)


@router.get("/aircraft", response_model=list[AircraftOut])
def list_aircraft(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return list_roster(db, EntityType.AIRCRAFT, active_only=active_only)


@router.patch("/aircraft/{aircraft_id}", response_model=AircraftOut)
def update_aircraft(
    aircraft_id: str, body: ActiveUpdate, db: Session = Depends(get_db), actor: Actor = Depends(admin_only)
):
    return _set_active(db, actor, EntityType.AIRCRAFT, aircraft_id, body.is_active)

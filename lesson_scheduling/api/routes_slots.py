from __future__ import annotations

from datetime import date, time
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db
from lesson_scheduling.models import EntityType
from lesson_scheduling.services import slots as slots_service

router = APIRouter(tags=["schedule"])


# =====================
# Schemas (Pydantic)
# =====================

class ScheduleInitialize(BaseModel):
    entity_type: EntityType
    entity_id: str
    start_date: date
    num_days: int | None = Field(default=None, ge=1, le=slots_service.MAX_SCHEDULE_DAYS)
    start_hour: int | None = Field(default=None, ge=0, le=23)
    end_hour: int | None = Field(default=None, ge=1, le=23)


class ScheduleInitialized(BaseModel):
    created: int
    skipped: int


class SlotRead(BaseModel):
    id: str
    entity_type: EntityType
    entity_id: str
    date: date
    start_time: time
    end_time: time
    is_available: bool
    lesson_request_id: str | None = None

    model_config = ConfigDict(from_attributes=True)


class SlotUpdate(BaseModel):
    is_available: bool


# =====================
# Endpoints
# =====================

@router.post("/schedules/initialize", response_model=ScheduleInitialized, status_code=201)
def initialize_schedule(
    body: ScheduleInitialize,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Create the hourly slots of an entity's schedule; existing slots are kept."""
    return slots_service.initialize_schedule(
        db,
        actor,
        body.entity_type,
        body.entity_id,
        body.start_date,
        num_days=body.num_days,
        start_hour=body.start_hour,
        end_hour=body.end_hour,
    )


@router.get("/schedules/{entity_type}/{entity_id}/slots", response_model=List[SlotRead])
def list_slots(
    entity_type: EntityType,
    entity_id: str,
    from_date: date = Query(...),
    to_date: date = Query(...),
    only_available: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return slots_service.list_slots(db, entity_type, entity_id, from_date, to_date, only_available)


@router.patch("/slots/{slot_id}", response_model=SlotRead)
def update_slot(
    slot_id: str,
    body: SlotUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Block or unblock a single slot."""
    return slots_service.set_slot_availability(db, actor, slot_id, body.is_available)

from __future__ import annotations

from datetime import date, time
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db
from lesson_scheduling.models import EntityType
from lesson_scheduling.services import availability as availability_service

router = APIRouter(prefix="/availability", tags=["availability"])


class FreeEntityRead(BaseModel):
    id: str
    label: str

    model_config = ConfigDict(from_attributes=True)


class LessonOptionsRead(BaseModel):
    cfis: List[FreeEntityRead]
    aircraft: List[FreeEntityRead]


@router.get("", response_model=List[FreeEntityRead])
def get_availability(
    entity_type: EntityType,
    on: date = Query(..., alias="date"),
    start_time: time = Query(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Entities of one type that are free at (date, start_time)."""
    return availability_service.resolve_availability(db, on, start_time.replace(microsecond=0), entity_type)


@router.get("/lesson-options", response_model=LessonOptionsRead)
def get_lesson_options(
    on: date = Query(..., alias="date"),
    start_time: time = Query(...),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Free CFIs and aircraft for one hour."""
    return availability_service.resolve_lesson_options(db, on, start_time.replace(microsecond=0))

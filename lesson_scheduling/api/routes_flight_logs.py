from __future__ import annotations

from datetime import date, datetime
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db
from lesson_scheduling.services import flight_logs as flight_logs_service

router = APIRouter(prefix="/flight-logs", tags=["flight-logs"])


class FlightLogCreate(BaseModel):
    student_id: str
    aircraft_id: str
    flight_date: date
    hobbs_in: float = Field(..., ge=0)
    hobbs_out: float = Field(..., ge=0)
    cfi_id: str | None = None
    is_solo: bool = False
    ground_instruction: float | None = None
    description: str | None = Field(default=None, max_length=2000)
    lesson_request_id: str | None = None


class FlightLogRead(BaseModel):
    id: str
    student_id: str
    cfi_id: str | None
    aircraft_id: str
    lesson_request_id: str | None
    flight_date: date
    hobbs_in: float
    hobbs_out: float
    flight_hours: float
    ground_instruction: float
    is_solo: bool
    description: str | None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


@router.post("", response_model=FlightLogRead, status_code=201)
def complete_flight(body: FlightLogCreate, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    """Record a flown lesson; a linked in-progress lesson is completed with it."""
    return flight_logs_service.complete_flight(db, actor, **body.model_dump())


@router.get("", response_model=List[FlightLogRead])
def list_flight_logs(
    student_id: str | None = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return flight_logs_service.list_flight_logs(db, actor, student_id)

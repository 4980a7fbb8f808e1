from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db
from lesson_scheduling.models import TicketStatus
from lesson_scheduling.api.schemas_lessons import LessonTicketRead, TicketAdvance
from lesson_scheduling.services import tickets as tickets_service

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("", response_model=List[LessonTicketRead])
def list_tickets(
    status: TicketStatus | None = Query(None),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return tickets_service.list_tickets(db, actor, status)


@router.get("/by-number/{ticket_number}", response_model=LessonTicketRead)
def get_ticket_by_number(ticket_number: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return tickets_service.get_ticket_by_number(db, actor, ticket_number)


@router.get("/{ticket_id}", response_model=LessonTicketRead)
def get_ticket(ticket_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return tickets_service.get_ticket(db, actor, ticket_id)


@router.post("/{ticket_id}/advance", response_model=LessonTicketRead)
def advance_ticket(
    ticket_id: str,
    body: TicketAdvance,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    """Move the ticket, and the lesson request behind it, to a new status."""
    return tickets_service.advance_ticket(db, actor, ticket_id, body.status, body.expected_version)

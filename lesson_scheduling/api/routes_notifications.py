from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db
from lesson_scheduling.services import notifications as notifications_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


class NotificationRead(BaseModel):
    id: int
    message: str
    read: bool
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class MarkedRead(BaseModel):
    updated: int


@router.get("/me", response_model=List[NotificationRead])
def my_inbox(
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return notifications_service.inbox(db, actor.user_id, unread_only=unread_only)


@router.patch("/me/read-all", response_model=MarkedRead)
def read_whole_inbox(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return MarkedRead(updated=notifications_service.mark_all_read(db, actor.user_id))


@router.patch("/{notification_id}/read", response_model=NotificationRead)
def read_one(
    notification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return notifications_service.mark_as_read(db, notification_id, actor.user_id)

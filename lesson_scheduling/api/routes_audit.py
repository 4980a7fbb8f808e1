from __future__ import annotations

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from lesson_scheduling.api.schemas_lessons import AuditEntryRead
from lesson_scheduling.core.security import require_roles
from lesson_scheduling.db import get_db
from lesson_scheduling.services import audit as audit_service

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=List[AuditEntryRead])
def read_audit_trail(
    user_id: str | None = Query(None, description="Only entries written by this user"),
    action: str | None = Query(None, description="e.g. lesson_request_approved"),
    resource_type: str | None = Query(None, description="lesson_request, lesson_ticket, slot, ..."),
    resource_id: str | None = Query(None),
    since: datetime | None = Query(None, description="Only entries at or after this instant"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    actor=Depends(require_roles(["administrator"])),
):
    """Administrators only, newest first."""
    return audit_service.search_entries(
        db,
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        since=since,
        limit=limit,
        offset=offset,
    )

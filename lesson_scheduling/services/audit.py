"""Append-only trail of who changed which lesson, slot or roster entry."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import Session

from lesson_scheduling.models import AuditLog


def log_action(
    db: Session,
    user_id: str,
    action: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    details: str | None = None,
) -> AuditLog:
    """
    Stage an audit entry in the caller's transaction.

    It commits with the change it describes, so a rolled-back operation
    leaves nothing behind.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        details=details,
    )
    db.add(entry)
    return entry


def search_entries(
    db: Session,
    user_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    resource_id: str | None = None,
    since: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[AuditLog]:
    """Newest first; every criterion left as None matches everything."""
    criteria = {
        AuditLog.user_id: user_id,
        AuditLog.action: action,
        AuditLog.resource_type: resource_type,
        AuditLog.resource_id: resource_id,
    }
    query = db.query(AuditLog)
    for column, value in criteria.items():
        if value:
            query = query.filter(column == value)
    if since is not None:
        query = query.filter(AuditLog.created_at >= since)
    return (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )

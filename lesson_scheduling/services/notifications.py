"""In-app inbox: one row per message to a student's or CFI's user account."""
from __future__ import annotations

from sqlalchemy.orm import Session

from lesson_scheduling.core.errors import NotFound
from lesson_scheduling.models import CFI, Notification, Student
from lesson_scheduling.services.transaction import UnitOfWork

MAX_MESSAGE_LENGTH = 500


def notify_user(db: Session, user_id: str | None, message: str) -> Notification | None:
    # roster entries without a linked account have no inbox
    if not user_id:
        return None
    notification = Notification(user_id=user_id, message=message[:MAX_MESSAGE_LENGTH])
    db.add(notification)
    return notification


def send_to_student(db: Session, student_id: str, message: str) -> Notification | None:
    student = db.get(Student, student_id)
    return notify_user(db, student.user_id if student else None, message)


def send_to_cfi(db: Session, cfi_id: str | None, message: str) -> Notification | None:
    cfi = db.get(CFI, cfi_id) if cfi_id else None
    return notify_user(db, cfi.user_id if cfi else None, message)


def inbox(db: Session, user_id: str, unread_only: bool = False) -> list[Notification]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).all()


def mark_as_read(db: Session, notification_id: int, user_id: str) -> Notification:
    """Someone else's notification is reported as missing, not forbidden."""
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFound(f"Notification {notification_id} not found")
    with UnitOfWork(db):
        notification.read = True
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: str) -> int:
    with UnitOfWork(db):
        updated = (
            db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.read.is_(False))
            .update({Notification.read: True}, synchronize_session=False)
        )
    return updated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from lesson_scheduling.core.rbac import Actor, cfi_ids_for, student_ids_for
from lesson_scheduling.core.security import get_actor
from lesson_scheduling.db import get_db

router = APIRouter()


@router.get("/me")
def get_me(db: Session = Depends(get_db), actor: Actor = Depends(get_actor)):
    return {
        "user_id": actor.user_id,
        "role": actor.role.value,
        "student_ids": student_ids_for(db, actor),
        "cfi_ids": cfi_ids_for(db, actor),
    }

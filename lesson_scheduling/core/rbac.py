from __future__ import annotations

import enum
from dataclasses import dataclass

from sqlalchemy import false, or_
from sqlalchemy.orm import Query, Session

from lesson_scheduling.core.config import settings
from lesson_scheduling.core.errors import PermissionDenied
from lesson_scheduling.models import CFI, EntityType, Student


class Role(str, enum.Enum):
    STUDENT = "student"
    INSTRUCTOR = "instructor"
    ADMINISTRATOR = "administrator"


# Realm role names accepted for each role, strongest first
_REALM_ROLES: list[tuple[Role, set[str]]] = [
    (Role.ADMINISTRATOR, {"administrator", "admin", "sysadmin"}),
    (Role.INSTRUCTOR, {"instructor", "cfi"}),
    (Role.STUDENT, {"student"}),
]


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: Role

    @property
    def policy(self) -> "RolePolicy":
        return policy_for(self.role)


def get_roles_from_payload(payload: dict) -> list[str]:
    """Realm roles plus the roles granted on this service's own client."""
    realm_roles = (payload.get("realm_access") or {}).get("roles") or []
    client_access = (payload.get("resource_access") or {}).get(settings.KEYCLOAK_CLIENT_ID) or {}
    client_roles = client_access.get("roles") or []
    return [r for r in [*realm_roles, *client_roles] if isinstance(r, str)]


def role_from_payload(payload: dict) -> Role | None:
    roles = set(get_roles_from_payload(payload))
    for role, names in _REALM_ROLES:
        if roles.intersection(names):
            return role
    return None


def student_ids_for(db: Session, actor: Actor) -> list[str]:
    rows = db.query(Student.id).filter(Student.user_id == actor.user_id).all()
    return [r[0] for r in rows]


def cfi_ids_for(db: Session, actor: Actor) -> list[str]:
    rows = db.query(CFI.id).filter(CFI.user_id == actor.user_id).all()
    return [r[0] for r in rows]


# =====================
# Policies
# =====================

class RolePolicy:
    """What an actor of one role may do. Defaults deny everything."""

    role: Role

    def acts_for_student(self, db: Session, actor: Actor, student_id: str) -> bool:
        return False

    def acts_for_cfi(self, db: Session, actor: Actor, cfi_id: str) -> bool:
        return False

    def can_assign(self, db: Session, actor: Actor, cfi_id: str | None) -> bool:
        return False

    def can_manage_schedule(self, db: Session, actor: Actor, entity_type: EntityType, entity_id: str) -> bool:
        return False

    def scope(self, db: Session, actor: Actor, query: Query, student_col, *cfi_cols) -> Query:
        """
        Restrict a request/ticket query to the rows this actor may see.

        An instructor sees a row when any of `cfi_cols` names one of their CFIs.
        """
        return query.filter(false())


class StudentPolicy(RolePolicy):
    role = Role.STUDENT

    def acts_for_student(self, db, actor, student_id):
        return student_id in student_ids_for(db, actor)

    def scope(self, db, actor, query, student_col, *cfi_cols):
        return query.filter(student_col.in_(student_ids_for(db, actor)))


class InstructorPolicy(RolePolicy):
    role = Role.INSTRUCTOR

    def acts_for_cfi(self, db, actor, cfi_id):
        return cfi_id in cfi_ids_for(db, actor)

    def can_assign(self, db, actor, cfi_id):
        # Instructors may only hand lessons (and aircraft) to themselves
        return cfi_id is None or self.acts_for_cfi(db, actor, cfi_id)

    def can_manage_schedule(self, db, actor, entity_type, entity_id):
        return entity_type == EntityType.CFI and self.acts_for_cfi(db, actor, entity_id)

    def scope(self, db, actor, query, student_col, *cfi_cols):
        mine = cfi_ids_for(db, actor)
        return query.filter(or_(*(col.in_(mine) for col in cfi_cols)))


class AdministratorPolicy(RolePolicy):
    role = Role.ADMINISTRATOR

    def acts_for_student(self, db, actor, student_id):
        return True

    def acts_for_cfi(self, db, actor, cfi_id):
        return True

    def can_assign(self, db, actor, cfi_id):
        return True

    def can_manage_schedule(self, db, actor, entity_type, entity_id):
        return True

    def scope(self, db, actor, query, student_col, *cfi_cols):
        return query


_POLICIES: dict[Role, RolePolicy] = {
    Role.STUDENT: StudentPolicy(),
    Role.INSTRUCTOR: InstructorPolicy(),
    Role.ADMINISTRATOR: AdministratorPolicy(),
}


def policy_for(role: Role) -> RolePolicy:
    return _POLICIES[role]


def ensure(allowed: bool, message: str = "Forbidden") -> None:
    if not allowed:
        raise PermissionDenied(message)

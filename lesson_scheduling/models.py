# lesson_scheduling/models.py
from __future__ import annotations

import enum
import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.sql import func

from lesson_scheduling.db import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum_column(enum_cls, **kwargs):
    return Column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=20,
            values_callable=lambda e: [m.value for m in e],
        ),
        **kwargs,
    )


class EntityType(str, enum.Enum):
    AIRCRAFT = "aircraft"
    CFI = "cfi"
    STUDENT = "student"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    STUDENT_REVIEWING = "student_reviewing"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    REJECTED = "rejected"
    DENIED = "denied"


class TicketStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# =====================
# Roster
# =====================

class Student(Base):
    __tablename__ = "students"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=True, unique=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def label(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CFI(Base):
    __tablename__ = "cfis"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=True, unique=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def label(self) -> str:
        return self.name


class Aircraft(Base):
    __tablename__ = "aircraft"

    id = Column(String(36), primary_key=True, default=_uuid)
    tail_number = Column(String(20), nullable=False, unique=True)
    model = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def label(self) -> str:
        return f"{self.tail_number} ({self.model})"


# =====================
# Scheduling
# =====================

class ScheduleSlot(Base):
    """One hour of one entity's time; is_available=False means reserved or blocked."""

    __tablename__ = "schedule_slots"

    id = Column(String(36), primary_key=True, default=_uuid)
    entity_type = _enum_column(EntityType, nullable=False)
    entity_id = Column(String(36), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    # Request currently holding the reservation, if any
    lesson_request_id = Column(
        String(36),
        ForeignKey("lesson_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint(
            "entity_type",
            "entity_id",
            "date",
            "start_time",
            name="uq_schedule_slot_key",
        ),
        Index("ix_schedule_slots_lookup", "entity_type", "date", "start_time"),
    )


class LessonRequest(Base):
    __tablename__ = "lesson_requests"

    id = Column(String(36), primary_key=True, default=_uuid)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    cfi_id = Column(String(36), ForeignKey("cfis.id"), nullable=False, index=True)
    aircraft_id = Column(String(36), ForeignKey("aircraft.id"), nullable=False)

    requested_date = Column(Date, nullable=False)
    requested_start_time = Column(Time, nullable=False)
    requested_end_time = Column(Time, nullable=False)

    # Counter-proposal from the CFI
    modified_date = Column(Date, nullable=True)
    modified_start_time = Column(Time, nullable=True)
    modified_end_time = Column(Time, nullable=True)
    modified_cfi_id = Column(String(36), ForeignKey("cfis.id"), nullable=True)
    modified_aircraft_id = Column(String(36), ForeignKey("aircraft.id"), nullable=True)

    status = _enum_column(RequestStatus, nullable=False, default=RequestStatus.PENDING, index=True)
    student_message = Column(Text, nullable=True)
    cfi_message = Column(Text, nullable=True)

    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def has_modification(self) -> bool:
        return self.modified_date is not None


class LessonTicket(Base):
    """Instructor-facing mirror of a lesson request."""

    __tablename__ = "lesson_tickets"

    id = Column(String(36), primary_key=True, default=_uuid)
    ticket_number = Column(String(32), nullable=False, unique=True, index=True)
    lesson_request_id = Column(
        String(36),
        ForeignKey("lesson_requests.id"),
        nullable=False,
        unique=True,
    )
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False)
    cfi_id = Column(String(36), ForeignKey("cfis.id"), nullable=True, index=True)
    aircraft_id = Column(String(36), ForeignKey("aircraft.id"), nullable=True)
    status = _enum_column(TicketStatus, nullable=False, default=TicketStatus.PENDING, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class FlightLog(Base):
    __tablename__ = "flight_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=False, index=True)
    cfi_id = Column(String(36), ForeignKey("cfis.id"), nullable=True)
    aircraft_id = Column(String(36), ForeignKey("aircraft.id"), nullable=False)
    lesson_request_id = Column(String(36), ForeignKey("lesson_requests.id"), nullable=True)
    flight_date = Column(Date, nullable=False)
    hobbs_in = Column(Float, nullable=False)
    hobbs_out = Column(Float, nullable=False)
    ground_instruction = Column(Float, nullable=False, default=0.0)
    is_solo = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    @property
    def flight_hours(self) -> float:
        return round(self.hobbs_out - self.hobbs_in, 1)


# =====================
# Audit & notifications
# =====================

class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    action = Column(String(100), nullable=False, index=True)
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(String(36), nullable=True)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    message = Column(String(500), nullable=False)
    read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

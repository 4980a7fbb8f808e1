from __future__ import annotations

from datetime import date, datetime, time

from pydantic import BaseModel, ConfigDict, Field

from lesson_scheduling.models import RequestStatus, TicketStatus


class LessonRequestCreate(BaseModel):
    student_id: str
    cfi_id: str
    aircraft_id: str
    requested_date: date
    requested_start_time: time
    student_message: str | None = Field(default=None, max_length=1000)


class VersionedAction(BaseModel):
    # version the caller last saw; a mismatch is reported as 409
    expected_version: int | None = None


class CFIMessageAction(VersionedAction):
    cfi_message: str | None = Field(default=None, max_length=1000)


class StudentMessageAction(VersionedAction):
    student_message: str | None = Field(default=None, max_length=1000)


class ModificationProposal(VersionedAction):
    cfi_message: str | None = Field(default=None, max_length=1000)
    modified_date: date | None = None
    modified_start_time: time | None = None
    modified_cfi_id: str | None = None
    modified_aircraft_id: str | None = None


class AssignmentRequest(VersionedAction):
    cfi_id: str | None = None
    aircraft_id: str | None = None


class TicketAdvance(VersionedAction):
    status: TicketStatus


class LessonRequestRead(BaseModel):
    id: str
    student_id: str
    cfi_id: str
    aircraft_id: str
    requested_date: date
    requested_start_time: time
    requested_end_time: time
    modified_date: date | None = None
    modified_start_time: time | None = None
    modified_end_time: time | None = None
    modified_cfi_id: str | None = None
    modified_aircraft_id: str | None = None
    status: RequestStatus
    student_message: str | None = None
    cfi_message: str | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    version: int

    model_config = ConfigDict(from_attributes=True)


class LessonTicketRead(BaseModel):
    id: str
    ticket_number: str
    lesson_request_id: str
    student_id: str
    cfi_id: str | None = None
    aircraft_id: str | None = None
    status: TicketStatus
    created_at: datetime | None = None
    version: int

    model_config = ConfigDict(from_attributes=True)


class LessonRequestCreated(BaseModel):
    request: LessonRequestRead
    ticket: LessonTicketRead


class AuditEntryRead(BaseModel):
    id: int
    user_id: str
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    details: str | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

# clinicq/modules/appointments/schemas.py
from __future__ import annotations

import datetime as dt
from typing import Annotated, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, StringConstraints, model_validator

SlotLabel = Annotated[str, StringConstraints(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]
NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=120)]
PhoneStr = Annotated[str, StringConstraints(strip_whitespace=True, pattern=r"^\+?[0-9]{6,15}$")]


class AppointmentCreateRequest(BaseModel):
    """
    Payload to book an appointment.
    - USER callers always book for themselves; user_id/patient fields are ignored.
    - STAFF/ADMIN callers name the patient with user_id, or with
      patient_name + patient_phone for a walk-in.
    - time_slot may be omitted only for emergency bookings.
    """
    organization_id: UUID
    department_id: UUID
    doctor_id: Optional[UUID] = None
    date: dt.date
    time_slot: Optional[SlotLabel] = None
    user_id: Optional[UUID] = None
    patient_name: Optional[NameStr] = None
    patient_phone: Optional[PhoneStr] = None
    is_emergency: bool = False

    @model_validator(mode="after")
    def _walk_in_pair(self) -> "AppointmentCreateRequest":
        if (self.patient_name is None) != (self.patient_phone is None):
            raise ValueError("patient_name and patient_phone must be provided together")
        return self


class AppointmentPublic(BaseModel):
    id: UUID
    user_id: Optional[UUID] = None
    patient_name: Optional[str] = None
    patient_phone: Optional[str] = None
    booked_by_id: UUID
    organization_id: UUID
    department_id: UUID
    doctor_id: Optional[UUID] = None
    date: dt.date
    time_slot: str
    token_number: int
    status: str
    is_emergency: bool
    queue_status: Optional[str] = None
    created_at: dt.datetime

    class Config:
        from_attributes = True


class SlotAvailability(BaseModel):
    time_slot: str
    remaining: int
    available: bool


class StatusUpdateRequest(BaseModel):
    status: Literal["SERVING", "COMPLETED", "CANCELLED"]


class QueueActionRequest(BaseModel):
    """
    Target of a staff queue action. department_id may be omitted by staff
    assigned to a single department; date defaults to today.
    """
    department_id: Optional[UUID] = None
    doctor_id: Optional[UUID] = None
    date: Optional[dt.date] = None


class QueueBulkResult(BaseModel):
    updated_count: int


class CurrentServing(BaseModel):
    id: UUID
    token_number: int
    patient_name: str


class DashboardStats(BaseModel):
    date: dt.date
    doctor_id: UUID
    total_today: int
    waiting: int
    served: int
    no_shows: int
    current_serving: Optional[CurrentServing] = None


class AppointmentList(BaseModel):
    items: List[AppointmentPublic]
    total: int = Field(ge=0)

# clinicq/modules/organizations/schemas.py
from __future__ import annotations

from typing import Annotated, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, StringConstraints

NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=120)]


class OrganizationCreate(BaseModel):
    name: NameStr
    type: Literal["CLINIC", "OFFICE"]


class OrganizationPublic(BaseModel):
    id: UUID
    name: str
    type: str

    class Config:
        from_attributes = True


class DepartmentCreate(BaseModel):
    name: NameStr
    organization_id: UUID
    slot_duration_minutes: int = Field(..., ge=1, description="Width of one slot in minutes")
    max_appointments_per_slot: int = Field(..., ge=1)


class DepartmentUpdate(BaseModel):
    name: Optional[NameStr] = None
    slot_duration_minutes: Optional[int] = Field(default=None, ge=1)
    max_appointments_per_slot: Optional[int] = Field(default=None, ge=1)


class DepartmentPublic(BaseModel):
    id: UUID
    name: str
    organization_id: UUID
    slot_duration_minutes: int
    max_appointments_per_slot: int

    class Config:
        from_attributes = True


class DoctorCreate(BaseModel):
    name: NameStr
    email: Optional[EmailStr] = None
    specialization: NameStr
    organization_id: UUID
    department_id: UUID
    is_active: bool = True


class DoctorUpdate(BaseModel):
    name: Optional[NameStr] = None
    email: Optional[EmailStr] = None
    specialization: Optional[NameStr] = None
    department_id: Optional[UUID] = None
    is_active: Optional[bool] = None


class DoctorPublic(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None
    specialization: str
    organization_id: UUID
    department_id: UUID
    is_active: bool

    class Config:
        from_attributes = True

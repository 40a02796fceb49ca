# clinicq/modules/users/schemas.py
from __future__ import annotations

import datetime as dt
import re
from enum import Enum
from typing import Annotated, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, SecretStr, StringConstraints, field_validator


class Role(str, Enum):
    USER = "USER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


NameStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=2, max_length=120)]

PASSWORD_RE = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)[A-Za-z\d\S]{8,64}$")


class _Credentials(BaseModel):
    email: EmailStr
    password: SecretStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class RegisterRequest(_Credentials):
    name: NameStr
    password: SecretStr = Field(..., description="8–64 chars, at least one letter and one digit")

    @field_validator("password")
    @classmethod
    def validate_password_strength(cls, v: SecretStr) -> SecretStr:
        if not PASSWORD_RE.match(v.get_secret_value()):
            raise ValueError(
                "Password must be 8–64 chars and include at least one letter and one digit"
            )
        return v


class LoginRequest(_Credentials):
    pass


class StaffCreateRequest(RegisterRequest):
    organization_id: UUID
    department_id: Optional[UUID] = Field(
        default=None, description="Omit to give access to every department of the organization"
    )
    position: Optional[Annotated[str, StringConstraints(max_length=80)]] = None


class RoleUpdateRequest(BaseModel):
    role: Role


class UserPublic(BaseModel):
    id: UUID
    name: str
    email: EmailStr
    role: Role
    created_at: dt.datetime

    class Config:
        from_attributes = True


class StaffPublic(BaseModel):
    id: UUID
    user: UserPublic
    organization_id: UUID
    department_id: Optional[UUID] = None
    position: Optional[str] = None


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int

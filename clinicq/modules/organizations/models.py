# clinicq/modules/organizations/models.py
from __future__ import annotations

import uuid
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from clinicq.db.base import Base, ReprMixin, SoftDeleteMixin, TimestampMixin, UUIDPKMixin


class OrganizationType(PyEnum):
    CLINIC = "CLINIC"
    OFFICE = "OFFICE"


class Organization(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    __tablename__ = "organizations"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=OrganizationType.CLINIC.value
    )

    __table_args__ = (
        CheckConstraint("type IN ('CLINIC', 'OFFICE')", name="ck_organizations_type_valid"),
    )


class Department(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    """
    A department defines the slot grid (slot width) and the per-slot capacity
    for every appointment booked into it.
    """

    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    max_appointments_per_slot: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("slot_duration_minutes > 0", name="ck_departments_slot_duration"),
        CheckConstraint("max_appointments_per_slot > 0", name="ck_departments_capacity"),
    )


class Doctor(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    __tablename__ = "doctors"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    specialization: Mapped[str] = mapped_column(String(120), nullable=False)
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False
    )
    department_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_doctors_org_dept", "organization_id", "department_id"),
    )

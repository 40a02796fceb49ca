# clinicq/modules/appointments/models.py
from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinicq.db.base import Base, ReprMixin, SoftDeleteMixin, TimestampMixin, UUIDPKMixin

# time_slot value stored for emergency bookings instead of an HH:MM label
EMERGENCY_SLOT = "EMERGENCY"

# Rows the same-day duplicate rule applies to
_ACTIVE_BOOKING = "status <> 'CANCELLED' AND is_deleted = false"


class ApptStatus(PyEnum):
    BOOKED = "BOOKED"
    SERVING = "SERVING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class QueueStatus(PyEnum):
    WAITING = "WAITING"
    CALLED = "CALLED"
    PAUSED = "PAUSED"


class Appointment(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    """
    One booked visit. The patient is identified either by `user_id` or,
    for walk-ins, by the (patient_name, patient_phone) pair, never both.
    """

    __tablename__ = "appointments"

    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=True
    )
    patient_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    patient_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    booked_by_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False
    )
    department_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("departments.id", ondelete="RESTRICT"), nullable=False
    )
    doctor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("doctors.id", ondelete="RESTRICT"), nullable=True
    )

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time_slot: Mapped[str] = mapped_column(String(9), nullable=False)
    token_number: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ApptStatus.BOOKED.value
    )
    is_emergency: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    queue: Mapped[Optional["Queue"]] = relationship(
        back_populates="appointment",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("token_number > 0", name="ck_appt_token_positive"),
        CheckConstraint(
            "(user_id IS NOT NULL AND patient_name IS NULL AND patient_phone IS NULL)"
            " OR (user_id IS NULL AND patient_name IS NOT NULL AND patient_phone IS NOT NULL)",
            name="ck_appt_single_identity",
        ),
        CheckConstraint(
            "status IN ('BOOKED', 'SERVING', 'COMPLETED', 'CANCELLED', 'NO_SHOW')",
            name="ck_appt_status_valid",
        ),
        # Last line of defence against two bookings sharing a token
        UniqueConstraint(
            "organization_id", "department_id", "doctor_id", "date", "token_number",
            name="uq_appt_scope_token",
            postgresql_nulls_not_distinct=True,
        ),
        # One live booking per patient, department and day, across every doctor
        Index(
            "uq_appt_active_user",
            "user_id",
            "department_id",
            "date",
            unique=True,
            postgresql_where=text(f"user_id IS NOT NULL AND {_ACTIVE_BOOKING}"),
            sqlite_where=text(f"user_id IS NOT NULL AND {_ACTIVE_BOOKING}"),
        ),
        Index(
            "uq_appt_active_walk_in",
            "patient_name",
            "patient_phone",
            "department_id",
            "date",
            unique=True,
            postgresql_where=text(f"user_id IS NULL AND {_ACTIVE_BOOKING}"),
            sqlite_where=text(f"user_id IS NULL AND {_ACTIVE_BOOKING}"),
        ),
        Index("ix_appt_scope_slot", "department_id", "doctor_id", "date", "time_slot"),
    )

    @property
    def queue_status(self) -> Optional[str]:
        return self.queue.status if self.queue is not None else None


class Queue(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    """
    Live queue position of an appointment. Pausing the line flips these rows
    only, so appointment history is left untouched.
    """

    __tablename__ = "queues"

    appointment_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    status: Mapped[str] = mapped_column(
        String(10), nullable=False, default=QueueStatus.WAITING.value
    )

    appointment: Mapped[Appointment] = relationship(back_populates="queue", lazy="raise")

    __table_args__ = (
        CheckConstraint(
            "status IN ('WAITING', 'CALLED', 'PAUSED')", name="ck_queue_status_valid"
        ),
    )


class TokenCounter(Base):
    """
    Last issued token per scope. `doctor_key` is the doctor id as text, or
    the empty string for department-wide queues, so the key never holds NULL.
    """

    __tablename__ = "token_counters"

    organization_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    department_id: Mapped[uuid.UUID] = mapped_column(primary_key=True)
    doctor_key: Mapped[str] = mapped_column(String(36), primary_key=True)
    date: Mapped[dt.date] = mapped_column(Date, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

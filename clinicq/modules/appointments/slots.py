# clinicq/modules/appointments/slots.py
from __future__ import annotations

import datetime as dt
from typing import AsyncIterator, Iterator, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.config import settings
from clinicq.modules.appointments import repository as appt_repo
from clinicq.modules.appointments.schemas import SlotAvailability
from clinicq.modules.organizations.models import Department


def _minutes(label: str) -> int:
    hours, minutes = label.split(":")
    return int(hours) * 60 + int(minutes)


def _label(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def slot_labels(
    duration_minutes: int,
    *,
    start: Optional[str] = None,
    end: Optional[str] = None,
) -> Iterator[str]:
    """
    HH:MM start labels of every slot in the working day. A slot that would
    run past the end of the day is left out.
    """
    if duration_minutes <= 0:
        raise ValueError("slot duration must be positive")
    current = _minutes(start or settings.WORKDAY_START)
    last = _minutes(end or settings.WORKDAY_END)
    while current + duration_minutes <= last:
        yield _label(current)
        current += duration_minutes


def is_slot_label(department: Department, label: str) -> bool:
    return label in set(slot_labels(department.slot_duration_minutes))


async def list_slots(
    session: AsyncSession,
    department: Department,
    day: dt.date,
    doctor_id: Optional[UUID] = None,
) -> AsyncIterator[SlotAvailability]:
    """
    Remaining capacity of every slot of `day`, in time order.

    Counts are read from the database on every call so they always reflect
    the latest committed bookings; iterate again for fresh numbers.
    """
    booked = await appt_repo.count_bookings_by_slot(
        session,
        department_id=department.id,
        day=day,
        doctor_id=doctor_id,
    )
    for label in slot_labels(department.slot_duration_minutes):
        remaining = department.max_appointments_per_slot - booked.get(label, 0)
        yield SlotAvailability(time_slot=label, remaining=remaining, available=remaining > 0)

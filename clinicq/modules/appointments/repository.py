# clinicq/modules/appointments/repository.py
from __future__ import annotations

import datetime as dt
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import ColumnElement, asc, desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.modules.appointments.models import Appointment, ApptStatus, Queue, QueueStatus

# Queue order: emergencies first, then FIFO by token
QUEUE_ORDER = (desc(Appointment.is_emergency), asc(Appointment.token_number))


def not_cancelled() -> ColumnElement[bool]:
    return Appointment.status != ApptStatus.CANCELLED.value


def doctor_condition(doctor_id: Optional[UUID]) -> ColumnElement[bool]:
    """Exact doctor match; None selects the department-wide (legacy) queue."""
    if doctor_id is None:
        return Appointment.doctor_id.is_(None)
    return Appointment.doctor_id == doctor_id


async def get_appointment(session: AsyncSession, appointment_id: UUID) -> Optional[Appointment]:
    stmt = select(Appointment).where(Appointment.id == appointment_id, Appointment.visible())
    return (await session.execute(stmt)).scalar_one_or_none()


async def find_active_for_identity(
    session: AsyncSession,
    *,
    department_id: UUID,
    day: dt.date,
    user_id: Optional[UUID],
    patient_name: Optional[str],
    patient_phone: Optional[str],
) -> Optional[Appointment]:
    """
    Non-cancelled booking of the same patient in the same department on the
    same day, if any.
    """
    conditions = [
        Appointment.department_id == department_id,
        Appointment.date == day,
        Appointment.visible(),
        not_cancelled(),
    ]
    if user_id is not None:
        conditions.append(Appointment.user_id == user_id)
    else:
        conditions += [
            Appointment.user_id.is_(None),
            Appointment.patient_name == patient_name,
            Appointment.patient_phone == patient_phone,
        ]
    stmt = select(Appointment).where(*conditions).limit(1)
    return (await session.execute(stmt)).scalars().first()


async def count_slot_bookings(
    session: AsyncSession,
    *,
    department_id: UUID,
    doctor_id: Optional[UUID],
    day: dt.date,
    time_slot: str,
) -> int:
    stmt = (
        select(func.count())
        .select_from(Appointment)
        .where(
            Appointment.department_id == department_id,
            doctor_condition(doctor_id),
            Appointment.date == day,
            Appointment.time_slot == time_slot,
            Appointment.visible(),
            not_cancelled(),
        )
    )
    return (await session.execute(stmt)).scalar_one()


async def count_bookings_by_slot(
    session: AsyncSession,
    *,
    department_id: UUID,
    day: dt.date,
    doctor_id: Optional[UUID] = None,
) -> Dict[str, int]:
    """
    Non-cancelled bookings per time slot label for one department/day.
    Without a doctor, every doctor of the department is counted.
    """
    conditions = [
        Appointment.department_id == department_id,
        Appointment.date == day,
        Appointment.visible(),
        not_cancelled(),
    ]
    if doctor_id is not None:
        conditions.append(Appointment.doctor_id == doctor_id)
    stmt = (
        select(Appointment.time_slot, func.count())
        .where(*conditions)
        .group_by(Appointment.time_slot)
    )
    rows = (await session.execute(stmt)).all()
    return {slot: count for slot, count in rows}


def queue_conditions(
    *,
    day: dt.date,
    organization_id: Optional[UUID] = None,
    department_id: Optional[UUID] = None,
    doctor_id: Optional[UUID] = None,
) -> List[ColumnElement[bool]]:
    conditions: List[ColumnElement[bool]] = [
        Appointment.date == day,
        Appointment.visible(),
    ]
    if organization_id is not None:
        conditions.append(Appointment.organization_id == organization_id)
    if department_id is not None:
        conditions.append(Appointment.department_id == department_id)
    if doctor_id is not None:
        conditions.append(Appointment.doctor_id == doctor_id)
    return conditions


async def list_queue_rows(
    session: AsyncSession, conditions: Sequence[ColumnElement[bool]]
) -> List[Appointment]:
    stmt = (
        select(Appointment)
        .where(*conditions, not_cancelled())
        .order_by(*QUEUE_ORDER)
    )
    return list((await session.execute(stmt)).scalars().all())


async def first_waiting(
    session: AsyncSession, conditions: Sequence[ColumnElement[bool]]
) -> Optional[Appointment]:
    """
    Head of the queue: BOOKED appointment whose queue row is still WAITING.
    Rows locked by a concurrent caller are skipped on PostgreSQL.
    """
    stmt = (
        select(Appointment)
        .join(Queue, Queue.appointment_id == Appointment.id)
        .where(
            *conditions,
            Appointment.status == ApptStatus.BOOKED.value,
            Queue.status == QueueStatus.WAITING.value,
            Queue.visible(),
        )
        .order_by(*QUEUE_ORDER)
        .limit(1)
        .with_for_update(skip_locked=True, of=Queue)
    )
    return (await session.execute(stmt)).scalars().first()


async def set_queue_status(
    session: AsyncSession,
    *,
    appointment_id: UUID,
    status: str,
    only_from: Optional[Sequence[str]] = None,
) -> int:
    """Conditional single-row queue update; returns the affected row count."""
    conditions = [Queue.appointment_id == appointment_id, Queue.visible()]
    if only_from is not None:
        conditions.append(Queue.status.in_(list(only_from)))
    stmt = (
        update(Queue)
        .where(*conditions)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount or 0  # type: ignore


async def bulk_set_queue_status(
    session: AsyncSession,
    conditions: Sequence[ColumnElement[bool]],
    *,
    from_status: str,
    to_status: str,
) -> int:
    """Flip every matching queue row in one statement (pause/resume)."""
    matching = select(Appointment.id).where(*conditions)
    stmt = (
        update(Queue)
        .where(
            Queue.status == from_status,
            Queue.visible(),
            Queue.appointment_id.in_(matching),
        )
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount or 0  # type: ignore


async def set_status_if(
    session: AsyncSession,
    *,
    appointment_id: UUID,
    to_status: str,
    from_statuses: Sequence[str],
) -> int:
    """
    Compare-and-set on Appointment.status. Zero rows means the appointment
    moved on in the meantime (or never was in an allowed state).
    """
    stmt = (
        update(Appointment)
        .where(
            Appointment.id == appointment_id,
            Appointment.visible(),
            Appointment.status.in_(list(from_statuses)),
        )
        .values(status=to_status)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return res.rowcount or 0  # type: ignore


async def list_for_user(session: AsyncSession, user_id: UUID) -> List[Appointment]:
    stmt = (
        select(Appointment)
        .where(Appointment.user_id == user_id, Appointment.visible())
        .order_by(Appointment.created_at.desc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def list_filtered(
    session: AsyncSession,
    *,
    organization_id: Optional[UUID] = None,
    department_id: Optional[UUID] = None,
    day: Optional[dt.date] = None,
    status: Optional[str] = None,
) -> List[Appointment]:
    conditions: List[ColumnElement[bool]] = [Appointment.visible()]
    if organization_id is not None:
        conditions.append(Appointment.organization_id == organization_id)
    if department_id is not None:
        conditions.append(Appointment.department_id == department_id)
    if day is not None:
        conditions.append(Appointment.date == day)
    if status is not None:
        conditions.append(Appointment.status == status)
    stmt = (
        select(Appointment)
        .where(*conditions)
        .order_by(Appointment.date.desc(), Appointment.token_number.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def count_where(session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
    stmt = select(func.count()).select_from(Appointment).where(*conditions)
    return (await session.execute(stmt)).scalar_one()


async def first_serving(
    session: AsyncSession, conditions: Sequence[ColumnElement[bool]]
) -> Optional[Appointment]:
    stmt = (
        select(Appointment)
        .where(*conditions, Appointment.status == ApptStatus.SERVING.value)
        .order_by(Appointment.token_number.asc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalars().first()


async def soft_delete_for_user(session: AsyncSession, user_id: UUID) -> int:
    """Cascade a user's soft-delete to their appointments and queue rows."""
    owned = select(Appointment.id).where(Appointment.user_id == user_id)
    await session.execute(
        update(Queue)
        .where(Queue.appointment_id.in_(owned))
        .values(is_deleted=True)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(
        update(Appointment)
        .where(Appointment.user_id == user_id, Appointment.visible())
        .values(is_deleted=True)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0  # type: ignore

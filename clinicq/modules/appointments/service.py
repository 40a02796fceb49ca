# clinicq/modules/appointments/service.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.config import settings
from clinicq.core.context import Actor, ensure_operator, resolve_department
from clinicq.core.errors import DepartmentUnavailable
from clinicq.modules.appointments import repository as appt_repo
from clinicq.modules.appointments.models import Appointment, ApptStatus
from clinicq.modules.appointments.schemas import (
    AppointmentList,
    AppointmentPublic,
    CurrentServing,
    DashboardStats,
    SlotAvailability,
)
from clinicq.modules.appointments.slots import list_slots
from clinicq.modules.organizations import repository as org_repo
from clinicq.modules.users import repository as users_repo


def to_public(appt: Appointment) -> AppointmentPublic:
    return AppointmentPublic.model_validate(appt)


def to_list(rows: List[Appointment]) -> AppointmentList:
    return AppointmentList(items=[to_public(a) for a in rows], total=len(rows))


# CATALOGUE
async def available_slots_svc(
    session: AsyncSession,
    department_id: UUID,
    day: dt.date,
    doctor_id: Optional[UUID] = None,
    only_available: bool = False,
) -> List[SlotAvailability]:
    department = await org_repo.get_department(session, department_id)
    if department is None:
        raise DepartmentUnavailable("Department not found or inactive")
    return [
        slot
        async for slot in list_slots(session, department, day, doctor_id)
        if slot.available or not only_available
    ]


async def available_dates_svc(
    session: AsyncSession, department_id: UUID, today: Optional[dt.date] = None
) -> List[dt.date]:
    """
    Bookable days: today and the following BOOKING_WINDOW_DAYS - 1 days.
    """
    department = await org_repo.get_department(session, department_id)
    if department is None:
        raise DepartmentUnavailable("Department not found or inactive")
    start = today or dt.date.today()
    return [start + dt.timedelta(days=i) for i in range(settings.BOOKING_WINDOW_DAYS)]


# MY APPOINTMENTS
async def list_my_appointments_svc(session: AsyncSession, actor: Actor) -> AppointmentList:
    """Caller's own bookings, newest first."""
    return to_list(await appt_repo.list_for_user(session, actor.id))


# STAFF VIEW
async def list_staff_appointments_svc(
    session: AsyncSession,
    actor: Actor,
    *,
    day: Optional[dt.date] = None,
    status: Optional[str] = None,
    department_id: Optional[UUID] = None,
) -> AppointmentList:
    """
    Appointments inside the operator's scope, by date (desc) then token.
    """
    department_id = resolve_department(actor, department_id)
    rows = await appt_repo.list_filtered(
        session,
        organization_id=actor.scope.organization_id if actor.scope else None,
        department_id=department_id,
        day=day,
        status=status,
    )
    return to_list(rows)


async def dashboard_svc(
    session: AsyncSession,
    actor: Actor,
    doctor_id: UUID,
    day: Optional[dt.date] = None,
) -> DashboardStats:
    """
    Counters for one doctor's day plus whoever is being served right now.
    """
    ensure_operator(actor)
    day = day or dt.date.today()
    department_id = actor.scope.department_id if actor.scope else None
    base = appt_repo.queue_conditions(
        day=day,
        organization_id=actor.scope.organization_id if actor.scope else None,
        department_id=department_id,
        doctor_id=doctor_id,
    )

    total = await appt_repo.count_where(session, *base, appt_repo.not_cancelled())
    waiting = await appt_repo.count_where(
        session, *base, Appointment.status == ApptStatus.BOOKED.value
    )
    served = await appt_repo.count_where(
        session, *base, Appointment.status == ApptStatus.COMPLETED.value
    )
    no_shows = await appt_repo.count_where(
        session, *base, Appointment.status == ApptStatus.NO_SHOW.value
    )

    current = await appt_repo.first_serving(session, base)
    current_serving = None
    if current is not None:
        name = current.patient_name
        if name is None and current.user_id is not None:
            user = await users_repo.get_by_id(session, current.user_id)
            name = user.name if user else None
        current_serving = CurrentServing(
            id=current.id,
            token_number=current.token_number,
            patient_name=name or "Unknown",
        )

    return DashboardStats(
        date=day,
        doctor_id=doctor_id,
        total_today=total,
        waiting=waiting,
        served=served,
        no_shows=no_shows,
        current_serving=current_serving,
    )

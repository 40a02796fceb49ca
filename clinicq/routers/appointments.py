# clinicq/routers/appointments.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.context import Actor
from clinicq.db.sql import get_session
from clinicq.dependencies import get_actor, get_notifications, get_notifier
from clinicq.modules.appointments.admission import admit
from clinicq.modules.appointments.schemas import (
    AppointmentCreateRequest,
    AppointmentList,
    AppointmentPublic,
    SlotAvailability,
)
from clinicq.modules.appointments.service import (
    available_dates_svc,
    available_slots_svc,
    list_my_appointments_svc,
    to_public,
)
from clinicq.modules.appointments.transitions import cancel
from clinicq.modules.events.notifications import NotificationService
from clinicq.modules.events.notifier import EventNotifier
from clinicq.modules.organizations.schemas import (
    DepartmentPublic,
    DoctorPublic,
    OrganizationPublic,
)
from clinicq.modules.organizations.service import (
    list_departments_svc,
    list_doctors_svc,
    list_organizations_svc,
)

router = APIRouter(tags=["appointments"])


# Catalogue (public)
@router.get(
    "/organizations",
    response_model=List[OrganizationPublic],
    summary="List clinics and offices",
)
async def organizations_index(session: AsyncSession = Depends(get_session)):
    return await list_organizations_svc(session)


@router.get(
    "/organizations/{organization_id}/departments",
    response_model=List[DepartmentPublic],
    summary="List the departments of an organization",
)
async def departments_index(
    organization_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    return await list_departments_svc(session, organization_id)


@router.get(
    "/doctors",
    response_model=List[DoctorPublic],
    summary="Search doctors",
)
async def doctors_index(
    organization_id: Optional[UUID] = Query(None),
    department_id: Optional[UUID] = Query(None),
    q: Optional[str] = Query(None, description="Search on doctor name"),
    session: AsyncSession = Depends(get_session),
):
    return await list_doctors_svc(
        session, organization_id=organization_id, department_id=department_id, search=q
    )


@router.get(
    "/departments/{department_id}/available-dates",
    response_model=List[dt.date],
    summary="Days open for booking in a department",
)
async def available_dates(
    department_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    return await available_dates_svc(session, department_id)


@router.get(
    "/departments/{department_id}/available-slots",
    response_model=List[SlotAvailability],
    summary="Remaining capacity per slot for a day",
)
async def available_slots(
    department_id: UUID,
    date: dt.date = Query(...),
    doctor_id: Optional[UUID] = Query(None),
    only_available: bool = Query(False),
    session: AsyncSession = Depends(get_session),
):
    return await available_slots_svc(
        session, department_id, date, doctor_id=doctor_id, only_available=only_available
    )


# Booking (authenticated)
@router.post(
    "/appointments",
    response_model=AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment and receive a queue token",
    responses={
        400: {"description": "Invalid date or slot"},
        404: {"description": "Department or doctor unavailable"},
        409: {"description": "Duplicate booking or slot full"},
    },
)
async def appointments_create(
    payload: AppointmentCreateRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
    notifier: EventNotifier = Depends(get_notifier),
    notifications: NotificationService = Depends(get_notifications),
):
    appt = await admit(session, payload, actor, notifier=notifier, notifications=notifications)
    return to_public(appt)


@router.get(
    "/appointments/history",
    response_model=AppointmentList,
    summary="Retrieve current user's appointments",
)
async def appointments_history(
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    return await list_my_appointments_svc(session, actor)


@router.put(
    "/appointments/{appointment_id}/cancel",
    response_model=AppointmentPublic,
    summary="Cancel an appointment",
    responses={
        403: {"description": "Not your appointment"},
        409: {"description": "Appointment can no longer be cancelled"},
    },
)
async def appointments_cancel(
    appointment_id: UUID,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
    notifier: EventNotifier = Depends(get_notifier),
):
    appt = await cancel(session, actor, appointment_id, notifier=notifier)
    return to_public(appt)

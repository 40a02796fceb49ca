# clinicq/routers/staff.py
from __future__ import annotations

import datetime as dt
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.context import Actor
from clinicq.db.sql import get_session
from clinicq.dependencies import get_notifier, require_operator
from clinicq.modules.appointments import queue as queue_ops
from clinicq.modules.appointments.schemas import (
    AppointmentList,
    AppointmentPublic,
    DashboardStats,
    QueueActionRequest,
    QueueBulkResult,
    StatusUpdateRequest,
)
from clinicq.modules.appointments.service import (
    dashboard_svc,
    list_staff_appointments_svc,
    to_list,
    to_public,
)
from clinicq.modules.appointments.transitions import mark_no_show, update_status
from clinicq.modules.events.notifier import EventNotifier

router = APIRouter(prefix="/staff", tags=["staff"])


@router.get(
    "/queue",
    response_model=AppointmentList,
    summary="Today's queue in serving order (emergencies first)",
)
async def staff_queue(
    department_id: Optional[UUID] = Query(None),
    doctor_id: Optional[UUID] = Query(None),
    date: Optional[dt.date] = Query(None),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
):
    target = await queue_ops.resolve_target(
        session, actor, day=date, department_id=department_id, doctor_id=doctor_id
    )
    return to_list(await queue_ops.list_queue(session, target))


@router.post(
    "/queue/call-next",
    response_model=AppointmentPublic,
    summary="Call the next waiting patient",
    responses={404: {"description": "Queue is empty"}},
)
async def staff_call_next(
    payload: QueueActionRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
    notifier: EventNotifier = Depends(get_notifier),
):
    target = await queue_ops.resolve_target(
        session,
        actor,
        day=payload.date,
        department_id=payload.department_id,
        doctor_id=payload.doctor_id,
    )
    appt = await queue_ops.call_next(session, actor, target, notifier=notifier)
    return to_public(appt)


@router.post(
    "/queue/pause",
    response_model=QueueBulkResult,
    summary="Hold every waiting patient of a department or doctor",
)
async def staff_pause(
    payload: QueueActionRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
    notifier: EventNotifier = Depends(get_notifier),
):
    target = await queue_ops.resolve_target(
        session,
        actor,
        day=payload.date,
        department_id=payload.department_id,
        doctor_id=payload.doctor_id,
        require_department=True,
    )
    updated = await queue_ops.pause_queue(session, actor, target, notifier=notifier)
    return QueueBulkResult(updated_count=updated)


@router.post(
    "/queue/resume",
    response_model=QueueBulkResult,
    summary="Release a paused queue",
)
async def staff_resume(
    payload: QueueActionRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
    notifier: EventNotifier = Depends(get_notifier),
):
    target = await queue_ops.resolve_target(
        session,
        actor,
        day=payload.date,
        department_id=payload.department_id,
        doctor_id=payload.doctor_id,
        require_department=True,
    )
    updated = await queue_ops.resume_queue(session, actor, target, notifier=notifier)
    return QueueBulkResult(updated_count=updated)


@router.get(
    "/appointments",
    response_model=AppointmentList,
    summary="Appointments inside the caller's scope",
)
async def staff_appointments(
    date: Optional[dt.date] = Query(None),
    status: Optional[str] = Query(None, pattern="^(BOOKED|SERVING|COMPLETED|CANCELLED|NO_SHOW)$"),
    department_id: Optional[UUID] = Query(None),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
):
    return await list_staff_appointments_svc(
        session, actor, day=date, status=status, department_id=department_id
    )


@router.patch(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentPublic,
    summary="Move an appointment to SERVING, COMPLETED or CANCELLED",
    responses={409: {"description": "Transition not allowed from the current status"}},
)
async def staff_update_status(
    appointment_id: UUID,
    payload: StatusUpdateRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
    notifier: EventNotifier = Depends(get_notifier),
):
    appt = await update_status(session, actor, appointment_id, payload.status, notifier=notifier)
    return to_public(appt)


@router.patch(
    "/appointments/{appointment_id}/no-show",
    response_model=AppointmentPublic,
    summary="Mark a patient as not showing up",
)
async def staff_no_show(
    appointment_id: UUID,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
    notifier: EventNotifier = Depends(get_notifier),
):
    appt = await mark_no_show(session, actor, appointment_id, notifier=notifier)
    return to_public(appt)


@router.get(
    "/dashboard",
    response_model=DashboardStats,
    summary="Today's counters for one doctor",
)
async def staff_dashboard(
    doctor_id: UUID = Query(...),
    date: Optional[dt.date] = Query(None),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(require_operator),
):
    return await dashboard_svc(session, actor, doctor_id, day=date)

# clinicq/routers/admin.py
from __future__ import annotations

import datetime as dt
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.context import Actor
from clinicq.db.sql import get_session
from clinicq.dependencies import get_actor, get_notifications, get_notifier, require_roles
from clinicq.modules.appointments.admission import admit
from clinicq.modules.appointments.schemas import (
    AppointmentCreateRequest,
    AppointmentList,
    AppointmentPublic,
)
from clinicq.modules.appointments.service import list_staff_appointments_svc, to_public
from clinicq.modules.events.notifications import NotificationService
from clinicq.modules.events.notifier import EventNotifier
from clinicq.modules.organizations import service as org_svc
from clinicq.modules.organizations.schemas import (
    DepartmentCreate,
    DepartmentPublic,
    DepartmentUpdate,
    DoctorCreate,
    DoctorPublic,
    DoctorUpdate,
    OrganizationCreate,
    OrganizationPublic,
)
from clinicq.modules.users.schemas import (
    Role,
    RoleUpdateRequest,
    StaffCreateRequest,
    StaffPublic,
    UserPublic,
)
from clinicq.modules.users.service import (
    create_staff_svc,
    delete_user_svc,
    list_users_svc,
    update_role_svc,
)

# Every route below requires an ADMIN bearer token
router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_roles("ADMIN"))],
)


# ORGANIZATIONS
@router.post(
    "/organizations",
    response_model=OrganizationPublic,
    status_code=status.HTTP_201_CREATED,
)
async def admin_create_organization(
    payload: OrganizationCreate,
    session: AsyncSession = Depends(get_session),
):
    return await org_svc.create_organization_svc(session, payload)


@router.get("/organizations", response_model=List[OrganizationPublic])
async def admin_list_organizations(session: AsyncSession = Depends(get_session)):
    return await org_svc.list_organizations_svc(session)


@router.delete("/organizations/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_organization(
    organization_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    await org_svc.delete_organization_svc(session, organization_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# DEPARTMENTS
@router.post(
    "/departments",
    response_model=DepartmentPublic,
    status_code=status.HTTP_201_CREATED,
)
async def admin_create_department(
    payload: DepartmentCreate,
    session: AsyncSession = Depends(get_session),
):
    return await org_svc.create_department_svc(session, payload)


@router.patch("/departments/{department_id}", response_model=DepartmentPublic)
async def admin_update_department(
    department_id: UUID,
    payload: DepartmentUpdate,
    session: AsyncSession = Depends(get_session),
):
    return await org_svc.update_department_svc(session, department_id, payload)


@router.delete("/departments/{department_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_department(
    department_id: UUID,
    session: AsyncSession = Depends(get_session),
):
    await org_svc.delete_department_svc(session, department_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# DOCTORS
@router.post(
    "/doctors",
    response_model=DoctorPublic,
    status_code=status.HTTP_201_CREATED,
)
async def admin_create_doctor(
    payload: DoctorCreate,
    session: AsyncSession = Depends(get_session),
):
    return await org_svc.create_doctor_svc(session, payload)


@router.get("/doctors/{doctor_id}", response_model=DoctorPublic)
async def admin_get_doctor(doctor_id: UUID, session: AsyncSession = Depends(get_session)):
    return await org_svc.get_doctor_svc(session, doctor_id)


@router.patch("/doctors/{doctor_id}", response_model=DoctorPublic)
async def admin_update_doctor(
    doctor_id: UUID,
    payload: DoctorUpdate,
    session: AsyncSession = Depends(get_session),
):
    return await org_svc.update_doctor_svc(session, doctor_id, payload)


@router.delete("/doctors/{doctor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def admin_delete_doctor(doctor_id: UUID, session: AsyncSession = Depends(get_session)):
    await org_svc.delete_doctor_svc(session, doctor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# USERS AND STAFF
@router.post(
    "/staff",
    response_model=StaffPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Create a staff account scoped to an organization (and optionally a department)",
)
async def admin_create_staff(
    payload: StaffCreateRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    return await create_staff_svc(session, payload, actor.id)


@router.get("/users", response_model=List[UserPublic])
async def admin_list_users(
    role: Optional[Role] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    return await list_users_svc(session, role=role.value if role else None)


@router.patch("/users/{user_id}/role", response_model=UserPublic)
async def admin_update_role(
    user_id: UUID,
    payload: RoleUpdateRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    return await update_role_svc(session, user_id, payload.role.value, actor.id)


@router.delete("/users/{user_id}")
async def admin_delete_user(
    user_id: UUID,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    """Soft delete; the user's appointments are hidden with them."""
    hidden = await delete_user_svc(session, user_id, actor.id)
    return {"deleted": True, "appointments_hidden": hidden}


# APPOINTMENTS
@router.get("/appointments", response_model=AppointmentList)
async def admin_list_appointments(
    date: Optional[dt.date] = Query(None),
    status_filter: Optional[str] = Query(
        None, alias="status", pattern="^(BOOKED|SERVING|COMPLETED|CANCELLED|NO_SHOW)$"
    ),
    department_id: Optional[UUID] = Query(None),
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    return await list_staff_appointments_svc(
        session, actor, day=date, status=status_filter, department_id=department_id
    )


@router.post(
    "/appointments/emergency",
    response_model=AppointmentPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Book an emergency: skips capacity, served ahead of regular tokens",
)
async def admin_emergency_booking(
    payload: AppointmentCreateRequest,
    session: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
    notifier: EventNotifier = Depends(get_notifier),
    notifications: NotificationService = Depends(get_notifications),
):
    payload = payload.model_copy(update={"is_emergency": True})
    appt = await admit(session, payload, actor, notifier=notifier, notifications=notifications)
    return to_public(appt)

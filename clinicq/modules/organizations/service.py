# clinicq/modules/organizations/service.py
from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.errors import DepartmentUnavailable, NotFound, ValidationError
from clinicq.modules.organizations import repository as org_repo
from clinicq.modules.organizations.models import Department, Doctor, Organization
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

LOGGER = logging.getLogger(__name__)


async def _require_organization(session: AsyncSession, organization_id: UUID) -> Organization:
    org = await org_repo.get_organization(session, organization_id)
    if org is None:
        raise NotFound("organization_not_found")
    return org


async def _require_department(
    session: AsyncSession, department_id: UUID, organization_id: Optional[UUID] = None
) -> Department:
    dept = await org_repo.get_department(session, department_id)
    if dept is None or (organization_id is not None and dept.organization_id != organization_id):
        raise DepartmentUnavailable("Department not found or does not belong to the organization")
    return dept


async def _require_doctor(session: AsyncSession, doctor_id: UUID) -> Doctor:
    doctor = await org_repo.get_doctor(session, doctor_id)
    if doctor is None:
        raise NotFound("doctor_not_found")
    return doctor


# ORGANIZATIONS
async def create_organization_svc(
    session: AsyncSession, payload: OrganizationCreate
) -> OrganizationPublic:
    org = Organization(name=payload.name, type=payload.type)
    session.add(org)
    await session.flush()
    LOGGER.info("organization %s created (%s)", org.id, org.type)
    return OrganizationPublic.model_validate(org)


async def list_organizations_svc(session: AsyncSession) -> List[OrganizationPublic]:
    return [OrganizationPublic.model_validate(o) for o in await org_repo.list_organizations(session)]


async def delete_organization_svc(session: AsyncSession, organization_id: UUID) -> None:
    org = await _require_organization(session, organization_id)
    org.is_deleted = True
    await session.flush()


# DEPARTMENTS
async def list_departments_svc(
    session: AsyncSession, organization_id: UUID
) -> List[DepartmentPublic]:
    await _require_organization(session, organization_id)
    rows = await org_repo.list_departments(session, organization_id)
    return [DepartmentPublic.model_validate(d) for d in rows]


async def create_department_svc(
    session: AsyncSession, payload: DepartmentCreate
) -> DepartmentPublic:
    await _require_organization(session, payload.organization_id)
    dept = Department(
        name=payload.name,
        organization_id=payload.organization_id,
        slot_duration_minutes=payload.slot_duration_minutes,
        max_appointments_per_slot=payload.max_appointments_per_slot,
    )
    session.add(dept)
    await session.flush()
    return DepartmentPublic.model_validate(dept)


async def update_department_svc(
    session: AsyncSession, department_id: UUID, payload: DepartmentUpdate
) -> DepartmentPublic:
    """
    Changing slot width or capacity affects future availability only;
    existing bookings keep their slot labels and tokens.
    """
    dept = await _require_department(session, department_id)
    for field, value in payload.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(dept, field, value)
    await session.flush()
    return DepartmentPublic.model_validate(dept)


async def delete_department_svc(session: AsyncSession, department_id: UUID) -> None:
    dept = await _require_department(session, department_id)
    dept.is_deleted = True
    await session.flush()


# DOCTORS
async def create_doctor_svc(session: AsyncSession, payload: DoctorCreate) -> DoctorPublic:
    await _require_organization(session, payload.organization_id)
    await _require_department(session, payload.department_id, payload.organization_id)
    doctor = Doctor(
        name=payload.name,
        email=payload.email,
        specialization=payload.specialization,
        organization_id=payload.organization_id,
        department_id=payload.department_id,
        is_active=payload.is_active,
    )
    session.add(doctor)
    await session.flush()
    return DoctorPublic.model_validate(doctor)


async def list_doctors_svc(
    session: AsyncSession,
    *,
    organization_id: Optional[UUID] = None,
    department_id: Optional[UUID] = None,
    search: Optional[str] = None,
) -> List[DoctorPublic]:
    rows = await org_repo.list_doctors(
        session, organization_id=organization_id, department_id=department_id, search=search
    )
    return [DoctorPublic.model_validate(d) for d in rows]


async def get_doctor_svc(session: AsyncSession, doctor_id: UUID) -> DoctorPublic:
    return DoctorPublic.model_validate(await _require_doctor(session, doctor_id))


async def update_doctor_svc(
    session: AsyncSession, doctor_id: UUID, payload: DoctorUpdate
) -> DoctorPublic:
    doctor = await _require_doctor(session, doctor_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("department_id") is not None:
        await _require_department(session, changes["department_id"], doctor.organization_id)
    for field, value in changes.items():
        if value is None and field in ("name", "specialization", "department_id", "is_active"):
            raise ValidationError(f"{field} cannot be null", field=field)
        setattr(doctor, field, value)
    await session.flush()
    return DoctorPublic.model_validate(doctor)


async def delete_doctor_svc(session: AsyncSession, doctor_id: UUID) -> None:
    doctor = await _require_doctor(session, doctor_id)
    doctor.is_deleted = True
    await session.flush()

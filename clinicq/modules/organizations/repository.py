# clinicq/modules/organizations/repository.py
from __future__ import annotations

from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.modules.organizations.models import Department, Doctor, Organization


async def get_organization(session: AsyncSession, organization_id: UUID) -> Optional[Organization]:
    stmt = select(Organization).where(Organization.id == organization_id, Organization.visible())
    return (await session.execute(stmt)).scalar_one_or_none()


async def list_organizations(session: AsyncSession) -> Sequence[Organization]:
    stmt = select(Organization).where(Organization.visible()).order_by(Organization.name)
    return (await session.execute(stmt)).scalars().all()


async def get_department(session: AsyncSession, department_id: UUID) -> Optional[Department]:
    stmt = select(Department).where(Department.id == department_id, Department.visible())
    return (await session.execute(stmt)).scalar_one_or_none()


async def list_departments(session: AsyncSession, organization_id: UUID) -> Sequence[Department]:
    stmt = (
        select(Department)
        .where(Department.organization_id == organization_id, Department.visible())
        .order_by(Department.name)
    )
    return (await session.execute(stmt)).scalars().all()


async def get_doctor(session: AsyncSession, doctor_id: UUID) -> Optional[Doctor]:
    stmt = select(Doctor).where(Doctor.id == doctor_id, Doctor.visible())
    return (await session.execute(stmt)).scalar_one_or_none()


async def list_doctors(
    session: AsyncSession,
    *,
    organization_id: Optional[UUID] = None,
    department_id: Optional[UUID] = None,
    search: Optional[str] = None,
) -> List[Doctor]:
    conditions = [Doctor.visible()]
    if organization_id is not None:
        conditions.append(Doctor.organization_id == organization_id)
    if department_id is not None:
        conditions.append(Doctor.department_id == department_id)
    if search:
        conditions.append(Doctor.name.ilike(f"%{search.strip()}%"))
    stmt = select(Doctor).where(*conditions).order_by(Doctor.name)
    return list((await session.execute(stmt)).scalars().all())

# clinicq/modules/users/service.py
from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.config import settings
from clinicq.core.errors import DepartmentUnavailable, NotFound, QueueError
from clinicq.core.security import create_access_token, hash_password, verify_password
from clinicq.modules.appointments import repository as appt_repo
from clinicq.modules.log import write_audit_log
from clinicq.modules.organizations import repository as org_repo
from clinicq.modules.users import repository as users_repo
from clinicq.modules.users.models import User, UserRole
from clinicq.modules.users.schemas import (
    LoginRequest,
    RegisterRequest,
    StaffCreateRequest,
    StaffPublic,
    TokenResponse,
    UserPublic,
)

LOGGER = logging.getLogger(__name__)


# Service-level errors (rendered by the API like every QueueError)
class EmailAlreadyExists(QueueError):
    kind = "EmailAlreadyExists"
    status_code = 409


class InvalidCredentials(QueueError):
    kind = "InvalidCredentials"
    status_code = 401


def _to_public(user: User) -> UserPublic:
    return UserPublic.model_validate(user)


async def _insert_account(
    session: AsyncSession, payload: RegisterRequest, role: UserRole
) -> User:
    if await users_repo.get_by_email(session, payload.email):
        raise EmailAlreadyExists("Email already in use")
    try:
        return await users_repo.create_user(
            session,
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password.get_secret_value()),
            role=role,
        )
    except users_repo.EmailAlreadyExistsError as exc:
        raise EmailAlreadyExists("Email already in use") from exc


async def register_user(session: AsyncSession, payload: RegisterRequest) -> UserPublic:
    """
    Self-service registration. New accounts are always patients (USER);
    elevated roles are granted by an admin.
    """
    user = await _insert_account(session, payload, UserRole.USER)
    return _to_public(user)


async def login_user(session: AsyncSession, payload: LoginRequest) -> TokenResponse:
    user = await users_repo.get_by_email(session, payload.email)
    if user is None or user.is_deleted:
        raise InvalidCredentials("invalid_credentials")
    if not verify_password(payload.password.get_secret_value(), user.password_hash):
        raise InvalidCredentials("invalid_credentials")

    access = create_access_token(subject=str(user.id), role=user.role, email=user.email)
    return TokenResponse(access_token=access, expires_in=settings.ACCESS_EXPIRES_MIN * 60)


async def create_staff_svc(
    session: AsyncSession, payload: StaffCreateRequest, admin_id: UUID
) -> StaffPublic:
    """
    User (role STAFF) and its Staff scope row are written in one transaction.
    """
    if await org_repo.get_organization(session, payload.organization_id) is None:
        raise NotFound("organization_not_found")
    if payload.department_id is not None:
        dept = await org_repo.get_department(session, payload.department_id)
        if dept is None or dept.organization_id != payload.organization_id:
            raise DepartmentUnavailable("Department not found or does not belong to the organization")

    user = await _insert_account(session, payload, UserRole.STAFF)
    staff = await users_repo.create_staff(
        session,
        user=user,
        organization_id=payload.organization_id,
        department_id=payload.department_id,
        position=payload.position,
    )
    await write_audit_log(session, admin_id, "CREATE_STAFF", f"user={user.id}")
    await session.commit()
    LOGGER.info("staff account %s created for organization %s", user.id, staff.organization_id)
    return StaffPublic(
        id=staff.id,
        user=_to_public(user),
        organization_id=staff.organization_id,
        department_id=staff.department_id,
        position=staff.position,
    )


async def list_users_svc(session: AsyncSession, role: Optional[str] = None) -> List[UserPublic]:
    return [_to_public(u) for u in await users_repo.list_users(session, role=role)]


async def update_role_svc(
    session: AsyncSession, user_id: UUID, role: str, admin_id: UUID
) -> UserPublic:
    user = await users_repo.get_by_id(session, user_id)
    if user is None:
        raise NotFound("user_not_found")
    user.role = role
    await write_audit_log(session, admin_id, "UPDATE_ROLE", f"user={user.id} role={role}")
    await session.flush()
    return _to_public(user)


async def delete_user_svc(session: AsyncSession, user_id: UUID, admin_id: UUID) -> int:
    """
    Soft-delete a user and everything they own in the queue.
    Returns the number of appointments hidden by the cascade.
    """
    user = await users_repo.get_by_id(session, user_id)
    if user is None:
        raise NotFound("user_not_found")
    user.is_deleted = True
    hidden = await appt_repo.soft_delete_for_user(session, user.id)
    await write_audit_log(session, admin_id, "DELETE_USER", f"user={user.id} appointments={hidden}")
    await session.commit()
    LOGGER.info("user %s deactivated, %d appointments hidden", user.id, hidden)
    return hidden

# clinicq/modules/users/repository.py
from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.modules.users.models import Staff, User, UserRole


class EmailAlreadyExistsError(Exception):
    """Raised when trying to insert a user with an email that already exists."""


async def get_by_id(session: AsyncSession, user_id: UUID) -> Optional[User]:
    """
    Returns a visible User by primary key or None.
    """
    stmt = select(User).where(User.id == user_id, User.visible())
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """
    Returns a User by email (normalized to lowercase) or None.
    Soft-deleted accounts still own their address.
    """
    email = email.strip().lower()
    stmt = select(User).where(User.email == email)
    return (await session.execute(stmt)).scalar_one_or_none()


async def create_user(
    session: AsyncSession,
    *,
    name: str,
    email: str,
    password_hash: Optional[str],
    role: UserRole | str = UserRole.USER,
    google_id: Optional[str] = None,
) -> User:
    """
    Inserts a new user row and returns the persisted ORM instance.
    Expects an already *hashed* password (or None for external identities).
    """
    role_value = role.value if isinstance(role, UserRole) else str(role)
    user = User(
        name=name.strip(),
        email=email.strip().lower(),
        password_hash=password_hash,
        role=role_value,
        google_id=google_id,
    )
    session.add(user)
    try:
        # Flush to force INSERT and surface constraint violations here
        await session.flush()
    except IntegrityError as exc:
        raise EmailAlreadyExistsError("Email already registered") from exc
    return user


async def get_staff_for_user(session: AsyncSession, user_id: UUID) -> Optional[Staff]:
    stmt = select(Staff).where(Staff.user_id == user_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def create_staff(
    session: AsyncSession,
    *,
    user: User,
    organization_id: UUID,
    department_id: Optional[UUID],
    position: Optional[str],
) -> Staff:
    staff = Staff(
        user_id=user.id,
        organization_id=organization_id,
        department_id=department_id,
        position=position,
    )
    session.add(staff)
    await session.flush()
    return staff


async def list_users(session: AsyncSession, *, role: Optional[str] = None) -> List[User]:
    conditions = [User.visible()]
    if role is not None:
        conditions.append(User.role == role)
    stmt = select(User).where(*conditions).order_by(User.created_at.desc())
    return list((await session.execute(stmt)).scalars().all())

# clinicq/dependencies.py
from __future__ import annotations

from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.config import settings
from clinicq.core.context import Actor, StaffScope
from clinicq.core.security import InvalidTokenError, decode_token
from clinicq.db.sql import get_session
from clinicq.modules.events.notifications import NotificationService
from clinicq.modules.events.notifier import EventNotifier, NullNotifier
from clinicq.modules.users.models import User, UserRole
from clinicq.modules.users.repository import get_by_id, get_staff_for_user

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/token")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    try:
        payload = decode_token(token)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid_token",
        )

    try:
        user_id = UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid_token",
        )
    user = await get_by_id(session, user_id)
    if not user:
        # Unknown or soft-deleted account
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="user_not_found",
        )
    return user


def require_roles(*roles: str):
    """
    Role guard factory. Example: Depends(require_roles("ADMIN", "STAFF"))
    """
    async def _guard(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="insufficient_role",
            )
        return user

    return _guard


async def get_actor(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Actor:
    """
    Caller identity as the queue core sees it. STAFF users carry the scope of
    their Staff row; a STAFF user without one is rejected outright.
    """
    scope = None
    if user.role in (UserRole.STAFF.value, UserRole.ADMIN.value):
        staff = await get_staff_for_user(session, user.id)
        if staff is not None:
            scope = StaffScope(
                organization_id=staff.organization_id,
                department_id=staff.department_id,
            )
        elif user.role == UserRole.STAFF.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="staff_account_not_configured",
            )
    return Actor(id=user.id, role=user.role, email=user.email, scope=scope)


def require_operator(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_privileged:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="insufficient_role",
        )
    return actor


def get_notifier(request: Request) -> EventNotifier:
    return getattr(request.app.state, "notifier", None) or NullNotifier()


def get_notifications(request: Request) -> NotificationService:
    service = getattr(request.app.state, "notifications", None)
    if service is None:
        service = NotificationService(enabled=False)
    return service

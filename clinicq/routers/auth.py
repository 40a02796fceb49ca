# clinicq/routers/auth.py
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.db.sql import get_session
from clinicq.dependencies import get_current_user
from clinicq.modules.users.models import User
from clinicq.modules.users.schemas import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserPublic,
)
from clinicq.modules.users.service import login_user, register_user

router = APIRouter(tags=["auth"])


@router.post(
    "/auth/register",
    response_model=UserPublic,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new patient account",
    responses={
        201: {"description": "User created"},
        409: {"description": "Email already registered"},
        422: {"description": "Invalid payload"},
    },
)
async def auth_register(
    payload: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """
    Register a new user (role: `USER`).

    Notes:
    - Email is normalized to lowercase.
    - Password must pass strength checks (8-64 chars, at least one letter and one digit).
    """
    return await register_user(session, payload)


@router.post(
    "/auth/login",
    response_model=TokenResponse,
    summary="Exchange email and password for a bearer token",
    responses={401: {"description": "Invalid credentials"}},
)
async def auth_login(
    payload: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    return await login_user(session, payload)


@router.post(
    "/auth/token",
    response_model=TokenResponse,
    summary="OAuth2 password flow login (for Swagger UI)",
    responses={401: {"description": "Invalid credentials"}},
)
async def auth_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
):
    """
    Swagger sends form data:
    - username: user email
    - password: user password
    """
    login_payload = LoginRequest(
        email=form_data.username,
        password=form_data.password,
    )
    return await login_user(session, login_payload)


@router.get(
    "/auth/me",
    response_model=UserPublic,
    summary="Return the current user's profile",
)
async def auth_me(current_user: User = Depends(get_current_user)):
    return UserPublic.model_validate(current_user)

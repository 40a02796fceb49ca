# clinicq/modules/users/models.py
from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from clinicq.db.base import (
    Base,
    ReprMixin,
    SoftDeleteMixin,
    TimestampMixin,
    UUIDPKMixin,
    utcnow,
)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    details: Mapped[str | None] = mapped_column(String(1000))
    timestamp: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class UserRole(PyEnum):
    USER = "USER"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class User(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)

    # Accounts coming from an external identity provider carry no password
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    google_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)

    role: Mapped[str] = mapped_column(
        String(10), nullable=False, default=UserRole.USER.value
    )

    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
        CheckConstraint("role IN ('USER', 'STAFF', 'ADMIN')", name="ck_users_role_valid"),
        Index("ix_users_role", "role"),
    )


class Staff(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    Operator scope for a STAFF user. `department_id` NULL means the staff
    member works across every department of the organization.
    """

    __tablename__ = "staff"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("organizations.id", ondelete="RESTRICT"), nullable=False
    )
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("departments.id", ondelete="SET NULL"), nullable=True
    )
    position: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)

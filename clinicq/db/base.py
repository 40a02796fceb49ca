# clinicq/db/base.py
from __future__ import annotations

import datetime as dt
import uuid
from typing import Any

from sqlalchemy import Boolean, ColumnElement, DateTime, false, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class UUIDPKMixin:
    """UUID (v4) primary key shared by every table."""

    id: Mapped[uuid.UUID] = mapped_column(default=uuid.uuid4, primary_key=True)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class TimestampMixin:
    """Timestamps filled client-side so async sessions never need a refresh."""

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )


class SoftDeleteMixin:
    """
    Rows are never hard-deleted; they are flagged instead.
    Every read path filters through `visible()` so the predicate lives
    in exactly one place.
    """

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )

    @classmethod
    def visible(cls) -> ColumnElement[bool]:
        return cls.is_deleted.is_(False)


class ReprMixin:
    """__repr__ for debug/logging."""

    def __repr__(self) -> str:
        cols: list[str] = []
        for k in getattr(self, "__mapper__").c.keys():
            v: Any = getattr(self, k, None)
            if k in {"password", "password_hash"}:
                v = "***"
            cols.append(f"{k}={v!r}")
        return f"<{self.__class__.__name__} {' '.join(cols)}>"


__all__ = ["Base", "UUIDPKMixin", "TimestampMixin", "SoftDeleteMixin", "ReprMixin"]

# clinicq/db/sql.py
from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clinicq.core.config import settings
from clinicq.db.base import Base

LOGGER = logging.getLogger(__name__)


def build_engine(dsn: str | None = None) -> AsyncEngine:
    dsn = dsn or settings.SQL_DSN
    if dsn.startswith("sqlite"):
        # SQLite picks its own pool class; queue-pool sizing does not apply
        return create_async_engine(dsn, echo=settings.DB_ECHO)
    return create_async_engine(
        dsn,
        echo=settings.DB_ECHO,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_pre_ping=True,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind,
        expire_on_commit=False,
        autoflush=False,
        class_=AsyncSession,
    )


engine = build_engine()
AsyncSessionLocal = build_sessionmaker(engine)


async def get_session() -> AsyncIterator[AsyncSession]:
    """
    Provide a DB session for each request.
    Commits whatever is still pending on success, rolls back on any error
    so a failed request never leaves a partial Appointment/Queue pair.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_db(session: AsyncSession) -> bool:
    await session.execute(text("SELECT 1"))
    return True


async def init_db(bind: AsyncEngine | None = None, *, drop: bool = False) -> None:
    """
    Create every table registered on Base.metadata.
    """
    # Importing the models registers them on the metadata
    from clinicq import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    LOGGER.info("database schema ready (drop=%s)", drop)

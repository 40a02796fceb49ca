# clinicq/modules/appointments/tokens.py
from __future__ import annotations

import asyncio
import datetime as dt
import logging
import weakref
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.modules.appointments.models import Appointment, TokenCounter
from clinicq.modules.appointments.repository import doctor_condition

LOGGER = logging.getLogger(__name__)

_COUNTER_KEY = ["organization_id", "department_id", "doctor_key", "date"]


@dataclass(frozen=True)
class TokenScope:
    """(organization, department, doctor-or-None, day): the unit of FIFO numbering."""

    organization_id: UUID
    department_id: UUID
    doctor_id: Optional[UUID]
    date: dt.date

    @property
    def doctor_key(self) -> str:
        return str(self.doctor_id) if self.doctor_id is not None else ""

    @property
    def key(self) -> Tuple[str, str, str, str]:
        return (
            str(self.organization_id),
            str(self.department_id),
            self.doctor_key,
            self.date.isoformat(),
        )

    @property
    def department_day(self) -> Tuple[str, str, str]:
        """Key shared by every doctor of the department on that day."""
        return (str(self.organization_id), str(self.department_id), self.date.isoformat())


class ScopeLocks:
    """
    One asyncio.Lock per live scope inside this process, or per department
    and day with `department_wide=True`. Locks disappear once no coroutine
    holds or waits on them.
    """

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Tuple[str, ...], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def lock_for(self, scope: TokenScope, *, department_wide: bool = False) -> asyncio.Lock:
        key = scope.department_day if department_wide else scope.key
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, scope: TokenScope, *, department_wide: bool = False) -> AsyncIterator[None]:
        lock = self.lock_for(scope, department_wide=department_wide)
        async with lock:
            yield


def _seed(scope: TokenScope):
    # Highest token already issued in the scope (cancelled rows included)
    return (
        select(func.coalesce(func.max(Appointment.token_number), 0) + 1)
        .where(
            Appointment.organization_id == scope.organization_id,
            Appointment.department_id == scope.department_id,
            doctor_condition(scope.doctor_id),
            Appointment.date == scope.date,
            Appointment.visible(),
        )
        .scalar_subquery()
    )


async def next_token(session: AsyncSession, scope: TokenScope) -> int:
    """
    Issue the next token for `scope` with a single atomic
    insert-or-increment on the scope's counter row.

    On PostgreSQL the counter row stays locked until the surrounding
    transaction ends, so concurrent bookings of the same scope queue up
    behind each other; a rollback gives the number back.
    """
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        insert = pg_insert
    elif dialect == "sqlite":
        insert = sqlite_insert
    else:
        return await _next_token_locked_read(session, scope)

    stmt = (
        insert(TokenCounter)
        .values(
            organization_id=scope.organization_id,
            department_id=scope.department_id,
            doctor_key=scope.doctor_key,
            date=scope.date,
            last_value=_seed(scope),
        )
        .on_conflict_do_update(
            index_elements=_COUNTER_KEY,
            set_={"last_value": TokenCounter.last_value + 1},
        )
        .returning(TokenCounter.last_value)
    )
    token = (await session.execute(stmt)).scalar_one()
    LOGGER.debug("token %s issued for scope %s", token, scope.key)
    return token


async def _next_token_locked_read(session: AsyncSession, scope: TokenScope) -> int:
    """Portable path: SELECT .. FOR UPDATE on the counter, then increment."""
    key = (
        TokenCounter.organization_id == scope.organization_id,
        TokenCounter.department_id == scope.department_id,
        TokenCounter.doctor_key == scope.doctor_key,
        TokenCounter.date == scope.date,
    )
    current = (
        await session.execute(select(TokenCounter.last_value).where(*key).with_for_update())
    ).scalar_one_or_none()
    if current is None:
        token = (await session.execute(select(_seed(scope)))).scalar_one()
        session.add(
            TokenCounter(
                organization_id=scope.organization_id,
                department_id=scope.department_id,
                doctor_key=scope.doctor_key,
                date=scope.date,
                last_value=token,
            )
        )
        await session.flush()
        return token
    token = current + 1
    await session.execute(update(TokenCounter).where(*key).values(last_value=token))
    return token


async def peek_last_token(session: AsyncSession, scope: TokenScope) -> int:
    """Last issued token for `scope` (0 when none), without issuing one."""
    stmt = select(TokenCounter.last_value).where(
        TokenCounter.organization_id == scope.organization_id,
        TokenCounter.department_id == scope.department_id,
        TokenCounter.doctor_key == scope.doctor_key,
        TokenCounter.date == scope.date,
    )
    return (await session.execute(stmt)).scalar_one_or_none() or 0

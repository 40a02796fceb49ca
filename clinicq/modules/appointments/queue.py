# clinicq/modules/appointments/queue.py
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from clinicq.core.context import Actor, ensure_in_scope, resolve_department
from clinicq.core.errors import DepartmentUnavailable, QueueEmpty, ValidationError
from clinicq.modules.appointments import repository as appt_repo
from clinicq.modules.appointments.events import announce_call
from clinicq.modules.appointments.models import Appointment, QueueStatus
from clinicq.modules.events.notifier import EventNotifier, QueueEvent, emit
from clinicq.modules.log import write_audit_log
from clinicq.modules.organizations import repository as org_repo

LOGGER = logging.getLogger(__name__)

# Attempts at claiming the head of the queue before giving up
CALL_NEXT_ATTEMPTS = 5


@dataclass(frozen=True)
class QueueTarget:
    organization_id: Optional[UUID]
    department_id: Optional[UUID]
    doctor_id: Optional[UUID]
    date: dt.date

    def conditions(self):
        return appt_repo.queue_conditions(
            day=self.date,
            organization_id=self.organization_id,
            department_id=self.department_id,
            doctor_id=self.doctor_id,
        )

    def as_payload(self) -> dict:
        return {
            "organization_id": str(self.organization_id) if self.organization_id else None,
            "department_id": str(self.department_id) if self.department_id else None,
            "doctor_id": str(self.doctor_id) if self.doctor_id else None,
            "date": self.date.isoformat(),
        }


async def resolve_target(
    session: AsyncSession,
    actor: Actor,
    *,
    day: Optional[dt.date] = None,
    department_id: Optional[UUID] = None,
    doctor_id: Optional[UUID] = None,
    require_department: bool = False,
) -> QueueTarget:
    """
    Narrow a queue request to what `actor` may see. Staff pinned to a
    department get that department; org-wide staff may pick any department
    of their organization; unscoped admins may pick any department at all.
    """
    department_id = resolve_department(actor, department_id)
    organization_id = actor.scope.organization_id if actor.scope else None

    if department_id is not None:
        department = await org_repo.get_department(session, department_id)
        if department is None:
            raise DepartmentUnavailable("Department not found or inactive")
        ensure_in_scope(actor, department.organization_id, department.id)
        organization_id = department.organization_id
    elif require_department:
        raise ValidationError("department_id is required", field="department_id")

    return QueueTarget(
        organization_id=organization_id,
        department_id=department_id,
        doctor_id=doctor_id,
        date=day or dt.date.today(),
    )


async def list_queue(session: AsyncSession, target: QueueTarget) -> List[Appointment]:
    """
    Non-cancelled appointments of the target day: emergencies first, then
    ascending token. This is also the order `call_next` serves in.
    """
    return await appt_repo.list_queue_rows(session, target.conditions())


async def call_next(
    session: AsyncSession,
    actor: Actor,
    target: QueueTarget,
    *,
    notifier: EventNotifier,
) -> Appointment:
    """
    Claim the head of the queue: flip its queue row WAITING -> CALLED.

    The claim is a conditional update, so two desks calling at the same
    time never get the same patient; the loser simply tries the next head.
    """
    conditions = target.conditions()
    for _ in range(CALL_NEXT_ATTEMPTS):
        head = await appt_repo.first_waiting(session, conditions)
        if head is None:
            break
        claimed = await appt_repo.set_queue_status(
            session,
            appointment_id=head.id,
            status=QueueStatus.CALLED.value,
            only_from=[QueueStatus.WAITING.value],
        )
        if not claimed:
            continue
        if head.queue is not None:
            set_committed_value(head.queue, "status", QueueStatus.CALLED.value)
        await write_audit_log(
            session, actor.id, "CALL_NEXT", f"appointment={head.id} token={head.token_number}"
        )
        await session.commit()
        LOGGER.info(
            "called token %s in department %s (doctor %s)",
            head.token_number,
            head.department_id,
            head.doctor_id,
        )
        await announce_call(notifier, head)
        return head
    raise QueueEmpty("No waiting appointments in this queue")


async def _flip_queue(
    session: AsyncSession,
    actor: Actor,
    target: QueueTarget,
    *,
    from_status: QueueStatus,
    to_status: QueueStatus,
    event: QueueEvent,
    notifier: EventNotifier,
) -> int:
    updated = await appt_repo.bulk_set_queue_status(
        session,
        target.conditions(),
        from_status=from_status.value,
        to_status=to_status.value,
    )
    await write_audit_log(
        session,
        actor.id,
        event.name,
        f"department={target.department_id} doctor={target.doctor_id} date={target.date} rows={updated}",
    )
    await session.commit()
    LOGGER.info("%s: %d queue rows %s -> %s", event.value, updated, from_status.value, to_status.value)
    await emit(notifier, event, {**target.as_payload(), "updated_count": updated})
    return updated


async def pause_queue(
    session: AsyncSession, actor: Actor, target: QueueTarget, *, notifier: EventNotifier
) -> int:
    """Hold every WAITING row of the target; appointment statuses stay as they are."""
    return await _flip_queue(
        session,
        actor,
        target,
        from_status=QueueStatus.WAITING,
        to_status=QueueStatus.PAUSED,
        event=QueueEvent.QUEUE_PAUSED,
        notifier=notifier,
    )


async def resume_queue(
    session: AsyncSession, actor: Actor, target: QueueTarget, *, notifier: EventNotifier
) -> int:
    return await _flip_queue(
        session,
        actor,
        target,
        from_status=QueueStatus.PAUSED,
        to_status=QueueStatus.WAITING,
        event=QueueEvent.QUEUE_RESUMED,
        notifier=notifier,
    )

# clinicq/modules/appointments/transitions.py
from __future__ import annotations

import logging
from typing import Dict, FrozenSet
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from clinicq.core.context import Actor, ensure_in_scope
from clinicq.core.errors import AccessDenied, InvalidTransition, NotFound, ValidationError
from clinicq.modules.appointments import repository as appt_repo
from clinicq.modules.appointments.events import announce_change
from clinicq.modules.appointments.models import Appointment, ApptStatus, QueueStatus
from clinicq.modules.events.notifier import EventNotifier, QueueEvent
from clinicq.modules.log import write_audit_log

LOGGER = logging.getLogger(__name__)

BOOKED = ApptStatus.BOOKED.value
SERVING = ApptStatus.SERVING.value

# target status -> statuses it may be entered from (staff side)
ALLOWED_FROM: Dict[str, FrozenSet[str]] = {
    ApptStatus.SERVING.value: frozenset({BOOKED}),
    ApptStatus.COMPLETED.value: frozenset({SERVING}),
    ApptStatus.CANCELLED.value: frozenset({BOOKED, SERVING}),
    ApptStatus.NO_SHOW.value: frozenset({BOOKED, SERVING}),
}


async def _load(session: AsyncSession, appointment_id: UUID) -> Appointment:
    appt = await appt_repo.get_appointment(session, appointment_id)
    if appt is None:
        raise NotFound("appointment_not_found")
    return appt


async def _move(
    session: AsyncSession,
    actor: Actor,
    appt: Appointment,
    target: str,
    allowed_from: FrozenSet[str],
    *,
    notifier: EventNotifier,
    event: QueueEvent = QueueEvent.APPOINTMENT_UPDATED,
) -> Appointment:
    if appt.status not in allowed_from:
        raise InvalidTransition(f"Cannot move an appointment from {appt.status} to {target}")

    # Compare-and-set: a concurrent transition that got there first wins
    changed = await appt_repo.set_status_if(
        session, appointment_id=appt.id, to_status=target, from_statuses=sorted(allowed_from)
    )
    if not changed:
        raise InvalidTransition(f"Appointment is no longer in {'/'.join(sorted(allowed_from))}")
    previous = appt.status
    set_committed_value(appt, "status", target)

    if target == SERVING:
        await appt_repo.set_queue_status(
            session, appointment_id=appt.id, status=QueueStatus.CALLED.value
        )
        if appt.queue is not None:
            set_committed_value(appt.queue, "status", QueueStatus.CALLED.value)

    await write_audit_log(
        session, actor.id, f"APPOINTMENT_{target}", f"appointment={appt.id} from={previous}"
    )
    await session.commit()
    LOGGER.info("appointment %s: %s -> %s by %s", appt.id, previous, target, actor.id)
    await announce_change(notifier, appt, event)
    return appt


async def _staff_transition(
    session: AsyncSession,
    actor: Actor,
    appointment_id: UUID,
    target: str,
    *,
    notifier: EventNotifier,
    event: QueueEvent = QueueEvent.APPOINTMENT_UPDATED,
) -> Appointment:
    appt = await _load(session, appointment_id)
    ensure_in_scope(actor, appt.organization_id, appt.department_id)
    return await _move(
        session, actor, appt, target, ALLOWED_FROM[target], notifier=notifier, event=event
    )


async def start_serving(
    session: AsyncSession, actor: Actor, appointment_id: UUID, *, notifier: EventNotifier
) -> Appointment:
    return await _staff_transition(
        session, actor, appointment_id, ApptStatus.SERVING.value, notifier=notifier
    )


async def complete(
    session: AsyncSession, actor: Actor, appointment_id: UUID, *, notifier: EventNotifier
) -> Appointment:
    return await _staff_transition(
        session, actor, appointment_id, ApptStatus.COMPLETED.value, notifier=notifier
    )


async def mark_no_show(
    session: AsyncSession, actor: Actor, appointment_id: UUID, *, notifier: EventNotifier
) -> Appointment:
    return await _staff_transition(
        session,
        actor,
        appointment_id,
        ApptStatus.NO_SHOW.value,
        notifier=notifier,
        event=QueueEvent.APPOINTMENT_NO_SHOW,
    )


async def cancel(
    session: AsyncSession, actor: Actor, appointment_id: UUID, *, notifier: EventNotifier
) -> Appointment:
    """
    Patients may cancel only their own BOOKED appointment. Staff and admins
    may cancel anything not yet finished, within their scope.
    """
    appt = await _load(session, appointment_id)
    target = ApptStatus.CANCELLED.value
    if actor.is_privileged:
        ensure_in_scope(actor, appt.organization_id, appt.department_id)
        allowed = ALLOWED_FROM[target]
    else:
        if appt.user_id != actor.id:
            raise AccessDenied("not_owner")
        allowed = frozenset({BOOKED})
    return await _move(session, actor, appt, target, allowed, notifier=notifier)


async def update_status(
    session: AsyncSession,
    actor: Actor,
    appointment_id: UUID,
    status: str,
    *,
    notifier: EventNotifier,
) -> Appointment:
    """Dispatch a staff status change (PATCH .../status) to its transition."""
    handlers = {
        ApptStatus.SERVING.value: start_serving,
        ApptStatus.COMPLETED.value: complete,
        ApptStatus.CANCELLED.value: cancel,
        ApptStatus.NO_SHOW.value: mark_no_show,
    }
    handler = handlers.get(status)
    if handler is None:
        raise ValidationError(f"Unsupported status {status}", field="status")
    return await handler(session, actor, appointment_id, notifier=notifier)

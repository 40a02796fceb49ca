# clinicq/modules/appointments/events.py
from __future__ import annotations

from typing import Any, Dict, Optional

from clinicq.modules.appointments.models import Appointment
from clinicq.modules.appointments.schemas import AppointmentPublic
from clinicq.modules.events.notifier import EventNotifier, QueueEvent, emit


def appointment_payload(appt: Appointment) -> Dict[str, Any]:
    return AppointmentPublic.model_validate(appt).model_dump(mode="json")


def queue_coordinates(appt: Appointment) -> Dict[str, Optional[str]]:
    """Just enough for a subscriber to know which queue view to re-fetch."""
    return {
        "organization_id": str(appt.organization_id),
        "department_id": str(appt.department_id),
        "doctor_id": str(appt.doctor_id) if appt.doctor_id else None,
        "date": appt.date.isoformat(),
    }


async def announce_booking(notifier: EventNotifier, appt: Appointment) -> None:
    await emit(notifier, QueueEvent.NEW_APPOINTMENT, appointment_payload(appt))
    await emit(notifier, QueueEvent.QUEUE_UPDATE, queue_coordinates(appt))


async def announce_change(
    notifier: EventNotifier,
    appt: Appointment,
    event: QueueEvent = QueueEvent.APPOINTMENT_UPDATED,
) -> None:
    await emit(notifier, event, appointment_payload(appt))
    await emit(notifier, QueueEvent.QUEUE_UPDATE, queue_coordinates(appt))


async def announce_call(notifier: EventNotifier, appt: Appointment) -> None:
    await emit(
        notifier,
        QueueEvent.TOKEN_CALLED,
        {
            "appointment_id": str(appt.id),
            "token_number": appt.token_number,
            "is_emergency": appt.is_emergency,
            **queue_coordinates(appt),
        },
    )
    await emit(notifier, QueueEvent.QUEUE_UPDATE, queue_coordinates(appt))

# clinicq/modules/appointments/admission.py
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clinicq.core.config import settings
from clinicq.core.context import Actor, ensure_in_scope
from clinicq.core.errors import (
    Conflict,
    DepartmentUnavailable,
    DoctorUnavailable,
    DuplicateBooking,
    InternalError,
    NotFound,
    QueueError,
    SlotFull,
    ValidationError,
)
from clinicq.modules.appointments import repository as appt_repo
from clinicq.modules.appointments.events import announce_booking
from clinicq.modules.appointments.models import (
    EMERGENCY_SLOT,
    Appointment,
    ApptStatus,
    Queue,
    QueueStatus,
)
from clinicq.modules.appointments.schemas import AppointmentCreateRequest
from clinicq.modules.appointments.slots import is_slot_label
from clinicq.modules.appointments.tokens import ScopeLocks, TokenScope, next_token
from clinicq.modules.events.notifications import NotificationService
from clinicq.modules.events.notifier import EventNotifier
from clinicq.modules.log import write_audit_log
from clinicq.modules.organizations import repository as org_repo
from clinicq.modules.organizations.models import Department, Doctor
from clinicq.modules.users import repository as users_repo

LOGGER = logging.getLogger(__name__)

# Process-wide: every request of this worker must see the same locks
SCOPE_LOCKS = ScopeLocks()


@dataclass(frozen=True)
class PatientIdentity:
    user_id: Optional[UUID]
    patient_name: Optional[str]
    patient_phone: Optional[str]
    email: Optional[str] = None


async def _resolve_identity(
    session: AsyncSession, payload: AppointmentCreateRequest, actor: Actor
) -> PatientIdentity:
    """
    Patients always book for themselves. Staff and admins name either a
    registered user or a walk-in (name + phone), never both.
    """
    if not actor.is_privileged:
        return PatientIdentity(user_id=actor.id, patient_name=None, patient_phone=None, email=actor.email)

    if payload.user_id is not None:
        if payload.patient_name is not None or payload.patient_phone is not None:
            raise ValidationError(
                "Give either user_id or patient_name/patient_phone, not both", field="user_id"
            )
        patient = await users_repo.get_by_id(session, payload.user_id)
        if patient is None:
            raise NotFound("user_not_found")
        return PatientIdentity(user_id=patient.id, patient_name=None, patient_phone=None, email=patient.email)

    if payload.patient_name is None:
        raise ValidationError(
            "Walk-in bookings need patient_name and patient_phone", field="patient_name"
        )
    return PatientIdentity(
        user_id=None,
        patient_name=payload.patient_name,
        patient_phone=payload.patient_phone,
    )


async def _load_department(session: AsyncSession, payload: AppointmentCreateRequest) -> Department:
    organization = await org_repo.get_organization(session, payload.organization_id)
    if organization is None:
        raise NotFound("organization_not_found")
    department = await org_repo.get_department(session, payload.department_id)
    if department is None or department.organization_id != organization.id:
        raise DepartmentUnavailable("Department not found or inactive")
    return department


async def _load_doctor(
    session: AsyncSession, department: Department, doctor_id: Optional[UUID]
) -> Optional[Doctor]:
    if doctor_id is None:
        return None
    doctor = await org_repo.get_doctor(session, doctor_id)
    if doctor is None or not doctor.is_active or doctor.department_id != department.id:
        raise DoctorUnavailable("Doctor not found, inactive or outside this department")
    return doctor


def _requested_slot(payload: AppointmentCreateRequest, department: Department, emergency: bool) -> str:
    if emergency:
        return EMERGENCY_SLOT
    if payload.time_slot is None:
        raise ValidationError("time_slot is required", field="time_slot")
    if not is_slot_label(department, payload.time_slot):
        raise ValidationError(
            f"{payload.time_slot} is not a slot of this department", field="time_slot"
        )
    return payload.time_slot


_TOKEN_MARKERS = ("uq_appt_scope_token", "appointments.token_number")
_IDENTITY_MARKERS = (
    "uq_appt_active_user",
    "uq_appt_active_walk_in",
    "appointments.user_id, appointments.department_id",
    "appointments.patient_name, appointments.patient_phone",
)


def _violated(exc: IntegrityError, markers) -> bool:
    message = str(exc.orig).lower() if exc.orig else str(exc).lower()
    return any(marker in message for marker in markers)


async def _ensure_no_active_booking(
    session: AsyncSession, identity: PatientIdentity, department_id: UUID, day: dt.date
) -> None:
    existing = await appt_repo.find_active_for_identity(
        session,
        department_id=department_id,
        day=day,
        user_id=identity.user_id,
        patient_name=identity.patient_name,
        patient_phone=identity.patient_phone,
    )
    if existing is not None:
        raise DuplicateBooking(
            "This patient already has an appointment with this department on this date"
        )


async def _insert_locked(
    session: AsyncSession,
    *,
    actor: Actor,
    scope: TokenScope,
    identity: PatientIdentity,
    capacity: int,
    time_slot: str,
    emergency: bool,
) -> Appointment:
    """
    Duplicate re-check, token, capacity check and insert. Runs while the
    department-day lock is held; the caller commits before releasing it
    and rolls back on any error so a drawn token is given back.

    The token is drawn before the slot is counted: on PostgreSQL that takes
    the counter row lock, so a booking from another worker for the same
    scope waits here until this transaction ends and then counts our row.
    """
    await _ensure_no_active_booking(session, identity, scope.department_id, scope.date)

    token = await next_token(session, scope)

    if not emergency:
        taken = await appt_repo.count_slot_bookings(
            session,
            department_id=scope.department_id,
            doctor_id=scope.doctor_id,
            day=scope.date,
            time_slot=time_slot,
        )
        if taken >= capacity:
            raise SlotFull("Slot is no longer available")

    appt = Appointment(
        user_id=identity.user_id,
        patient_name=identity.patient_name,
        patient_phone=identity.patient_phone,
        booked_by_id=actor.id,
        organization_id=scope.organization_id,
        department_id=scope.department_id,
        doctor_id=scope.doctor_id,
        date=scope.date,
        time_slot=time_slot,
        token_number=token,
        status=ApptStatus.BOOKED.value,
        is_emergency=emergency,
    )
    appt.queue = Queue(status=QueueStatus.WAITING.value)
    session.add(appt)
    try:
        await session.flush()
    except IntegrityError as exc:
        if _violated(exc, _TOKEN_MARKERS):
            raise Conflict("token_taken") from exc
        # Another worker booked the same patient for another doctor of the department
        if _violated(exc, _IDENTITY_MARKERS):
            raise DuplicateBooking(
                "This patient already has an appointment with this department on this date"
            ) from exc
        raise InternalError("appointment_insert_failed") from exc

    await write_audit_log(
        session,
        actor.id,
        "BOOK_APPOINTMENT",
        f"appointment={appt.id} token={token} slot={time_slot} scope={'/'.join(scope.key)}",
    )
    return appt


async def admit(
    session: AsyncSession,
    payload: AppointmentCreateRequest,
    actor: Actor,
    *,
    notifier: EventNotifier,
    notifications: Optional[NotificationService] = None,
    locks: ScopeLocks = SCOPE_LOCKS,
    today: Optional[dt.date] = None,
) -> Appointment:
    """
    Validate and persist one booking.

    Every rule is checked before anything is written. The duplicate
    re-check, token assignment, capacity check and the Appointment+Queue
    insert run under the department-day lock and commit together; a lost
    token race rolls back and is retried a bounded number of times.
    """
    # Emergency priority is a staff decision; patients are silently downgraded
    emergency = payload.is_emergency and actor.is_privileged
    if payload.date < (today or dt.date.today()):
        raise ValidationError("Cannot book a date in the past", field="date")

    identity = await _resolve_identity(session, payload, actor)

    # The same-day rule also binds emergencies; only capacity is bypassed.
    # Checked again under the lock, this early pass only fails fast.
    await _ensure_no_active_booking(session, identity, payload.department_id, payload.date)

    department = await _load_department(session, payload)
    if actor.is_privileged:
        ensure_in_scope(actor, department.organization_id, department.id)
    doctor = await _load_doctor(session, department, payload.doctor_id)
    time_slot = _requested_slot(payload, department, emergency)

    scope = TokenScope(
        organization_id=department.organization_id,
        department_id=department.id,
        doctor_id=doctor.id if doctor else None,
        date=payload.date,
    )
    # Plain values only: a rollback expires every ORM instance in the session
    capacity = department.max_appointments_per_slot

    appt: Optional[Appointment] = None
    for attempt in range(1, settings.TOKEN_RETRY_ATTEMPTS + 1):
        # Department-wide, so two doctors of one department cannot both take
        # the same patient's booking for the day
        async with locks.hold(scope, department_wide=True):
            try:
                appt = await _insert_locked(
                    session,
                    actor=actor,
                    scope=scope,
                    identity=identity,
                    capacity=capacity,
                    time_slot=time_slot,
                    emergency=emergency,
                )
                await session.commit()
            except Conflict:
                await session.rollback()
                LOGGER.warning("token collision in scope %s (attempt %d)", scope.key, attempt)
                continue
            except QueueError:
                # Gives the drawn token back
                await session.rollback()
                raise
        break
    if appt is None:
        raise InternalError("Could not assign a token, please retry")

    LOGGER.info(
        "booked token %s (%s%s) for department %s on %s",
        appt.token_number,
        appt.time_slot,
        ", emergency" if emergency else "",
        appt.department_id,
        appt.date,
    )
    await announce_booking(notifier, appt)
    if notifications is not None:
        notifications.fire_booking_confirmation(
            identity.email,
            {
                "appointment_id": str(appt.id),
                "token_number": appt.token_number,
                "time_slot": appt.time_slot,
                "date": appt.date.isoformat(),
            },
        )
    return appt

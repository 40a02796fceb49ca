# tests/test_admission.py
import datetime as dt
import uuid

import pytest
from sqlalchemy import select

from clinicq.core.errors import (
    AccessDenied,
    DepartmentUnavailable,
    DoctorUnavailable,
    DuplicateBooking,
    NotFound,
    SlotFull,
    ValidationError,
)
from clinicq.modules.appointments.admission import admit
from clinicq.modules.appointments.models import EMERGENCY_SLOT, Queue
from clinicq.modules.organizations.models import Doctor
from clinicq.modules.users.models import AuditLog
from tests.conftest import TOMORROW

pytestmark = pytest.mark.anyio


async def test_full_slot_then_emergency(session, world, notifier):
    first = await admit(session, world.booking(), world.patient_actor, notifier=notifier)
    second = await admit(session, world.booking(), world.other_patient_actor, notifier=notifier)
    assert (first.token_number, second.token_number) == (1, 2)

    with pytest.raises(SlotFull):
        await admit(
            session, world.walk_in("Kim Park", "+15550001111"), world.staff_actor, notifier=notifier
        )

    emergency = await admit(
        session,
        world.walk_in("Kim Park", "+15550001111", is_emergency=True),
        world.staff_actor,
        notifier=notifier,
    )
    assert emergency.token_number == 3
    assert emergency.is_emergency is True
    assert emergency.time_slot == EMERGENCY_SLOT


async def test_booking_creates_waiting_queue_row(session, world, notifier):
    appt = await admit(session, world.booking(), world.patient_actor, notifier=notifier)

    assert appt.status == "BOOKED"
    assert appt.user_id == world.patient.id
    assert appt.booked_by_id == world.patient.id
    row = (await session.execute(select(Queue).where(Queue.appointment_id == appt.id))).scalar_one()
    assert row.status == "WAITING"
    assert appt.queue_status == "WAITING"


async def test_booking_is_audited_and_announced(session, world, notifier, notifications):
    appt = await admit(
        session,
        world.booking(),
        world.patient_actor,
        notifier=notifier,
        notifications=notifications,
    )
    await notifications.drain()

    actions = (await session.execute(select(AuditLog.action))).scalars().all()
    assert "BOOK_APPOINTMENT" in actions
    assert notifier.names() == ["newAppointment", "queueUpdate"]
    assert notifier.events[0][1]["token_number"] == 1
    assert notifications.sent == [
        (
            "pat@example.com",
            {
                "appointment_id": str(appt.id),
                "token_number": 1,
                "time_slot": "09:00",
                "date": TOMORROW.isoformat(),
            },
        )
    ]


async def test_duplicate_in_same_department_and_day(session, world, notifier):
    await admit(session, world.booking(), world.patient_actor, notifier=notifier)
    with pytest.raises(DuplicateBooking):
        await admit(
            session,
            world.booking(doctor_id=world.second_doctor.id, time_slot="10:00"),
            world.patient_actor,
            notifier=notifier,
        )


async def test_duplicate_rule_ignores_cancelled_bookings(session, world, notifier):
    from clinicq.modules.appointments.transitions import cancel

    appt = await admit(session, world.booking(), world.patient_actor, notifier=notifier)
    await cancel(session, world.patient_actor, appt.id, notifier=notifier)
    again = await admit(session, world.booking(), world.patient_actor, notifier=notifier)
    assert again.token_number == 2


async def test_same_patient_other_department_is_fine(session, world, notifier):
    await admit(session, world.booking(), world.patient_actor, notifier=notifier)
    other = await admit(
        session,
        world.booking(department_id=world.other_department.id, doctor_id=None, time_slot="09:00"),
        world.patient_actor,
        notifier=notifier,
    )
    assert other.token_number == 1


async def test_emergency_still_bound_by_duplicate_rule(session, world, notifier):
    payload = world.walk_in("Lou Hart", "+15550002222")
    await admit(session, payload, world.staff_actor, notifier=notifier)
    with pytest.raises(DuplicateBooking):
        await admit(
            session,
            world.walk_in("Lou Hart", "+15550002222", is_emergency=True),
            world.staff_actor,
            notifier=notifier,
        )


async def test_patient_emergency_flag_is_downgraded(session, world, notifier):
    appt = await admit(
        session, world.booking(is_emergency=True), world.patient_actor, notifier=notifier
    )
    assert appt.is_emergency is False
    assert appt.time_slot == "09:00"


async def test_patient_cannot_book_for_someone_else(session, world, notifier):
    appt = await admit(
        session,
        world.booking(user_id=world.other_patient.id),
        world.patient_actor,
        notifier=notifier,
    )
    assert appt.user_id == world.patient.id


async def test_staff_books_registered_user(session, world, notifier):
    appt = await admit(
        session, world.booking(user_id=world.patient.id), world.staff_actor, notifier=notifier
    )
    assert appt.user_id == world.patient.id
    assert appt.booked_by_id == world.staff.id


async def test_walk_in_needs_identity(session, world, notifier):
    with pytest.raises(ValidationError) as exc:
        await admit(session, world.booking(), world.staff_actor, notifier=notifier)
    assert exc.value.field == "patient_name"


@pytest.mark.parametrize(
    "walk_in_fields",
    [
        {"patient_name": "Kim Park", "patient_phone": "+15550001111"},
        {"patient_phone": "+15550001111"},
        {"patient_name": "Kim Park"},
    ],
)
async def test_user_id_with_any_walk_in_field_rejected(session, world, notifier, walk_in_fields):
    # model_copy skips the pair validator, as a caller building the model in code could
    payload = world.booking(user_id=world.patient.id).model_copy(update=walk_in_fields)
    with pytest.raises(ValidationError) as exc:
        await admit(session, payload, world.staff_actor, notifier=notifier)
    assert exc.value.field == "user_id"


async def test_staff_unknown_user(session, world, notifier):
    with pytest.raises(NotFound):
        await admit(
            session, world.booking(user_id=uuid.uuid4()), world.staff_actor, notifier=notifier
        )


async def test_inactive_doctor_unavailable(session, world, notifier):
    await session.execute(
        Doctor.__table__.update().where(Doctor.id == world.doctor.id).values(is_active=False)
    )
    await session.commit()
    with pytest.raises(DoctorUnavailable):
        await admit(session, world.booking(), world.patient_actor, notifier=notifier)


async def test_doctor_from_another_department(session, world, notifier):
    with pytest.raises(DoctorUnavailable):
        await admit(
            session,
            world.booking(department_id=world.other_department.id),
            world.patient_actor,
            notifier=notifier,
        )


async def test_department_outside_organization(session, world, notifier):
    with pytest.raises(DepartmentUnavailable):
        await admit(
            session,
            world.booking(department_id=world.foreign_department.id, doctor_id=None),
            world.patient_actor,
            notifier=notifier,
        )


async def test_slot_must_be_on_the_grid(session, world, notifier):
    with pytest.raises(ValidationError) as exc:
        await admit(session, world.booking(time_slot="09:10"), world.patient_actor, notifier=notifier)
    assert exc.value.field == "time_slot"


async def test_regular_booking_needs_a_slot(session, world, notifier):
    with pytest.raises(ValidationError):
        await admit(session, world.booking(time_slot=None), world.patient_actor, notifier=notifier)


async def test_past_date_rejected(session, world, notifier):
    with pytest.raises(ValidationError) as exc:
        await admit(
            session,
            world.booking(date=dt.date.today() - dt.timedelta(days=1)),
            world.patient_actor,
            notifier=notifier,
        )
    assert exc.value.field == "date"


async def test_staff_outside_scope(session, world, notifier):
    with pytest.raises(AccessDenied):
        await admit(
            session,
            world.walk_in(
                "Ray Cole", "+15550003333", department_id=world.other_department.id, doctor_id=None
            ),
            world.staff_actor,
            notifier=notifier,
        )


async def test_failed_admission_writes_nothing(session, world, notifier):
    with pytest.raises(ValidationError):
        await admit(session, world.booking(time_slot="09:10"), world.patient_actor, notifier=notifier)
    assert (await session.execute(select(Queue))).scalars().all() == []
    assert notifier.events == []

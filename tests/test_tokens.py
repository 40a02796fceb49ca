# tests/test_tokens.py
import asyncio

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from clinicq.core.errors import DuplicateBooking, SlotFull
from clinicq.modules.appointments.admission import admit
from clinicq.modules.appointments.models import Appointment
from clinicq.modules.appointments.tokens import ScopeLocks, TokenScope, next_token, peek_last_token
from clinicq.modules.appointments.transitions import cancel
from tests.conftest import TOMORROW

pytestmark = pytest.mark.anyio


def _scope(world, doctor=None, day=TOMORROW):
    return TokenScope(
        organization_id=world.organization.id,
        department_id=world.department.id,
        doctor_id=doctor.id if doctor else None,
        date=day,
    )


async def test_tokens_are_consecutive_from_one(session, world):
    scope = _scope(world, world.doctor)
    issued = [await next_token(session, scope) for _ in range(5)]
    await session.commit()
    assert issued == [1, 2, 3, 4, 5]
    assert await peek_last_token(session, scope) == 5


async def test_scopes_number_independently(session, world):
    first = await next_token(session, _scope(world, world.doctor))
    other_doctor = await next_token(session, _scope(world, world.second_doctor))
    department_wide = await next_token(session, _scope(world))
    assert first == other_doctor == department_wide == 1


async def test_rollback_returns_the_number(session, world):
    scope = _scope(world, world.doctor)
    await next_token(session, scope)
    await session.commit()
    await next_token(session, scope)
    await session.rollback()
    assert await next_token(session, scope) == 2


async def test_cancelled_token_is_not_reused(session, world, notifier):
    first = await admit(session, world.booking(), world.patient_actor, notifier=notifier)
    await cancel(session, world.patient_actor, first.id, notifier=notifier)

    second = await admit(
        session, world.booking(time_slot="09:30"), world.other_patient_actor, notifier=notifier
    )
    assert (first.token_number, second.token_number) == (1, 2)


async def test_concurrent_admissions_get_distinct_tokens(session_factory, world, notifier):
    names = [f"Walk In {i}" for i in range(6)]

    async def book(i):
        async with session_factory() as s:
            payload = world.walk_in(names[i], f"+3460000000{i}", time_slot=f"{9 + i}:00".zfill(5))
            appt = await admit(s, payload, world.staff_actor, notifier=notifier)
            return appt.token_number

    tokens = await asyncio.gather(*(book(i) for i in range(len(names))))
    assert sorted(tokens) == [1, 2, 3, 4, 5, 6]


async def test_scope_lock_is_shared_per_key(world):
    locks = ScopeLocks()
    scope = _scope(world, world.doctor)
    assert locks.lock_for(scope) is locks.lock_for(_scope(world, world.doctor))
    assert locks.lock_for(scope) is not locks.lock_for(_scope(world, world.second_doctor))


async def test_department_wide_lock_spans_doctors(world):
    locks = ScopeLocks()
    first = locks.lock_for(_scope(world, world.doctor), department_wide=True)
    assert first is locks.lock_for(_scope(world, world.second_doctor), department_wide=True)
    assert first is locks.lock_for(_scope(world), department_wide=True)
    assert first is not locks.lock_for(_scope(world, world.doctor))


async def _book_concurrently(session_factory, notifier, bookings):
    """Run each (payload, actor) pair in its own session at the same time."""

    async def book(payload, actor):
        async with session_factory() as s:
            appt = await admit(s, payload, actor, notifier=notifier)
            return appt.token_number

    return await asyncio.gather(
        *(book(payload, actor) for payload, actor in bookings), return_exceptions=True
    )


async def test_same_patient_racing_for_two_slots_books_once(session_factory, session, world, notifier):
    results = await _book_concurrently(
        session_factory,
        notifier,
        [
            (world.booking(time_slot="09:00"), world.patient_actor),
            (world.booking(time_slot="09:30"), world.patient_actor),
        ],
    )

    assert [r for r in results if isinstance(r, int)] == [1]
    assert [type(r) for r in results if not isinstance(r, int)] == [DuplicateBooking]
    assert await _live_bookings(session, world) == 1


async def test_same_patient_racing_for_two_doctors_books_once(session_factory, session, world, notifier):
    results = await _book_concurrently(
        session_factory,
        notifier,
        [
            (world.booking(doctor_id=world.doctor.id), world.patient_actor),
            (world.booking(doctor_id=world.second_doctor.id, time_slot="10:00"), world.patient_actor),
        ],
    )

    assert [r for r in results if isinstance(r, int)] == [1]
    assert [type(r) for r in results if not isinstance(r, int)] == [DuplicateBooking]
    assert await _live_bookings(session, world) == 1


async def test_concurrent_walk_ins_never_overfill_a_slot(session_factory, session, world, notifier):
    capacity = world.department.max_appointments_per_slot
    results = await _book_concurrently(
        session_factory,
        notifier,
        [
            (world.walk_in(f"Walk In {i}", f"+3461000000{i}"), world.staff_actor)
            for i in range(capacity + 2)
        ],
    )

    tokens = sorted(r for r in results if isinstance(r, int))
    rejected = [r for r in results if not isinstance(r, int)]
    assert tokens == list(range(1, capacity + 1))
    assert len(rejected) == 2
    assert all(isinstance(r, SlotFull) for r in rejected)
    # Rejected bookings gave their numbers back
    assert await peek_last_token(session, _scope(world, world.doctor)) == capacity


async def test_db_rejects_second_live_booking_of_a_patient(session, world):
    for doctor in (world.doctor, world.second_doctor):
        session.add(
            Appointment(
                user_id=world.patient.id,
                booked_by_id=world.patient.id,
                organization_id=world.organization.id,
                department_id=world.department.id,
                doctor_id=doctor.id,
                date=TOMORROW,
                time_slot="09:00",
                token_number=1,
            )
        )
    with pytest.raises(IntegrityError):
        await session.flush()
    await session.rollback()


async def _live_bookings(session, world):
    stmt = select(func.count(Appointment.id)).where(
        Appointment.department_id == world.department.id,
        Appointment.date == TOMORROW,
    )
    return (await session.execute(stmt)).scalar_one()

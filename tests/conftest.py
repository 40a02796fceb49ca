# tests/conftest.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Tuple

import pytest

from clinicq.core.context import Actor, StaffScope
from clinicq.db.sql import build_engine, build_sessionmaker, init_db
from clinicq.modules.appointments.schemas import AppointmentCreateRequest
from clinicq.modules.events.notifications import NotificationService
from clinicq.modules.events.notifier import EventNotifier, QueueEvent, _name
from clinicq.modules.organizations.models import Department, Doctor, Organization
from clinicq.modules.users.models import Staff, User

TOMORROW = dt.date.today() + dt.timedelta(days=1)


class RecordingNotifier(EventNotifier):
    """Keeps every published event in memory, in publish order."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    async def publish(self, event: QueueEvent | str, payload: Mapping[str, Any]) -> None:
        self.events.append((_name(event), dict(payload)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]


class RecordingNotifications(NotificationService):
    def __init__(self) -> None:
        super().__init__(enabled=True)
        self.sent: List[Tuple[str, Dict[str, Any]]] = []

    async def send_booking_confirmation(self, email, details):
        self.sent.append((email, dict(details)))


@dataclass
class World:
    organization: Organization
    other_organization: Organization
    department: Department
    other_department: Department
    foreign_department: Department
    doctor: Doctor
    second_doctor: Doctor
    patient: User
    other_patient: User
    staff: User
    org_staff: User
    admin: User

    @property
    def patient_actor(self) -> Actor:
        return Actor(id=self.patient.id, role="USER", email=self.patient.email)

    @property
    def other_patient_actor(self) -> Actor:
        return Actor(id=self.other_patient.id, role="USER", email=self.other_patient.email)

    @property
    def staff_actor(self) -> Actor:
        """Staff pinned to `department`."""
        return Actor(
            id=self.staff.id,
            role="STAFF",
            email=self.staff.email,
            scope=StaffScope(self.organization.id, self.department.id),
        )

    @property
    def org_staff_actor(self) -> Actor:
        """Staff covering every department of `organization`."""
        return Actor(
            id=self.org_staff.id,
            role="STAFF",
            email=self.org_staff.email,
            scope=StaffScope(self.organization.id),
        )

    @property
    def admin_actor(self) -> Actor:
        return Actor(id=self.admin.id, role="ADMIN", email=self.admin.email)

    def booking(self, **overrides) -> AppointmentCreateRequest:
        data = dict(
            organization_id=self.organization.id,
            department_id=self.department.id,
            doctor_id=self.doctor.id,
            date=TOMORROW,
            time_slot="09:00",
        )
        data.update(overrides)
        return AppointmentCreateRequest(**data)

    def walk_in(self, name: str, phone: str, **overrides) -> AppointmentCreateRequest:
        return self.booking(patient_name=name, patient_phone=phone, **overrides)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'queue.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
async def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
async def world(session_factory) -> World:
    """
    One clinic with two departments (30 min slots, 2 per slot) and two
    doctors in the first, plus an office belonging to someone else.
    """
    async with session_factory() as s:
        org = Organization(name="Riverside Clinic", type="CLINIC")
        other_org = Organization(name="Hilltop Office", type="OFFICE")
        s.add_all([org, other_org])
        await s.flush()

        dept = Department(
            name="Cardiology",
            organization_id=org.id,
            slot_duration_minutes=30,
            max_appointments_per_slot=2,
        )
        other_dept = Department(
            name="Dermatology",
            organization_id=org.id,
            slot_duration_minutes=60,
            max_appointments_per_slot=1,
        )
        foreign_dept = Department(
            name="Front Desk",
            organization_id=other_org.id,
            slot_duration_minutes=15,
            max_appointments_per_slot=3,
        )
        s.add_all([dept, other_dept, foreign_dept])
        await s.flush()

        doctor = Doctor(
            name="Dr. Ana Ruiz",
            specialization="Cardiology",
            organization_id=org.id,
            department_id=dept.id,
        )
        second_doctor = Doctor(
            name="Dr. Ken Ito",
            specialization="Cardiology",
            organization_id=org.id,
            department_id=dept.id,
        )
        s.add_all([doctor, second_doctor])

        patient = User(name="Pat Lee", email="pat@example.com", role="USER")
        other_patient = User(name="Sam Roe", email="sam@example.com", role="USER")
        staff = User(name="Desk One", email="desk@example.com", role="STAFF")
        org_staff = User(name="Floor Lead", email="lead@example.com", role="STAFF")
        admin = User(name="Root Admin", email="admin@example.com", role="ADMIN")
        s.add_all([patient, other_patient, staff, org_staff, admin])
        await s.flush()

        s.add_all(
            [
                Staff(user_id=staff.id, organization_id=org.id, department_id=dept.id),
                Staff(user_id=org_staff.id, organization_id=org.id, department_id=None),
            ]
        )
        await s.commit()

    return World(
        organization=org,
        other_organization=other_org,
        department=dept,
        other_department=other_dept,
        foreign_department=foreign_dept,
        doctor=doctor,
        second_doctor=second_doctor,
        patient=patient,
        other_patient=other_patient,
        staff=staff,
        org_staff=org_staff,
        admin=admin,
    )

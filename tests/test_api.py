# tests/test_api.py
import httpx
import pytest

from clinicq.core.security import create_access_token
from clinicq.db.sql import get_session
from clinicq.main import create_app
from clinicq.modules.events.notifications import NotificationService
from tests.conftest import TOMORROW

pytestmark = pytest.mark.anyio


@pytest.fixture
async def app(session_factory, notifier):
    application = create_app()

    async def _session():
        async with session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    application.dependency_overrides[get_session] = _session
    application.state.notifier = notifier
    application.state.notifications = NotificationService(enabled=False)
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


def auth(user):
    token = create_access_token(subject=str(user.id), role=user.role, email=user.email)
    return {"Authorization": f"Bearer {token}"}


def booking_body(world, **overrides):
    body = {
        "organization_id": str(world.organization.id),
        "department_id": str(world.department.id),
        "doctor_id": str(world.doctor.id),
        "date": TOMORROW.isoformat(),
        "time_slot": "09:00",
    }
    body.update(overrides)
    return body


async def test_health(client):
    assert (await client.get("/api/health")).json() == {"status": "ok"}
    res = await client.get("/api/health/db")
    assert res.status_code == 200
    assert res.json()["database"] == "sqlite"


async def test_register_login_me(client):
    res = await client.post(
        "/api/auth/register",
        json={"name": "New Patient", "email": "New@Example.com", "password": "s3cretpass"},
    )
    assert res.status_code == 201
    assert res.json()["email"] == "new@example.com"
    assert res.json()["role"] == "USER"

    again = await client.post(
        "/api/auth/register",
        json={"name": "New Patient", "email": "new@example.com", "password": "s3cretpass"},
    )
    assert again.status_code == 409
    assert again.json()["kind"] == "EmailAlreadyExists"

    bad = await client.post(
        "/api/auth/login", json={"email": "new@example.com", "password": "wrongpass1"}
    )
    assert bad.status_code == 401

    login = await client.post(
        "/api/auth/login", json={"email": "new@example.com", "password": "s3cretpass"}
    )
    assert login.status_code == 200
    token = login.json()["access_token"]

    me = await client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["name"] == "New Patient"


async def test_weak_password_rejected(client):
    res = await client.post(
        "/api/auth/register",
        json={"name": "Weak", "email": "weak@example.com", "password": "short"},
    )
    assert res.status_code == 422


async def test_booking_requires_a_token(client, world):
    res = await client.post("/api/appointments", json=booking_body(world))
    assert res.status_code == 401


async def test_catalogue_is_public(client, world):
    orgs = (await client.get("/api/organizations")).json()
    assert {o["name"] for o in orgs} == {"Riverside Clinic", "Hilltop Office"}

    depts = (await client.get(f"/api/organizations/{world.organization.id}/departments")).json()
    assert {d["name"] for d in depts} == {"Cardiology", "Dermatology"}

    doctors = (await client.get("/api/doctors", params={"q": "ito"})).json()
    assert [d["name"] for d in doctors] == ["Dr. Ken Ito"]

    slots = (
        await client.get(
            f"/api/departments/{world.department.id}/available-slots",
            params={"date": TOMORROW.isoformat()},
        )
    ).json()
    assert slots[0] == {"time_slot": "09:00", "remaining": 2, "available": True}


async def test_patient_books_and_sees_history(client, world, notifier):
    res = await client.post("/api/appointments", json=booking_body(world), headers=auth(world.patient))
    assert res.status_code == 201
    body = res.json()
    assert body["token_number"] == 1
    assert body["status"] == "BOOKED"
    assert body["queue_status"] == "WAITING"
    assert "newAppointment" in notifier.names()

    dup = await client.post(
        "/api/appointments",
        json=booking_body(world, time_slot="10:00"),
        headers=auth(world.patient),
    )
    assert dup.status_code == 409
    assert dup.json()["kind"] == "DuplicateBooking"

    history = (await client.get("/api/appointments/history", headers=auth(world.patient))).json()
    assert history["total"] == 1
    assert history["items"][0]["id"] == body["id"]


async def test_domain_errors_are_rendered(client, world):
    res = await client.post(
        "/api/appointments",
        json=booking_body(world, time_slot="09:10"),
        headers=auth(world.patient),
    )
    assert res.status_code == 400
    assert res.json() == {
        "kind": "ValidationError",
        "detail": "09:10 is not a slot of this department",
        "field": "time_slot",
    }


async def test_patient_cancels_own_booking(client, world):
    created = await client.post(
        "/api/appointments", json=booking_body(world), headers=auth(world.patient)
    )
    appt_id = created.json()["id"]

    other = await client.put(
        f"/api/appointments/{appt_id}/cancel", headers=auth(world.other_patient)
    )
    assert other.status_code == 403

    res = await client.put(f"/api/appointments/{appt_id}/cancel", headers=auth(world.patient))
    assert res.status_code == 200
    assert res.json()["status"] == "CANCELLED"

    again = await client.put(f"/api/appointments/{appt_id}/cancel", headers=auth(world.patient))
    assert again.status_code == 409
    assert again.json()["kind"] == "InvalidTransition"


async def test_staff_desk_flow(client, world, notifier):
    for name, phone in (("Walk One", "+15550000001"), ("Walk Two", "+15550000002")):
        res = await client.post(
            "/api/appointments",
            json=booking_body(world, patient_name=name, patient_phone=phone),
            headers=auth(world.staff),
        )
        assert res.status_code == 201

    queue = (
        await client.get(
            "/api/staff/queue",
            params={"doctor_id": str(world.doctor.id), "date": TOMORROW.isoformat()},
            headers=auth(world.staff),
        )
    ).json()
    assert [a["token_number"] for a in queue["items"]] == [1, 2]

    action = {"doctor_id": str(world.doctor.id), "date": TOMORROW.isoformat()}
    called = await client.post("/api/staff/queue/call-next", json=action, headers=auth(world.staff))
    assert called.status_code == 200
    first_id = called.json()["id"]
    assert called.json()["queue_status"] == "CALLED"

    serving = await client.patch(
        f"/api/staff/appointments/{first_id}/status",
        json={"status": "SERVING"},
        headers=auth(world.staff),
    )
    assert serving.json()["status"] == "SERVING"

    second = await client.post("/api/staff/queue/call-next", json=action, headers=auth(world.staff))
    no_show = await client.patch(
        f"/api/staff/appointments/{second.json()['id']}/no-show", headers=auth(world.staff)
    )
    assert no_show.json()["status"] == "NO_SHOW"

    empty = await client.post("/api/staff/queue/call-next", json=action, headers=auth(world.staff))
    assert empty.status_code == 404
    assert empty.json()["kind"] == "QueueEmpty"

    stats = (
        await client.get(
            "/api/staff/dashboard",
            params={"doctor_id": str(world.doctor.id), "date": TOMORROW.isoformat()},
            headers=auth(world.staff),
        )
    ).json()
    assert stats["total_today"] == 2
    assert stats["waiting"] == 0
    assert stats["no_shows"] == 1
    assert stats["current_serving"]["token_number"] == 1
    assert stats["current_serving"]["patient_name"] == "Walk One"
    assert "tokenCalled" in notifier.names()


async def test_staff_pause_and_resume(client, world):
    await client.post("/api/appointments", json=booking_body(world), headers=auth(world.patient))
    action = {"doctor_id": str(world.doctor.id), "date": TOMORROW.isoformat()}

    paused = await client.post("/api/staff/queue/pause", json=action, headers=auth(world.staff))
    assert paused.json() == {"updated_count": 1}
    resumed = await client.post("/api/staff/queue/resume", json=action, headers=auth(world.staff))
    assert resumed.json() == {"updated_count": 1}


async def test_patients_cannot_use_staff_routes(client, world):
    res = await client.get("/api/staff/queue", headers=auth(world.patient))
    assert res.status_code == 403


async def test_department_staff_cannot_read_other_department(client, world):
    res = await client.get(
        "/api/staff/queue",
        params={"department_id": str(world.other_department.id)},
        headers=auth(world.staff),
    )
    assert res.status_code == 403
    assert res.json()["kind"] == "AccessDenied"


async def test_admin_emergency_booking(client, world):
    body = booking_body(world, patient_name="Crash Case", patient_phone="+15559990000")
    body.pop("time_slot")

    denied = await client.post(
        "/api/admin/appointments/emergency", json=body, headers=auth(world.staff)
    )
    assert denied.status_code == 403

    res = await client.post("/api/admin/appointments/emergency", json=body, headers=auth(world.admin))
    assert res.status_code == 201
    assert res.json()["is_emergency"] is True
    assert res.json()["time_slot"] == "EMERGENCY"


async def test_admin_catalogue_management(client, world):
    created = await client.post(
        "/api/admin/departments",
        json={
            "name": "Pediatrics",
            "organization_id": str(world.organization.id),
            "slot_duration_minutes": 20,
            "max_appointments_per_slot": 4,
        },
        headers=auth(world.admin),
    )
    assert created.status_code == 201
    dept_id = created.json()["id"]

    updated = await client.patch(
        f"/api/admin/departments/{dept_id}",
        json={"max_appointments_per_slot": 5},
        headers=auth(world.admin),
    )
    assert updated.json()["max_appointments_per_slot"] == 5

    doctor = await client.post(
        "/api/admin/doctors",
        json={
            "name": "Dr. Mia Chen",
            "specialization": "Pediatrics",
            "organization_id": str(world.organization.id),
            "department_id": dept_id,
        },
        headers=auth(world.admin),
    )
    assert doctor.status_code == 201

    deleted = await client.delete(f"/api/admin/departments/{dept_id}", headers=auth(world.admin))
    assert deleted.status_code == 204
    depts = (await client.get(f"/api/organizations/{world.organization.id}/departments")).json()
    assert "Pediatrics" not in {d["name"] for d in depts}


async def test_admin_creates_scoped_staff(client, world):
    res = await client.post(
        "/api/admin/staff",
        json={
            "name": "Second Desk",
            "email": "desk2@example.com",
            "password": "deskpass1",
            "organization_id": str(world.organization.id),
            "department_id": str(world.other_department.id),
        },
        headers=auth(world.admin),
    )
    assert res.status_code == 201
    assert res.json()["user"]["role"] == "STAFF"
    assert res.json()["department_id"] == str(world.other_department.id)

    login = await client.post(
        "/api/auth/login", json={"email": "desk2@example.com", "password": "deskpass1"}
    )
    token = login.json()["access_token"]
    own = await client.get(
        "/api/staff/queue", headers={"Authorization": f"Bearer {token}"}
    )
    assert own.status_code == 200


async def test_deleting_a_user_hides_their_appointments(client, world):
    await client.post("/api/appointments", json=booking_body(world), headers=auth(world.patient))

    res = await client.delete(f"/api/admin/users/{world.patient.id}", headers=auth(world.admin))
    assert res.json() == {"deleted": True, "appointments_hidden": 1}

    listing = (await client.get("/api/admin/appointments", headers=auth(world.admin))).json()
    assert listing["total"] == 0
    # Soft-deleted accounts can no longer authenticate
    me = await client.get("/api/auth/me", headers=auth(world.patient))
    assert me.status_code == 401


async def test_admin_changes_role(client, world):
    res = await client.patch(
        f"/api/admin/users/{world.other_patient.id}/role",
        json={"role": "ADMIN"},
        headers=auth(world.admin),
    )
    assert res.json()["role"] == "ADMIN"
    users = (
        await client.get("/api/admin/users", params={"role": "ADMIN"}, headers=auth(world.admin))
    ).json()
    assert {u["email"] for u in users} == {"admin@example.com", "sam@example.com"}



"""End-to-end tests of the HTTP API."""

from uuid import uuid4

import pytest
from httpx import AsyncClient

API = "/api/v1"
WEEK = [
    {
        "weekday": weekday,
        "start_time": "09:00",
        "end_time": "17:00",
        "break_start": "13:00",
        "break_end": "14:00",
    }
    for weekday in ("monday", "tuesday", "wednesday", "thursday", "friday")
]


async def create_doctor(client: AsyncClient) -> dict:
    response = await client.post(
        f"{API}/doctors",
        json={"full_name": "Dr. Meera Iyer", "specialization": "Pediatrics"},
    )
    assert response.status_code == 201
    doctor = response.json()

    response = await client.put(
        f"{API}/doctors/{doctor['id']}/working-hours", json={"working_hours": WEEK}
    )
    assert response.status_code == 200
    return doctor


async def create_patient(client: AsyncClient, phone: str = "+91 98765 43210") -> dict:
    response = await client.post(
        f"{API}/patients",
        json={"full_name": "Ravi Kumar", "phone": phone, "email": "ravi@example.com"},
    )
    assert response.status_code == 201
    return response.json()


async def book(client: AsyncClient, doctor: dict, patient: dict, day, start: str, end: str):
    return await client.post(
        f"{API}/appointments",
        json={
            "doctor_id": doctor["id"],
            "patient_id": patient["id"],
            "appointment_date": day.isoformat(),
            "time_slot": {"start": start, "end": end},
            "reason": "Fever",
        },
    )


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    response = await client.get(f"{API}/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    ping = await client.get(f"{API}/ping")
    assert ping.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_doctor_registration_defaults(client: AsyncClient):
    doctor = await create_doctor(client)

    assert doctor["appointment_duration_minutes"] == 30

    response = await client.get(f"{API}/doctors/{doctor['id']}/working-hours")
    assert response.status_code == 200
    assert len(response.json()["working_hours"]) == 5


@pytest.mark.asyncio
async def test_unknown_doctor_error_shape(client: AsyncClient):
    response = await client.get(f"{API}/doctors/{uuid4()}")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "NotFoundException"
    assert body["message"] == "Doctor not found"
    assert "path" in body


@pytest.mark.asyncio
async def test_invalid_working_hours_are_rejected(client: AsyncClient):
    doctor = await create_doctor(client)

    response = await client.put(
        f"{API}/doctors/{doctor['id']}/working-hours",
        json={
            "working_hours": [
                {"weekday": "monday", "start_time": "17:00", "end_time": "09:00"}
            ]
        },
    )

    assert response.status_code == 422
    assert response.json()["error"] == "ValidationError"


@pytest.mark.asyncio
async def test_slots_and_booking(client: AsyncClient, day):
    doctor = await create_doctor(client)
    patient = await create_patient(client)

    slots = await client.get(f"{API}/doctors/{doctor['id']}/slots", params={"date": str(day)})
    assert slots.status_code == 200
    assert slots.json()["total"] == 14
    assert slots.json()["available"] == 14

    booked = await book(client, doctor, patient, day, "10:00", "10:30")
    assert booked.status_code == 201
    assert booked.json()["status"] == "pending"

    clash = await book(client, doctor, patient, day, "10:15", "10:45")
    assert clash.status_code == 409
    assert clash.json()["error"] == "SlotConflictException"

    free = await client.get(
        f"{API}/doctors/{doctor['id']}/slots",
        params={"date": str(day), "available_only": "true"},
    )
    assert free.json()["total"] == 13

    check = await client.get(
        f"{API}/doctors/{doctor['id']}/availability",
        params={"date": str(day), "start": "10:30", "end": "11:00"},
    )
    assert check.json()["available"] is True


@pytest.mark.asyncio
async def test_malformed_slot_is_rejected(client: AsyncClient, day):
    doctor = await create_doctor(client)
    patient = await create_patient(client)

    response = await book(client, doctor, patient, day, "11:00", "10:30")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_queue_over_http(client: AsyncClient, day):
    doctor = await create_doctor(client)
    first = await create_patient(client, "+91 90000 00001")
    second = await create_patient(client, "+91 90000 00002")
    a = (await book(client, doctor, first, day, "09:00", "09:30")).json()
    b = (await book(client, doctor, second, day, "09:30", "10:00")).json()

    token_a = await client.post(f"{API}/appointments/{a['id']}/check-in")
    token_b = await client.post(f"{API}/appointments/{b['id']}/check-in")
    assert token_a.status_code == 201
    assert token_a.json()["token_number"] == 1
    assert token_b.json()["token_number"] == 2

    called = await client.post(f"{API}/queue/{doctor['id']}/call-next", params={"date": str(day)})
    assert called.status_code == 200
    assert called.json()["appointment_id"] == a["id"]

    busy = await client.post(f"{API}/queue/{doctor['id']}/call-next", params={"date": str(day)})
    assert busy.status_code == 409
    assert busy.json()["error"] == "ConsultationInProgressException"

    done = await client.post(
        f"{API}/queue/entries/{called.json()['id']}/complete",
        json={"diagnosis": "Viral fever"},
    )
    assert done.status_code == 200
    assert done.json()["status"] == "completed"
    assert done.json()["diagnosis"] == "Viral fever"

    board = await client.get(f"{API}/queue/{doctor['id']}", params={"date": str(day)})
    assert board.json()["completed_count"] == 1
    assert board.json()["next_up"]["appointment_id"] == b["id"]


@pytest.mark.asyncio
async def test_empty_queue_call_next(client: AsyncClient, day):
    doctor = await create_doctor(client)

    response = await client.post(
        f"{API}/queue/{doctor['id']}/call-next", params={"date": str(day)}
    )

    assert response.status_code == 404
    assert response.json()["error"] == "NoWaitingPatientsException"


@pytest.mark.asyncio
async def test_cancel_and_invalid_transition(client: AsyncClient, day):
    doctor = await create_doctor(client)
    patient = await create_patient(client)
    appointment = (await book(client, doctor, patient, day, "09:00", "09:30")).json()

    cancelled = await client.post(
        f"{API}/appointments/{appointment['id']}/cancel",
        json={"user_id": patient["id"], "reason": "Recovered"},
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["cancelled_by"]["reason"] == "Recovered"

    confirm = await client.post(f"{API}/appointments/{appointment['id']}/confirm")
    assert confirm.status_code == 409
    assert confirm.json()["error"] == "InvalidTransitionException"


@pytest.mark.asyncio
async def test_list_appointments(client: AsyncClient, day):
    doctor = await create_doctor(client)
    patient = await create_patient(client)
    await book(client, doctor, patient, day, "09:00", "09:30")
    await book(client, doctor, patient, day, "09:30", "10:00")

    response = await client.get(
        f"{API}/appointments", params={"doctor_id": doctor["id"], "status": "pending"}
    )

    assert response.status_code == 200
    assert response.json()["total"] == 2

    day_view = await client.get(
        f"{API}/doctors/{doctor['id']}/appointments", params={"date": str(day)}
    )
    assert [a["time_slot"]["start"] for a in day_view.json()] == ["09:00:00", "09:30:00"]


@pytest.mark.asyncio
async def test_emergency_intake_over_http(client: AsyncClient):
    doctor = await create_doctor(client)
    patient = await create_patient(client)

    response = await client.post(
        f"{API}/appointments/emergency",
        json={
            "doctor_id": doctor["id"],
            "patient_id": patient["id"],
            "severity": "critical",
            "chief_complaint": "Seizure",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["appointment_type"] == "emergency"
    assert body["priority"] == 4
    assert body["details"] == {
        "kind": "emergency",
        "severity": "critical",
        "chief_complaint": "Seizure",
    }
    assert body["checked_in"]["status"] is True


@pytest.mark.asyncio
async def test_reminder_dispatch_over_http(client: AsyncClient, day):
    doctor = await create_doctor(client)
    patient = await create_patient(client)
    await book(client, doctor, patient, day, "10:00", "10:30")
    now = f"{day.isoformat()}T08:00:00+00:00"

    due = await client.get(f"{API}/reminders/due", params={"now": now})
    assert due.status_code == 200
    assert len(due.json()) == 1

    dispatched = await client.post(f"{API}/reminders/dispatch", params={"now": now})
    assert dispatched.json()["sent"] == 1

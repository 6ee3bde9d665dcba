"""Tests for emergency intake and queue precedence."""

from datetime import UTC, datetime, time, timedelta
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from app.config import settings
from app.core.exceptions import NotFoundException
from app.schemas.appointments import (
    AppointmentStatus,
    AppointmentType,
    EmergencyAppointmentCreate,
    EmergencySeverity,
    priority_for_severity,
)
from app.schemas.queue import QueueCandidate
from app.services.emergency_priority import order_emergencies, select_next_emergency
from app.services.queue_service import pick_next

BASE = datetime(2030, 1, 7, 9, 0, tzinfo=UTC)


def candidate(token, priority=0, emergency=False, minutes=0) -> QueueCandidate:
    return QueueCandidate(
        entry_id=uuid4(),
        token_number=token,
        appointment_type=AppointmentType.EMERGENCY if emergency else AppointmentType.ROUTINE,
        priority=priority,
        created_at=BASE + timedelta(minutes=minutes),
    )


def test_severity_priorities():
    assert priority_for_severity(EmergencySeverity.CRITICAL) == 4
    assert priority_for_severity("severe") == 3
    assert priority_for_severity(EmergencySeverity.MODERATE) == 2
    assert priority_for_severity(EmergencySeverity.MINOR) == 1
    assert priority_for_severity("unknown") == 0
    assert priority_for_severity(None) == 0


def test_emergencies_are_ordered_by_priority_then_arrival():
    late_critical = candidate(5, priority=4, emergency=True, minutes=20)
    early_critical = candidate(4, priority=4, emergency=True, minutes=10)
    moderate = candidate(3, priority=2, emergency=True, minutes=0)
    routine = candidate(1)

    ordered = order_emergencies([moderate, routine, late_critical, early_critical])

    assert ordered == [early_critical, late_critical, moderate]


def test_no_emergency_means_no_selection():
    assert select_next_emergency([candidate(1), candidate(2)]) is None
    assert select_next_emergency([]) is None


def test_pick_next_prefers_emergencies_over_tokens():
    routine = candidate(1)
    emergency = candidate(7, priority=1, emergency=True)

    assert pick_next([routine, emergency]) is emergency


def test_pick_next_uses_lowest_token_otherwise():
    first, second = candidate(2), candidate(3)

    assert pick_next([second, first]) is first
    assert pick_next([]) is None


@pytest.mark.asyncio
async def test_emergency_intake(appointment_service, queue_service, doctor, patient, sender):
    emergency = await appointment_service.create_emergency(
        EmergencyAppointmentCreate(
            doctor_id=doctor.id,
            patient_id=patient.id,
            severity=EmergencySeverity.CRITICAL,
            chief_complaint="Breathing difficulty",
        )
    )
    today = datetime.now(ZoneInfo(settings.clinic_timezone)).date()

    assert emergency.appointment_type == AppointmentType.EMERGENCY
    assert emergency.status == AppointmentStatus.CONFIRMED
    assert emergency.priority == 4
    assert emergency.details.kind == "emergency"
    assert emergency.details.severity == EmergencySeverity.CRITICAL
    assert emergency.reason == "Breathing difficulty"
    assert emergency.source == "reception"
    assert emergency.appointment_date == today
    assert emergency.time_slot.start < emergency.time_slot.end
    assert emergency.checked_in.status is True

    board = await queue_service.get_queue(doctor.id, today)
    assert board.waiting_count == 1
    assert sender.types() == ["appointment_created", "queue_checked_in"]


@pytest.mark.asyncio
async def test_emergency_without_check_in(appointment_service, queue_service, doctor, patient):
    emergency = await appointment_service.create_emergency(
        EmergencyAppointmentCreate(
            doctor_id=doctor.id,
            patient_id=patient.id,
            severity=EmergencySeverity.MINOR,
            chief_complaint="Cut finger",
            check_in=False,
        )
    )

    assert emergency.checked_in.status is False
    board = await queue_service.get_queue(doctor.id, emergency.appointment_date)
    assert board.total == 0

    entry = await queue_service.check_in(emergency.id)
    assert entry.token_number == 1


@pytest.mark.asyncio
async def test_emergency_for_unknown_doctor(appointment_service, patient):
    with pytest.raises(NotFoundException):
        await appointment_service.create_emergency(
            EmergencyAppointmentCreate(
                doctor_id=uuid4(),
                patient_id=patient.id,
                severity=EmergencySeverity.SEVERE,
                chief_complaint="Fracture",
            )
        )


@pytest.mark.asyncio
async def test_emergencies_jump_the_queue(
    appointment_service, queue_service, book, make_patient, doctor
):
    today = datetime.now(ZoneInfo(settings.clinic_timezone)).date()
    routine = []
    for hour in (9, 10):
        other = await make_patient()
        booked = await book(time(hour, 0), time(hour, 30), day=today, patient_id=other.id)
        await queue_service.check_in(booked.id)
        routine.append(booked)

    moderate = await appointment_service.create_emergency(
        EmergencyAppointmentCreate(
            doctor_id=doctor.id,
            patient_id=(await make_patient()).id,
            severity=EmergencySeverity.MODERATE,
            chief_complaint="Abdominal pain",
        )
    )
    critical = await appointment_service.create_emergency(
        EmergencyAppointmentCreate(
            doctor_id=doctor.id,
            patient_id=(await make_patient()).id,
            severity=EmergencySeverity.CRITICAL,
            chief_complaint="Chest pain",
        )
    )

    served = []
    for _ in range(4):
        entry = await queue_service.call_next(doctor.id, today)
        served.append(entry.appointment_id)
        await queue_service.complete_consultation(entry.id)

    assert served == [critical.id, moderate.id, routine[0].id, routine[1].id]


@pytest.mark.asyncio
async def test_queue_board_lists_emergencies_in_call_order(
    appointment_service, queue_service, book, make_patient, doctor
):
    today = datetime.now(ZoneInfo(settings.clinic_timezone)).date()
    routine = await book(time(9, 0), time(9, 30), day=today)
    await queue_service.check_in(routine.id)

    emergencies = {}
    for severity in (EmergencySeverity.MINOR, EmergencySeverity.SEVERE, EmergencySeverity.MINOR):
        created = await appointment_service.create_emergency(
            EmergencyAppointmentCreate(
                doctor_id=doctor.id,
                patient_id=(await make_patient()).id,
                severity=severity,
                chief_complaint="Walk-in",
            )
        )
        emergencies.setdefault(severity, []).append(created.id)

    board = await queue_service.get_queue(doctor.id, today)

    assert [e.appointment_id for e in board.emergencies] == [
        emergencies[EmergencySeverity.SEVERE][0],
        *emergencies[EmergencySeverity.MINOR],
    ]
    assert board.next_up.appointment_id == emergencies[EmergencySeverity.SEVERE][0]
    assert board.waiting_count == 4


@pytest.mark.asyncio
async def test_queue_board_without_emergencies(queue_service, book, day, doctor):
    booked = await book(time(9, 0), time(9, 30))
    await queue_service.check_in(booked.id)

    board = await queue_service.get_queue(doctor.id, day)

    assert board.emergencies == []
    assert board.next_up.appointment_id == booked.id

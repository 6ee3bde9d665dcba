"""Tests for the appointment lifecycle."""

from datetime import date, time, timedelta
from uuid import uuid4

import pytest
from sqlalchemy import select

from app.core.exceptions import (
    InvalidTransitionException,
    NotFoundException,
    SlotConflictException,
)
from app.models.follow_ups import follow_ups
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentSource,
    AppointmentStatus,
    AppointmentType,
    ConsultationOutcome,
    EmergencyAppointmentCreate,
    EmergencySeverity,
    FollowUpRecommendation,
    Medicine,
    Prescription,
    TimeSlot,
    Vitals,
)
from app.schemas.queue import QueueStatus


@pytest.mark.asyncio
async def test_patient_booking_starts_pending(book, sender):
    appointment = await book(time(9, 0), time(9, 30))

    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.appointment_type == AppointmentType.ROUTINE
    assert appointment.details.kind == "routine"
    assert appointment.checked_in.status is False
    assert appointment.priority == 0
    assert sender.types() == ["appointment_created"]


@pytest.mark.asyncio
async def test_staff_booking_starts_confirmed(book):
    appointment = await book(time(9, 0), time(9, 30), source=AppointmentSource.RECEPTION)

    assert appointment.status == AppointmentStatus.CONFIRMED
    assert appointment.source == "reception"


@pytest.mark.asyncio
async def test_booking_unknown_doctor_or_patient(appointment_service, doctor, patient, day):
    with pytest.raises(NotFoundException):
        await appointment_service.create_appointment(
            AppointmentCreate(
                doctor_id=uuid4(),
                patient_id=patient.id,
                appointment_date=day,
                time_slot=TimeSlot(start=time(9, 0), end=time(9, 30)),
                reason="Checkup",
            )
        )

    with pytest.raises(NotFoundException):
        await appointment_service.create_appointment(
            AppointmentCreate(
                doctor_id=doctor.id,
                patient_id=uuid4(),
                appointment_date=day,
                time_slot=TimeSlot(start=time(9, 0), end=time(9, 30)),
                reason="Checkup",
            )
        )


def test_emergency_type_is_rejected_for_bookings(day):
    with pytest.raises(ValueError):
        AppointmentCreate(
            doctor_id=uuid4(),
            patient_id=uuid4(),
            appointment_date=day,
            time_slot=TimeSlot(start=time(9, 0), end=time(9, 30)),
            appointment_type=AppointmentType.EMERGENCY,
            reason="Checkup",
        )


def test_inverted_slot_is_rejected():
    with pytest.raises(ValueError):
        TimeSlot(start=time(10, 0), end=time(9, 30))


@pytest.mark.asyncio
async def test_confirm(appointment_service, book):
    booked = await book(time(9, 0), time(9, 30))

    confirmed = await appointment_service.confirm_appointment(booked.id)

    assert confirmed.status == AppointmentStatus.CONFIRMED
    with pytest.raises(InvalidTransitionException):
        await appointment_service.confirm_appointment(booked.id)


@pytest.mark.asyncio
async def test_cancel_records_who_and_why(appointment_service, book, patient):
    booked = await book(time(9, 0), time(9, 30))

    cancelled = await appointment_service.cancel_appointment(booked.id, patient.id, "Travelling")

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancelled_by.user_id == patient.id
    assert cancelled.cancelled_by.reason == "Travelling"
    assert cancelled.cancelled_by.cancelled_at is not None

    with pytest.raises(InvalidTransitionException):
        await appointment_service.cancel_appointment(booked.id, patient.id, "Again")


@pytest.mark.asyncio
async def test_cancel_withdraws_waiting_queue_entry(
    appointment_service, queue_service, book, patient
):
    booked = await book(time(9, 0), time(9, 30))
    entry = await queue_service.check_in(booked.id)

    await appointment_service.cancel_appointment(booked.id, patient.id, "Left early")

    refreshed = await queue_service.get_entry(entry.id)
    assert refreshed.status == QueueStatus.CANCELLED


@pytest.mark.asyncio
async def test_cancel_is_rejected_during_consultation(
    appointment_service, queue_service, book, doctor, patient, day
):
    booked = await book(time(9, 0), time(9, 30))
    await queue_service.check_in(booked.id)
    await queue_service.call_next(doctor.id, day)

    with pytest.raises(InvalidTransitionException):
        await appointment_service.cancel_appointment(booked.id, patient.id, "Changed mind")

    current = await appointment_service.get_appointment(booked.id)
    assert current.status == AppointmentStatus.PENDING


@pytest.mark.asyncio
async def test_reschedule_moves_the_slot(appointment_service, availability_service, book, doctor, day):
    booked = await book(time(9, 0), time(9, 30), source=AppointmentSource.RECEPTION)
    next_day = day + timedelta(days=1)

    moved = await appointment_service.reschedule_appointment(
        booked.id, next_day, TimeSlot(start=time(11, 0), end=time(11, 30))
    )

    assert moved.id == booked.id
    assert moved.status == AppointmentStatus.PENDING
    assert moved.appointment_date == next_day
    assert moved.time_slot.start == time(11, 0)
    assert moved.reschedule_count == 1
    assert moved.rescheduled_from == {
        "appointment_date": day.isoformat(),
        "start": "09:00:00",
        "end": "09:30:00",
        "status": "confirmed",
    }

    old_day = await availability_service.get_slots(doctor.id, day)
    assert not any(slot.is_booked for slot in old_day)


@pytest.mark.asyncio
async def test_reschedule_within_own_slot(appointment_service, book, day):
    booked = await book(time(9, 0), time(9, 30))

    moved = await appointment_service.reschedule_appointment(
        booked.id, day, TimeSlot(start=time(9, 15), end=time(9, 45))
    )

    assert moved.time_slot.start == time(9, 15)


@pytest.mark.asyncio
async def test_reschedule_into_taken_slot(appointment_service, book, make_patient, day):
    other = await make_patient()
    await book(time(10, 0), time(10, 30), patient_id=other.id)
    booked = await book(time(9, 0), time(9, 30))

    with pytest.raises(SlotConflictException):
        await appointment_service.reschedule_appointment(
            booked.id, day, TimeSlot(start=time(10, 0), end=time(10, 30))
        )

    unchanged = await appointment_service.get_appointment(booked.id)
    assert unchanged.time_slot.start == time(9, 0)
    assert unchanged.reschedule_count == 0


@pytest.mark.asyncio
async def test_reschedule_rejects_checked_in(appointment_service, queue_service, book, day):
    booked = await book(time(9, 0), time(9, 30))
    await queue_service.check_in(booked.id)

    with pytest.raises(InvalidTransitionException):
        await appointment_service.reschedule_appointment(
            booked.id, day, TimeSlot(start=time(11, 0), end=time(11, 30))
        )


@pytest.mark.asyncio
async def test_reschedule_rejects_emergencies(appointment_service, doctor, patient):
    emergency = await appointment_service.create_emergency(
        EmergencyAppointmentCreate(
            doctor_id=doctor.id,
            patient_id=patient.id,
            severity=EmergencySeverity.MINOR,
            chief_complaint="Sprained ankle",
            check_in=False,
        )
    )

    with pytest.raises(InvalidTransitionException):
        await appointment_service.reschedule_appointment(
            emergency.id,
            emergency.appointment_date + timedelta(days=1),
            TimeSlot(start=time(9, 0), end=time(9, 30)),
        )


@pytest.mark.asyncio
async def test_complete_requires_confirmation_or_check_in(appointment_service, book):
    booked = await book(time(9, 0), time(9, 30))

    with pytest.raises(InvalidTransitionException):
        await appointment_service.complete_appointment(booked.id)


@pytest.mark.asyncio
async def test_complete_merges_outcome_and_records_follow_up(
    appointment_service, book, db_session, day
):
    booked = await book(time(9, 0), time(9, 30), source=AppointmentSource.RECEPTION)
    outcome = ConsultationOutcome(
        diagnosis="Seasonal allergy",
        prescription=Prescription(medicines=[Medicine(name="Cetirizine", dosage="10mg")]),
        vitals=Vitals(blood_pressure="120/80", pulse=72),
        notes="Avoid dust",
        follow_up=FollowUpRecommendation(
            required=True, recommended_date=day + timedelta(days=14), notes="Review"
        ),
    )

    completed = await appointment_service.complete_appointment(booked.id, outcome)

    assert completed.status == AppointmentStatus.COMPLETED
    assert completed.completed_at is not None
    assert completed.diagnosis == "Seasonal allergy"
    assert completed.prescription["medicines"][0]["name"] == "Cetirizine"
    assert completed.vitals == {"blood_pressure": "120/80", "pulse": 72}
    assert completed.notes == "Avoid dust"

    result = await db_session.execute(
        select(follow_ups).where(follow_ups.c.appointment_id == booked.id)
    )
    rows = result.mappings().all()
    assert len(rows) == 1
    assert rows[0]["follow_up_date"] == day + timedelta(days=14)
    assert rows[0]["status"] == "pending"


@pytest.mark.asyncio
async def test_checked_in_pending_appointment_can_complete(
    appointment_service, queue_service, book
):
    booked = await book(time(9, 0), time(9, 30))
    entry = await queue_service.check_in(booked.id)

    completed = await appointment_service.complete_appointment(booked.id)

    assert completed.status == AppointmentStatus.COMPLETED
    refreshed = await queue_service.get_entry(entry.id)
    assert refreshed.status == QueueStatus.COMPLETED


@pytest.mark.asyncio
async def test_no_show(appointment_service, book, sender):
    booked = await book(time(9, 0), time(9, 30), source=AppointmentSource.RECEPTION)

    missed = await appointment_service.mark_no_show(booked.id)

    assert missed.status == AppointmentStatus.NO_SHOW
    assert sender.types()[-1] == "appointment_status_changed"
    with pytest.raises(InvalidTransitionException):
        await appointment_service.mark_no_show(booked.id)


@pytest.mark.asyncio
async def test_unknown_appointment(appointment_service):
    with pytest.raises(NotFoundException):
        await appointment_service.get_appointment(uuid4())

    with pytest.raises(NotFoundException):
        await appointment_service.confirm_appointment(uuid4())


@pytest.mark.asyncio
async def test_list_appointments_filters(appointment_service, book, make_patient, doctor, day):
    other = await make_patient()
    await book(time(9, 0), time(9, 30))
    await book(time(10, 0), time(10, 30), patient_id=other.id, source=AppointmentSource.RECEPTION)
    await book(time(9, 0), time(9, 30), day=day + timedelta(days=1))

    everything = await appointment_service.list_appointments(AppointmentFilters(doctor_id=doctor.id))
    assert everything.total == 3
    assert everything.items[0].appointment_date == day + timedelta(days=1)

    confirmed = await appointment_service.list_appointments(
        AppointmentFilters(status=AppointmentStatus.CONFIRMED)
    )
    assert [a.patient_id for a in confirmed.items] == [other.id]

    one_day = await appointment_service.list_appointments(
        AppointmentFilters(from_date=day, to_date=day, page_size=1)
    )
    assert one_day.total == 2
    assert len(one_day.items) == 1


@pytest.mark.asyncio
async def test_get_doctor_day_is_ordered_by_slot(appointment_service, book, doctor, day):
    await book(time(15, 0), time(15, 30))
    await book(time(9, 0), time(9, 30))

    appointments = await appointment_service.get_doctor_day(doctor.id, day)

    assert [a.time_slot.start for a in appointments] == [time(9, 0), time(15, 0)]
    assert await appointment_service.get_doctor_day(doctor.id, date(2030, 2, 1)) == []

"""Doctor schedule endpoints."""

from datetime import date, time
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Appointments, Availability, DatabaseSession, DoctorDirectory
from app.schemas.appointments import AppointmentResponse
from app.schemas.doctors import (
    DoctorAvailability,
    DoctorCreate,
    DoctorResponse,
    LeavePeriodCreate,
    LeavePeriodResponse,
    WorkingHoursUpdate,
)
from app.schemas.slots import DoctorSlotsResponse, SlotAvailabilityResponse
from app.services.conflict_checker import ConflictChecker

router = APIRouter()


# ============================================================================
# Doctor directory
# ============================================================================


@router.post("", response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
async def create_doctor(
    doctor_data: DoctorCreate,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
) -> DoctorResponse:
    """
    Register a doctor.

    - **full_name**: Display name
    - **specialization**: Primary medical specialization
    - **appointment_duration_minutes**: Length of one bookable slot
    """
    return await doctor_service.create_doctor(db, doctor_data)


@router.get("/{doctor_id}", response_model=DoctorResponse)
async def get_doctor(
    doctor_id: UUID,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
) -> DoctorResponse:
    """Get doctor by ID."""
    return await doctor_service.require_doctor(db, doctor_id)


# ============================================================================
# Working hours and leave
# ============================================================================


@router.put("/{doctor_id}/working-hours", response_model=DoctorAvailability)
async def set_working_hours(
    doctor_id: UUID,
    data: WorkingHoursUpdate,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
) -> DoctorAvailability:
    """
    Replace the weekly working hours of a doctor.

    Each entry covers one weekday with an optional break window.
    """
    return await doctor_service.set_working_hours(db, doctor_id, data)


@router.get("/{doctor_id}/working-hours", response_model=DoctorAvailability)
async def get_working_hours(
    doctor_id: UUID,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
) -> DoctorAvailability:
    """Get the weekly working hours of a doctor."""
    return await doctor_service.get_availability(db, doctor_id)


@router.post(
    "/{doctor_id}/leaves",
    response_model=LeavePeriodResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_leave(
    doctor_id: UUID,
    data: LeavePeriodCreate,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
) -> LeavePeriodResponse:
    """Record a leave period."""
    return await doctor_service.add_leave(db, doctor_id, data)


@router.get("/{doctor_id}/leaves", response_model=list[LeavePeriodResponse])
async def list_leaves(
    doctor_id: UUID,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
    start_date: date = Query(...),
    end_date: date = Query(...),
    approved_only: bool = Query(False),
) -> list[LeavePeriodResponse]:
    """List leave periods overlapping a date range."""
    await doctor_service.require_doctor(db, doctor_id)
    return await doctor_service.get_leaves(
        db, doctor_id, start_date, end_date, approved_only=approved_only
    )


# ============================================================================
# Slots
# ============================================================================


@router.get("/{doctor_id}/slots", response_model=DoctorSlotsResponse)
async def get_slots(
    doctor_id: UUID,
    availability_service: Availability,
    day: date = Query(..., alias="date"),
    available_only: bool = Query(False),
) -> DoctorSlotsResponse:
    """
    List the bookable slots of a doctor on one day.

    Booked slots are flagged with ``is_booked`` unless ``available_only`` drops them.
    """
    slots = await availability_service.get_slots(doctor_id, day, available_only=available_only)
    return DoctorSlotsResponse(
        doctor_id=doctor_id,
        day=day,
        total=len(slots),
        available=sum(1 for slot in slots if not slot.is_booked),
        slots=slots,
    )


@router.get("/{doctor_id}/availability", response_model=SlotAvailabilityResponse)
async def check_availability(
    doctor_id: UUID,
    db: DatabaseSession,
    doctor_service: DoctorDirectory,
    day: date = Query(..., alias="date"),
    start: time = Query(...),
    end: time = Query(...),
) -> SlotAvailabilityResponse:
    """Check whether a time range is free for the doctor."""
    await doctor_service.require_doctor(db, doctor_id)
    available = await ConflictChecker(db).is_slot_available(doctor_id, day, start, end)
    return SlotAvailabilityResponse(
        doctor_id=doctor_id,
        day=day,
        start=start,
        end=end,
        available=available,
    )


@router.get("/{doctor_id}/appointments", response_model=list[AppointmentResponse])
async def get_doctor_day(
    doctor_id: UUID,
    appointment_service: Appointments,
    day: date = Query(..., alias="date"),
) -> list[AppointmentResponse]:
    """List a doctor's appointments on one day, ordered by slot."""
    return await appointment_service.get_doctor_day(doctor_id, day)

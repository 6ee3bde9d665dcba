"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import Appointments, Queue
from app.schemas.appointments import (
    AppointmentCancel,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentReschedule,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentType,
    ConsultationOutcome,
    EmergencyAppointmentCreate,
)
from app.schemas.queue import QueueEntryResponse

router = APIRouter()


@router.post(
    "",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Book an appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: Appointments,
) -> AppointmentResponse:
    """
    Book a slot-bound appointment.

    Fails with 409 when the slot overlaps another appointment of the doctor.
    """
    return await service.create_appointment(data)


@router.post(
    "/emergency",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Register an emergency",
)
async def create_emergency(
    data: EmergencyAppointmentCreate,
    service: Appointments,
) -> AppointmentResponse:
    """
    Register an emergency for today.

    The patient is checked in immediately unless ``check_in`` is false.
    """
    return await service.create_emergency(data)


@router.get(
    "",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="List appointments",
)
async def list_appointments(
    service: Appointments,
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    appointment_type: AppointmentType | None = Query(None),
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    from_date: date | None = Query(None),
    to_date: date | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    List appointments with filtering.

    Args:
        service: Appointment service
        status_filter: Filter by status
        appointment_type: Filter by type
        doctor_id: Filter by doctor ID
        patient_id: Filter by patient ID
        from_date: First appointment date
        to_date: Last appointment date
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        status=status_filter,
        appointment_type=appointment_type,
        doctor_id=doctor_id,
        patient_id=patient_id,
        from_date=from_date,
        to_date=to_date,
        page=page,
        page_size=page_size,
    )
    return await service.list_appointments(filters)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment details",
)
async def get_appointment(
    appointment_id: UUID,
    service: Appointments,
) -> AppointmentResponse:
    """Get appointment by ID."""
    return await service.get_appointment(appointment_id)


@router.post(
    "/{appointment_id}/confirm",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Confirm appointment",
)
async def confirm_appointment(
    appointment_id: UUID,
    service: Appointments,
) -> AppointmentResponse:
    """Confirm a pending appointment."""
    return await service.confirm_appointment(appointment_id)


@router.post(
    "/{appointment_id}/check-in",
    response_model=QueueEntryResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Check in",
)
async def check_in(
    appointment_id: UUID,
    queue: Queue,
) -> QueueEntryResponse:
    """Check the patient in and return their queue token."""
    return await queue.check_in(appointment_id)


@router.post(
    "/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: UUID,
    data: AppointmentCancel,
    service: Appointments,
) -> AppointmentResponse:
    """Cancel a pending or confirmed appointment."""
    return await service.cancel_appointment(appointment_id, data.user_id, data.reason)


@router.post(
    "/{appointment_id}/reschedule",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: UUID,
    data: AppointmentReschedule,
    service: Appointments,
) -> AppointmentResponse:
    """Move an appointment to another date or slot."""
    return await service.reschedule_appointment(
        appointment_id, data.appointment_date, data.time_slot
    )


@router.post(
    "/{appointment_id}/complete",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Complete appointment",
)
async def complete_appointment(
    appointment_id: UUID,
    service: Appointments,
    outcome: ConsultationOutcome | None = None,
) -> AppointmentResponse:
    """Complete an appointment with its optional clinical outcome."""
    return await service.complete_appointment(appointment_id, outcome)


@router.post(
    "/{appointment_id}/no-show",
    response_model=AppointmentResponse,
    tags=["Appointments"],
    summary="Mark no-show",
)
async def mark_no_show(
    appointment_id: UUID,
    service: Appointments,
) -> AppointmentResponse:
    """Mark an appointment as no-show."""
    return await service.mark_no_show(appointment_id)

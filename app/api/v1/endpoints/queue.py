"""Consultation queue endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query

from app.dependencies import Queue
from app.schemas.appointments import AppointmentResponse, ConsultationOutcome
from app.schemas.queue import QueueBoard, QueueEntryResponse

router = APIRouter()


@router.get("/entries/{entry_id}", response_model=QueueEntryResponse)
async def get_entry(entry_id: UUID, queue: Queue) -> QueueEntryResponse:
    """Get queue entry by ID."""
    return await queue.get_entry(entry_id)


@router.post("/entries/{entry_id}/recall", response_model=QueueEntryResponse)
async def recall(entry_id: UUID, queue: Queue) -> QueueEntryResponse:
    """Call the patient in consultation again."""
    return await queue.recall(entry_id)


@router.post("/entries/{entry_id}/complete", response_model=AppointmentResponse)
async def complete_consultation(
    entry_id: UUID,
    queue: Queue,
    outcome: ConsultationOutcome | None = None,
) -> AppointmentResponse:
    """Finish the consultation and complete the appointment."""
    return await queue.complete_consultation(entry_id, outcome)


@router.post("/entries/{entry_id}/no-show", response_model=QueueEntryResponse)
async def mark_no_show(entry_id: UUID, queue: Queue) -> QueueEntryResponse:
    """Mark a queued patient as absent."""
    return await queue.mark_no_show(entry_id)


@router.post("/entries/{entry_id}/remind", response_model=QueueEntryResponse)
async def remind(entry_id: UUID, queue: Queue) -> QueueEntryResponse:
    """Remind a waiting patient of their token."""
    return await queue.remind(entry_id)


@router.get("/{doctor_id}", response_model=QueueBoard)
async def get_queue(
    doctor_id: UUID,
    queue: Queue,
    day: date = Query(..., alias="date"),
) -> QueueBoard:
    """Get the queue board of a doctor for one day."""
    return await queue.get_queue(doctor_id, day)


@router.post("/{doctor_id}/call-next", response_model=QueueEntryResponse)
async def call_next(
    doctor_id: UUID,
    queue: Queue,
    day: date = Query(..., alias="date"),
) -> QueueEntryResponse:
    """
    Call the next patient into consultation.

    Emergencies are called first by severity, then everyone else by token.
    """
    return await queue.call_next(doctor_id, day)

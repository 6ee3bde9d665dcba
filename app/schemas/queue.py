"""Consultation queue schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel

from app.schemas.appointments import AppointmentType


class QueueStatus(str, Enum):
    """Queue entry status enumeration."""

    WAITING = "waiting"
    IN_CONSULTATION = "in-consultation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"


# Entries that still occupy a place in the day's queue
OPEN_QUEUE_STATUSES = frozenset({QueueStatus.WAITING, QueueStatus.IN_CONSULTATION})


class QueueEntryResponse(BaseModel):
    """Queue entry response schema."""

    id: UUID
    appointment_id: UUID
    doctor_id: UUID
    patient_id: UUID
    token_number: int
    queue_date: date
    status: QueueStatus
    check_in_time: datetime
    consultation_start_time: datetime | None = None
    consultation_end_time: datetime | None = None
    call_count: int = 0
    last_called_time: datetime | None = None
    reminder_count: int = 0
    last_reminder_time: datetime | None = None
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class QueueCandidate(BaseModel):
    """A waiting entry joined with the fields of its appointment used for ordering."""

    entry_id: UUID
    token_number: int
    appointment_type: AppointmentType
    priority: int
    created_at: datetime

    @property
    def is_emergency(self) -> bool:
        """Whether the underlying appointment is an emergency."""
        return self.appointment_type == AppointmentType.EMERGENCY


class QueueBoard(BaseModel):
    """Snapshot of one doctor's queue for one day."""

    doctor_id: UUID
    queue_date: date
    current: QueueEntryResponse | None = None
    next_up: QueueEntryResponse | None = None
    waiting: list[QueueEntryResponse]
    # Waiting emergencies in the order they will be called
    emergencies: list[QueueEntryResponse] = []
    waiting_count: int
    completed_count: int
    total: int

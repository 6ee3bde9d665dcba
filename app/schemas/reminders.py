"""Reminder selection schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class ReminderKind(str, Enum):
    """What a reminder is about."""

    APPOINTMENT = "appointment"
    FOLLOW_UP = "follow_up"


class ReminderCandidate(BaseModel):
    """A record whose event time falls inside the reminder window."""

    kind: ReminderKind
    record_id: UUID
    doctor_id: UUID
    patient_id: UUID
    event_date: date
    event_at: datetime | None = None
    reason: str | None = None


class ReminderDispatchResult(BaseModel):
    """Outcome of one reminder dispatch run."""

    selected: int
    sent: int
    failed: int
    items: list[ReminderCandidate]

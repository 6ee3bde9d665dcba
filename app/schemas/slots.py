"""Bookable slot schemas."""

from datetime import date, time
from uuid import UUID

from pydantic import BaseModel


class Slot(BaseModel):
    """A contiguous interval offered for booking."""

    start: time
    end: time
    duration_minutes: int
    is_booked: bool = False


class DoctorSlotsResponse(BaseModel):
    """Slots of one doctor on one day."""

    doctor_id: UUID
    day: date
    total: int
    available: int
    slots: list[Slot]


class SlotAvailabilityResponse(BaseModel):
    """Answer to a single time-range availability check."""

    doctor_id: UUID
    day: date
    start: time
    end: time
    available: bool

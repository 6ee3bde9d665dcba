"""Doctor, working-hours and leave schemas."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

# ============================================================================
# Enumerations
# ============================================================================


class Weekday(str, Enum):
    """Day of week for working-hours entries."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def from_date(cls, day: date) -> "Weekday":
        """Resolve the weekday of a calendar date."""
        return list(cls)[day.weekday()]


class DoctorStatus(str, Enum):
    """Doctor status enumeration."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ON_LEAVE = "on-leave"


class LeaveStatus(str, Enum):
    """Leave approval status."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class LeaveType(str, Enum):
    """Leave type enumeration."""

    VACATION = "vacation"
    SICK = "sick"
    CONFERENCE = "conference"
    OTHER = "other"


# ============================================================================
# Working hours
# ============================================================================


class WorkingHours(BaseModel):
    """Working hours of one weekday."""

    weekday: Weekday
    is_available: bool = True
    start_time: time
    end_time: time
    break_start: time | None = None
    break_end: time | None = None

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def validate_ranges(self) -> "WorkingHours":
        """Validate that the day and its break window are well formed."""
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if (self.break_start is None) != (self.break_end is None):
            raise ValueError("break_start and break_end must be given together")
        if self.break_start is not None and self.break_end is not None:
            if self.break_start >= self.break_end:
                raise ValueError("break_start must be before break_end")
            if self.break_start < self.start_time or self.break_end > self.end_time:
                raise ValueError("Break must lie within working hours")
        return self


class WorkingHoursUpdate(BaseModel):
    """Replace the weekly working hours of a doctor."""

    working_hours: list[WorkingHours]

    @model_validator(mode="after")
    def validate_unique_weekdays(self) -> "WorkingHoursUpdate":
        """Reject two entries for the same weekday."""
        weekdays = [entry.weekday for entry in self.working_hours]
        if len(weekdays) != len(set(weekdays)):
            raise ValueError("Each weekday may appear only once")
        return self


class DoctorAvailability(BaseModel):
    """Declared availability of a doctor, as read by the slot calculator."""

    doctor_id: UUID
    appointment_duration_minutes: int
    working_hours: list[WorkingHours] = Field(default_factory=list)

    def hours_for(self, day: date) -> WorkingHours | None:
        """Get the working-hours entry covering the weekday of ``day``."""
        weekday = Weekday.from_date(day)
        for entry in self.working_hours:
            if entry.weekday == weekday:
                return entry
        return None


# ============================================================================
# Doctor
# ============================================================================


class DoctorCreate(BaseModel):
    """Schema for registering a doctor."""

    full_name: str = Field(..., min_length=1, max_length=200)
    specialization: str | None = Field(None, max_length=200)
    appointment_duration_minutes: int | None = Field(default=None, ge=10, le=120)


class DoctorResponse(BaseModel):
    """Doctor response schema."""

    id: UUID
    full_name: str
    specialization: str | None = None
    appointment_duration_minutes: int
    status: DoctorStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ============================================================================
# Leave
# ============================================================================


class LeavePeriodCreate(BaseModel):
    """Schema for recording a leave period."""

    start_date: date
    end_date: date
    reason: str = Field(..., min_length=1, max_length=500)
    leave_type: LeaveType = LeaveType.OTHER
    status: LeaveStatus = LeaveStatus.PENDING

    @model_validator(mode="after")
    def validate_range(self) -> "LeavePeriodCreate":
        """Validate that the leave does not end before it starts."""
        if self.start_date > self.end_date:
            raise ValueError("end_date must not be before start_date")
        return self


class LeavePeriodResponse(BaseModel):
    """Leave period response schema."""

    id: UUID
    doctor_id: UUID
    start_date: date
    end_date: date
    reason: str
    leave_type: LeaveType
    status: LeaveStatus
    created_at: datetime

    model_config = {"from_attributes": True}

"""Appointment schemas for request/response validation."""

from collections.abc import Mapping
from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked-in"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, AppointmentStatus.NO_SHOW}
)

# Statuses from which cancel, reschedule and check-in are allowed
OPEN_STATUSES = frozenset({AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED})


class AppointmentType(str, Enum):
    """Appointment type enumeration."""

    ROUTINE = "routine"
    FOLLOWUP = "followup"
    CONSULTATION = "consultation"
    EMERGENCY = "emergency"


class AppointmentSource(str, Enum):
    """Appointment source enumeration."""

    PATIENT_APP = "patient_app"
    DOCTOR_APP = "doctor_app"
    RECEPTION = "reception"
    ADMIN_PANEL = "admin_panel"
    API = "api"


# Bookings made by clinic staff start out confirmed
STAFF_SOURCES = frozenset(
    {AppointmentSource.DOCTOR_APP, AppointmentSource.RECEPTION, AppointmentSource.ADMIN_PANEL}
)


class EmergencySeverity(str, Enum):
    """Triage severity of an emergency appointment."""

    CRITICAL = "critical"
    SEVERE = "severe"
    MODERATE = "moderate"
    MINOR = "minor"


SEVERITY_PRIORITY: dict[EmergencySeverity, int] = {
    EmergencySeverity.CRITICAL: 4,
    EmergencySeverity.SEVERE: 3,
    EmergencySeverity.MODERATE: 2,
    EmergencySeverity.MINOR: 1,
}

DEFAULT_PRIORITY_BY_TYPE: dict[AppointmentType, int] = {
    AppointmentType.ROUTINE: 0,
    AppointmentType.FOLLOWUP: 0,
    AppointmentType.CONSULTATION: 0,
}


def priority_for_severity(severity: EmergencySeverity | str | None) -> int:
    """Map a severity to its queue priority; unknown severities rank 0."""
    if severity is None:
        return 0
    try:
        return SEVERITY_PRIORITY[EmergencySeverity(severity)]
    except ValueError:
        return 0


# ============================================================================
# Slot
# ============================================================================


class TimeSlot(BaseModel):
    """Half-open time range ``[start, end)`` within one day."""

    start: time
    end: time

    @model_validator(mode="after")
    def validate_range(self) -> "TimeSlot":
        """Validate end time is after start time."""
        if self.start >= self.end:
            raise ValueError("Slot end must be after slot start")
        return self

    @property
    def duration_minutes(self) -> int:
        """Length of the slot in minutes."""
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)


# ============================================================================
# Requests
# ============================================================================


class AppointmentCreate(BaseModel):
    """Schema for booking a scheduled appointment."""

    doctor_id: UUID
    patient_id: UUID
    appointment_date: date
    time_slot: TimeSlot
    appointment_type: AppointmentType = AppointmentType.ROUTINE
    reason: str = Field(..., min_length=1, max_length=500)
    notes: str | None = Field(None, max_length=1000)
    source: AppointmentSource = AppointmentSource.PATIENT_APP

    @field_validator("appointment_type")
    @classmethod
    def validate_type(cls, v: AppointmentType) -> AppointmentType:
        """Emergencies are created through the emergency intake."""
        if v == AppointmentType.EMERGENCY:
            raise ValueError("Use the emergency intake to create emergency appointments")
        return v


class EmergencyAppointmentCreate(BaseModel):
    """Schema for emergency intake."""

    doctor_id: UUID
    patient_id: UUID
    severity: EmergencySeverity
    chief_complaint: str = Field(..., min_length=1, max_length=500)
    reason: str | None = Field(None, max_length=500)
    notes: str | None = Field(None, max_length=1000)
    source: AppointmentSource = AppointmentSource.RECEPTION
    check_in: bool = True


class AppointmentCancel(BaseModel):
    """Schema for cancelling an appointment."""

    user_id: UUID
    reason: str = Field(..., min_length=1, max_length=500)


class AppointmentReschedule(BaseModel):
    """Schema for moving an appointment to another date or slot."""

    appointment_date: date
    time_slot: TimeSlot


# ============================================================================
# Clinical outcome
# ============================================================================


class Medicine(BaseModel):
    """One prescribed medicine."""

    name: str = Field(..., min_length=1)
    dosage: str | None = None
    duration: str | None = None
    frequency: str | None = None
    instructions: str | None = None


class PrescribedTest(BaseModel):
    """One ordered investigation."""

    name: str = Field(..., min_length=1)
    instructions: str | None = None


class Prescription(BaseModel):
    """Prescription written at the end of a consultation."""

    medicines: list[Medicine] = Field(default_factory=list)
    instructions: str | None = None
    tests: list[PrescribedTest] = Field(default_factory=list)


class Vitals(BaseModel):
    """Vital signs recorded during a consultation."""

    blood_pressure: str | None = None
    temperature: float | None = None
    pulse: int | None = None
    oxygen: int | None = Field(None, ge=0, le=100)
    weight: float | None = None
    height: float | None = None
    notes: str | None = None


class FollowUpRecommendation(BaseModel):
    """Follow-up visit recommended by the doctor."""

    required: bool = False
    recommended_date: date | None = None
    notes: str | None = None

    @model_validator(mode="after")
    def validate_date(self) -> "FollowUpRecommendation":
        """A required follow-up needs a date."""
        if self.required and self.recommended_date is None:
            raise ValueError("recommended_date is required when a follow-up is required")
        return self


class ConsultationOutcome(BaseModel):
    """Clinical fields merged into an appointment when it completes."""

    diagnosis: str | None = None
    prescription: Prescription | None = None
    vitals: Vitals | None = None
    notes: str | None = Field(None, max_length=2000)
    follow_up: FollowUpRecommendation | None = None


# ============================================================================
# Responses
# ============================================================================


class RoutineDetails(BaseModel):
    """Details of a slot-bound appointment."""

    kind: Literal["routine"] = "routine"


class EmergencyDetails(BaseModel):
    """Details of an emergency appointment."""

    kind: Literal["emergency"] = "emergency"
    severity: EmergencySeverity
    chief_complaint: str


AppointmentDetails = Annotated[RoutineDetails | EmergencyDetails, Field(discriminator="kind")]


class CheckInInfo(BaseModel):
    """Check-in state of an appointment."""

    status: bool = False
    time: datetime | None = None


class CancellationInfo(BaseModel):
    """Who cancelled an appointment, when and why."""

    user_id: UUID | None = None
    reason: str | None = None
    cancelled_at: datetime | None = None


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    doctor_id: UUID
    patient_id: UUID
    appointment_date: date
    time_slot: TimeSlot
    appointment_type: AppointmentType
    status: AppointmentStatus
    priority: int
    reason: str
    notes: str | None = None
    source: str
    details: AppointmentDetails
    checked_in: CheckInInfo
    cancelled_by: CancellationInfo | None = None
    completed_at: datetime | None = None
    diagnosis: str | None = None
    prescription: dict[str, Any] | None = None
    vitals: dict[str, Any] | None = None
    reschedule_count: int = 0
    rescheduled_from: dict[str, Any] | None = None
    reminder_sent: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AppointmentResponse":
        """Build the read model from an ``appointments`` row mapping."""
        if row["appointment_type"] == AppointmentType.EMERGENCY.value:
            details: RoutineDetails | EmergencyDetails = EmergencyDetails(
                severity=row["severity"],
                chief_complaint=row["chief_complaint"],
            )
        else:
            details = RoutineDetails()

        cancelled_by = None
        if row["cancelled_at"] is not None:
            cancelled_by = CancellationInfo(
                user_id=row["cancelled_by_user"],
                reason=row["cancellation_reason"],
                cancelled_at=row["cancelled_at"],
            )

        return cls(
            id=row["id"],
            doctor_id=row["doctor_id"],
            patient_id=row["patient_id"],
            appointment_date=row["appointment_date"],
            time_slot=TimeSlot(start=row["slot_start"], end=row["slot_end"]),
            appointment_type=row["appointment_type"],
            status=row["status"],
            priority=row["priority"],
            reason=row["reason"],
            notes=row["notes"],
            source=row["source"],
            details=details,
            checked_in=CheckInInfo(status=row["checked_in_status"], time=row["checked_in_at"]),
            cancelled_by=cancelled_by,
            completed_at=row["completed_at"],
            diagnosis=row["diagnosis"],
            prescription=row["prescription"],
            vitals=row["vitals"],
            reschedule_count=row["reschedule_count"],
            rescheduled_from=row["rescheduled_from"],
            reminder_sent=row["reminder_sent"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    status: AppointmentStatus | None = None
    appointment_type: AppointmentType | None = None
    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    from_date: date | None = None
    to_date: date | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)

"""Follow-up visit schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class FollowUpStatus(str, Enum):
    """Follow-up status enumeration."""

    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class FollowUpResponse(BaseModel):
    """Follow-up response schema."""

    id: UUID
    appointment_id: UUID | None = None
    doctor_id: UUID
    patient_id: UUID
    follow_up_date: date
    reason: str
    notes: str | None = None
    status: FollowUpStatus
    reminder_sent: bool = False
    reminder_sent_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class FollowUpStatusUpdate(BaseModel):
    """Schema for closing a follow-up."""

    status: FollowUpStatus
    notes: str | None = Field(None, max_length=2000)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: FollowUpStatus) -> FollowUpStatus:
        """A follow-up can only be closed, never reopened."""
        if v == FollowUpStatus.PENDING:
            raise ValueError("status must be 'completed' or 'cancelled'")
        return v

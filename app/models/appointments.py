"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    # Ownership / references
    Column("doctor_id", Uuid, ForeignKey("doctors.id", ondelete="CASCADE"), nullable=False),
    Column("patient_id", Uuid, ForeignKey("patients.id", ondelete="CASCADE"), nullable=False),
    # Slot
    Column("appointment_date", Date, nullable=False),
    Column("slot_start", Time, nullable=False),
    Column("slot_end", Time, nullable=False),
    # Appointment details
    Column("appointment_type", String(20), nullable=False, server_default="routine"),
    Column("priority", Integer, nullable=False, server_default=text("0")),
    Column("reason", Text, nullable=False),
    Column("notes", Text, nullable=True),
    Column("source", String(20), nullable=False, server_default="patient_app"),
    # Emergency details
    Column("severity", String(20), nullable=True),
    Column("chief_complaint", Text, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("checked_in_status", Boolean, nullable=False, server_default=text("false")),
    Column("checked_in_at", DateTime(timezone=True), nullable=True),
    # Cancellation
    Column("cancelled_by_user", Uuid, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    Column("cancelled_at", DateTime(timezone=True), nullable=True),
    # Clinical outcome
    Column("completed_at", DateTime(timezone=True), nullable=True),
    Column("diagnosis", Text, nullable=True),
    Column("prescription", JSON, nullable=True),
    Column("vitals", JSON, nullable=True),
    # Rescheduling history
    Column("reschedule_count", Integer, nullable=False, server_default=text("0")),
    Column("rescheduled_from", JSON, nullable=True),
    Column("rescheduled_at", DateTime(timezone=True), nullable=True),
    # Reminders
    Column("reminder_sent", Boolean, nullable=False, server_default=text("false")),
    Column("reminder_sent_at", DateTime(timezone=True), nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint("slot_start < slot_end", name="appointments_slot_range_check"),
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'checked-in', 'in-progress', "
        "'completed', 'cancelled', 'no-show', 'rescheduled')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "appointment_type IN ('routine', 'followup', 'consultation', 'emergency')",
        name="appointments_type_check",
    ),
    Index("idx_appointments_doctor_date", "doctor_id", "appointment_date"),
    Index("idx_appointments_patient_date", "patient_id", "appointment_date"),
)

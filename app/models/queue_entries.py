"""Consultation queue table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
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
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

queue_entries = Table(
    "queue_entries",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("doctor_id", Uuid, nullable=False),
    Column("patient_id", Uuid, nullable=False),
    Column("token_number", Integer, nullable=False),
    Column("queue_date", Date, nullable=False),
    Column("status", String(20), nullable=False, server_default="waiting"),
    # Timeline
    Column("check_in_time", DateTime(timezone=True), nullable=False),
    Column("consultation_start_time", DateTime(timezone=True), nullable=True),
    Column("consultation_end_time", DateTime(timezone=True), nullable=True),
    # Calls and reminders
    Column("call_count", Integer, nullable=False, server_default=text("0")),
    Column("last_called_time", DateTime(timezone=True), nullable=True),
    Column("reminder_count", Integer, nullable=False, server_default=text("0")),
    Column("last_reminder_time", DateTime(timezone=True), nullable=True),
    Column("notes", Text, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    UniqueConstraint("doctor_id", "queue_date", "token_number", name="uq_queue_token"),
    UniqueConstraint("appointment_id", "queue_date", name="uq_queue_appointment"),
    CheckConstraint(
        "status IN ('waiting', 'in-consultation', 'completed', 'cancelled', 'no-show')",
        name="queue_entries_status_check",
    ),
    # At most one active consultation per doctor and day
    Index(
        "uq_queue_active_consultation",
        "doctor_id",
        "queue_date",
        unique=True,
        postgresql_where=text("status = 'in-consultation'"),
        sqlite_where=text("status = 'in-consultation'"),
    ),
)

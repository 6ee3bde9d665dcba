"""Follow-up visit model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

follow_ups = Table(
    "follow_ups",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("doctor_id", Uuid, nullable=False),
    Column("patient_id", Uuid, nullable=False),
    Column("follow_up_date", Date, nullable=False),
    Column("reason", Text, nullable=False),
    Column("notes", Text, nullable=True),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("reminder_sent", Boolean, nullable=False, server_default=text("false")),
    Column("reminder_sent_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=True),
    CheckConstraint(
        "status IN ('pending', 'completed', 'cancelled')",
        name="follow_ups_status_check",
    ),
    Index("idx_follow_ups_date", "follow_up_date"),
    Index("idx_follow_ups_doctor_status", "doctor_id", "status"),
)

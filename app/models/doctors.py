"""Doctor and working-hours models using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from app.models.base import metadata

doctors = Table(
    "doctors",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("full_name", Text, nullable=False),
    Column("specialization", String(200), index=True),
    # Availability
    Column("appointment_duration_minutes", Integer, nullable=False, server_default=text("30")),
    Column("status", String(20), nullable=False, server_default="active"),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('active', 'inactive', 'on-leave')",
        name="doctors_status_check",
    ),
)

# One row per doctor and weekday
doctor_working_hours = Table(
    "doctor_working_hours",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
    Column("weekday", String(10), nullable=False),
    Column("is_available", Boolean, nullable=False, server_default=text("true")),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    Column("break_start", Time, nullable=True),
    Column("break_end", Time, nullable=True),
    UniqueConstraint("doctor_id", "weekday", name="uq_working_hours_doctor_weekday"),
    CheckConstraint("start_time < end_time", name="working_hours_range_check"),
)

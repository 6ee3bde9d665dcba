"""Doctor leave schedule model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
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
)

from app.models.base import metadata

leave_schedules = Table(
    "leave_schedules",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "doctor_id",
        Uuid,
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("reason", Text, nullable=False),
    Column("leave_type", String(20), nullable=False, server_default="other"),
    Column("status", String(20), nullable=False, server_default="pending"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("start_date <= end_date", name="leave_schedules_range_check"),
    CheckConstraint(
        "status IN ('pending', 'approved', 'rejected')",
        name="leave_schedules_status_check",
    ),
    Index("idx_leave_schedules_doctor_dates", "doctor_id", "start_date", "end_date"),
)

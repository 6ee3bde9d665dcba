"""Patient model definition using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Table, Text, Uuid, func

from app.models.base import metadata

# Identity records, read-only to scheduling
patients = Table(
    "patients",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("full_name", Text, nullable=False),
    Column("phone", String(20), nullable=False),
    Column("email", String(255), nullable=True),
    # Metadata
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

"""Database models."""

from app.models.appointments import appointments
from app.models.base import metadata
from app.models.doctors import doctor_working_hours, doctors
from app.models.follow_ups import follow_ups
from app.models.leave_schedules import leave_schedules
from app.models.patients import patients
from app.models.queue_entries import queue_entries

__all__ = [
    "appointments",
    "doctor_working_hours",
    "doctors",
    "follow_ups",
    "leave_schedules",
    "metadata",
    "patients",
    "queue_entries",
]

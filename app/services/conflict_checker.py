"""Slot conflict detection for a doctor's day."""

from datetime import date, time
from uuid import UUID

import structlog
from sqlalchemy import ColumnElement, and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import SlotConflictException, ValidationException
from app.models.appointments import appointments
from app.schemas.appointments import AppointmentStatus, AppointmentType

logger = structlog.get_logger(__name__)

# Cancelled and no-show appointments release their slot; completed ones keep it.
BLOCKING_STATUSES = frozenset(
    {
        AppointmentStatus.PENDING,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CHECKED_IN,
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.RESCHEDULED,
    }
)


def ranges_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open interval overlap: ``a.start < b.end and a.end > b.start``."""
    return a_start < b_end and a_end > b_start


class ConflictChecker:
    """Answers whether a time range is free on a doctor's day."""

    def __init__(self, db: AsyncSession):
        """Initialize checker with database session."""
        self.db = db

    @staticmethod
    def _blocking_conditions(
        doctor_id: UUID,
        day: date,
        exclude_appointment_id: UUID | None = None,
    ) -> list[ColumnElement[bool]]:
        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.appointment_date == day,
            appointments.c.status.in_([status.value for status in BLOCKING_STATUSES]),
            # Emergencies are not slot-bound
            appointments.c.appointment_type != AppointmentType.EMERGENCY.value,
        ]
        if exclude_appointment_id is not None:
            conditions.append(appointments.c.id != exclude_appointment_id)
        return conditions

    async def booked_ranges(self, doctor_id: UUID, day: date) -> list[tuple[time, time]]:
        """
        Get the time ranges held by blocking appointments.

        Args:
            doctor_id: Doctor ID
            day: Calendar date

        Returns:
            ``(start, end)`` pairs ordered by start time
        """
        stmt = (
            select(appointments.c.slot_start, appointments.c.slot_end)
            .where(and_(*self._blocking_conditions(doctor_id, day)))
            .order_by(appointments.c.slot_start)
        )
        result = await self.db.execute(stmt)
        return [(row.slot_start, row.slot_end) for row in result.fetchall()]

    async def find_conflict(
        self,
        doctor_id: UUID,
        day: date,
        start: time,
        end: time,
        exclude_appointment_id: UUID | None = None,
    ) -> UUID | None:
        """
        Find one blocking appointment overlapping ``[start, end)``.

        Raises:
            ValidationException: If the range is empty or inverted

        Returns:
            ID of a conflicting appointment, or None
        """
        if start >= end:
            raise ValidationException("Slot end must be after slot start")

        stmt = (
            select(appointments.c.id)
            .where(
                and_(
                    *self._blocking_conditions(doctor_id, day, exclude_appointment_id),
                    appointments.c.slot_start < end,
                    appointments.c.slot_end > start,
                )
            )
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar()

    async def is_slot_available(
        self,
        doctor_id: UUID,
        day: date,
        start: time,
        end: time,
        exclude_appointment_id: UUID | None = None,
    ) -> bool:
        """Check whether ``[start, end)`` is free for the doctor on ``day``."""
        conflict = await self.find_conflict(doctor_id, day, start, end, exclude_appointment_id)
        return conflict is None

    async def ensure_slot_available(
        self,
        doctor_id: UUID,
        day: date,
        start: time,
        end: time,
        exclude_appointment_id: UUID | None = None,
    ) -> None:
        """
        Re-check a range at commit time.

        Must run inside the doctor/day scope lock of the booking unit.

        Raises:
            SlotConflictException: If a blocking appointment overlaps the range
        """
        conflict = await self.find_conflict(doctor_id, day, start, end, exclude_appointment_id)
        if conflict is not None:
            logger.info(
                "slot_conflict",
                doctor_id=str(doctor_id),
                date=day.isoformat(),
                start=start.isoformat(),
                end=end.isoformat(),
                conflicting_appointment_id=str(conflict),
            )
            raise SlotConflictException(
                f"Slot {start:%H:%M}-{end:%H:%M} on {day.isoformat()} overlaps another appointment"
            )

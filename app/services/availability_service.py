"""Bookable slot generation from a doctor's declared schedule."""

from collections.abc import Iterator, Sequence
from datetime import date, datetime, time, timedelta
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ScheduleConfigurationException
from app.schemas.doctors import DoctorAvailability
from app.schemas.slots import Slot
from app.services.conflict_checker import ConflictChecker, ranges_overlap
from app.services.doctor_service import DoctorService

logger = structlog.get_logger(__name__)


def iter_slots(
    availability: DoctorAvailability,
    day: date,
    on_leave: bool = False,
    booked: Sequence[tuple[time, time]] = (),
) -> Iterator[Slot]:
    """
    Yield the slots of a doctor on one day.

    Slots are laid back to back from the start of the working day. A slot
    that crosses the break window is skipped and the walk carries on from
    its end; the trailing partial slot is dropped.

    Args:
        availability: Declared working hours and slot duration
        day: Calendar date
        on_leave: Whether ``day`` is a leave day
        booked: Ranges held by blocking appointments on ``day``

    Raises:
        ScheduleConfigurationException: If the duration or stored hours cannot produce slots
    """
    duration = availability.appointment_duration_minutes
    if duration <= 0:
        raise ScheduleConfigurationException(
            f"Appointment duration must be positive, got {duration} minutes"
        )

    hours = availability.hours_for(day)
    if hours is None or not hours.is_available or on_leave:
        return
    if hours.start_time >= hours.end_time:
        raise ScheduleConfigurationException(
            f"Working hours for {hours.weekday.value} end before they start"
        )

    step = timedelta(minutes=duration)
    cursor = datetime.combine(day, hours.start_time)
    day_end = datetime.combine(day, hours.end_time)

    while cursor + step <= day_end:
        start = cursor.time()
        end = (cursor + step).time()
        cursor += step

        if hours.break_start is not None and hours.break_end is not None:
            if ranges_overlap(start, end, hours.break_start, hours.break_end):
                continue

        yield Slot(
            start=start,
            end=end,
            duration_minutes=duration,
            is_booked=any(ranges_overlap(start, end, b_start, b_end) for b_start, b_end in booked),
        )


class AvailabilityService:
    """Resolves schedule inputs and lists a doctor's slots for a day."""

    def __init__(self, db: AsyncSession, doctor_service: DoctorService | None = None):
        """Initialize service with database session."""
        self.db = db
        self.doctors = doctor_service or DoctorService()
        self.conflicts = ConflictChecker(db)

    async def get_slots(
        self,
        doctor_id: UUID,
        day: date,
        available_only: bool = False,
    ) -> list[Slot]:
        """
        Get the slots of a doctor on one day.

        Args:
            doctor_id: Doctor ID
            day: Calendar date
            available_only: Drop slots overlapping a blocking appointment

        Raises:
            NotFoundException: If the doctor does not exist
            ScheduleConfigurationException: If the stored schedule is malformed
        """
        availability = await self.doctors.get_availability(self.db, doctor_id)
        on_leave = await self.doctors.is_on_leave(
            self.db, doctor_id, day, approved_only=settings.leave_approved_only
        )
        booked = await self.conflicts.booked_ranges(doctor_id, day)

        slots = list(iter_slots(availability, day, on_leave=on_leave, booked=booked))
        logger.debug(
            "slots_generated",
            doctor_id=str(doctor_id),
            date=day.isoformat(),
            total=len(slots),
            booked=sum(1 for slot in slots if slot.is_booked),
            on_leave=on_leave,
        )
        if available_only:
            return [slot for slot in slots if not slot.is_booked]
        return slots

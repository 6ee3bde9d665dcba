"""Doctor directory: identity, working hours and leave schedule."""

from datetime import UTC, date, datetime
from uuid import UUID

import structlog
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import and_, delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundException, ScheduleConfigurationException
from app.core.redis_client import CacheManager
from app.models.doctors import doctor_working_hours, doctors
from app.models.leave_schedules import leave_schedules
from app.schemas.doctors import (
    DoctorAvailability,
    DoctorCreate,
    DoctorResponse,
    LeavePeriodCreate,
    LeavePeriodResponse,
    LeaveStatus,
    WorkingHours,
    WorkingHoursUpdate,
)

logger = structlog.get_logger(__name__)


class DoctorService:
    """Service for doctor operations."""

    # Cache TTL in seconds
    AVAILABILITY_CACHE_TTL = 900  # 15 minutes

    def __init__(self, cache_manager: CacheManager | None = None, cache_ttl: int | None = None):
        """Initialize service with optional cache manager."""
        self.cache = cache_manager
        self.cache_ttl = cache_ttl or self.AVAILABILITY_CACHE_TTL

    @staticmethod
    def _get_availability_cache_key(doctor_id: UUID) -> str:
        """Generate cache key for doctor availability."""
        return f"doctor:availability:{doctor_id}"

    async def create_doctor(self, db: AsyncSession, doctor_data: DoctorCreate) -> DoctorResponse:
        """Register a doctor."""
        now = datetime.now(UTC)
        query = (
            insert(doctors)
            .values(
                full_name=doctor_data.full_name,
                specialization=doctor_data.specialization,
                appointment_duration_minutes=(
                    doctor_data.appointment_duration_minutes
                    or settings.default_appointment_duration_minutes
                ),
                status="active",
                created_at=now,
                updated_at=now,
            )
            .returning(doctors)
        )

        result = await db.execute(query)
        doctor = result.mappings().first()
        await db.commit()

        logger.info("doctor_created", doctor_id=str(doctor["id"]))
        return DoctorResponse.model_validate(dict(doctor))

    async def get_doctor_by_id(self, db: AsyncSession, doctor_id: UUID) -> DoctorResponse | None:
        """Get doctor by ID."""
        query = select(doctors).where(doctors.c.id == doctor_id)
        result = await db.execute(query)
        doctor = result.mappings().first()

        if not doctor:
            return None

        return DoctorResponse.model_validate(dict(doctor))

    async def require_doctor(self, db: AsyncSession, doctor_id: UUID) -> DoctorResponse:
        """
        Get doctor by ID or fail.

        Raises:
            NotFoundException: If the doctor does not exist
        """
        doctor = await self.get_doctor_by_id(db, doctor_id)
        if doctor is None:
            raise NotFoundException("Doctor not found")
        return doctor

    async def set_working_hours(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        data: WorkingHoursUpdate,
    ) -> DoctorAvailability:
        """Replace the weekly working hours of a doctor."""
        await self.require_doctor(db, doctor_id)

        await db.execute(delete(doctor_working_hours).where(doctor_working_hours.c.doctor_id == doctor_id))
        if data.working_hours:
            await db.execute(
                insert(doctor_working_hours),
                [
                    {
                        "doctor_id": doctor_id,
                        "weekday": entry.weekday.value,
                        "is_available": entry.is_available,
                        "start_time": entry.start_time,
                        "end_time": entry.end_time,
                        "break_start": entry.break_start,
                        "break_end": entry.break_end,
                    }
                    for entry in data.working_hours
                ],
            )
        await db.commit()

        # Invalidate cache
        if self.cache:
            self.cache.delete(self._get_availability_cache_key(doctor_id))

        logger.info(
            "working_hours_updated",
            doctor_id=str(doctor_id),
            days=[entry.weekday.value for entry in data.working_hours],
        )
        return await self.get_availability(db, doctor_id)

    async def get_availability(self, db: AsyncSession, doctor_id: UUID) -> DoctorAvailability:
        """
        Get the declared availability of a doctor with caching.

        Raises:
            NotFoundException: If the doctor does not exist
            ScheduleConfigurationException: If stored hours are malformed
        """
        # Try cache first
        if self.cache:
            cached = self.cache.get_json(self._get_availability_cache_key(doctor_id))
            if cached:
                return DoctorAvailability.model_validate(cached)

        doctor = await self.require_doctor(db, doctor_id)

        query = select(doctor_working_hours).where(doctor_working_hours.c.doctor_id == doctor_id)
        result = await db.execute(query)
        try:
            hours = [WorkingHours.model_validate(dict(row)) for row in result.mappings().all()]
        except PydanticValidationError as e:
            logger.error("invalid_working_hours", doctor_id=str(doctor_id), error=str(e))
            raise ScheduleConfigurationException(
                f"Stored working hours of doctor {doctor_id} are malformed"
            ) from e

        availability = DoctorAvailability(
            doctor_id=doctor_id,
            appointment_duration_minutes=doctor.appointment_duration_minutes,
            working_hours=hours,
        )

        # Cache result
        if self.cache:
            self.cache.set_json(
                self._get_availability_cache_key(doctor_id),
                availability.model_dump(mode="json"),
                ttl=self.cache_ttl,
            )

        return availability

    async def add_leave(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        data: LeavePeriodCreate,
    ) -> LeavePeriodResponse:
        """Record a leave period for a doctor."""
        await self.require_doctor(db, doctor_id)

        query = (
            insert(leave_schedules)
            .values(
                doctor_id=doctor_id,
                start_date=data.start_date,
                end_date=data.end_date,
                reason=data.reason,
                leave_type=data.leave_type.value,
                status=data.status.value,
                created_at=datetime.now(UTC),
            )
            .returning(leave_schedules)
        )
        result = await db.execute(query)
        leave = result.mappings().first()
        await db.commit()

        logger.info(
            "leave_recorded",
            doctor_id=str(doctor_id),
            start_date=data.start_date.isoformat(),
            end_date=data.end_date.isoformat(),
            status=data.status.value,
        )
        return LeavePeriodResponse.model_validate(dict(leave))

    async def get_leaves(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        start_date: date,
        end_date: date,
        approved_only: bool = True,
    ) -> list[LeavePeriodResponse]:
        """
        Get leave periods overlapping a date range.

        Args:
            db: Database session
            doctor_id: Doctor ID
            start_date: First day of the range
            end_date: Last day of the range (inclusive)
            approved_only: Ignore pending and rejected leave

        Returns:
            Leave periods ordered by start date
        """
        conditions = [
            leave_schedules.c.doctor_id == doctor_id,
            leave_schedules.c.start_date <= end_date,
            leave_schedules.c.end_date >= start_date,
        ]
        if approved_only:
            conditions.append(leave_schedules.c.status == LeaveStatus.APPROVED.value)

        query = select(leave_schedules).where(and_(*conditions)).order_by(leave_schedules.c.start_date)
        result = await db.execute(query)
        return [LeavePeriodResponse.model_validate(dict(row)) for row in result.mappings().all()]

    async def is_on_leave(
        self,
        db: AsyncSession,
        doctor_id: UUID,
        day: date,
        approved_only: bool = True,
    ) -> bool:
        """Check whether a day falls within any leave period of the doctor."""
        leaves = await self.get_leaves(db, doctor_id, day, day, approved_only=approved_only)
        return bool(leaves)

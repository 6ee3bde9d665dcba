"""Appointment lifecycle: booking, emergencies and status transitions."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta
from uuid import UUID
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy import and_, func, insert, select
from sqlalchemy.engine import RowMapping
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictException, InvalidTransitionException
from app.core.locks import ScopeLockManager
from app.database import transaction
from app.models.appointments import appointments
from app.schemas.appointments import (
    DEFAULT_PRIORITY_BY_TYPE,
    OPEN_STATUSES,
    STAFF_SOURCES,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatus,
    AppointmentType,
    ConsultationOutcome,
    EmergencyAppointmentCreate,
    TimeSlot,
    priority_for_severity,
)
from app.schemas.queue import QueueEntryResponse, QueueStatus
from app.services import transitions
from app.services.conflict_checker import ConflictChecker
from app.services.doctor_service import DoctorService
from app.services.notification_service import NotificationService
from app.services.patient_service import PatientService

logger = structlog.get_logger(__name__)

LAST_MINUTE = time(23, 59, 59)


class AppointmentService:
    """Service for managing appointments."""

    def __init__(
        self,
        db: AsyncSession,
        locks: ScopeLockManager,
        notifications: NotificationService | None = None,
        doctor_service: DoctorService | None = None,
    ):
        """Initialize service with database session and scope locks."""
        self.db = db
        self.locks = locks
        self.notifications = notifications or NotificationService()
        self.doctors = doctor_service or DoctorService()
        self.conflicts = ConflictChecker(db)

    @asynccontextmanager
    async def _locked(self, appointment_id: UUID) -> AsyncIterator[RowMapping]:
        """Hold the appointment's scope lock and a unit of work, yielding the fresh row."""
        current = await transitions.load_appointment(self.db, appointment_id)
        scope = (current["doctor_id"], current["appointment_date"])
        async with self.locks.hold(scope):
            async with transaction(self.db):
                row = await transitions.load_appointment(self.db, appointment_id, for_update=True)
                if (row["doctor_id"], row["appointment_date"]) != scope:
                    raise ConflictException("Appointment was moved concurrently, retry the request")
                yield row

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Book a slot-bound appointment.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            NotFoundException: If the doctor or patient does not exist
            SlotConflictException: If the slot overlaps a blocking appointment
        """
        await self.doctors.require_doctor(self.db, data.doctor_id)
        await PatientService.require_patient(self.db, data.patient_id)

        status = (
            AppointmentStatus.CONFIRMED
            if data.source in STAFF_SOURCES
            else AppointmentStatus.PENDING
        )
        now = transitions.utcnow()
        values = {
            "doctor_id": data.doctor_id,
            "patient_id": data.patient_id,
            "appointment_date": data.appointment_date,
            "slot_start": data.time_slot.start,
            "slot_end": data.time_slot.end,
            "appointment_type": data.appointment_type.value,
            "priority": DEFAULT_PRIORITY_BY_TYPE.get(data.appointment_type, 0),
            "reason": data.reason,
            "notes": data.notes,
            "source": data.source.value,
            "status": status.value,
            "created_at": now,
            "updated_at": now,
        }

        async with self.locks.hold((data.doctor_id, data.appointment_date)):
            async with transaction(self.db):
                await self.conflicts.ensure_slot_available(
                    data.doctor_id,
                    data.appointment_date,
                    data.time_slot.start,
                    data.time_slot.end,
                )
                result = await self.db.execute(
                    insert(appointments).values(**values).returning(appointments)
                )
                row = result.mappings().one()

        appointment = AppointmentResponse.from_row(row)
        logger.info(
            "appointment_created",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id),
            date=appointment.appointment_date.isoformat(),
            status=appointment.status.value,
        )
        await self.notifications.appointment_created(appointment)
        return appointment

    @staticmethod
    def _emergency_window(duration_minutes: int) -> tuple[date, time, time]:
        """Today's date and a slot starting now, in the clinic timezone."""
        local_now = datetime.now(ZoneInfo(settings.clinic_timezone))
        start = local_now.time().replace(second=0, microsecond=0, tzinfo=None)
        end_at = datetime.combine(local_now.date(), start) + timedelta(minutes=duration_minutes)
        end = end_at.time() if end_at.date() == local_now.date() else LAST_MINUTE
        if end <= start:
            end = LAST_MINUTE
        return local_now.date(), start, end

    async def create_emergency(self, data: EmergencyAppointmentCreate) -> AppointmentResponse:
        """
        Register an emergency and, by default, put it straight into the queue.

        Emergencies skip the conflict check; they are served ahead of the
        token order by severity.

        Raises:
            NotFoundException: If the doctor or patient does not exist
        """
        doctor = await self.doctors.require_doctor(self.db, data.doctor_id)
        await PatientService.require_patient(self.db, data.patient_id)

        day, start, end = self._emergency_window(
            doctor.appointment_duration_minutes or settings.default_appointment_duration_minutes
        )
        values = {
            "doctor_id": data.doctor_id,
            "patient_id": data.patient_id,
            "appointment_date": day,
            "slot_start": start,
            "slot_end": end,
            "appointment_type": AppointmentType.EMERGENCY.value,
            "priority": priority_for_severity(data.severity),
            "severity": data.severity.value,
            "chief_complaint": data.chief_complaint,
            "reason": data.reason or data.chief_complaint,
            "notes": data.notes,
            "source": data.source.value,
            "status": AppointmentStatus.CONFIRMED.value,
        }

        async def unit() -> tuple[RowMapping, RowMapping | None]:
            now = transitions.utcnow()
            async with self.locks.hold((data.doctor_id, day)):
                async with transaction(self.db):
                    result = await self.db.execute(
                        insert(appointments)
                        .values(**values, created_at=now, updated_at=now)
                        .returning(appointments)
                    )
                    row = result.mappings().one()
                    if not data.check_in:
                        return row, None
                    return await transitions.check_in(self.db, row, now)

        row, entry = await transitions.retry_token_collisions(
            unit,
            settings.token_allocation_retries,
            doctor_id=str(data.doctor_id),
        )

        appointment = AppointmentResponse.from_row(row)
        logger.info(
            "emergency_created",
            appointment_id=str(appointment.id),
            doctor_id=str(appointment.doctor_id),
            severity=data.severity.value,
            priority=appointment.priority,
            token_number=entry["token_number"] if entry else None,
        )
        await self.notifications.appointment_created(appointment)
        if entry is not None:
            await self.notifications.patient_checked_in(QueueEntryResponse.model_validate(dict(entry)))
        return appointment

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def confirm_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """Confirm a pending appointment."""
        async with self._locked(appointment_id) as row:
            transitions.ensure_status(row, {AppointmentStatus.PENDING}, "confirm")
            row = await transitions.update_appointment(
                self.db, appointment_id, status=AppointmentStatus.CONFIRMED.value
            )

        appointment = AppointmentResponse.from_row(row)
        logger.info("appointment_confirmed", appointment_id=str(appointment_id))
        await self.notifications.appointment_status_changed(
            appointment, AppointmentStatus.PENDING.value
        )
        return appointment

    async def cancel_appointment(
        self,
        appointment_id: UUID,
        user_id: UUID,
        reason: str,
    ) -> AppointmentResponse:
        """
        Cancel a pending or confirmed appointment.

        A waiting queue entry is cancelled with it; an appointment whose
        patient is with the doctor cannot be cancelled.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment cannot be cancelled
        """
        async with self._locked(appointment_id) as row:
            old_status = row["status"]
            transitions.ensure_status(row, OPEN_STATUSES, "cancel")

            entry = await transitions.open_entry_for(self.db, appointment_id, for_update=True)
            if entry is not None:
                if entry["status"] == QueueStatus.IN_CONSULTATION.value:
                    raise InvalidTransitionException(
                        "Cannot cancel an appointment that is in consultation"
                    )
                await transitions.update_entry(
                    self.db, entry["id"], status=QueueStatus.CANCELLED.value
                )

            now = transitions.utcnow()
            row = await transitions.update_appointment(
                self.db,
                appointment_id,
                status=AppointmentStatus.CANCELLED.value,
                cancelled_by_user=user_id,
                cancellation_reason=reason,
                cancelled_at=now,
                updated_at=now,
            )

        appointment = AppointmentResponse.from_row(row)
        logger.info(
            "appointment_cancelled",
            appointment_id=str(appointment_id),
            cancelled_by=str(user_id),
            queue_entry_cancelled=entry is not None,
        )
        await self.notifications.appointment_status_changed(appointment, old_status)
        return appointment

    async def reschedule_appointment(
        self,
        appointment_id: UUID,
        new_date: date,
        new_slot: TimeSlot,
    ) -> AppointmentResponse:
        """
        Move an appointment to another date or slot.

        The appointment keeps its ID and goes back to pending; the previous
        slot is recorded in ``rescheduled_from``.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment cannot be rescheduled
            SlotConflictException: If the new slot overlaps a blocking appointment
        """
        current = await transitions.load_appointment(self.db, appointment_id)
        doctor_id = current["doctor_id"]
        old_scope = (doctor_id, current["appointment_date"])

        async with self.locks.hold(old_scope, (doctor_id, new_date)):
            async with transaction(self.db):
                row = await transitions.load_appointment(self.db, appointment_id, for_update=True)
                if row["appointment_date"] != current["appointment_date"]:
                    raise ConflictException("Appointment was moved concurrently, retry the request")
                old_status = row["status"]
                transitions.ensure_status(row, OPEN_STATUSES, "reschedule")
                if row["appointment_type"] == AppointmentType.EMERGENCY.value:
                    raise InvalidTransitionException("Emergency appointments cannot be rescheduled")
                if row["checked_in_status"]:
                    raise InvalidTransitionException(
                        "Checked-in appointments cannot be rescheduled"
                    )

                await self.conflicts.ensure_slot_available(
                    doctor_id,
                    new_date,
                    new_slot.start,
                    new_slot.end,
                    exclude_appointment_id=appointment_id,
                )

                now = transitions.utcnow()
                row = await transitions.update_appointment(
                    self.db,
                    appointment_id,
                    appointment_date=new_date,
                    slot_start=new_slot.start,
                    slot_end=new_slot.end,
                    status=AppointmentStatus.PENDING.value,
                    reschedule_count=appointments.c.reschedule_count + 1,
                    rescheduled_from={
                        "appointment_date": row["appointment_date"].isoformat(),
                        "start": row["slot_start"].isoformat(),
                        "end": row["slot_end"].isoformat(),
                        "status": old_status,
                    },
                    rescheduled_at=now,
                    reminder_sent=False,
                    reminder_sent_at=None,
                    updated_at=now,
                )

        appointment = AppointmentResponse.from_row(row)
        logger.info(
            "appointment_rescheduled",
            appointment_id=str(appointment_id),
            from_date=current["appointment_date"].isoformat(),
            to_date=new_date.isoformat(),
            reschedule_count=appointment.reschedule_count,
        )
        await self.notifications.appointment_status_changed(
            appointment, AppointmentStatus.RESCHEDULED.value
        )
        return appointment

    async def complete_appointment(
        self,
        appointment_id: UUID,
        outcome: ConsultationOutcome | None = None,
    ) -> AppointmentResponse:
        """
        Complete an appointment and record its clinical outcome.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment cannot be completed
        """
        async with self._locked(appointment_id) as row:
            old_status = row["status"]
            row = await transitions.complete(
                self.db, row, outcome or ConsultationOutcome(), transitions.utcnow()
            )

        appointment = AppointmentResponse.from_row(row)
        logger.info("appointment_completed", appointment_id=str(appointment_id))
        await self.notifications.appointment_status_changed(appointment, old_status)
        return appointment

    async def mark_no_show(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Mark an appointment as no-show.

        Raises:
            NotFoundException: If the appointment does not exist
            InvalidTransitionException: If the appointment cannot be marked no-show
        """
        async with self._locked(appointment_id) as row:
            old_status = row["status"]
            row, _ = await transitions.no_show(self.db, row, transitions.utcnow())

        appointment = AppointmentResponse.from_row(row)
        logger.info("appointment_no_show", appointment_id=str(appointment_id))
        await self.notifications.appointment_status_changed(appointment, old_status)
        return appointment

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        row = await transitions.load_appointment(self.db, appointment_id)
        return AppointmentResponse.from_row(row)

    async def list_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        List appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments
        """
        conditions = []

        if filters.status:
            conditions.append(appointments.c.status == filters.status.value)

        if filters.appointment_type:
            conditions.append(appointments.c.appointment_type == filters.appointment_type.value)

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.from_date:
            conditions.append(appointments.c.appointment_date >= filters.from_date)

        if filters.to_date:
            conditions.append(appointments.c.appointment_date <= filters.to_date)

        # Count total
        count_stmt = select(func.count()).select_from(appointments).where(*conditions)
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        # Get paginated results
        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(*conditions)
            .order_by(appointments.c.appointment_date.desc(), appointments.c.slot_start.desc())
            .limit(filters.page_size)
            .offset(offset)
        )

        result = await self.db.execute(stmt)
        items = [AppointmentResponse.from_row(row) for row in result.mappings().all()]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def get_doctor_day(self, doctor_id: UUID, day: date) -> list[AppointmentResponse]:
        """Get all appointments of a doctor on one day, ordered by slot."""
        stmt = (
            select(appointments)
            .where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.appointment_date == day,
                )
            )
            .order_by(appointments.c.slot_start, appointments.c.created_at)
        )
        result = await self.db.execute(stmt)
        return [AppointmentResponse.from_row(row) for row in result.mappings().all()]
